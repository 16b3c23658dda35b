"""
Utility functions for logging, directory management, and file I/O.
"""

import json
import logging
from pathlib import Path
from datetime import datetime
import sys
from typing import List, Optional

from geometry import Match, Rect


def setup_logging(output_dir: Path, verbose: bool = False) -> Path:
    """
    Setup logging configuration with proper file placement.

    Args:
        output_dir: Directory to save log files
        verbose: If True, set DEBUG level; otherwise INFO

    Returns:
        Path of the log file
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    # Create formatters
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    simple_formatter = logging.Formatter(
        '%(message)s'  # Very simple for console
    )

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers
    root_logger.handlers = []

    # Console handler (simple format)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    # File handler in logs subdirectory (detailed format)
    logs_dir = output_dir / 'logs'
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = logs_dir / f'find_{timestamp}.log'

    file_handler = logging.FileHandler(log_file, mode='w')
    file_handler.setLevel(logging.DEBUG)  # Always capture all details in file
    file_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(file_handler)

    logging.info(f"Log file: {log_file}")
    logging.debug(f"Verbose mode: {verbose}")
    return log_file


def create_output_directory(base_dir: str) -> Path:
    """
    Create output directory structure.

    Args:
        base_dir: Base output directory path

    Returns:
        Path object for the created directory
    """
    # Create timestamped subdirectory
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    output_dir = Path(base_dir) / f'run_{timestamp}'

    # Create directory and subdirectories
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / 'visualizations').mkdir(exist_ok=True)
    (output_dir / 'logs').mkdir(exist_ok=True)

    return output_dir


def save_matches(matches: List[Match], output_path: Path, metadata: Optional[dict] = None) -> Path:
    """
    Write matches to a JSON file.

    Args:
        matches: Matches to save
        output_path: Destination file
        metadata: Extra run information stored next to the matches

    Returns:
        The written path
    """
    payload = {
        'created': datetime.now().isoformat(),
        'num_matches': len(matches),
        'matches': [m.to_dict() for m in matches]
    }
    if metadata:
        payload['metadata'] = metadata

    output_path = Path(output_path)
    with open(output_path, 'w') as f:
        json.dump(payload, f, indent=2)
    logging.info(f"Matches saved to: {output_path}")
    return output_path


def load_matches(input_path: Path) -> List[Match]:
    """Read matches written by save_matches()."""
    with open(input_path, 'r') as f:
        payload = json.load(f)
    return [
        Match(Rect(m['x'], m['y'], m['width'], m['height']), m['similarity'])
        for m in payload.get('matches', [])
    ]
