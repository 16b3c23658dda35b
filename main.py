#!/usr/bin/env python3
"""
Main entry point for the image finder.
Supports command-line execution and configuration file input.
"""

import argparse
import json
import sys
import time
from pathlib import Path
import logging
from datetime import datetime

from defaults import DEFAULT_OUTPUT_DIR
from errors import ImageFinderError
from finder import FinderConfig, ImageFinder
from performance_optimizations import setup_thread_optimizations
from preprocessing import load_raster
from utils import setup_logging, create_output_directory, save_matches


def load_config(config_path: str) -> dict:
    """Load configuration from JSON file."""
    with open(config_path, 'r') as f:
        return json.load(f)


def save_config(config: dict, output_dir: Path):
    """Save configuration to output directory for reproducibility."""
    config_path = output_dir / 'run_config.json'
    with open(config_path, 'w') as f:
        json.dump(config, f, indent=2)
    logging.info(f"Configuration saved to: {config_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Find every occurrence of a target image inside a source image'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration JSON file'
    )

    parser.add_argument(
        '--source',
        type=str,
        help='Path to source image (overrides config)'
    )

    parser.add_argument(
        '--target',
        type=str,
        help='Path to target image (overrides config)'
    )

    parser.add_argument(
        '--threshold',
        type=float,
        help='Similarity threshold at full resolution (overrides config)'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Worker threads for the parallel kernels (overrides config)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help='Output directory (overrides config)'
    )

    parser.add_argument(
        '--no-visualization',
        action='store_true',
        help='Skip writing the match overlay PNG'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output (per-level search details)'
    )

    return parser


def resolve_config(args: argparse.Namespace) -> dict:
    """Merge the optional config file with command-line overrides."""
    config_dict = load_config(args.config) if args.config else {}
    config_dict.setdefault('source_path', '')
    config_dict.setdefault('target_path', '')
    config_dict.setdefault('output_dir', DEFAULT_OUTPUT_DIR)
    config_dict.setdefault('verbose', False)
    config_dict.setdefault('visualization', True)

    if args.source:
        config_dict['source_path'] = args.source
    if args.target:
        config_dict['target_path'] = args.target
    if args.threshold is not None:
        config_dict['similarity_threshold'] = args.threshold
    if args.workers is not None:
        config_dict['workers'] = args.workers
    if args.output_dir:
        config_dict['output_dir'] = args.output_dir
    if args.no_visualization:
        config_dict['visualization'] = False
    if args.verbose:
        config_dict['verbose'] = True

    return config_dict


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config_dict = resolve_config(args)

    # Validate required parameters
    if not config_dict.get('source_path') or not config_dict.get('target_path'):
        print("Error: source_path and target_path are required")
        print("Provide them via --config file or --source/--target arguments")
        return 1

    config = FinderConfig.from_dict(config_dict)

    # Setup output directory and logging
    output_dir = create_output_directory(config_dict['output_dir'])
    setup_logging(output_dir, verbose=config_dict['verbose'])

    logging.info("=" * 80)
    logging.info("IMAGE FINDER")
    logging.info("=" * 80)
    logging.info(f"Timestamp: {datetime.now().isoformat()}")
    logging.info(f"Source: {config_dict['source_path']}")
    logging.info(f"Target: {config_dict['target_path']}")
    logging.info(f"Threshold: {config.similarity_threshold}")
    logging.info(f"Output directory: {output_dir}")
    logging.info("=" * 80)

    # Save configuration for reproducibility
    save_config({**config_dict, **config.to_dict()}, output_dir)
    setup_thread_optimizations(config.workers)

    try:
        source = load_raster(config_dict['source_path'])
        target = load_raster(config_dict['target_path'])

        finder = ImageFinder(config)
        finder.set_source(source)

        start_time = time.time()
        matches = finder.find(target)
        elapsed = time.time() - start_time

        for rank, match in enumerate(matches, start=1):
            zone = match.zone
            logging.info(f"  #{rank}: x={zone.x} y={zone.y} {zone.width}x{zone.height} "
                         f"similarity={match.similarity:.4f}")

        save_matches(matches, output_dir / 'matches.json', metadata={
            'source_path': config_dict['source_path'],
            'target_path': config_dict['target_path'],
            'elapsed_seconds': round(elapsed, 3),
            'levels': [vars(stats) for stats in finder.level_stats]
        })

        if config_dict['visualization']:
            from debug_visualizations import visualize_matches
            visualize_matches(
                source, target, matches,
                output_dir / 'visualizations' / 'matches_overlay.png',
                source_name=Path(config_dict['source_path']).name,
                target_name=Path(config_dict['target_path']).name
            )

        logging.info("=" * 80)
        logging.info(f"SEARCH COMPLETED: {len(matches)} match(es) in {elapsed:.2f}s")
        logging.info(f"All outputs saved to: {output_dir}")
        logging.info("=" * 80)
        return 0

    except (ImageFinderError, ValueError) as e:
        logging.error(f"Search failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
