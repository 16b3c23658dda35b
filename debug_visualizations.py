#!/usr/bin/env python3
"""Match overlays for inspecting search results."""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
import numpy as np

from geometry import Match
from preprocessing import load_raster
from utils import load_matches


def visualize_matches(source: np.ndarray, target: np.ndarray, matches: List[Match],
                      output_path: Path, source_name: Optional[str] = None,
                      target_name: Optional[str] = None) -> Path:
    """
    Save a side-by-side figure: the source with every match outlined, and the target.

    Args:
        source: RGB source raster
        target: RGB target raster
        matches: Matches in source pixel coordinates
        output_path: PNG file to write

    Returns:
        The written path
    """
    output_path = Path(output_path)
    fig, axes = plt.subplots(1, 2, figsize=(16, 8), gridspec_kw={'width_ratios': [3, 1]})

    axes[0].imshow(source)
    for rank, match in enumerate(matches, start=1):
        zone = match.zone
        axes[0].add_patch(mpatches.Rectangle(
            (zone.x - 0.5, zone.y - 0.5), zone.width, zone.height,
            linewidth=2, edgecolor='lime', facecolor='none'
        ))
        axes[0].text(zone.x, zone.y - 2, f'#{rank} {match.similarity:.3f}',
                     color='lime', fontsize=9, fontweight='bold', va='bottom')
    src_title = source_name if source_name else 'Source'
    axes[0].set_title(f'{src_title} - {len(matches)} matches', fontsize=14, fontweight='bold')
    axes[0].axis('off')

    axes[1].imshow(target)
    tgt_title = target_name if target_name else 'Target'
    axes[1].set_title(f'{tgt_title} ({target.shape[1]}x{target.shape[0]})', fontsize=14, fontweight='bold')
    axes[1].axis('off')

    plt.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logging.info(f"Visualization saved to: {output_path}")
    return output_path


def main():
    parser = argparse.ArgumentParser(description='Regenerate a match overlay from a saved matches.json')
    parser.add_argument('matches', type=str, help='Path to matches.json')
    parser.add_argument('--source', type=str, required=True, help='Path to source image')
    parser.add_argument('--target', type=str, required=True, help='Path to target image')
    parser.add_argument('--output', type=str, help='Output PNG (default: next to matches.json)')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(message)s')

    matches_path = Path(args.matches)
    output_path = Path(args.output) if args.output else matches_path.with_name('matches_overlay.png')
    visualize_matches(
        load_raster(args.source),
        load_raster(args.target),
        load_matches(matches_path),
        output_path,
        source_name=Path(args.source).name,
        target_name=Path(args.target).name
    )


if __name__ == '__main__':
    main()
