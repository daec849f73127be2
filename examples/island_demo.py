#!/usr/bin/env python3
"""
Demo script showing island and county generation.
"""

import sys

import numpy as np

from py_isle import GenerationConfig, generate_map
from py_isle.utils.logging import configure_logging


def main():
    """Generate one map and print its metrics."""
    seed = sys.argv[1] if len(sys.argv) > 1 else "test123"
    configure_logging(level="WARNING")

    print("Py-Isle Generation Demo")
    print("=" * 40)

    config = GenerationConfig.create(seed=seed, map_size=1024, regions={"target_regions": 7})
    print(f"\nGenerating island (seed '{seed}', {config.map_size}x{config.map_size})...")
    session = generate_map(config)

    island = session.island
    print(f"  Land cells: {island.land_pixels} ({island.coverage * 100:.1f}%)")
    print(f"  Bounds: {island.bounds}")
    print(f"  Effective size: {island.effective_width}x{island.effective_height}")
    print(f"  Elongation: {island.effective_elongation:.2f}")
    print(f"  Blobs: {len(island.blobs)}")

    partition = session.partition
    print(f"\nRegions: {partition.region_count}")
    print(f"  Seed points: {len(partition.seed_points)} of {partition.requested_points}")
    print(f"  Removed at edge: {partition.removed_edge_regions}")
    print(f"  Removed as too small: {partition.removed_small_regions}")
    print(f"  Removed after smoothing: {partition.removed_refined_regions}")

    largest = max((r.pixels for r in session.regions), default=0)
    print("\nCounties:")
    print("-" * 30)
    for region in session.regions:
        county = region.county
        bar = "#" * int(region.pixels / largest * 20) if largest else ""
        marker = " (fallback)" if county.site_fallback else ""
        print(f"  {county.name:<14} {bar:<20} {region.pixels:>7} cells, town at {county.town_center}{marker}")

    assigned = np.count_nonzero(partition.region_map >= 0)
    print(f"\nLand in counties: {assigned / max(island.land_pixels, 1) * 100:.1f}%")


if __name__ == "__main__":
    main()
