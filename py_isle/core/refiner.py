"""
Region refinement: border smoothing, centroid recalculation and county
creation with settlement sites.

Process:
1. smooth_borders() - majority-vote relaxation of inland borders; cells
   next to water never change so the coastline keeps its shape
2. recalculate_centroids() - pixel counts and mean positions from the
   smoothed map
3. remove_shrunken_regions() - drop regions smoothing pushed below the
   size floor
4. create_counties() - name each region and search for a settlement site
   away from borders and water

Distances used by the settlement search are approximated by marching
rays outward at fixed angular steps rather than by an exact distance
transform.
"""

import math
from typing import Literal, Optional, Tuple

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ConfigurationError, RegionConsistencyError
from .island import Island
from .names import CountyNameGenerator
from .random import SeededRandom
from .regions import UNASSIGNED, County, Region, RegionPartition, region_centroids

logger = structlog.get_logger()

_FOUR_NEIGHBORS = ((0, -1), (1, 0), (0, 1), (-1, 0))  # top, right, bottom, left
_EIGHT_NEIGHBORS = tuple(
    (dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if not (dx == 0 and dy == 0)
)
_VOTE_CHUNK = 8192


class RefinerOptions(BaseModel):
    """Region refinement parameters."""

    model_config = ConfigDict(extra="forbid")

    smooth_iterations: int = Field(default=3, ge=0, description="Border smoothing passes")
    smooth_radius: int = Field(default=2, ge=1, description="Half-width of the voting window")
    smooth_threshold: float = Field(
        default=0.5, gt=0, le=1, description="Vote share needed to reassign a cell"
    )
    search_radius: int = Field(default=30, ge=0, description="Settlement search half-width")
    min_border_distance: int = Field(default=10, ge=0, description="Settlement clearance from borders")
    min_water_distance: int = Field(default=5, ge=0, description="Settlement clearance from water")
    border_search_limit: int = Field(default=50, ge=1, description="Border ray-march cutoff")
    water_search_limit: int = Field(default=30, ge=1, description="Water ray-march cutoff")
    border_angle_step: float = Field(default=0.2, gt=0, description="Border ray spacing in radians")
    water_angle_step: float = Field(default=0.3, gt=0, description="Water ray spacing in radians")
    county_names: Literal["markov", "numbered"] = Field(
        default="markov", description="County naming scheme"
    )


def ray_angles(step: float) -> np.ndarray:
    """Angles from 0 in increments of ``step`` while below a full turn."""
    angles = []
    angle = 0.0
    while angle < math.pi * 2:
        angles.append(angle)
        angle += step
    return np.array(angles)


class RegionRefiner:
    """Refines a region partition in place and attaches counties."""

    def __init__(
        self,
        options: RefinerOptions,
        island: Island,
        partition: RegionPartition,
        seed: str,
        namer: Optional[CountyNameGenerator] = None,
        min_region_size: int = 0,
    ):
        if partition.region_map.shape != island.mask.shape:
            raise ConfigurationError(
                f"Region map shape {partition.region_map.shape} does not match "
                f"land mask shape {island.mask.shape}"
            )

        self.options = options
        self.island = island
        self.partition = partition
        self.size = island.size
        self.min_region_size = min_region_size

        # Names draw from their own stream so they never perturb the map
        if namer is None and options.county_names == "markov":
            namer = CountyNameGenerator(SeededRandom(f"{seed}:counties"))
        self.namer = namer

        self.land = island.mask == 1
        self.interior = np.zeros(self.land.shape, dtype=bool)
        self.interior[1:-1, 1:-1] = True
        self.water_adjacent = self._water_adjacent()

    def refine(self) -> RegionPartition:
        """Run every refinement step once and return the partition."""
        logger.info("Starting region refinement", regions=self.partition.region_count)
        self.smooth_borders()
        self.recalculate_centroids()
        self.remove_shrunken_regions()
        self.create_counties()
        return self.partition

    # Border smoothing

    def smooth_borders(self) -> None:
        """
        Relax inland borders by majority vote, then absorb isolated cells.

        Each pass builds a replacement map from the previous one, so the
        order in which cells are visited never matters.
        """
        for iteration in range(self.options.smooth_iterations):
            current = self.partition.region_map
            candidates = (
                self.interior
                & self.land
                & (current != UNASSIGNED)
                & self._border_pixels(current)
                & ~self.water_adjacent
            )
            ys, xs = np.nonzero(candidates)
            votes = self._smoothing_votes(current, ys, xs)

            updated = current.copy()
            chosen = votes != UNASSIGNED
            updated[ys[chosen], xs[chosen]] = votes[chosen]
            changed = int(np.count_nonzero(updated != current))
            self.partition.region_map = updated

            logger.debug("Smoothing pass", iteration=iteration, candidates=len(xs), changed=changed)

        self.cleanup_isolated_pixels()

    def _border_pixels(self, region_map: np.ndarray) -> np.ndarray:
        """True where a land 4-neighbour belongs to a different region (or none)."""
        padded_map = np.pad(region_map, 1, constant_values=UNASSIGNED)
        padded_land = np.pad(self.land, 1, constant_values=False)
        height, width = region_map.shape
        border = np.zeros(region_map.shape, dtype=bool)

        for dx, dy in _FOUR_NEIGHBORS:
            neighbor = padded_map[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
            neighbor_land = padded_land[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
            border |= neighbor_land & (neighbor != region_map)
        return border

    def _water_adjacent(self) -> np.ndarray:
        """True where an in-bounds 8-neighbour is water."""
        padded_land = np.pad(self.land, 1, constant_values=True)
        height, width = self.land.shape
        adjacent = np.zeros(self.land.shape, dtype=bool)

        for dx, dy in _EIGHT_NEIGHBORS:
            adjacent |= ~padded_land[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
        return adjacent

    def _smoothing_votes(self, region_map: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
        """
        Majority region in the voting window around each cell.

        Only assigned land cells vote. A region wins when it holds the
        largest count and at least ``smooth_threshold`` of the votes; when
        two regions tie, the one met first in row-major window order wins.
        Cells with no winner get ``UNASSIGNED``.
        """
        radius = self.options.smooth_radius
        threshold = self.options.smooth_threshold
        padded_map = np.pad(region_map, radius, constant_values=UNASSIGNED)
        padded_land = np.pad(self.land, radius, constant_values=False)
        offsets = [(dx, dy) for dy in range(-radius, radius + 1) for dx in range(-radius, radius + 1)]

        result = np.full(len(xs), UNASSIGNED, dtype=np.int32)
        for start in range(0, len(xs), _VOTE_CHUNK):
            cy = ys[start : start + _VOTE_CHUNK] + radius
            cx = xs[start : start + _VOTE_CHUNK] + radius

            values = np.stack([padded_map[cy + dy, cx + dx] for dx, dy in offsets], axis=1)
            valid = np.stack([padded_land[cy + dy, cx + dx] for dx, dy in offsets], axis=1)
            valid &= values != UNASSIGNED

            # counts[i, j]: votes for the region found at window position j
            counts = ((values[:, :, None] == values[:, None, :]) & valid[:, None, :]).sum(axis=2)
            counts[~valid] = 0
            total = valid.sum(axis=1)
            best = counts.max(axis=1)

            share = np.divide(best, total, out=np.zeros(len(best)), where=total > 0)
            eligible = (counts == best[:, None]) & valid & (share >= threshold)[:, None]
            has_winner = eligible.any(axis=1)
            winner_pos = eligible.argmax(axis=1)

            rows = np.arange(len(cx))
            result[start : start + len(cx)] = np.where(
                has_winner, values[rows, winner_pos], UNASSIGNED
            )
        return result

    def cleanup_isolated_pixels(self) -> None:
        """
        Reassign cells with no same-region land 4-neighbour to the last
        neighbouring region met in top, right, bottom, left order.

        Cells next to water are left alone.
        """
        current = self.partition.region_map
        padded_map = np.pad(current, 1, constant_values=UNASSIGNED)
        padded_land = np.pad(self.land, 1, constant_values=False)
        height, width = current.shape

        matching = np.zeros(current.shape, dtype=np.int32)
        different = np.full(current.shape, UNASSIGNED, dtype=np.int32)
        for dx, dy in _FOUR_NEIGHBORS:
            neighbor = padded_map[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
            neighbor_land = padded_land[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
            matching += neighbor_land & (neighbor == current)
            other = neighbor_land & (neighbor != current) & (neighbor != UNASSIGNED)
            different = np.where(other, neighbor, different)

        isolated = (
            self.interior
            & self.land
            & (current != UNASSIGNED)
            & (matching == 0)
            & (different != UNASSIGNED)
            & ~self.water_adjacent
        )

        updated = current.copy()
        updated[isolated] = different[isolated]
        self.partition.region_map = updated
        logger.debug("Isolated pixels reassigned", count=int(isolated.sum()))

    # Centroids

    def recalculate_centroids(self) -> None:
        """Recompute pixel counts and centroids from the current region map."""
        partition = self.partition
        count = partition.region_count
        assigned = partition.region_map[partition.region_map != UNASSIGNED]
        if len(assigned) and int(assigned.max()) >= count:
            raise RegionConsistencyError(
                f"Region map references id {int(assigned.max())} but only {count} regions exist"
            )

        pixels, centroid_x, centroid_y = region_centroids(partition.region_map, count)
        for region in partition.regions:
            region.pixels = int(pixels[region.id])
            if region.pixels > 0:
                region.centroid = (int(centroid_x[region.id]), int(centroid_y[region.id]))
            else:
                region.centroid = None

    def remove_shrunken_regions(self) -> None:
        """
        Drop regions that smoothing pushed below ``min_region_size``.

        Their cells become unassigned and the surviving regions get fresh
        ids, bounds, centroids and neighbour sets.
        """
        partition = self.partition
        removed = partition.remove_small_regions(self.min_region_size)
        partition.removed_refined_regions = removed
        if removed:
            partition.update_properties()
            logger.warning(
                "Removed regions below the size floor after smoothing",
                removed=removed,
                min_region_size=self.min_region_size,
            )

    # Counties

    def create_counties(self) -> None:
        """Attach a county with a name and settlement site to every region."""
        for region in self.partition.regions:
            county = County(id=region.id, name=self._county_name(region))

            site = self.find_best_town_location(region)
            if site is None:
                site = self._fallback_site(region)
                county.site_fallback = True
                if site is None:
                    logger.warning("Region has no cells, no settlement placed", region=region.id)
                else:
                    logger.warning("Using centroid for town center", region=region.id)

            county.town_center = site
            region.county = county

        logger.info("Counties created", counties=self.partition.region_count)

    def _county_name(self, region: Region) -> str:
        if self.namer is None:
            return f"County {region.id + 1}"
        return self.namer.generate()

    def find_best_town_location(self, region: Region) -> Optional[Tuple[int, int]]:
        """
        Best settlement cell within ``search_radius`` of the centroid.

        Candidates must belong to the region and clear the border and water
        minimums. Score is border distance plus half the water distance;
        among candidates within one point of the best score the one nearest
        the centroid wins.
        """
        if region.centroid is None:
            return None

        options = self.options
        size = self.size
        cx, cy = region.centroid
        radius = options.search_radius
        x0, x1 = max(0, cx - radius), min(size, cx + radius + 1)
        y0, y1 = max(0, cy - radius), min(size, cy + radius + 1)

        window = (self.partition.region_map[y0:y1, x0:x1] == region.id) & self.land[y0:y1, x0:x1]
        ys, xs = np.nonzero(window)
        if len(xs) == 0:
            return None
        xs = xs + x0
        ys = ys + y0

        border_dist = self.distance_from_border(xs, ys, region.id)
        water_dist = self.distance_from_water(xs, ys)
        ok = (border_dist >= options.min_border_distance) & (water_dist >= options.min_water_distance)
        if not ok.any():
            return None

        xs, ys = xs[ok], ys[ok]
        score = border_dist[ok] + water_dist[ok] * 0.5
        near_best = score > score.max() - 1
        centroid_dist = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2)
        pick = int(np.argmin(np.where(near_best, centroid_dist, np.inf)))
        return int(xs[pick]), int(ys[pick])

    def _fallback_site(self, region: Region) -> Optional[Tuple[int, int]]:
        """The centroid when it lies in the region, else the nearest region cell to it."""
        if region.centroid is None:
            return None

        cx, cy = region.centroid
        region_map = self.partition.region_map
        if region_map[cy, cx] == region.id and self.land[cy, cx]:
            return cx, cy

        ys, xs = np.nonzero((region_map == region.id) & self.land)
        if len(xs) == 0:
            return None
        pick = int(np.argmin((xs - cx) ** 2 + (ys - cy) ** 2))
        return int(xs[pick]), int(ys[pick])

    def distance_from_border(self, xs: np.ndarray, ys: np.ndarray, region_id: int) -> np.ndarray:
        """Ray-marched distance to the nearest cell outside the region or grid."""
        region_map = self.partition.region_map

        def hit(nx, ny, outside):
            inside_value = region_map[np.clip(ny, 0, self.size - 1), np.clip(nx, 0, self.size - 1)]
            return outside | (inside_value != region_id)

        return self._ray_march(
            xs, ys, self.options.border_angle_step, self.options.border_search_limit, hit
        )

    def distance_from_water(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Ray-marched distance to the nearest water cell; off-grid samples are ignored."""
        land = self.land

        def hit(nx, ny, outside):
            inside_land = land[np.clip(ny, 0, self.size - 1), np.clip(nx, 0, self.size - 1)]
            return ~outside & ~inside_land

        return self._ray_march(
            xs, ys, self.options.water_angle_step, self.options.water_search_limit, hit
        )

    def _ray_march(self, xs, ys, angle_step, limit, hit) -> np.ndarray:
        """
        First radius in ``1..limit-1`` at which any ray sample satisfies
        ``hit``; ``limit`` when none does.
        """
        angles = ray_angles(angle_step)
        cos = np.cos(angles)
        sin = np.sin(angles)

        result = np.full(len(xs), limit, dtype=np.int64)
        pending = np.arange(len(xs))
        for radius in range(1, limit):
            if len(pending) == 0:
                break
            nx = np.floor(xs[pending, None] + cos[None, :] * radius + 0.5).astype(np.int64)
            ny = np.floor(ys[pending, None] + sin[None, :] * radius + 0.5).astype(np.int64)
            outside = (nx < 0) | (nx >= self.size) | (ny < 0) | (ny >= self.size)

            found = hit(nx, ny, outside).any(axis=1)
            result[pending[found]] = radius
            pending = pending[~found]
        return result
