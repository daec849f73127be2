"""
End-to-end tests for generation sessions.

The reference scenario runs once at full resolution; the remaining tests
use a small grid to keep the suite quick.
"""

import json

import numpy as np
import pytest

from py_isle import (
    ConfigurationError,
    GenerationConfig,
    Stage,
    StageOrderError,
    create_session,
    generate_island,
    generate_map,
    partition_regions,
    refine_regions,
)
from py_isle.core.regions import UNASSIGNED

SMALL_SIZE = 256


def small_config(seed="test123", **values):
    values.setdefault("regions", {"target_regions": 5, "min_region_size": 200})
    return GenerationConfig.create(seed=seed, map_size=SMALL_SIZE, **values)


@pytest.fixture(scope="module")
def reference_session():
    """The reference scenario: seed "test123" on a 1024 grid with 7 target regions."""
    config = GenerationConfig.create(seed="test123", map_size=1024, regions={"target_regions": 7})
    return generate_map(config)


@pytest.fixture(scope="module")
def small_session():
    return generate_map(small_config())


class TestReferenceScenario:
    """Test the reference scenario end to end."""

    def test_coverage(self, reference_session):
        """Test roughly a quarter to under half of the grid is land."""
        assert 0.25 <= reference_session.island.coverage <= 0.45

    def test_vertical_bias(self, reference_session):
        """Test the island is taller than wide."""
        assert reference_session.island.effective_elongation > 1

    def test_regions(self, reference_session):
        """Test regions exist and each meets the size floor."""
        regions = reference_session.regions
        assert regions
        minimum = reference_session.config.regions.min_region_size
        counts = reference_session.partition.pixel_counts()
        for region in regions:
            assert region.pixels >= minimum
            assert region.pixels == counts[region.id]

    def test_one_settlement_per_region(self, reference_session):
        """Test every region has exactly one settlement site inside it."""
        region_map = reference_session.partition.region_map
        sites = set()
        for region in reference_session.regions:
            assert region.county is not None
            x, y = region.county.town_center
            assert region_map[y, x] == region.id
            sites.add((x, y))
        assert len(sites) == len(reference_session.regions)

    def test_stage(self, reference_session):
        """Test the finished session reports the final stage."""
        assert reference_session.stage == Stage.REFINED


class TestGenerationConfig:
    """Test configuration validation."""

    def test_defaults(self):
        """Test the default configuration."""
        config = GenerationConfig.create()
        assert config.seed == "test123"
        assert config.map_size == 1024
        assert config.regions.target_regions == 7

    @pytest.mark.parametrize(
        "values",
        [
            {"map_size": 0},
            {"map_size": -5},
            {"map_size": 100000},
            {"regions": {"target_regions": 0}},
            {"island": {"coastline_noise": 2.0}},
            {"refiner": {"county_names": "random"}},
            {"unknown": 1},
        ],
    )
    def test_invalid_values(self, values):
        """Test invalid values raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            GenerationConfig.create(**values)

    def test_configuration_error_is_value_error(self):
        """Test callers can catch the standard exception type."""
        with pytest.raises(ValueError):
            GenerationConfig.create(map_size=0)

    def test_session_revalidates(self):
        """Test a config built without validation is checked on session creation."""
        config = GenerationConfig.model_construct(seed="x", map_size=0)
        with pytest.raises(ConfigurationError):
            create_session(config)


class TestStages:
    """Test stage ordering."""

    def test_new_session(self):
        """Test a fresh session holds no results."""
        session = create_session(small_config())
        assert session.stage == Stage.CREATED
        assert session.island is None
        assert session.partition is None
        assert session.regions == []

    def test_partition_before_island(self):
        """Test partitioning an empty session fails."""
        session = create_session(small_config())
        with pytest.raises(StageOrderError):
            partition_regions(session)

    def test_refine_before_partition(self):
        """Test refining before partitioning fails."""
        session = generate_island(create_session(small_config()))
        with pytest.raises(StageOrderError):
            refine_regions(session)

    def test_stage_runs_once(self):
        """Test a stage cannot be repeated on the same session."""
        session = generate_island(create_session(small_config()))
        with pytest.raises(StageOrderError):
            generate_island(session)

    def test_stages_advance(self):
        """Test each stage moves the session forward."""
        session = create_session(small_config())
        assert generate_island(session).stage == Stage.ISLAND
        assert partition_regions(session).stage == Stage.PARTITIONED
        assert refine_regions(session).stage == Stage.REFINED


class TestDeterminism:
    """Test reproducibility and session independence."""

    def test_same_seed_same_map(self, small_session):
        """Test rerunning a seed reproduces every buffer."""
        again = generate_map(small_config())
        np.testing.assert_array_equal(again.island.mask, small_session.island.mask)
        np.testing.assert_array_equal(again.partition.region_map, small_session.partition.region_map)
        assert again.summary() == small_session.summary()

    def test_interleaved_sessions(self, small_session):
        """Test sessions generated side by side do not share state."""
        first = create_session(small_config())
        second = create_session(small_config(seed="other"))
        for stage in (generate_island, partition_regions, refine_regions):
            stage(first)
            stage(second)

        np.testing.assert_array_equal(first.partition.region_map, small_session.partition.region_map)
        assert not np.array_equal(first.island.mask, second.island.mask)

    def test_numbered_names_do_not_change_map(self, small_session):
        """Test the naming scheme does not perturb generation."""
        session = generate_map(small_config(refiner={"county_names": "numbered"}))
        np.testing.assert_array_equal(session.partition.region_map, small_session.partition.region_map)
        assert [r.county.name for r in session.regions] == [
            f"County {i + 1}" for i in range(len(session.regions))
        ]


class TestInvariants:
    """Test cross-stage invariants on a small map."""

    def test_no_region_on_water(self, small_session):
        """Test water cells stay unassigned through refinement."""
        mask = small_session.island.mask
        assert (small_session.partition.region_map[mask == 0] == UNASSIGNED).all()

    def test_no_region_on_grid_ring(self, small_session):
        """Test no region reaches the outer ring."""
        region_map = small_session.partition.region_map
        assert (region_map[0, :] == UNASSIGNED).all()
        assert (region_map[-1, :] == UNASSIGNED).all()
        assert (region_map[:, 0] == UNASSIGNED).all()
        assert (region_map[:, -1] == UNASSIGNED).all()

    def test_dense_ids(self, small_session):
        """Test region ids are 0..count-1."""
        assert [r.id for r in small_session.regions] == list(range(len(small_session.regions)))


class TestSummary:
    """Test the serializable session summary."""

    def test_created_summary(self):
        """Test a fresh session summary."""
        summary = create_session(small_config()).summary()
        assert summary == {"seed": "test123", "map_size": SMALL_SIZE, "stage": "created"}

    def test_json_serializable(self, small_session):
        """Test the full summary survives a JSON round trip."""
        summary = small_session.summary()
        decoded = json.loads(json.dumps(summary))

        assert decoded["stage"] == "refined"
        assert decoded["island"]["land_pixels"] == small_session.island.land_pixels
        assert len(decoded["regions"]) == len(small_session.regions)
        for entry in decoded["regions"]:
            assert "county" in entry
            assert entry["county"]["name"]


class TestRegionSizeFloor:
    """Test the size floor holds after refinement."""

    @pytest.mark.parametrize("seed", ["b", "d"])
    def test_floor_holds_after_refinement(self, seed):
        """Test regions that smoothing shrinks below the floor are removed."""
        regions = {"target_regions": 12, "min_region_size": 100}
        session = create_session(small_config(seed=seed, regions=regions))
        partition_regions(generate_island(session))
        floor = min(r.pixels for r in session.regions)

        regions["min_region_size"] = floor
        refined = generate_map(small_config(seed=seed, regions=regions))

        assert refined.regions
        counts = refined.partition.pixel_counts()
        for region in refined.regions:
            assert region.pixels >= floor
            assert region.pixels == counts[region.id]
        refined.partition.validate(refined.island.mask)
