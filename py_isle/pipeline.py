"""
Generation sessions.

A ``GenerationSession`` owns every buffer of one generation run. The stage
functions take the session, advance it by one stage and return it:

    session = create_session(GenerationConfig.create(seed="test123"))
    generate_island(session)
    partition_regions(session)
    refine_regions(session)

Each session has its own ``SeededRandom``; independent sessions can be
generated side by side without sharing state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import settings
from .core.island import Island, IslandGenerator, IslandOptions
from .core.random import SeededRandom
from .core.refiner import RefinerOptions, RegionRefiner
from .core.regions import Region, RegionOptions, RegionPartition, RegionPartitioner
from .exceptions import ConfigurationError, StageOrderError

logger = structlog.get_logger()


class Stage(str, Enum):
    """Pipeline progress of a session."""

    CREATED = "created"
    ISLAND = "island"
    PARTITIONED = "partitioned"
    REFINED = "refined"


class GenerationConfig(BaseModel):
    """Complete input of one generation run."""

    model_config = ConfigDict(extra="forbid")

    seed: str = Field(default="test123", description="Seed string for the PRNG")
    map_size: int = Field(
        default_factory=lambda: settings.default_map_size,
        gt=0,
        description="Grid edge length in cells",
    )
    island: IslandOptions = Field(default_factory=IslandOptions)
    regions: RegionOptions = Field(default_factory=RegionOptions)
    refiner: RefinerOptions = Field(default_factory=RefinerOptions)

    @field_validator("map_size")
    @classmethod
    def _within_limit(cls, value: int) -> int:
        if value > settings.max_map_size:
            raise ValueError(f"map_size {value} exceeds the maximum of {settings.max_map_size}")
        return value

    @classmethod
    def create(cls, **values: Any) -> "GenerationConfig":
        """
        Build a validated configuration.

        Raises:
            ConfigurationError: any value is missing or out of range
        """
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e


@dataclass
class GenerationSession:
    """State of one generation run, held by the caller between stages."""

    config: GenerationConfig
    random: SeededRandom
    stage: Stage = Stage.CREATED
    island: Optional[Island] = None
    partition: Optional[RegionPartition] = None

    @property
    def regions(self) -> List[Region]:
        return self.partition.regions if self.partition is not None else []

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly description of the island and region metadata."""
        result: Dict[str, Any] = {
            "seed": self.config.seed,
            "map_size": self.config.map_size,
            "stage": self.stage.value,
        }

        if self.island is not None:
            island = self.island
            result["island"] = {
                "land_pixels": island.land_pixels,
                "coverage": island.coverage,
                "bounds": island.bounds._asdict() if island.bounds else None,
                "effective_width": island.effective_width,
                "effective_height": island.effective_height,
                "effective_elongation": island.effective_elongation,
                "blobs": len(island.blobs),
            }

        if self.partition is not None:
            result["seed_points"] = len(self.partition.seed_points)
            result["regions"] = [_region_summary(region) for region in self.partition.regions]

        return result


def _region_summary(region: Region) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "id": region.id,
        "seed_point": {"x": region.seed_point.x, "y": region.seed_point.y},
        "pixels": region.pixels,
        "bounds": region.bounds._asdict() if region.bounds else None,
        "centroid": list(region.centroid) if region.centroid else None,
        "neighbors": list(region.neighbors),
    }
    if region.county is not None:
        county = region.county
        summary["county"] = {
            "name": county.name,
            "town_center": list(county.town_center) if county.town_center else None,
            "site_fallback": county.site_fallback,
        }
    return summary


def create_session(config: Optional[GenerationConfig] = None) -> GenerationSession:
    """
    Validate ``config`` and open a session seeded from it.

    Raises:
        ConfigurationError: the configuration is invalid
    """
    if config is None:
        config = GenerationConfig.create()
    else:
        # Re-validate, configs built with model_construct skip validation
        config = GenerationConfig.create(**config.model_dump())

    logger.info("Session created", seed=config.seed, map_size=config.map_size)
    return GenerationSession(config=config, random=SeededRandom(config.seed))


def _require(session: GenerationSession, stage: Stage, action: str) -> None:
    if session.stage != stage:
        raise StageOrderError(
            f"Cannot {action} a session in stage '{session.stage.value}', "
            f"expected '{stage.value}'"
        )


def generate_island(session: GenerationSession) -> GenerationSession:
    """Synthesize the island mask."""
    _require(session, Stage.CREATED, "generate the island of")
    config = session.config

    logger.info("Generating island", seed=config.seed)
    generator = IslandGenerator(config.island, config.map_size, session.random)
    session.island = generator.generate()
    session.stage = Stage.ISLAND
    return session


def partition_regions(session: GenerationSession) -> GenerationSession:
    """Partition the island's land into regions."""
    _require(session, Stage.ISLAND, "partition")
    config = session.config

    logger.info("Partitioning regions", seed=config.seed)
    partitioner = RegionPartitioner(config.regions, session.island, session.random)
    session.partition = partitioner.generate()
    session.stage = Stage.PARTITIONED
    return session


def refine_regions(session: GenerationSession) -> GenerationSession:
    """Smooth region borders and create counties with settlement sites."""
    _require(session, Stage.PARTITIONED, "refine")
    config = session.config

    logger.info("Refining regions", seed=config.seed)
    refiner = RegionRefiner(
        config.refiner,
        session.island,
        session.partition,
        config.seed,
        min_region_size=config.regions.min_region_size,
    )
    refiner.refine()
    session.stage = Stage.REFINED
    return session


def generate_map(config: Optional[GenerationConfig] = None) -> GenerationSession:
    """Run every stage and return the finished session."""
    session = create_session(config)
    generate_island(session)
    partition_regions(session)
    refine_regions(session)

    logger.info(
        "Map generation completed",
        seed=session.config.seed,
        regions=len(session.regions),
        coverage=round(session.island.coverage, 4),
    )
    return session
