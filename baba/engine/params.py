"""Rating parameters passed explicitly through the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .classifier import CATEGORY_ANCHOR_INDEX, Generation, RaceCategory

# Age-restricted fields run slower than mixed-age ones at equal ability
GENERATION_CORRECTION: Mapping[RaceCategory, Mapping[Generation, int]] = MappingProxyType({
    RaceCategory.OPEN: MappingProxyType({
        Generation.THREE_YEAR_OLD: 7,
        Generation.TWO_YEAR_OLD: 12,
    }),
    RaceCategory.WIN1: MappingProxyType({
        Generation.THREE_YEAR_OLD: 2,
        Generation.TWO_YEAR_OLD: 3,
    }),
})

BIAS_PERCENTILES = (5, 15, 35, 65, 85, 95)


@dataclass(frozen=True)
class RatingParams:
    """Calibration constants for baselines, bias days and indices."""

    calibration_factor: float = 6.442
    calibration_distance: int = 2000
    ability_weight: float = 0.5
    draft_factor: float = 0.6
    early_bias_share: float = 0.6
    min_slope_samples: int = 2
    min_bias_samples: int = 3
    bias_percentiles: tuple[int, ...] = BIAS_PERCENTILES
    bias_scheme: str = "percentile"
    target_surface: str = "芝"
    reference_condition: str = "良"
    anchor_index: Mapping[RaceCategory, int] = field(
        default_factory=lambda: MappingProxyType(dict(CATEGORY_ANCHOR_INDEX))
    )
    generation_correction: Mapping[RaceCategory, Mapping[Generation, int]] = field(
        default_factory=lambda: GENERATION_CORRECTION
    )

    @property
    def closing_bias_share(self) -> float:
        return 1.0 - self.early_bias_share

    def distance_factor(self, distance: int) -> float:
        """Points per second at the given distance."""
        return self.calibration_factor * (self.calibration_distance / distance)

    def normalize_to_reference(self, seconds: float, distance: int) -> float:
        """Scale seconds at ``distance`` to the reference distance."""
        return seconds * (self.calibration_distance / distance)

    def scale_from_reference(self, seconds: float, distance: int) -> float:
        """Scale reference-distance seconds back to ``distance``."""
        return seconds * (distance / self.calibration_distance)

    def anchor_for(self, base_anchor: int, category: RaceCategory, generation: Generation) -> int:
        """Base anchor plus the generation correction for this field."""
        correction = self.generation_correction.get(category, {}).get(generation, 0)
        return base_anchor + correction

    @classmethod
    def from_settings(cls, settings) -> RatingParams:
        return cls(
            calibration_factor=settings.calibration_factor,
            calibration_distance=settings.calibration_distance,
            ability_weight=settings.ability_weight,
            draft_factor=settings.draft_factor,
            early_bias_share=settings.early_bias_share,
            min_slope_samples=settings.min_slope_samples,
            min_bias_samples=settings.min_bias_samples,
            bias_percentiles=tuple(settings.bias_percentiles),
            bias_scheme=settings.bias_scheme,
            target_surface=settings.target_surface,
            reference_condition=settings.reference_condition,
        )
