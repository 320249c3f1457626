"""Application configuration using Pydantic settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (BABA_ prefix) or .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BABA_",
        extra="ignore",
    )

    # Storage
    db_path: Path = Path("./data/baba.db")
    result_dir: Path = Path("./data/race_result")
    output_dir: Path = Path("./data/race_index")
    measurements_path: Path = Path("./data/track_measurements.json")

    # App
    log_level: str = "INFO"

    # Corpus filters
    target_surface: str = "芝"
    reference_condition: str = "良"

    # Index calibration
    # Reference run: 2023 Tenno Sho (Autumn), Tokyo turf 2000m, 1:55.2 -> 336.
    # Open good-ground baseline 119.32s, day bias -0.86s, 3.26s inside the
    # adjusted baseline = 21 points, so 21 / 3.26 = 6.442 points per second.
    calibration_factor: float = 6.442
    calibration_distance: int = 2000
    ability_weight: float = 0.5
    draft_factor: float = 0.6
    early_bias_share: float = 0.6

    # Sample thresholds
    min_slope_samples: int = 2
    min_bias_samples: int = 3

    # Bias classification
    bias_scheme: str = "percentile"  # percentile | fixed
    bias_percentiles: tuple[int, ...] = (5, 15, 35, 65, 85, 95)  # JSON list in env

    @field_validator("bias_scheme")
    @classmethod
    def check_bias_scheme(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("percentile", "fixed"):
            raise ValueError(f"Unknown bias scheme: {v}")
        return v

    @field_validator("bias_percentiles")
    @classmethod
    def check_percentiles(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if len(v) != 6 or list(v) != sorted(v) or not all(0 <= p < 100 for p in v):
            raise ValueError("bias_percentiles needs 6 ascending values in [0, 100)")
        return v

    @property
    def database_url(self) -> str:
        """SQLite database URL for SQLAlchemy."""
        return f"sqlite:///{self.db_path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
