"""
Configuration settings for the Naproxen/Physa exposure analysis.
Uses pydantic-settings for type-safe configuration management.
"""

from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class DataSettings(BaseSettings):
    """Input data configuration."""
    model_config = SettingsConfigDict(env_prefix="DATA_")

    data_dir: str = Field(default="./data", description="Directory holding the raw CSV files")
    measurements_file: str = Field(
        default="Naproxen_Physa_rawdat.csv",
        description="Weekly growth/reproduction/survival measurements"
    )
    feeding_file: str = Field(default="Feeding_data.csv", description="Daily feeding observations")
    start_date: date = Field(default=date(2023, 2, 4), description="First day of exposure")
    date_format: Optional[str] = Field(
        default=None,
        description="strftime format of the feeding dates (None to infer)"
    )
    n_snails: int = Field(default=40, description="Number of snails in the trial (IDs 1..n)")
    treatment_order: Optional[List[str]] = Field(
        default=None,
        description="Treatment levels, control first (None to sort concentrations)"
    )

    @property
    def measurements_path(self) -> Path:
        return Path(self.data_dir) / self.measurements_file

    @property
    def feeding_path(self) -> Path:
        return Path(self.data_dir) / self.feeding_file

    @property
    def snail_ids(self) -> List[int]:
        """Fixed set of snail IDs in the trial."""
        return list(range(1, self.n_snails + 1))


class AnalysisSettings(BaseSettings):
    """Model fitting and validation parameters."""
    model_config = SettingsConfigDict(env_prefix="ANALYSIS_")

    alpha: float = Field(default=0.05, description="Significance level")
    n_simulations: int = Field(default=250, description="Simulations for residual diagnostics")
    random_seed: Optional[int] = Field(default=42, description="Seed for residual simulation")
    p_adjust_method: str = Field(
        default="holm",
        description="Multiple comparison correction (holm, bonferroni, fdr_bh, sidak, none)"
    )
    cox_penalizer: float = Field(default=0.0, description="L2 penalty for the Cox model")
    days_per_week: int = Field(default=7, description="Days between weekly censuses")
    include_baseline_week: bool = Field(
        default=False,
        description="Include week 0 egg-sac counts in the reproduction model"
    )

    @field_validator("alpha")
    @classmethod
    def _check_alpha(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("alpha must lie in (0, 1)")
        return v

    @field_validator("n_simulations")
    @classmethod
    def _check_simulations(cls, v: int) -> int:
        if v < 10:
            raise ValueError("n_simulations must be at least 10")
        return v


class OutputSettings(BaseSettings):
    """Figure and report output."""
    model_config = SettingsConfigDict(env_prefix="OUTPUT_")

    output_dir: str = Field(default="./figures", description="Directory for exported figures")
    demographic_figure: str = Field(default="DemographicResults", description="Growth/eggs/survival figure")
    feeding_figure: str = Field(default="FeedingResults", description="Feeding figure")
    formats: List[str] = Field(default_factory=lambda: ["eps"], description="Figure formats")
    interactive: bool = Field(default=False, description="Also write a Plotly HTML summary")
    style: str = Field(default="nature", description="Figure style preset (nature, science, default)")


class Settings(BaseSettings):
    """Main settings class combining all configurations."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Project info
    project_name: str = Field(
        default="Naproxen Physa Exposure",
        description="Project name"
    )
    version: str = Field(default="1.0.0", description="Project version")

    # Sub-settings
    data: DataSettings = Field(default_factory=DataSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
