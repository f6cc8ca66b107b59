"""
Configuration module for the Naproxen/Physa exposure analysis.

This module provides centralized configuration management using pydantic-settings,
ensuring type-safe access to environment variables and configuration parameters.

Example:
    >>> from config import get_settings
    >>> settings = get_settings()
    >>> print(settings.data.measurements_path)
    >>> print(settings.analysis.p_adjust_method)
"""

from config.settings import (
    Settings,
    DataSettings,
    AnalysisSettings,
    OutputSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "DataSettings",
    "AnalysisSettings",
    "OutputSettings",
    "get_settings",
]
