"""Raw data loading for the exposure trial."""

from naproxen_physa.data.loader import (
    MEASUREMENT_COLUMNS,
    FEEDING_COLUMNS,
    drop_duplicate_censuses,
    load_measurements,
    load_feeding,
    normalize_columns,
    parse_week,
    treatment_categorical,
    treatment_levels,
)

__all__ = [
    "MEASUREMENT_COLUMNS",
    "FEEDING_COLUMNS",
    "drop_duplicate_censuses",
    "load_measurements",
    "load_feeding",
    "normalize_columns",
    "parse_week",
    "treatment_categorical",
    "treatment_levels",
]
