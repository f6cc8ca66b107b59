"""
Raw Data Loader.

Reads the two CSV tables recorded during the trial:

    Naproxen_Physa_rawdat.csv   one row per snail per weekly census
        Snail, Treatment, Week, Length, EggSacs, Status
    Feeding_data.csv            one row per snail per feeding check
        Snail, Treatment, Date, Food

Column headers are matched case-insensitively, ignoring spaces, dots,
underscores and hyphens, so "Egg.sacs" and "egg_sacs" both map to EggSacs.
Values that cannot be parsed become missing; incomplete rows are dropped later
by the individual analyses rather than here.
"""

import re
import warnings
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd


# Canonical column -> accepted aliases (compared after _column_key)
MEASUREMENT_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "Snail": ("snail_id", "snailid", "id"),
    "Treatment": ("trt", "concentration", "conc"),
    "Week": (),
    "Length": ("length_mm", "shell_length"),
    "EggSacs": ("egg_sacs", "egg.sacs", "eggs", "eggsac"),
    "Status": (),
}

FEEDING_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "Snail": ("snail_id", "snailid", "id"),
    "Treatment": ("trt", "concentration", "conc"),
    "Date": (),
    "Food": ("fed",),
}

STATUS_VALUES = ("alive", "dead")
FOOD_VALUES = ("yes", "no")

PathLike = Union[str, Path]


def _column_key(name: str) -> str:
    return re.sub(r"[\s._\-]", "", str(name).strip().lower())


def normalize_columns(
    df: pd.DataFrame,
    schema: Dict[str, Tuple[str, ...]]
) -> pd.DataFrame:
    """
    Rename columns to their canonical names.

    Args:
        df: Raw table as read from CSV
        schema: Canonical column name -> aliases

    Returns:
        DataFrame restricted to the canonical columns, in schema order

    Raises:
        ValueError: If a required column is absent
    """
    lookup = {}
    for canonical, aliases in schema.items():
        for name in (canonical,) + tuple(aliases):
            lookup[_column_key(name)] = canonical

    renames = {}
    for column in df.columns:
        canonical = lookup.get(_column_key(column))
        if canonical is not None and canonical not in renames.values():
            renames[column] = canonical

    missing = [c for c in schema if c not in renames.values()]
    if missing:
        raise ValueError(
            f"Missing required column(s): {missing}. Found: {list(df.columns)}"
        )

    return df.rename(columns=renames)[list(schema)]


def parse_week(value) -> float:
    """
    Recode a week label to an integer week number.

    Accepts integers and labels such as "Week3", "W3" or "week 3".
    Returns NaN for missing or unparseable labels.
    """
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return np.nan
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return int(value) if float(value).is_integer() else np.nan

    match = re.search(r"(\d+)", str(value))
    if match is None:
        return np.nan
    return int(match.group(1))


def _format_level(value) -> str:
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


def treatment_categorical(
    values: Iterable,
    order: Optional[Sequence[str]] = None
) -> pd.Categorical:
    """
    Convert treatment labels to an ordered categorical.

    The first category is the reference level (control) in every model.
    Without an explicit order, numeric concentrations are sorted ascending;
    otherwise a level named "control" comes first and the rest are sorted.

    Raises:
        ValueError: If a value is not one of the levels in ``order``
    """
    labels = pd.Series(
        [None if pd.isna(v) else _format_level(v) for v in values],
        dtype=object
    )
    present = list(dict.fromkeys(l for l in labels if l is not None))

    if order is not None:
        categories = [_format_level(o) for o in order]
        unknown = sorted(set(present) - set(categories))
        if unknown:
            raise ValueError(f"Treatment levels {unknown} not in configured order {categories}")
    else:
        numeric = pd.to_numeric(pd.Series(present, dtype=object), errors="coerce")
        if len(present) > 0 and numeric.notna().all():
            categories = [p for _, p in sorted(zip(numeric, present))]
        else:
            controls = [p for p in present if p.lower() in ("control", "ctrl", "c")]
            categories = controls + sorted(p for p in present if p not in controls)

    return pd.Categorical(labels, categories=categories, ordered=True)


def _read_csv(path: PathLike) -> pd.DataFrame:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Data file not found at: {path}")
    return pd.read_csv(path, skipinitialspace=True)


def _recode_tokens(series: pd.Series, allowed: Tuple[str, ...], label: str) -> pd.Series:
    tokens = series.astype("string").str.strip().str.lower()
    unknown = tokens.notna() & ~tokens.isin(allowed)
    if unknown.any():
        bad = sorted(tokens[unknown].unique().tolist())
        warnings.warn(f"Treating unknown {label} values {bad} as missing")
        tokens = tokens.mask(unknown)
    return tokens.astype(object).where(tokens.notna(), None)


def _clean_snail_ids(df: pd.DataFrame, label: str) -> pd.DataFrame:
    snail = pd.to_numeric(df["Snail"], errors="coerce")
    if snail.isna().any():
        warnings.warn(f"Dropped {int(snail.isna().sum())} {label} rows without a snail ID")
    df = df.loc[snail.notna()].copy()
    df["Snail"] = snail[snail.notna()].astype(int)
    return df


def drop_duplicate_censuses(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep the first row recorded for each snail and week.

    A repeated census would give two lengths for the same week, so the later
    copies are dropped with a warning.
    """
    duplicated = df.duplicated(subset=["Snail", "Week"], keep="first")
    if duplicated.any():
        pairs = df.loc[duplicated, ["Snail", "Week"]].drop_duplicates()
        warnings.warn(
            f"Dropped {int(duplicated.sum())} duplicate census row(s) for "
            f"(Snail, Week) {list(pairs.itertuples(index=False, name=None))}"
        )
        df = df.loc[~duplicated]
    return df


def load_measurements(
    path: PathLike,
    treatment_order: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """
    Load the weekly measurement table.

    Args:
        path: Path to Naproxen_Physa_rawdat.csv
        treatment_order: Treatment levels, control first

    Returns:
        DataFrame with columns Snail, Treatment, Week, Length, EggSacs, Status,
        sorted by snail and week, one row per snail and week
    """
    df = normalize_columns(_read_csv(path), MEASUREMENT_COLUMNS)
    df = _clean_snail_ids(df, "measurement")

    df["Week"] = df["Week"].map(parse_week)
    if df["Week"].isna().any():
        warnings.warn(f"Dropped {int(df['Week'].isna().sum())} rows with unparseable week labels")
        df = df.loc[df["Week"].notna()]
    df["Week"] = df["Week"].astype(int)

    df["Length"] = pd.to_numeric(df["Length"], errors="coerce")
    df["EggSacs"] = pd.to_numeric(df["EggSacs"], errors="coerce")
    df["Status"] = _recode_tokens(df["Status"], STATUS_VALUES, "Status")
    df["Treatment"] = treatment_categorical(df["Treatment"], treatment_order)
    df = drop_duplicate_censuses(df)

    return df.sort_values(["Snail", "Week"]).reset_index(drop=True)


def load_feeding(
    path: PathLike,
    date_format: Optional[str] = None,
    treatment_order: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """
    Load the feeding observation table.

    Args:
        path: Path to Feeding_data.csv
        date_format: strftime format of the Date column (None to infer)
        treatment_order: Treatment levels, control first

    Returns:
        DataFrame with columns Snail, Treatment, Date (datetime64), Food
    """
    df = normalize_columns(_read_csv(path), FEEDING_COLUMNS)
    df = _clean_snail_ids(df, "feeding")

    dates = pd.to_datetime(df["Date"], format=date_format, errors="coerce")
    n_bad = int((dates.isna() & df["Date"].notna()).sum())
    if n_bad:
        warnings.warn(f"{n_bad} feeding dates could not be parsed and are treated as missing")
    df["Date"] = dates

    df["Food"] = _recode_tokens(df["Food"], FOOD_VALUES, "Food")
    df["Treatment"] = treatment_categorical(df["Treatment"], treatment_order)

    return df.sort_values(["Snail", "Date"]).reset_index(drop=True)


def treatment_levels(df: pd.DataFrame) -> List[str]:
    """Treatment levels of a loaded table, reference level first."""
    return list(df["Treatment"].cat.categories)
