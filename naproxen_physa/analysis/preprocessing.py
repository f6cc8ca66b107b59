"""
Data Preparation Module.

Turns the raw weekly measurement and feeding tables into the analysis
datasets used by the models and figures:

    growth        Snail, Treatment, Week, Growth   (weekly length change)
    reproduction  Snail, Treatment, Week, EggSacs  (alive snails only)
    survival      Snail, Treatment, Week, Death    (one row per snail)
    feeding       Snail, Treatment, Date, Day, Fed (rows before death only)

RULES:
1. Each snail belongs to exactly one treatment for the whole trial.
2. Nothing recorded on or after the census at which a snail was found dead
   enters the growth, reproduction or feeding analyses.
3. The survival table holds exactly one row per snail: the first "dead"
   census (Death = 1) or the last recorded census (Death = 0, censored).
4. Incomplete rows are omitted, never imputed.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Union
import warnings

import numpy as np
import pandas as pd
from scipy import stats

from naproxen_physa.data.loader import drop_duplicate_censuses, parse_week


DateLike = Union[str, date, pd.Timestamp]

EXPERIMENT_START = date(2023, 2, 4)


@dataclass
class PreparationReport:
    """
    Row accounting for every derived dataset.

    Reported alongside the models so that omitted rows are visible.
    """
    n_snails: int
    n_deaths: int
    n_measurement_rows: int
    n_growth_rows: int
    n_growth_missing: int
    n_reproduction_rows: int
    n_feeding_rows_raw: int
    n_feeding_rows: int
    n_feeding_after_death: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class PreparedData:
    """All analysis datasets derived from the two raw tables."""
    growth: pd.DataFrame
    reproduction: pd.DataFrame
    survival: pd.DataFrame
    feeding: Optional[pd.DataFrame]
    alive: pd.DataFrame
    fed: Optional[pd.DataFrame]
    report: PreparationReport

    @property
    def treatments(self) -> List[str]:
        return list(self.survival["Treatment"].cat.categories)


def _as_treatment(values, categories) -> pd.Categorical:
    return pd.Categorical(values, categories=categories, ordered=True)


def check_single_treatment(measurements: pd.DataFrame) -> None:
    """
    Raise ValueError if any snail is recorded under more than one treatment.
    """
    n_levels = measurements.groupby("Snail", observed=True)["Treatment"].nunique()
    offenders = n_levels[n_levels > 1].index.tolist()
    if offenders:
        raise ValueError(f"Snails recorded under more than one treatment: {offenders}")


def death_weeks(measurements: pd.DataFrame) -> pd.Series:
    """First census week at which each dead snail was recorded dead."""
    dead = measurements.loc[measurements["Status"] == "dead"]
    return dead.groupby("Snail")["Week"].min()


def mask_after_death(measurements: pd.DataFrame) -> pd.DataFrame:
    """
    Blank Length and EggSacs from the week a snail is found dead onwards.

    Args:
        measurements: Output of load_measurements

    Returns:
        Copy of the table with post-death values set to NaN,
        one row per snail and week
    """
    check_single_treatment(measurements)

    df = drop_duplicate_censuses(measurements).copy()
    df[["Length", "EggSacs"]] = df[["Length", "EggSacs"]].astype(float)
    died = df["Snail"].map(death_weeks(df))
    after = died.notna() & (df["Week"] >= died)
    df.loc[after, ["Length", "EggSacs"]] = np.nan
    return df


def compute_growth(measurements: pd.DataFrame, dropna: bool = False) -> pd.DataFrame:
    """
    Weekly shell growth per snail.

    Lengths are pivoted to one column per week, consecutive weeks are
    differenced, the raw length columns are dropped and the deltas are melted
    back to long format with integer week numbers.

    Growth(w) = Length(w) - Length(w-1), missing if either length is missing.

    Args:
        measurements: Output of load_measurements
        dropna: Drop rows with undefined growth

    Returns:
        DataFrame with columns Snail, Treatment, Week, Growth (Week >= first week + 1)
    """
    df = mask_after_death(measurements)
    categories = measurements["Treatment"].cat.categories

    wide = df.pivot(index="Snail", columns="Week", values="Length")
    weeks = range(int(df["Week"].min()), int(df["Week"].max()) + 1)
    wide = wide.reindex(columns=list(weeks))

    deltas = wide.diff(axis=1).iloc[:, 1:]
    deltas.columns = [f"Week{w}" for w in deltas.columns]

    growth = deltas.reset_index().melt(
        id_vars="Snail", var_name="Week", value_name="Growth"
    )
    growth["Week"] = growth["Week"].map(parse_week).astype(int)

    treatment = df.drop_duplicates("Snail").set_index("Snail")["Treatment"]
    growth["Treatment"] = _as_treatment(
        growth["Snail"].map(treatment).astype(object), categories
    )

    growth = growth[["Snail", "Treatment", "Week", "Growth"]]
    if dropna:
        growth = growth.dropna(subset=["Growth"])
    return growth.sort_values(["Snail", "Week"]).reset_index(drop=True)


def prepare_reproduction(
    measurements: pd.DataFrame,
    include_baseline: bool = False
) -> pd.DataFrame:
    """
    Weekly egg-sac counts for living snails.

    Args:
        measurements: Output of load_measurements
        include_baseline: Keep the first (pre-exposure) census

    Returns:
        DataFrame with columns Snail, Treatment, Week, EggSacs (int)
    """
    df = mask_after_death(measurements)
    keep = (df["Status"] == "alive") & df["EggSacs"].notna()
    if not include_baseline:
        keep &= df["Week"] > df["Week"].min()

    out = df.loc[keep, ["Snail", "Treatment", "Week", "EggSacs"]].copy()
    out["EggSacs"] = out["EggSacs"].round().astype(int)
    return out.reset_index(drop=True)


def build_survival_dataset(
    measurements: pd.DataFrame,
    snail_ids: Optional[Sequence[int]] = None
) -> pd.DataFrame:
    """
    Build the right-censored survival table, one row per snail.

    For each snail the first row with Status "dead" is kept (Death = 1);
    a snail never recorded dead contributes its last observed row
    (Death = 0).

    Args:
        measurements: Output of load_measurements
        snail_ids: Fixed set of snail IDs (default: every ID in the data)

    Returns:
        DataFrame with columns Snail, Treatment, Week, Death

    Raises:
        ValueError: If a requested snail has no rows
    """
    check_single_treatment(measurements)
    categories = measurements["Treatment"].cat.categories

    observed_ids = sorted(measurements["Snail"].unique().tolist())
    if snail_ids is None:
        snail_ids = observed_ids
    else:
        extra = sorted(set(observed_ids) - set(snail_ids))
        if extra:
            warnings.warn(f"Snails {extra} are not in the configured ID set and are ignored")

    records = []
    for snail in snail_ids:
        rows = measurements.loc[measurements["Snail"] == snail].sort_values("Week")
        if rows.empty:
            raise ValueError(f"No measurement rows for snail {snail}")

        dead = rows.loc[rows["Status"] == "dead"]
        if len(dead) > 0:
            row, death = dead.iloc[0], 1
        else:
            observed = rows.loc[rows["Status"].notna()]
            row, death = (observed if len(observed) > 0 else rows).iloc[-1], 0

        records.append({
            "Snail": int(snail),
            "Treatment": row["Treatment"],
            "Week": int(row["Week"]),
            "Death": death,
        })

    survival = pd.DataFrame.from_records(
        records, columns=["Snail", "Treatment", "Week", "Death"]
    )
    survival["Treatment"] = _as_treatment(survival["Treatment"].astype(object), categories)
    return survival


def prepare_feeding(
    feeding: pd.DataFrame,
    start_date: DateLike = EXPERIMENT_START
) -> pd.DataFrame:
    """
    Convert feeding dates to day offsets and Food to a 0/1 indicator.

    Day = (Date - start_date) in whole days; Fed = 1 for "yes", 0 for "no".
    Rows with a missing date or Food value are omitted.

    Returns:
        DataFrame with columns Snail, Treatment, Date, Day, Fed
    """
    df = feeding.dropna(subset=["Date", "Food"]).copy()

    start = pd.Timestamp(start_date)
    df["Day"] = (df["Date"] - start).dt.days.astype(int)
    df["Fed"] = df["Food"].map({"yes": 1, "no": 0}).astype(int)

    n_before = int((df["Day"] < 0).sum())
    if n_before:
        warnings.warn(f"{n_before} feeding rows are dated before the start of exposure ({start.date()})")

    return df[["Snail", "Treatment", "Date", "Day", "Fed"]].reset_index(drop=True)


def exclude_after_death(
    feeding: pd.DataFrame,
    survival: pd.DataFrame,
    days_per_week: int = 7
) -> pd.DataFrame:
    """
    Drop feeding rows on or after the census at which a snail was found dead.

    A snail recorded dead at week w contributes feeding rows with
    Day < w * days_per_week only.
    """
    dead = survival.loc[survival["Death"] == 1].set_index("Snail")["Week"]
    cutoff = feeding["Snail"].map(dead * days_per_week)
    keep = cutoff.isna() | (feeding["Day"] < cutoff)
    return feeding.loc[keep].reset_index(drop=True)


def proportion_by_group(
    df: pd.DataFrame,
    indicator: str,
    by: Sequence[str]
) -> pd.DataFrame:
    """
    Mean of a 0/1 indicator per group, over non-missing rows.

    Returns:
        DataFrame with the grouping columns plus proportion, n and se
        (binomial standard error)
    """
    grouped = df.dropna(subset=[indicator]).groupby(list(by), observed=True)[indicator]
    out = grouped.agg(proportion="mean", n="count").reset_index()
    p = out["proportion"]
    out["se"] = np.sqrt(p * (1 - p) / out["n"])
    return out


def proportion_alive(measurements: pd.DataFrame) -> pd.DataFrame:
    """Proportion of snails alive per treatment and census week."""
    df = measurements.copy()
    df["Alive"] = df["Status"].map({"alive": 1.0, "dead": 0.0})
    return proportion_by_group(df, "Alive", ["Treatment", "Week"])


def proportion_fed(feeding: pd.DataFrame) -> pd.DataFrame:
    """Proportion of snails that fed per treatment and day."""
    return proportion_by_group(feeding, "Fed", ["Treatment", "Day"])


def summarize_by_treatment(
    df: pd.DataFrame,
    value: str,
    by: Sequence[str] = ("Treatment",),
    confidence_level: float = 0.95
) -> pd.DataFrame:
    """
    Per-group n, mean, sd, se and t-based confidence interval of ``value``.
    """
    grouped = df.dropna(subset=[value]).groupby(list(by), observed=True)[value]
    out = grouped.agg(n="count", mean="mean", sd="std").reset_index()
    out["se"] = out["sd"] / np.sqrt(out["n"])

    dof = (out["n"] - 1).clip(lower=1)
    t_crit = stats.t.ppf(0.5 + confidence_level / 2, dof)
    out["ci"] = t_crit * out["se"]
    out.loc[out["n"] < 2, ["sd", "se", "ci"]] = np.nan
    return out


def prepare_experiment(
    measurements: pd.DataFrame,
    feeding: Optional[pd.DataFrame] = None,
    start_date: DateLike = EXPERIMENT_START,
    snail_ids: Optional[Sequence[int]] = None,
    days_per_week: int = 7,
    include_baseline: bool = False
) -> PreparedData:
    """
    Derive every analysis dataset from the raw tables.

    Args:
        measurements: Output of load_measurements
        feeding: Output of load_feeding (optional)
        start_date: First day of exposure
        snail_ids: Fixed set of snail IDs for the survival table
        days_per_week: Days between weekly censuses
        include_baseline: Keep the week-0 egg-sac counts

    Returns:
        PreparedData with a PreparationReport
    """
    notes = []

    growth = compute_growth(measurements)
    reproduction = prepare_reproduction(measurements, include_baseline=include_baseline)
    survival = build_survival_dataset(measurements, snail_ids=snail_ids)
    alive = proportion_alive(measurements)

    feeding_rows = None
    fed = None
    n_raw = 0
    n_after_death = 0
    if feeding is not None:
        n_raw = len(feeding)
        converted = prepare_feeding(feeding, start_date)
        feeding_rows = exclude_after_death(converted, survival, days_per_week)
        n_after_death = len(converted) - len(feeding_rows)
        fed = proportion_fed(feeding_rows)

        unknown = sorted(set(feeding_rows["Snail"]) - set(survival["Snail"]))
        if unknown:
            notes.append(f"Feeding data contains snails without measurements: {unknown}")

    n_missing = int(growth["Growth"].isna().sum())
    if n_missing:
        notes.append(f"{n_missing} snail-weeks have undefined growth (death or missing length)")

    for note in notes:
        warnings.warn(note)

    report = PreparationReport(
        n_snails=len(survival),
        n_deaths=int(survival["Death"].sum()),
        n_measurement_rows=len(measurements),
        n_growth_rows=len(growth) - n_missing,
        n_growth_missing=n_missing,
        n_reproduction_rows=len(reproduction),
        n_feeding_rows_raw=n_raw,
        n_feeding_rows=0 if feeding_rows is None else len(feeding_rows),
        n_feeding_after_death=n_after_death,
        warnings=notes,
    )

    return PreparedData(
        growth=growth,
        reproduction=reproduction,
        survival=survival,
        feeding=feeding_rows,
        alive=alive,
        fed=fed,
        report=report,
    )
