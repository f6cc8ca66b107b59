"""Shared fixtures: a synthetic 40-snail exposure trial."""

from datetime import date, timedelta

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from config.settings import Settings, DataSettings, AnalysisSettings, OutputSettings
from naproxen_physa.data.loader import load_measurements, load_feeding
from naproxen_physa.analysis.preprocessing import prepare_experiment


START = date(2023, 2, 4)
CONCENTRATIONS = [0, 10, 50, 100]
WEEKS = range(0, 5)
FEEDING_DAYS = range(0, 28, 2)

# Snail -> first census week at which it was found dead
DEATHS = {7: 3, 15: 2, 22: 4, 25: 2, 31: 1, 34: 3, 38: 4, 40: 2}


def treatment_of(snail: int) -> int:
    return CONCENTRATIONS[(snail - 1) // 10]


def make_measurements(seed: int = 1) -> pd.DataFrame:
    """Raw weekly census table as it appears in the CSV."""
    rng = np.random.default_rng(seed)
    rows = []
    for snail in range(1, 41):
        conc = treatment_of(snail)
        length = rng.normal(5.0, 0.3)
        died = DEATHS.get(snail)
        for week in WEEKS:
            if week > 0:
                length += rng.normal(0.5 - 0.003 * conc, 0.15)
            dead = died is not None and week >= died
            eggs = 0 if week == 0 else int(rng.poisson(2.0 * np.exp(-0.006 * conc)))
            rows.append({
                "Snail": snail,
                "Treatment": conc,
                "Week": f"Week{week}",
                "Length": np.nan if dead else round(length, 2),
                "EggSacs": np.nan if dead else eggs,
                "Status": "dead" if dead else "alive",
            })
    return pd.DataFrame(rows)


def make_feeding(seed: int = 2) -> pd.DataFrame:
    """Raw feeding table; rows continue after death as in the field records."""
    rng = np.random.default_rng(seed)
    rows = []
    for snail in range(1, 41):
        conc = treatment_of(snail)
        p = 0.8 - 0.004 * conc
        for day in FEEDING_DAYS:
            rows.append({
                "Snail": snail,
                "Treatment": conc,
                "Date": (START + timedelta(days=day)).isoformat(),
                "Food": "yes" if rng.random() < p else "no",
            })
    return pd.DataFrame(rows)


@pytest.fixture
def raw_measurements():
    return make_measurements()


@pytest.fixture
def raw_feeding():
    return make_feeding()


@pytest.fixture
def data_dir(tmp_path, raw_measurements, raw_feeding):
    """Directory holding both CSV files."""
    directory = tmp_path / "data"
    directory.mkdir()
    raw_measurements.to_csv(directory / "Naproxen_Physa_rawdat.csv", index=False)
    raw_feeding.to_csv(directory / "Feeding_data.csv", index=False)
    return directory


@pytest.fixture
def measurements(data_dir):
    return load_measurements(data_dir / "Naproxen_Physa_rawdat.csv")


@pytest.fixture
def feeding(data_dir, measurements):
    order = list(measurements["Treatment"].cat.categories)
    return load_feeding(data_dir / "Feeding_data.csv", treatment_order=order)


@pytest.fixture
def prepared(measurements, feeding):
    return prepare_experiment(measurements, feeding, start_date=START)


@pytest.fixture
def settings(data_dir, tmp_path):
    return Settings(
        data=DataSettings(data_dir=str(data_dir)),
        analysis=AnalysisSettings(n_simulations=50, random_seed=3),
        output=OutputSettings(output_dir=str(tmp_path / "figures")),
    )


@pytest.fixture
def deaths():
    return dict(DEATHS)


@pytest.fixture
def start():
    return START
