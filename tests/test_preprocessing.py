"""Tests for derived analysis datasets."""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from naproxen_physa.data.loader import treatment_categorical
from naproxen_physa.analysis.preprocessing import (
    check_single_treatment,
    mask_after_death,
    compute_growth,
    prepare_reproduction,
    build_survival_dataset,
    prepare_feeding,
    exclude_after_death,
    proportion_alive,
    proportion_fed,
    summarize_by_treatment,
    prepare_experiment,
)


def census(rows):
    """Small measurement table in loaded form."""
    df = pd.DataFrame(rows, columns=["Snail", "Treatment", "Week", "Length", "EggSacs", "Status"])
    df["Treatment"] = treatment_categorical(df["Treatment"])
    return df


@pytest.fixture
def snail_seven():
    """Snail 7 alive at weeks 0-2 and found dead at week 3; snail 8 survives."""
    return census([
        (7, 0, 0, 5.0, 0, "alive"),
        (7, 0, 1, 5.5, 1, "alive"),
        (7, 0, 2, 5.9, 2, "alive"),
        (7, 0, 3, np.nan, np.nan, "dead"),
        (8, 10, 0, 4.8, 0, "alive"),
        (8, 10, 1, 5.0, 3, "alive"),
        (8, 10, 2, 5.3, 1, "alive"),
        (8, 10, 3, 5.7, 2, "alive"),
    ])


class TestSurvivalDataset:
    """Tests for the censored survival table."""

    def test_death_row_is_selected(self, snail_seven):
        survival = build_survival_dataset(snail_seven).set_index("Snail")
        assert survival.loc[7, "Week"] == 3
        assert survival.loc[7, "Death"] == 1

    def test_survivor_is_censored_at_last_week(self, snail_seven):
        survival = build_survival_dataset(snail_seven).set_index("Snail")
        assert survival.loc[8, "Week"] == 3
        assert survival.loc[8, "Death"] == 0

    def test_one_row_per_snail(self, measurements):
        survival = build_survival_dataset(measurements, snail_ids=range(1, 41))
        assert len(survival) == 40
        assert survival["Snail"].is_unique

    def test_death_flag_iff_dead_row(self, measurements):
        survival = build_survival_dataset(measurements).set_index("Snail")
        has_dead = measurements.groupby("Snail")["Status"].apply(lambda s: (s == "dead").any())
        for snail, dead in has_dead.items():
            assert survival.loc[snail, "Death"] == int(dead)

    def test_death_week_matches_first_dead_census(self, measurements, deaths):
        survival = build_survival_dataset(measurements).set_index("Snail")
        for snail, week in deaths.items():
            assert survival.loc[snail, "Week"] == week

    def test_missing_snail_raises(self, snail_seven):
        with pytest.raises(ValueError, match="snail 9"):
            build_survival_dataset(snail_seven, snail_ids=[7, 8, 9])

    def test_treatment_switch_raises(self):
        df = census([
            (1, 0, 0, 5.0, 0, "alive"),
            (1, 10, 1, 5.2, 0, "alive"),
        ])
        with pytest.raises(ValueError, match="more than one treatment"):
            check_single_treatment(df)


class TestGrowth:
    """Tests for weekly growth deltas."""

    def test_growth_is_length_difference(self, measurements):
        growth = compute_growth(measurements).set_index(["Snail", "Week"])["Growth"]
        lengths = measurements.set_index(["Snail", "Week"])["Length"]

        for (snail, week), value in growth.items():
            current = lengths.get((snail, week), np.nan)
            previous = lengths.get((snail, week - 1), np.nan)
            if np.isnan(current) or np.isnan(previous):
                assert np.isnan(value)
            else:
                assert value == pytest.approx(current - previous)

    def test_long_format_with_integer_weeks(self, measurements):
        growth = compute_growth(measurements)
        assert list(growth.columns) == ["Snail", "Treatment", "Week", "Growth"]
        assert sorted(growth["Week"].unique()) == [1, 2, 3, 4]
        assert len(growth) == 40 * 4

    def test_growth_undefined_after_death(self, snail_seven):
        growth = compute_growth(snail_seven).set_index(["Snail", "Week"])["Growth"]
        assert growth.loc[(7, 1)] == pytest.approx(0.5)
        assert np.isnan(growth.loc[(7, 3)])
        assert growth.loc[(8, 3)] == pytest.approx(0.4)

    def test_values_after_death_are_masked(self):
        df = census([
            (1, 0, 0, 5.0, 0, "alive"),
            (1, 0, 1, 5.3, 2, "dead"),
            (1, 0, 2, 5.4, 1, "dead"),
        ])
        masked = mask_after_death(df)
        assert masked.loc[masked["Week"] >= 1, ["Length", "EggSacs"]].isna().all().all()

    def test_treatment_kept_as_categorical(self, measurements):
        growth = compute_growth(measurements)
        assert list(growth["Treatment"].cat.categories) == ["0", "10", "50", "100"]

    def test_repeated_census_row_is_dropped(self, measurements):
        repeated = pd.concat([measurements, measurements.iloc[[5]]], ignore_index=True)
        with pytest.warns(UserWarning, match="duplicate census"):
            growth = compute_growth(repeated)
        assert len(growth) == 40 * 4
        np.testing.assert_array_equal(
            growth["Growth"].to_numpy(), compute_growth(measurements)["Growth"].to_numpy()
        )

    def test_first_of_repeated_rows_is_kept(self):
        df = census([
            (1, 0, 0, 5.0, 0, "alive"),
            (1, 0, 1, 5.3, 1, "alive"),
            (1, 0, 1, 9.9, 4, "alive"),
        ])
        with pytest.warns(UserWarning, match="duplicate census"):
            growth = compute_growth(df).set_index(["Snail", "Week"])["Growth"]
        assert growth.loc[(1, 1)] == pytest.approx(0.3)


class TestReproduction:
    """Tests for the egg-sac dataset."""

    def test_only_living_snails(self, measurements):
        reproduction = prepare_reproduction(measurements)
        merged = reproduction.merge(measurements, on=["Snail", "Week"], suffixes=("", "_raw"))
        assert (merged["Status"] == "alive").all()

    def test_baseline_week_excluded_by_default(self, measurements):
        assert prepare_reproduction(measurements)["Week"].min() == 1
        assert prepare_reproduction(measurements, include_baseline=True)["Week"].min() == 0

    def test_counts_are_integers(self, measurements):
        assert prepare_reproduction(measurements)["EggSacs"].dtype.kind == "i"

    def test_one_row_per_snail_and_week(self, measurements):
        repeated = pd.concat([measurements, measurements.iloc[[6]]], ignore_index=True)
        with pytest.warns(UserWarning, match="duplicate census"):
            reproduction = prepare_reproduction(repeated)
        assert not reproduction.duplicated(["Snail", "Week"]).any()
        assert len(reproduction) == len(prepare_reproduction(measurements))


class TestFeeding:
    """Tests for feeding day offsets and indicators."""

    def test_day_is_days_since_start(self, feeding, start):
        converted = prepare_feeding(feeding, start)
        expected = (converted["Date"] - pd.Timestamp(date(2023, 2, 4))).dt.days
        assert (converted["Day"] == expected).all()
        assert converted["Day"].min() == 0

    def test_all_no_food_gives_zero(self, start):
        feeding = pd.DataFrame({
            "Snail": [3, 3, 3, 4],
            "Treatment": treatment_categorical([0, 0, 0, 10]),
            "Date": pd.to_datetime(["2023-02-04", "2023-02-06", "2023-02-08", "2023-02-04"]),
            "Food": ["no", "no", "no", "yes"],
        })
        converted = prepare_feeding(feeding, start)
        assert (converted.loc[converted["Snail"] == 3, "Fed"] == 0).all()
        assert converted.loc[converted["Snail"] == 4, "Fed"].tolist() == [1]

    def test_incomplete_rows_are_omitted(self, start):
        feeding = pd.DataFrame({
            "Snail": [1, 1, 1],
            "Treatment": treatment_categorical([0, 0, 0]),
            "Date": pd.to_datetime(["2023-02-04", None, "2023-02-08"]),
            "Food": ["yes", "yes", None],
        })
        assert len(prepare_feeding(feeding, start)) == 1

    def test_rows_from_death_week_onwards_are_excluded(self, feeding, measurements, deaths, start):
        survival = build_survival_dataset(measurements)
        converted = prepare_feeding(feeding, start)
        kept = exclude_after_death(converted, survival)

        for snail, week in deaths.items():
            days = kept.loc[kept["Snail"] == snail, "Day"]
            assert (days < week * 7).all()
        survivor = kept.loc[kept["Snail"] == 1, "Day"]
        assert survivor.max() == 26


class TestProportions:
    """Tests for proportion-alive and proportion-fed summaries."""

    def test_proportion_alive_is_mean_indicator(self, measurements):
        alive = proportion_alive(measurements)
        for _, row in alive.iterrows():
            group = measurements.loc[
                (measurements["Treatment"] == row["Treatment"])
                & (measurements["Week"] == row["Week"])
            ]
            expected = (group["Status"] == "alive").mean()
            assert row["proportion"] == pytest.approx(expected)
            assert row["n"] == len(group)

    def test_proportion_alive_starts_at_one(self, measurements):
        alive = proportion_alive(measurements)
        assert (alive.loc[alive["Week"] == 0, "proportion"] == 1.0).all()

    def test_proportion_fed_is_mean_indicator(self, prepared):
        fed = proportion_fed(prepared.feeding)
        for _, row in fed.iterrows():
            group = prepared.feeding.loc[
                (prepared.feeding["Treatment"] == row["Treatment"])
                & (prepared.feeding["Day"] == row["Day"])
            ]
            assert row["proportion"] == pytest.approx(group["Fed"].mean())

    def test_missing_indicators_are_ignored(self):
        df = pd.DataFrame({
            "Treatment": treatment_categorical([0, 0, 0]),
            "Week": [1, 1, 1],
            "Length": [1.0, 1.0, 1.0],
            "EggSacs": [0, 0, 0],
            "Snail": [1, 2, 3],
            "Status": ["alive", "dead", None],
        })
        alive = proportion_alive(df)
        assert alive["proportion"].iloc[0] == pytest.approx(0.5)
        assert alive["n"].iloc[0] == 2


class TestSummaries:
    """Tests for descriptive statistics."""

    def test_mean_and_sd_per_treatment(self):
        df = pd.DataFrame({
            "Treatment": treatment_categorical([0, 0, 0, 10]),
            "Growth": [1.0, 2.0, 3.0, 4.0],
        })
        summary = summarize_by_treatment(df, "Growth").set_index("Treatment")
        assert summary.loc["0", "mean"] == pytest.approx(2.0)
        assert summary.loc["0", "sd"] == pytest.approx(1.0)
        assert summary.loc["0", "n"] == 3
        assert np.isnan(summary.loc["10", "se"])


class TestPrepareExperiment:
    """Tests for the combined preparation step."""

    def test_row_accounting(self, prepared, deaths):
        report = prepared.report
        assert report.n_snails == 40
        assert report.n_deaths == len(deaths)
        assert report.n_growth_rows + report.n_growth_missing == 40 * 4
        assert report.n_feeding_rows == len(prepared.feeding)
        assert report.n_feeding_rows_raw - report.n_feeding_after_death == report.n_feeding_rows

    def test_treatments_reference_first(self, prepared):
        assert prepared.treatments == ["0", "10", "50", "100"]

    def test_without_feeding(self, measurements):
        prepared = prepare_experiment(measurements)
        assert prepared.feeding is None
        assert prepared.fed is None
