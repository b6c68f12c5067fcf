import pandas as pd
import pytest

from analysis.timeframes import aggregate, monthly, weekly
from domain.models import Candle, Granularity, candles_to_frame, frame_to_candles

from conftest import make_prices, random_walk


def _candles(rows):
    return candles_to_frame(Candle(pd.Timestamp(d).date(), o, h, l, c, v) for d, o, h, l, c, v in rows)


def test_weekly_merges_first_open_last_close_extrema_and_volume():
    df = make_prices([10, 11, 12, 11, 13, 14, 15, 14, 13, 16], start="2024-01-01")
    out = weekly(df)

    assert len(out) == 2
    first_week = df.iloc[:5]
    row = out.iloc[0]
    assert row["date"] == pd.Timestamp("2024-01-01")
    assert row["open"] == first_week["open"].iloc[0]
    assert row["close"] == first_week["close"].iloc[-1]
    assert row["high"] == first_week["high"].max()
    assert row["low"] == first_week["low"].min()
    assert row["volume"] == first_week["volume"].sum()


def test_weekly_uses_iso_week_across_year_boundary():
    df = _candles(
        [
            ("2020-12-31", 10, 11, 9, 10.5, 100),  # Thu, ISO 2020-W53
            ("2021-01-01", 10.5, 12, 10, 11, 200),  # Fri, ISO 2020-W53
            ("2021-01-04", 11, 13, 10.5, 12, 300),  # Mon, ISO 2021-W01
        ]
    )

    weeks = weekly(df)
    months = monthly(df)

    assert list(weeks["volume"]) == [300, 300]
    assert list(weeks["close"]) == [11, 12]
    assert list(months["volume"]) == [100, 500]
    assert list(months["open"]) == [10, 10.5]


def test_aggregation_is_lossless_on_long_series():
    df = make_prices(random_walk(260), volumes=range(1, 261))
    out = monthly(df)

    keys = df["date"].dt.to_period("M")
    for (_, group), (_, row) in zip(df.groupby(keys, sort=False), out.iterrows()):
        assert row["close"] == group["close"].iloc[-1]
        assert row["high"] == group["high"].max()
        assert row["low"] == group["low"].min()
        assert row["volume"] == group["volume"].sum()
    assert out["volume"].sum() == df["volume"].sum()
    assert all(c.is_consistent() for c in frame_to_candles(out))


def test_aggregate_does_not_mutate_input():
    df = make_prices(random_walk(30))
    before = df.copy()
    aggregate(df, "weekly")
    pd.testing.assert_frame_equal(df, before)


def test_empty_input_yields_empty_output():
    out = aggregate(make_prices([1.0]).iloc[0:0], Granularity.MONTHLY)
    assert out.empty


def test_unknown_granularity_raises():
    with pytest.raises(ValueError):
        aggregate(make_prices([1.0, 2.0]), "daily")
