import math
from datetime import date

import pandas as pd
import pytest

from analysis.pipeline import analyze, analyze_as_of, price_trend, surge_flag
from analysis.sizing import entry_price, plan_trade
from domain.models import ActionState, ReportRecord, is_insufficient
from domain.settings import AnalysisConfig

from conftest import make_prices, random_walk


def _history(n: int = 520, seed: int = 21) -> pd.DataFrame:
    closes = random_walk(n, seed=seed, drift=0.2)
    volumes = 1000 + (pd.Series(range(n)) % 7) * 100
    return make_prices(closes, volumes=volumes)


# -- sizing -----------------------------------------------------------------------


def test_entry_price_uses_candle_three_before_last():
    df = make_prices([10, 11, 12, 13, 14, 15])
    row = df.iloc[-4]
    expected = (row["open"] + row["high"] + row["low"] + row["close"]) / 4
    assert entry_price(df) == pytest.approx(expected)
    assert is_insufficient(entry_price(df.iloc[:3]))


def test_plan_trade_arithmetic():
    plan = plan_trade(100.0, 2.0, 200.0)
    assert plan.stop == pytest.approx(96.0)
    assert plan.target == pytest.approx(106.0)
    assert plan.risk_per_share == pytest.approx(4.0)
    assert plan.shares == 50


def test_plan_trade_zero_atr_means_no_shares():
    plan = plan_trade(100.0, 0.0, 200.0)
    assert plan.shares == 0
    assert plan.stop == plan.target == 100.0


# -- flags ------------------------------------------------------------------------


def test_surge_flag_and_price_trend():
    assert surge_flag(16.0, 10.0) == "High"
    assert surge_flag(15.0, 10.0) == "Neutral"
    assert price_trend(110, 105, 100, 90) == "Strong Uptrend"
    assert price_trend(110, 105, 100, 101) == "Mixed"


# -- pipeline ---------------------------------------------------------------------


def test_199_candles_yield_no_record():
    assert analyze(_history(199), "AAA") is None


def test_short_monthly_history_yields_no_record():
    # 200本以上でも月足RSIが計算できなければ結果を返さない
    assert analyze(_history(250), "AAA") is None


def test_full_history_produces_record():
    df = _history()
    config = AnalysisConfig()
    record = analyze(df, "AAA", "Alpha", config)

    assert isinstance(record, ReportRecord)
    assert record.date == df["date"].iloc[-1].date()
    assert record.ticker == "AAA"
    assert record.name == "Alpha"
    assert record.close == pytest.approx(df["close"].iloc[-1])
    assert record.bollinger.upper >= record.bollinger.mid >= record.bollinger.lower
    for value in (record.rsi.daily, record.rsi.weekly, record.rsi.monthly):
        assert 0 <= value <= 100
    assert record.action.state in ActionState
    assert record.plan.stop == pytest.approx(record.plan.entry - 2 * record.atr)
    assert record.plan.target == pytest.approx(record.plan.entry + 3 * record.atr)
    assert record.plan.shares == math.floor(config.risk_capital / record.plan.risk_per_share)
    assert record.vsa_daily_volume in {"High", "Neutral"}
    assert record.sma20 == pytest.approx(df["close"].iloc[-20:].mean())


def test_record_row_has_consolidated_columns():
    row = analyze(_history(), "AAA").as_row()
    for key in ("Date", "Ticker", "RsiM", "Entry", "Shares", "Adx_D", "Market_Decision", "Mdi_W"):
        assert key in row
    assert row["RSITrend"] in {"STRONG BUY / HOLD", "WAIT FOR VOLUME", "ACCUMULATE (BUY DIP)",
                               "AVOID / DO NOT BUY", "STAY IN CASH", "TAKE PROFITS", "WAIT FOR SETUP"}


def test_config_changes_position_sizing():
    df = _history()
    base = analyze(df, "AAA")
    richer = analyze(df, "AAA", config=AnalysisConfig(total_capital=40000))
    assert richer.plan.shares >= 2 * base.plan.shares


def test_analyze_as_of_ignores_later_candles():
    df = _history(560)
    cutoff = df["date"].iloc[519].date()
    sliced = analyze_as_of(df, cutoff, "AAA")
    direct = analyze(df.iloc[:520], "AAA")
    assert sliced.date == cutoff
    assert sliced.close == direct.close
    assert sliced.plan == direct.plan


def test_analyze_as_of_before_history_returns_none():
    df = _history()
    assert analyze_as_of(df, date(2000, 1, 3), "AAA") is None
