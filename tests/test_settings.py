import math

import pytest

from analysis.pipeline import analyze
from domain.settings import DEFAULT_TICKERS, AnalysisConfig

from conftest import make_prices, random_walk


def test_from_mapping_reads_nested_sections():
    config = AnalysisConfig.from_mapping(
        {
            "analysis": {
                "total_capital": "50000",
                "risk_fraction": 0.02,
                "rsi_period": 10,
                "dmi": {"fast_period": 3, "slow_period": 14},
                "bollinger": {"period": 30, "multiplier": 2.5},
                "supertrend": {"atr_period": 7, "multiplier": 2},
            },
            "tickers": {"aapl": "Apple", "MSFT": None},
        }
    )
    assert config.risk_capital == pytest.approx(1000.0)
    assert config.rsi_period == 10
    assert (config.dmi_fast_period, config.dmi_slow_period) == (3, 14)
    assert (config.bollinger_period, config.bollinger_multiplier) == (30, 2.5)
    assert (config.supertrend_atr_period, config.supertrend_multiplier) == (7, 2.0)
    assert dict(config.tickers) == {"AAPL": "Apple", "MSFT": "MSFT"}


def test_from_mapping_without_config_uses_defaults():
    assert AnalysisConfig.from_mapping(None) == AnalysisConfig()
    assert AnalysisConfig.from_mapping({"tickers": {}}).tickers == DEFAULT_TICKERS


@pytest.mark.parametrize("bad", [0, -3, "abc", None, float("nan"), float("inf")])
def test_non_positive_values_fall_back_to_defaults(bad):
    config = AnalysisConfig.from_mapping(
        {
            "analysis": {
                "total_capital": bad,
                "min_history": bad,
                "rsi_period": bad,
                "atr_period": bad,
                "stop_atr_multiple": bad,
                "target_atr_multiple": bad,
                "dmi": {"fast_period": bad, "slow_period": bad},
                "bollinger": {"period": bad, "multiplier": bad},
                "supertrend": {"atr_period": bad, "multiplier": bad},
            }
        }
    )
    assert config == AnalysisConfig()


@pytest.mark.parametrize("fraction", [0, -0.01, 1.5])
def test_risk_fraction_outside_unit_interval_falls_back(fraction):
    config = AnalysisConfig.from_mapping({"analysis": {"risk_fraction": fraction}})
    assert config.risk_fraction == AnalysisConfig().risk_fraction


def test_zero_periods_in_config_still_produce_finite_record():
    config = AnalysisConfig.from_mapping(
        {"analysis": {"rsi_period": 0, "atr_period": 0, "dmi": {"slow_period": 0}}}
    )
    closes = random_walk(520, seed=21, drift=0.2)
    record = analyze(make_prices(closes), "AAA", config=config)

    assert record is not None
    assert math.isfinite(record.atr)
    assert math.isfinite(record.plan.stop)
    assert record.plan.shares > 0
