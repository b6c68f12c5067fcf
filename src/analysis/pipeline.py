"""単一銘柄・単一基準日の解析パイプライン。"""
from __future__ import annotations

import logging
from datetime import date

import pandas as pd

from analysis import indicators, timeframes
from analysis.advisor import advise
from analysis.confirmation import confirmation_metrics
from analysis.sizing import entry_price, plan_trade
from analysis.trend import multi_timeframe_dmi
from domain.models import (
    MultiTimeframe,
    ReportRecord,
    is_insufficient,
    value_or_none,
)
from domain.settings import AnalysisConfig

logger = logging.getLogger(__name__)

SURGE_FACTOR = 1.5
SPREAD_WINDOWS = (10, 50)
VOLUME_WINDOWS = (15, 50)


def surge_flag(current: float, average: float) -> str:
    return "High" if current > SURGE_FACTOR * average else "Neutral"


def price_trend(close: float, sma20: float, sma50: float, sma150: float) -> str:
    if close > sma20 > sma50 > sma150:
        return "Strong Uptrend"
    return "Mixed"


def analyze(
    daily: pd.DataFrame,
    symbol: str,
    name: str = "",
    config: AnalysisConfig | None = None,
) -> ReportRecord | None:
    """日足から ReportRecord を組み立てる。履歴不足なら None。"""

    config = config or AnalysisConfig()
    if daily is None or len(daily) < config.min_history:
        logger.debug(
            "Skip %s: %d candles (< %d)",
            symbol,
            0 if daily is None else len(daily),
            config.min_history,
        )
        return None

    daily = daily.reset_index(drop=True)
    weekly = timeframes.weekly(daily)
    monthly = timeframes.monthly(daily)

    bb = indicators.bollinger_bands(daily, config.bollinger_period, config.bollinger_multiplier)
    atr = indicators.average_true_range(daily, config.atr_period)
    rsi = MultiTimeframe(
        daily=indicators.latest_rsi(daily, config.rsi_period),
        weekly=indicators.latest_rsi(weekly, config.rsi_period),
        monthly=indicators.latest_rsi(monthly, config.rsi_period),
    )
    dmi = multi_timeframe_dmi(
        daily,
        weekly,
        monthly,
        fast_period=config.dmi_fast_period,
        slow_period=config.dmi_slow_period,
    )
    sma20 = indicators.sma(daily, 20)
    sma50 = indicators.sma(daily, 50)
    sma150 = indicators.sma(daily, 150)
    swing = indicators.swing_levels(daily, 20)
    confirmation = confirmation_metrics(daily)
    entry = entry_price(daily)
    averages = {
        "spread": [indicators.trailing_average(daily, n, "spread") for n in SPREAD_WINDOWS],
        "volume": [indicators.trailing_average(daily, n, "volume") for n in VOLUME_WINDOWS],
    }

    required = {
        "bollinger": bb,
        "atr": atr,
        "rsi_daily": rsi.daily,
        "rsi_weekly": rsi.weekly,
        "rsi_monthly": rsi.monthly,
        "dmi": dmi,
        "dmi_daily": dmi.daily if isinstance(dmi, MultiTimeframe) else dmi,
        "sma20": sma20,
        "sma50": sma50,
        "sma150": sma150,
        "swing": swing,
        "confirmation": confirmation,
        "entry": entry,
        **{f"avg_{k}_{i}": v for k, values in averages.items() for i, v in enumerate(values)},
    }
    missing = [key for key, value in required.items() if is_insufficient(value)]
    if missing:
        logger.debug("Skip %s: insufficient data for %s", symbol, ", ".join(missing))
        return None

    action = advise(
        rsi.daily,
        rsi.weekly,
        rsi.monthly,
        confirmation.vol_ratio,
        confirmation.price_above_sma50,
    )
    plan = plan_trade(
        entry,
        atr,
        config.risk_capital,
        stop_multiple=config.stop_atr_multiple,
        target_multiple=config.target_atr_multiple,
    )

    last = daily.iloc[-1]
    close = float(last["close"])
    spread = float(last["high"] - last["low"])
    volume = float(last["volume"])
    avg_spread_d, avg_spread_w = averages["spread"]
    avg_volume_d, avg_volume_w = averages["volume"]

    return ReportRecord(
        date=_as_date(last["date"]),
        ticker=symbol,
        name=name or symbol,
        close=close,
        bollinger=bb,
        supertrend=value_or_none(
            indicators.supertrend(daily, config.supertrend_atr_period, config.supertrend_multiplier)
        ),
        atr=atr,
        rsi=rsi,
        dmi=dmi,
        swing=swing,
        sma20=sma20,
        sma50=sma50,
        sma150=sma150,
        mfi=value_or_none(indicators.money_flow_index(daily)),
        vsa_daily_price=surge_flag(spread, avg_spread_d),
        vsa_weekly_price=surge_flag(spread, avg_spread_w),
        vsa_daily_volume=surge_flag(volume, avg_volume_d),
        vsa_weekly_volume=surge_flag(volume, avg_volume_w),
        action=action,
        confirmation=confirmation,
        price_trend=price_trend(close, sma20, sma50, sma150),
        diff_bb_low_pct=(close - bb.lower) / bb.lower * 100 if bb.lower else 0.0,
        diff_bb_high_pct=(close - bb.upper) / bb.upper * 100 if bb.upper else 0.0,
        plan=plan,
    )


def analyze_as_of(
    daily: pd.DataFrame,
    as_of: date,
    symbol: str,
    name: str = "",
    config: AnalysisConfig | None = None,
) -> ReportRecord | None:
    """``as_of`` 以前の足だけで解析する。"""
    if daily is None or daily.empty:
        return None
    dates = pd.to_datetime(daily["date"])
    sliced = daily.loc[dates <= pd.Timestamp(as_of)]
    return analyze(sliced, symbol, name, config)


def _as_date(value) -> date:
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()
