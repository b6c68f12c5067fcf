"""ADX/DMI の数値をトレンド状態と売買シグナルへ変換する。"""
from __future__ import annotations

import pandas as pd

from analysis.indicators import DirectionalSeries, directional_series, dmi_min_history
from domain.models import (
    DATA_INSUFFICIENT,
    DmiResult,
    Maybe,
    MultiTimeframe,
    Signal,
    TrendHealth,
)

QUIET_LEVEL = 20.0
POWER_LEVEL = 40.0
BUY_TRIGGER = 25.0
MULTI_TIMEFRAME_MIN_DAILY = 40


def trend_health(adx: float, prev_adx: float) -> TrendHealth:
    if adx < QUIET_LEVEL:
        return TrendHealth.QUIET
    rising = adx > prev_adx
    if adx < POWER_LEVEL:
        return TrendHealth.STRENGTHENING if rising else TrendHealth.WEAKENING
    return TrendHealth.POWER if rising else TrendHealth.EXHAUSTING


def dmi_signal(fast: DirectionalSeries, slow: DirectionalSeries) -> Signal:
    """速い期間でBUYを判定し、遅い期間のSELL条件が優先する。"""
    signal = Signal.NONE
    fast_adx_rising = fast.adx[-1] > fast.adx[-2]
    fast_pdi_rising = fast.pdi[-1] > fast.pdi[-2]
    if fast.adx[-1] > BUY_TRIGGER and fast_adx_rising and fast_pdi_rising and fast.pdi[-1] > fast.mdi[-1]:
        signal = Signal.BUY
    if slow.adx[-1] < slow.adx[-2] or slow.mdi[-1] > slow.pdi[-1]:
        signal = Signal.SELL
    return signal


def compute_dmi(df: pd.DataFrame, fast_period: int = 5, slow_period: int = 5) -> Maybe[DmiResult]:
    if len(df) < dmi_min_history(slow_period):
        return DATA_INSUFFICIENT
    fast = directional_series(df, fast_period)
    slow = directional_series(df, slow_period)
    if len(fast.adx) < 2 or len(slow.adx) < 2:
        return DATA_INSUFFICIENT
    return DmiResult(
        pdi=slow.pdi[-1],
        mdi=slow.mdi[-1],
        adx=slow.adx[-1],
        fast_adx=fast.adx[-1],
        trend_health=trend_health(slow.adx[-1], slow.adx[-2]),
        signal=dmi_signal(fast, slow),
    )


def multi_timeframe_dmi(
    daily: pd.DataFrame,
    weekly: pd.DataFrame,
    monthly: pd.DataFrame,
    *,
    fast_period: int = 5,
    slow_period: int = 5,
) -> Maybe[MultiTimeframe]:
    if len(daily) < MULTI_TIMEFRAME_MIN_DAILY:
        return DATA_INSUFFICIENT
    return MultiTimeframe(
        daily=compute_dmi(daily, fast_period, slow_period),
        weekly=compute_dmi(weekly, fast_period, slow_period),
        monthly=compute_dmi(monthly, fast_period, slow_period),
    )
