"""テクニカル指標の計算ライブラリ。

すべて純粋関数で、列 ``date, open, high, low, close, volume`` を持つ日足
（または集約足）の DataFrame を受け取る。履歴が最小ウィンドウに満たない場合は
数値ではなく ``DATA_INSUFFICIENT`` を返す。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from domain.models import (
    DATA_INSUFFICIENT,
    BollingerBands,
    Maybe,
    SwingLevels,
)


def true_range(df: pd.DataFrame) -> np.ndarray:
    """隣接する足ごとの True Range（長さ n-1）。"""
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    close = df["close"].to_numpy(dtype=float)
    if len(close) < 2:
        return np.empty(0)
    prev_close = close[:-1]
    return np.maximum.reduce(
        [
            high[1:] - low[1:],
            np.abs(high[1:] - prev_close),
            np.abs(low[1:] - prev_close),
        ]
    )


def wilder_smooth(values: Sequence[float], period: int) -> list[float]:
    """Wilder 平滑化。

    先頭 ``period`` 個の単純和を種にし、以降は
    ``s = s - s / period + x`` を順に適用する。同値な別式は浮動小数点の
    丸めで長い系列ほどずれるため、この漸化式のまま計算する。
    """
    data = [float(v) for v in values]
    if len(data) < period:
        return []
    current = sum(data[:period])
    smoothed = [current]
    for x in data[period:]:
        current = current - (current / period) + x
        smoothed.append(current)
    return smoothed


# -- RSI ------------------------------------------------------------------------


def wilder_rsi(df: pd.DataFrame, period: int = 14) -> Maybe[pd.Series]:
    """Wilder RSI の系列（index は日付、先頭は ``period`` 番目の足）。"""
    if len(df) <= period:
        return DATA_INSUFFICIENT
    close = df["close"].to_numpy(dtype=float)
    diffs = np.diff(close)

    seed = diffs[:period]
    avg_gain = float(seed[seed >= 0].sum()) / period
    avg_loss = float(-seed[seed < 0].sum()) / period

    values = [_rsi(avg_gain, avg_loss)]
    for diff in diffs[period:]:
        avg_gain = (avg_gain * (period - 1) + (diff if diff > 0 else 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + (-diff if diff < 0 else 0.0)) / period
        values.append(_rsi(avg_gain, avg_loss))
    index = pd.to_datetime(df["date"]).iloc[period:]
    return pd.Series(values, index=index.to_numpy(), name="rsi")


def latest_rsi(df: pd.DataFrame, period: int = 14) -> Maybe[float]:
    series = wilder_rsi(df, period)
    if not isinstance(series, pd.Series):
        return series
    return float(series.iloc[-1])


def _rsi(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


# -- ADX / DMI ------------------------------------------------------------------


@dataclass(frozen=True)
class DirectionalSeries:
    """単一期間の +DI / -DI / ADX 系列。"""

    period: int
    pdi: list[float]
    mdi: list[float]
    adx: list[float]


def directional_movement(df: pd.DataFrame) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """TR, +DM, -DM を隣接する足ごとに返す。"""
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    up_move = high[1:] - high[:-1]
    down_move = low[:-1] - low[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)
    return true_range(df), plus_dm, minus_dm


def directional_series(df: pd.DataFrame, period: int) -> DirectionalSeries:
    trs, plus_dm, minus_dm = directional_movement(df)
    s_tr = wilder_smooth(trs, period)
    s_plus = wilder_smooth(plus_dm, period)
    s_minus = wilder_smooth(minus_dm, period)

    pdi = [0.0 if tr == 0 else (p / tr) * 100 for p, tr in zip(s_plus, s_tr)]
    mdi = [0.0 if tr == 0 else (m / tr) * 100 for m, tr in zip(s_minus, s_tr)]
    dx = []
    for p, m in zip(pdi, mdi):
        total = p + m
        dx.append(0.0 if total == 0 else abs(p - m) / total * 100)
    adx = [v / period for v in wilder_smooth(dx, period)]
    return DirectionalSeries(period=period, pdi=pdi, mdi=mdi, adx=adx)


def dmi_min_history(slow_period: int) -> int:
    return slow_period * 2 + 10


# -- ボラティリティ ---------------------------------------------------------------


def bollinger_bands(df: pd.DataFrame, period: int = 20, multiplier: float = 2.0) -> Maybe[BollingerBands]:
    if len(df) < period:
        return DATA_INSUFFICIENT
    window = df["close"].to_numpy(dtype=float)[-period:]
    mid = float(window.mean())
    std = float(window.std(ddof=0))
    return BollingerBands(upper=mid + multiplier * std, mid=mid, lower=mid - multiplier * std)


def average_true_range(df: pd.DataFrame, period: int = 14) -> Maybe[float]:
    if len(df) <= period:
        return DATA_INSUFFICIENT
    trs = true_range(df)
    return float(trs[-period:].sum() / period)


def supertrend(df: pd.DataFrame, atr_period: int = 10, multiplier: float = 3.0) -> Maybe[float]:
    """最新足のスーパートレンド値（アクティブ側のバンド）。

    最終バンドは価格側へのみ狭まり、前日終値がバンドを越えたときだけ
    基本バンドへリセットされる。トレンドは終値が反対側の最終バンドを
    割り込む（上抜ける）ときにのみ反転する。
    """
    n = len(df)
    if n <= atr_period:
        return DATA_INSUFFICIENT
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    close = df["close"].to_numpy(dtype=float)

    trs = np.concatenate(([high[0] - low[0]], true_range(df)))
    atrs = np.zeros(n)
    atrs[atr_period - 1] = trs[:atr_period].sum() / atr_period
    for i in range(atr_period, n):
        atrs[i] = (atrs[i - 1] * (atr_period - 1) + trs[i]) / atr_period

    trend = 1
    final_upper = final_lower = 0.0
    value = 0.0
    for i in range(atr_period, n):
        mid = (high[i] + low[i]) / 2
        basic_upper = mid + multiplier * atrs[i]
        basic_lower = mid - multiplier * atrs[i]
        if i > atr_period:
            if basic_upper < final_upper or close[i - 1] > final_upper:
                final_upper = basic_upper
            if basic_lower > final_lower or close[i - 1] < final_lower:
                final_lower = basic_lower
            if trend == 1 and close[i] < final_lower:
                trend = -1
            elif trend == -1 and close[i] > final_upper:
                trend = 1
        else:
            final_upper, final_lower = basic_upper, basic_lower
        value = final_lower if trend == 1 else final_upper
    return float(value)


# -- 出来高 -----------------------------------------------------------------------


def money_flow_index(df: pd.DataFrame, period: int = 14) -> Maybe[float]:
    if len(df) <= period:
        return DATA_INSUFFICIENT
    window = df.iloc[-(period + 1):]
    typical = ((window["high"] + window["low"] + window["close"]) / 3).to_numpy(dtype=float)
    flow = typical[1:] * window["volume"].to_numpy(dtype=float)[1:]
    rising = typical[1:] > typical[:-1]
    positive = float(flow[rising].sum())
    negative = float(flow[~rising].sum())
    if negative == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + positive / negative)


# -- 移動平均・水準 -----------------------------------------------------------------


def sma(df: pd.DataFrame, period: int, column: str = "close") -> Maybe[float]:
    if len(df) < period:
        return DATA_INSUFFICIENT
    return float(df[column].iloc[-period:].mean())


def swing_levels(df: pd.DataFrame, period: int = 20) -> Maybe[SwingLevels]:
    if len(df) < period:
        return DATA_INSUFFICIENT
    window = df.iloc[-period:]
    return SwingLevels(high=float(window["high"].max()), low=float(window["low"].min()))


def trailing_average(df: pd.DataFrame, period: int, field: str) -> Maybe[float]:
    """直近 ``period`` 本の平均。``field="spread"`` は高値-安値の平均。"""
    if len(df) < period:
        return DATA_INSUFFICIENT
    window = df.iloc[-period:]
    if field == "spread":
        values = window["high"] - window["low"]
    else:
        values = window[field]
    return float(values.mean())
