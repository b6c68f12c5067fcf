from __future__ import annotations

import pandas as pd

from domain.models import DATA_INSUFFICIENT, ConfirmationMetrics, Maybe

VOLUME_LOOKBACK = 20
SMA_PERIOD = 50


def confirmation_metrics(df: pd.DataFrame) -> Maybe[ConfirmationMetrics]:
    """出来高比率（当日 ÷ 直前20本平均）と終値の50日線上抜けを返す。"""
    if len(df) < SMA_PERIOD + 1:
        return DATA_INSUFFICIENT
    volumes = df["volume"].to_numpy(dtype=float)
    closes = df["close"].to_numpy(dtype=float)

    avg_volume = volumes[-(VOLUME_LOOKBACK + 1):-1].sum() / VOLUME_LOOKBACK
    vol_ratio = float(volumes[-1] / avg_volume) if avg_volume > 0 else 0.0
    sma50 = closes[-SMA_PERIOD:].sum() / SMA_PERIOD
    return ConfirmationMetrics(vol_ratio=vol_ratio, price_above_sma50=bool(closes[-1] > sma50))
