"""ATRベースのエントリー・損切り・利確とポジションサイズ計算。"""
from __future__ import annotations

import math

import pandas as pd

from domain.models import DATA_INSUFFICIENT, Maybe, TradePlan

ENTRY_OFFSET = 3


def entry_price(df: pd.DataFrame, offset: int = ENTRY_OFFSET) -> Maybe[float]:
    """最新足から ``offset`` 本前の足の (O+H+L+C)/4。"""
    if len(df) <= offset:
        return DATA_INSUFFICIENT
    row = df.iloc[-1 - offset]
    return float((row["open"] + row["high"] + row["low"] + row["close"]) / 4)


def plan_trade(
    entry: float,
    atr: float,
    risk_capital: float,
    *,
    stop_multiple: float = 2.0,
    target_multiple: float = 3.0,
) -> TradePlan:
    stop = entry - atr * stop_multiple
    target = entry + atr * target_multiple
    risk_per_share = entry - stop
    shares = math.floor(risk_capital / risk_per_share) if risk_per_share > 0 else 0
    return TradePlan(
        entry=entry,
        stop=stop,
        target=target,
        risk_per_share=risk_per_share,
        shares=int(shares),
    )
