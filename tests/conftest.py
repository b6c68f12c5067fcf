from __future__ import annotations

import sys
from datetime import date
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import pytest

# Ensure "src" is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from domain.models import (  # noqa: E402
    ActionSignal,
    ActionState,
    BollingerBands,
    ConfirmationMetrics,
    DATA_INSUFFICIENT,
    DmiResult,
    MultiTimeframe,
    ReportRecord,
    Signal,
    SwingLevels,
    TradePlan,
    TrendHealth,
)


def make_prices(
    closes: Sequence[float],
    *,
    start: str = "2022-01-03",
    spread: float = 1.0,
    volumes: Sequence[float] | None = None,
) -> pd.DataFrame:
    """終値列から営業日ベースの日足 DataFrame を作る。始値は前日終値。"""
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate(([closes[0]], closes[:-1]))
    highs = np.maximum(opens, closes) + spread / 2
    lows = np.minimum(opens, closes) - spread / 2
    vols = np.full(len(closes), 1000.0) if volumes is None else np.asarray(volumes, dtype=float)
    return pd.DataFrame(
        {
            "date": pd.bdate_range(start, periods=len(closes)),
            "open": opens,
            "high": highs,
            "low": lows,
            "close": closes,
            "volume": vols,
        }
    )


def random_walk(n: int, *, seed: int = 7, drift: float = 0.15, start: float = 100.0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    steps = rng.normal(drift, 1.0, size=n)
    return np.maximum(start + np.cumsum(steps), 5.0)


@pytest.fixture
def sample_record() -> ReportRecord:
    dmi = DmiResult(
        pdi=31.2345,
        mdi=12.5,
        adx=27.0,
        fast_adx=28.1,
        trend_health=TrendHealth.STRENGTHENING,
        signal=Signal.BUY,
    )
    return ReportRecord(
        date=date(2024, 3, 6),
        ticker="ABB.ST",
        name="ABB",
        close=101.234,
        bollinger=BollingerBands(upper=105.0, mid=100.0, lower=95.0),
        supertrend=97.5,
        atr=2.0,
        rsi=MultiTimeframe(daily=60.0, weekly=55.0, monthly=52.0),
        dmi=MultiTimeframe(daily=dmi, weekly=dmi, monthly=DATA_INSUFFICIENT),
        swing=SwingLevels(high=106.0, low=94.0),
        sma20=100.5,
        sma50=99.0,
        sma150=95.0,
        mfi=61.0,
        vsa_daily_price="Neutral",
        vsa_weekly_price="High",
        vsa_daily_volume="Neutral",
        vsa_weekly_volume="Neutral",
        action=ActionSignal(ActionState.CONFIRMED_BREAKOUT, "STRONG BUY / HOLD", "HIGH"),
        confirmation=ConfirmationMetrics(vol_ratio=1.5, price_above_sma50=True),
        price_trend="Strong Uptrend",
        diff_bb_low_pct=6.56,
        diff_bb_high_pct=-3.59,
        plan=TradePlan(entry=100.0, stop=96.0, target=106.0, risk_per_share=4.0, shares=50),
    )
