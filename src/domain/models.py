"""共通で利用するドメインモデル定義。"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, TypeVar, Union

import pandas as pd

PRICE_COLUMNS: tuple[str, ...] = ("date", "open", "high", "low", "close", "volume")


@dataclass(slots=True)
class SymbolRecord:
    """CSVや既定リストで定義される銘柄情報。"""

    symbol: str
    name: str = ""
    sector: str = ""
    market: Optional[str] = None



@dataclass(frozen=True, slots=True)
class Candle:
    """日足（または集約足）の1レコード。"""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def is_consistent(self) -> bool:
        return self.high >= max(self.open, self.close) and self.low <= min(self.open, self.close)


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Candle列をエンジンが扱う DataFrame 形式へ変換する。"""
    rows = [
        (c.date, float(c.open), float(c.high), float(c.low), float(c.close), float(c.volume))
        for c in candles
    ]
    df = pd.DataFrame(rows, columns=list(PRICE_COLUMNS))
    df["date"] = pd.to_datetime(df["date"])
    return df


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    candles: list[Candle] = []
    for row in df.itertuples(index=False):
        day = row.date
        if isinstance(day, pd.Timestamp):
            day = day.date()
        candles.append(
            Candle(
                date=day,
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
            )
        )
    return candles


# -- 不足データの判別型 ---------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Insufficient:
    """履歴不足で値を算出できなかったことを表す判別用バリアント。"""

    reason: str = "DATA_INSUFFICIENT"

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.reason


DATA_INSUFFICIENT = Insufficient()

T = TypeVar("T")
Maybe = Union[T, Insufficient]


def is_insufficient(value: Any) -> bool:
    return isinstance(value, Insufficient)


def value_or_none(value: Any) -> Any:
    return None if isinstance(value, Insufficient) else value


# -- 指標結果 -------------------------------------------------------------------


class Granularity(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TrendHealth(str, Enum):
    QUIET = "QUIET / ACCUMULATION"
    STRENGTHENING = "STRENGTHENING TREND"
    WEAKENING = "WEAKENING TREND"
    POWER = "POWER TREND (VERTICAL)"
    EXHAUSTING = "OVEREXTENDED / EXHAUSTING"


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    NONE = ""


@dataclass(frozen=True, slots=True)
class BollingerBands:
    upper: float
    mid: float
    lower: float


@dataclass(frozen=True, slots=True)
class SwingLevels:
    high: float
    low: float


@dataclass(frozen=True, slots=True)
class DmiResult:
    """ADX/DMI の最新値とトレンド判定。"""

    pdi: float
    mdi: float
    adx: float
    fast_adx: float
    trend_health: TrendHealth
    signal: Signal


@dataclass(frozen=True, slots=True)
class MultiTimeframe:
    """日足・週足・月足それぞれの値をまとめるコンテナ。"""

    daily: Any
    weekly: Any
    monthly: Any


@dataclass(frozen=True, slots=True)
class ConfirmationMetrics:
    vol_ratio: float
    price_above_sma50: bool


class ActionState(str, Enum):
    CONFIRMED_BREAKOUT = "CONFIRMED BREAKOUT"
    WEAK_BREAKOUT = "WEAK BREAKOUT"
    HEALTHY_PULLBACK = "HEALTHY PULLBACK"
    MACRO_TRAP = "MACRO TRAP"
    BEAR_MARKET_RALLY = "BEAR MARKET RALLY"
    OVEREXTENDED = "OVEREXTENDED"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True, slots=True)
class ActionSignal:
    state: ActionState
    action: str
    confidence: str


@dataclass(frozen=True, slots=True)
class TradePlan:
    """エントリー・損切り・利確と株数。"""

    entry: float
    stop: float
    target: float
    risk_per_share: float
    shares: int


# -- レポート -------------------------------------------------------------------


def round2(value: Any) -> Any:
    """表示用に小数2桁へ丸める。欠損は "N/A"。"""
    if value is None or isinstance(value, Insufficient):
        return "N/A"
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "N/A"
    if math.isnan(number) or math.isinf(number):
        return "N/A"
    return round(number, 2)


@dataclass(frozen=True, slots=True)
class ReportRecord:
    """単一銘柄・単一基準日の解析結果。"""

    date: date
    ticker: str
    name: str
    close: float
    bollinger: BollingerBands
    supertrend: float | None
    atr: float
    rsi: MultiTimeframe
    dmi: MultiTimeframe
    swing: SwingLevels
    sma20: float
    sma50: float
    sma150: float
    mfi: float | None
    vsa_daily_price: str
    vsa_weekly_price: str
    vsa_daily_volume: str
    vsa_weekly_volume: str
    action: ActionSignal
    confirmation: ConfirmationMetrics
    price_trend: str
    diff_bb_low_pct: float
    diff_bb_high_pct: float
    plan: TradePlan
    errors: Sequence[str] = field(default_factory=tuple)

    @property
    def rsi_trend(self) -> str:
        return self.action.action

    def dmi_field(self, timeframe: str, attr: str) -> Any:
        entry = getattr(self.dmi, timeframe)
        if isinstance(entry, Insufficient):
            return "N/A"
        value = getattr(entry, attr)
        return value.value if isinstance(value, Enum) else round2(value)

    def as_row(self) -> dict[str, Any]:
        """統合レポートの1行として平坦化する。"""
        return {
            "Date": self.date.isoformat(),
            "Ticker": self.ticker,
            "Close": round2(self.close),
            "BBHigh": round2(self.bollinger.upper),
            "BBLow": round2(self.bollinger.lower),
            "ATR": round2(self.atr),
            "RsiD": round2(self.rsi.daily),
            "RsiW": round2(self.rsi.weekly),
            "RsiM": round2(self.rsi.monthly),
            "Sma20": round2(self.sma20),
            "Sma50": round2(self.sma50),
            "Sma150": round2(self.sma150),
            "SwingHigh": round2(self.swing.high),
            "SwingLow": round2(self.swing.low),
            "Diff_BBLow_%": round2(self.diff_bb_low_pct),
            "Diff_BBHigh_%": round2(self.diff_bb_high_pct),
            "VsaDPrice": self.vsa_daily_price,
            "VsaWPrice": self.vsa_weekly_price,
            "VsaDVol": self.vsa_daily_volume,
            "VsaWVol": self.vsa_weekly_volume,
            "RSITrend": self.rsi_trend,
            "PriceTrend": self.price_trend,
            "Entry": round2(self.plan.entry),
            "Target": round2(self.plan.target),
            "StopLoss": round2(self.plan.stop),
            "Shares": self.plan.shares,
            "Adx_D": self.dmi_field("daily", "adx"),
            "Pdi_D": self.dmi_field("daily", "pdi"),
            "Mdi_D": self.dmi_field("daily", "mdi"),
            "Market_Decision": self.dmi_field("daily", "signal"),
            "Adx_W": self.dmi_field("weekly", "adx"),
            "Pdi_W": self.dmi_field("weekly", "pdi"),
            "Mdi_W": self.dmi_field("weekly", "mdi"),
        }
