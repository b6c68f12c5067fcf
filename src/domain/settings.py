from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


DEFAULT_TICKERS: Mapping[str, str] = MappingProxyType(
    {
        "ABB.ST": "ABB",
        "AZN.ST": "AstraZeneca PLC",
        "INVE-B.ST": "Investor AB",
        "LUG.ST": "Lundin Gold",
        "LUMI.ST": "Lundin Mining",
        "NDA-SE.ST": "Nordea",
        "SAAB-B.ST": "Saab AB",
        "SEB-A.ST": "SEB",
        "SHB-B.ST": "Svenska Handelsbanken",
        "SWED-A.ST": "Swedbank-A",
        "VOLV-B.ST": "Volvo-B",
    }
)


@dataclass(frozen=True)
class AnalysisConfig:
    total_capital: float = 20000.0
    risk_fraction: float = 0.01
    min_history: int = 200
    rsi_period: int = 14
    dmi_fast_period: int = 5
    dmi_slow_period: int = 5
    bollinger_period: int = 20
    bollinger_multiplier: float = 2.0
    atr_period: int = 14
    supertrend_atr_period: int = 10
    supertrend_multiplier: float = 3.0
    stop_atr_multiple: float = 2.0
    target_atr_multiple: float = 3.0
    tickers: Mapping[str, str] = field(default_factory=lambda: DEFAULT_TICKERS)

    @property
    def risk_capital(self) -> float:
        return self.total_capital * self.risk_fraction

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "AnalysisConfig":
        """config.yaml の内容から設定を組み立てる。不正値は既定値へフォールバック。"""

        defaults = cls()
        if not isinstance(raw, Mapping):
            return defaults
        analysis = _section(raw, "analysis")
        dmi = _section(analysis, "dmi")
        bollinger = _section(analysis, "bollinger")
        supertrend = _section(analysis, "supertrend")

        tickers_raw = raw.get("tickers")
        if isinstance(tickers_raw, Mapping) and tickers_raw:
            tickers: Mapping[str, str] = MappingProxyType(
                {str(k).strip().upper(): str(v or k) for k, v in tickers_raw.items()}
            )
        else:
            tickers = defaults.tickers

        return cls(
            total_capital=_positive_float(analysis.get("total_capital"), defaults.total_capital),
            risk_fraction=_fraction(analysis.get("risk_fraction"), defaults.risk_fraction),
            min_history=_positive_int(analysis.get("min_history"), defaults.min_history),
            rsi_period=_positive_int(analysis.get("rsi_period"), defaults.rsi_period),
            dmi_fast_period=_positive_int(dmi.get("fast_period"), defaults.dmi_fast_period),
            dmi_slow_period=_positive_int(dmi.get("slow_period"), defaults.dmi_slow_period),
            bollinger_period=_positive_int(bollinger.get("period"), defaults.bollinger_period),
            bollinger_multiplier=_positive_float(bollinger.get("multiplier"), defaults.bollinger_multiplier),
            atr_period=_positive_int(analysis.get("atr_period"), defaults.atr_period),
            supertrend_atr_period=_positive_int(supertrend.get("atr_period"), defaults.supertrend_atr_period),
            supertrend_multiplier=_positive_float(supertrend.get("multiplier"), defaults.supertrend_multiplier),
            stop_atr_multiple=_positive_float(analysis.get("stop_atr_multiple"), defaults.stop_atr_multiple),
            target_atr_multiple=_positive_float(analysis.get("target_atr_multiple"), defaults.target_atr_multiple),
            tickers=tickers,
        )


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, Mapping) else {}


def _positive_int(value, fallback: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return number if number > 0 else fallback


def _positive_float(value, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) and number > 0 else fallback


def _fraction(value, fallback: float) -> float:
    """0 < x <= 1 の比率。範囲外は既定値。"""
    number = _positive_float(value, fallback)
    return number if number <= 1 else fallback
