"""市場推定・シンボル正規化ヘルパー。"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MarketRule:
    suffix: str
    market: str


_SUFFIX_RULES: tuple[MarketRule, ...] = (
    MarketRule(suffix=".ST", market="SE"),
    MarketRule(suffix=".OL", market="NO"),
    MarketRule(suffix=".CO", market="DK"),
    MarketRule(suffix=".HE", market="FI"),
    MarketRule(suffix=".TO", market="CA"),
    MarketRule(suffix=".L", market="UK"),
)


def infer_market(symbol: str, default: str = "US") -> str:
    """Yahoo表記のティッカーから市場コードを推定する。"""
    cleaned = (symbol or "").strip().upper()
    for rule in _SUFFIX_RULES:
        if cleaned.endswith(rule.suffix):
            return rule.market
    return default


def normalize_symbol(symbol: str) -> str:
    """記号を正規化する。

    - 前後の空白と引用符を削除
    - 大文字化（ピリオド、ハイフン等は維持）
    """
    return (symbol or "").strip().strip("'\"").strip().upper()
