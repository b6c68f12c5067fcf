"""マルチタイムフレームRSIと確認指標から総合アクションを決める。"""
from __future__ import annotations

from dataclasses import dataclass

from domain.models import ActionSignal, ActionState


@dataclass(frozen=True)
class AdvisorThresholds:
    bull_zone: float = 50.0
    buffer: float = 5.0
    volume_confirm: float = 1.2
    overbought: float = 70.0


# 状態 -> (アクション, 信頼度)
ACTIONS: dict[ActionState, tuple[str, str]] = {
    ActionState.CONFIRMED_BREAKOUT: ("STRONG BUY / HOLD", "HIGH"),
    ActionState.WEAK_BREAKOUT: ("WAIT FOR VOLUME", "LOW"),
    ActionState.HEALTHY_PULLBACK: ("ACCUMULATE (BUY DIP)", "MEDIUM-HIGH"),
    ActionState.MACRO_TRAP: ("AVOID / DO NOT BUY", "N/A"),
    ActionState.BEAR_MARKET_RALLY: ("STAY IN CASH", "N/A"),
    ActionState.OVEREXTENDED: ("TAKE PROFITS", "N/A"),
    ActionState.NEUTRAL: ("WAIT FOR SETUP", "N/A"),
}


def signal_for(state: ActionState) -> ActionSignal:
    action, confidence = ACTIONS[state]
    return ActionSignal(state=state, action=action, confidence=confidence)


def classify(
    d_rsi: float,
    w_rsi: float,
    m_rsi: float,
    vol_ratio: float,
    price_above_sma50: bool,
    thresholds: AdvisorThresholds = AdvisorThresholds(),
) -> ActionState:
    """上から順に評価し、最初に一致した状態を返す。"""
    bull = thresholds.bull_zone
    macro_bullish = m_rsi > bull

    if d_rsi > bull + thresholds.buffer and w_rsi > bull and macro_bullish and price_above_sma50:
        if vol_ratio >= thresholds.volume_confirm:
            return ActionState.CONFIRMED_BREAKOUT
        return ActionState.WEAK_BREAKOUT
    if macro_bullish and w_rsi > bull and d_rsi < bull and price_above_sma50:
        return ActionState.HEALTHY_PULLBACK
    if d_rsi > bull and not macro_bullish:
        return ActionState.MACRO_TRAP
    if d_rsi > bull and not price_above_sma50:
        return ActionState.BEAR_MARKET_RALLY
    if d_rsi > thresholds.overbought and w_rsi > thresholds.overbought:
        return ActionState.OVEREXTENDED
    return ActionState.NEUTRAL


def advise(
    d_rsi: float,
    w_rsi: float,
    m_rsi: float,
    vol_ratio: float,
    price_above_sma50: bool,
    thresholds: AdvisorThresholds = AdvisorThresholds(),
) -> ActionSignal:
    return signal_for(classify(d_rsi, w_rsi, m_rsi, vol_ratio, price_above_sma50, thresholds))
