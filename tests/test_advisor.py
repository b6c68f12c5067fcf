import itertools

import pytest

from analysis.advisor import ACTIONS, AdvisorThresholds, advise, classify
from domain.models import ActionState


def test_confirmed_breakout_example():
    signal = advise(60, 55, 52, 1.5, True)
    assert signal.state is ActionState.CONFIRMED_BREAKOUT
    assert signal.action == "STRONG BUY / HOLD"
    assert signal.confidence == "HIGH"


def test_weak_breakout_example():
    signal = advise(60, 55, 52, 0.8, True)
    assert signal.state is ActionState.WEAK_BREAKOUT
    assert signal.action == "WAIT FOR VOLUME"
    assert signal.confidence == "LOW"


def test_volume_ratio_boundary_is_inclusive():
    assert classify(60, 55, 52, 1.2, True) is ActionState.CONFIRMED_BREAKOUT


def test_daily_rsi_needs_buffer_for_breakout():
    # 55 は閾値ちょうどなのでブレイクアウトにならない
    assert classify(55, 60, 60, 2.0, True) is ActionState.NEUTRAL


@pytest.mark.parametrize(
    "inputs,expected",
    [
        # ブレイクアウトは過熱条件 (d>70, w>70) より優先
        ((75, 75, 60, 1.5, True), ActionState.CONFIRMED_BREAKOUT),
        ((45, 55, 60, 1.0, True), ActionState.HEALTHY_PULLBACK),
        # マクロトラップはベアマーケットラリー条件より優先
        ((60, 55, 45, 1.0, False), ActionState.MACRO_TRAP),
        ((60, 55, 50, 1.0, True), ActionState.MACRO_TRAP),
        # ベアマーケットラリーは過熱条件より優先
        ((75, 75, 55, 2.0, False), ActionState.BEAR_MARKET_RALLY),
        ((50, 50, 50, 1.0, True), ActionState.NEUTRAL),
        ((45, 55, 60, 1.0, False), ActionState.NEUTRAL),
    ],
)
def test_priority_order(inputs, expected):
    assert classify(*inputs) is expected


def test_overextended_with_wider_buffer():
    thresholds = AdvisorThresholds(buffer=30)
    assert classify(75, 75, 60, 1.5, True, thresholds) is ActionState.OVEREXTENDED


def test_advisor_is_total_over_grid():
    rsis = (30, 50, 52, 56, 71)
    seen = set()
    for d, w, m, vol, above in itertools.product(rsis, rsis, rsis, (0.5, 1.2), (True, False)):
        signal = advise(d, w, m, vol, above)
        assert signal.state in ActionState
        assert (signal.action, signal.confidence) == ACTIONS[signal.state]
        seen.add(signal.state)
    assert seen >= set(ActionState) - {ActionState.OVEREXTENDED}
    assert set(ACTIONS) == set(ActionState)
