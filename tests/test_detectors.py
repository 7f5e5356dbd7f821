from confluence_alert_bot.analysis import analyze_candles
from confluence_alert_bot.config import StrategyConfig
from confluence_alert_bot.detectors import (
    detect_bos,
    detect_fvg,
    detect_liquidity_zone,
    detect_order_blocks,
    detect_pattern,
)
from confluence_alert_bot.models import (
    BEARISH_ENGULFING,
    BULLISH_ENGULFING,
    DOWN,
    HAMMER,
    SHOOTING_STAR,
    UP,
    Candle,
)


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 10.0) -> Candle:
    base = idx * 900_000
    return Candle(
        open_time_ms=base,
        close_time_ms=base + 900_000 - 1,
        open=o,
        high=h,
        low=l,
        close=c,
        volume=v,
    )


def _flat(n: int, start: int = 0, v: float = 10.0):
    return [_c(start + i, 100, 101, 99, 100, v) for i in range(n)]


def _breakout():
    bars = _flat(24)
    bars += [
        _c(24, 100, 103, 99.5, 102.8),
        _c(25, 102.8, 104, 102.5, 103.8),
        _c(26, 103.8, 105, 103.5, 104.8),
        _c(27, 104.8, 105.2, 104.5, 105),
        _c(28, 105, 105.4, 104.8, 105.2),
        _c(29, 105.2, 106.5, 105.1, 106.4, 60),
    ]
    return bars


def test_bos_up_and_down_on_close_beyond_prior_window():
    bars = _flat(19)
    up = detect_bos(bars + [_c(19, 100, 102, 100, 101.5)], 20)
    down = detect_bos(bars + [_c(19, 100, 100, 98, 98.5)], 20)
    assert up is not None and up.direction == UP and up.price == 101.5
    assert down is not None and down.direction == DOWN and down.price == 98.5


def test_bos_equality_and_inside_range_is_no_signal():
    bars = _flat(19)
    assert detect_bos(bars + [_c(19, 100, 101.5, 99, 101)], 20) is None  # close == recent high
    assert detect_bos(bars + [_c(19, 100, 101, 98.5, 99)], 20) is None  # close == recent low
    assert detect_bos(bars + [_c(19, 100, 100.5, 99.5, 100.2)], 20) is None


def test_bos_ignores_bars_outside_lookback_and_short_series():
    # A tall old bar outside the window must not cap the breakout.
    bars = [_c(0, 100, 150, 99, 100)] + _flat(19, start=1) + [_c(20, 100, 102, 100, 101.5)]
    assert detect_bos(bars, 20).direction == UP
    assert detect_bos(_flat(10), 20) is None


def test_order_blocks_nearest_per_polarity_excluding_newest():
    bars = [
        _c(0, 100, 101, 99, 100),
        _c(1, 100, 102, 99.9, 101.9),   # bullish, older
        _c(2, 101.9, 102.2, 101.6, 102),
        _c(3, 102, 102.1, 100, 100.1),  # bearish
        _c(4, 100.1, 102.1, 100, 102),  # bullish, nearest
        _c(5, 102, 102.3, 101.8, 102.1),
        _c(6, 102.1, 102.2, 98, 98.1),  # newest, excluded
    ]
    obs = detect_order_blocks(bars)
    assert obs.present
    assert obs.bullish == bars[4]
    assert obs.bearish == bars[3]


def test_order_blocks_need_six_bars_and_skip_flat_bars():
    assert not detect_order_blocks(_flat(5)).present
    flat = [_c(i, 100, 100, 100, 100) for i in range(7)]
    assert not detect_order_blocks(flat).present


def test_fvg_returns_most_recent_gap():
    bars = [
        _c(0, 100, 101, 99, 100),
        _c(1, 100, 101, 99, 100),
        _c(2, 102.5, 103, 102, 102.8),  # older up-gap over bar 0
        _c(3, 102.8, 103, 102, 102.5),
        _c(4, 102.5, 103, 102, 102.6),
        _c(5, 102.6, 103, 102, 102.5),
        _c(6, 100.5, 101, 100, 100.2),  # newer down-gap under bar 4
        _c(7, 100.2, 101, 100, 100.5),
        _c(8, 100.5, 101, 100, 100.4),
    ]
    fvg = detect_fvg(bars)
    assert fvg is not None
    assert fvg.direction == DOWN
    assert fvg.index == 6
    assert (fvg.low, fvg.high) == (101, 102)


def test_fvg_up_bounds_and_short_series():
    fvg = detect_fvg(_breakout())
    assert fvg.direction == UP
    assert (fvg.low, fvg.high) == (104, 104.5)
    assert detect_fvg(_flat(4)) is None
    assert detect_fvg(_flat(30)) is None


def test_liquidity_zone_spike_and_floor():
    bars = _flat(24) + [_c(24, 100, 101, 99, 100, 100)]
    liq = detect_liquidity_zone(bars)
    assert liq is not None
    assert liq.volume == 100
    assert abs(liq.average_volume - 13.6) < 1e-9

    short = _flat(18) + [_c(18, 100, 101, 99, 100, 500)]
    assert detect_liquidity_zone(short) is None


def test_liquidity_zone_uses_last_thirty_bars_only():
    old = _flat(10, v=1000)
    recent = _flat(29, start=10) + [_c(39, 100, 101, 99, 100, 60)]
    assert detect_liquidity_zone(old + recent) is not None
    assert detect_liquidity_zone(_flat(30, v=0)) is None
    assert detect_liquidity_zone(_flat(30)) is None


def test_patterns():
    prev = _c(0, 100, 101, 99, 100)
    assert detect_pattern([prev, _c(1, 100, 100.2, 98, 100.1)]) == HAMMER
    assert detect_pattern([prev, _c(1, 100, 102, 99.9, 99.95)]) == SHOOTING_STAR
    assert detect_pattern([_c(0, 101, 101.2, 99.8, 100), _c(1, 99.9, 101.6, 99.8, 101.5)]) == BULLISH_ENGULFING
    assert detect_pattern([_c(0, 100, 101.2, 99.8, 101), _c(1, 101.1, 101.2, 99.4, 99.5)]) == BEARISH_ENGULFING
    assert detect_pattern([prev, _c(1, 100, 101, 99, 100)]) is None
    assert detect_pattern([prev]) is None


def test_breakout_sequence_full_analysis_is_deterministic():
    bars = _breakout()
    first = analyze_candles("BTCUSDT", "15m", bars, StrategyConfig())
    second = analyze_candles("BTCUSDT", "15m", bars, StrategyConfig())
    assert first == second
    assert first.bos.direction == UP
    assert first.order_blocks.bullish == bars[26]
    assert first.order_blocks.bearish is None
    assert first.liquidity is not None
    assert first.pattern is None
    assert first.idea.ok
    assert first.idea.score == 9


def test_analyze_candles_empty_is_no_data():
    res = analyze_candles("BTCUSDT", "15m", [], StrategyConfig())
    assert not res.ok
    assert res.reason == "no data"
