from __future__ import annotations

from confluence_alert_bot.analysis import analyze_candles
from confluence_alert_bot.config import StrategyConfig
from confluence_alert_bot.models import Candle


def candle(idx: int, open_p: float, high: float, low: float, close: float, vol: float = 10.0) -> Candle:
    base = idx * 900_000
    return Candle(
        open_time_ms=base,
        close_time_ms=base + 900_000 - 1,
        open=open_p,
        high=high,
        low=low,
        close=close,
        volume=vol,
    )


def breakout_sequence():
    """Flat range, a displacement leg leaving a gap, then a high-volume breakout close."""
    bars = [candle(i, 100, 101, 99, 100) for i in range(24)]
    bars += [
        candle(24, 100, 103, 99.5, 102.8),
        candle(25, 102.8, 104, 102.5, 103.8),
        candle(26, 103.8, 105, 103.5, 104.8),
        candle(27, 104.8, 105.2, 104.5, 105),
        candle(28, 105, 105.4, 104.8, 105.2),
        candle(29, 105.2, 106.5, 105.1, 106.4, vol=60),
    ]
    return bars


def run_case(name: str, bars):
    res = analyze_candles("TESTUSDT", "15m", bars, StrategyConfig())
    print(f"{name}: bos={res.bos} fvg={res.fvg} ob_present={res.order_blocks.present} liq={res.liquidity} pattern={res.pattern}")
    print(f"  idea={res.idea}")


def main():
    bars = breakout_sequence()
    run_case("breakout", bars)
    run_case("no_volume", bars[:-1] + [candle(29, 105.2, 106.5, 105.1, 106.4, vol=10)])
    run_case("inside_range", bars[:-1] + [candle(29, 105.2, 105.3, 105.0, 105.1, vol=60)])


if __name__ == "__main__":
    main()
