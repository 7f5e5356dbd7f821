import asyncio

from confluence_alert_bot.config import Config, ProviderConfig, ScanConfig, TelegramConfig
from confluence_alert_bot.models import Candle
from confluence_alert_bot.runner import AlertRunner
from confluence_alert_bot.store import MemoryStore


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


def _breakout():
    bars = [_c(i, 100, 101, 99, 100) for i in range(24)]
    bars += [
        _c(24, 100, 103, 99.5, 102.8),
        _c(25, 102.8, 104, 102.5, 103.8),
        _c(26, 103.8, 105, 103.5, 104.8),
        _c(27, 104.8, 105.2, 104.5, 105),
        _c(28, 105, 105.4, 104.8, 105.2),
        _c(29, 105.2, 106.5, 105.1, 106.4, 60),
    ]
    return bars


class FakeProvider:
    def __init__(self, bars_by_symbol, *, fail=()):
        self.bars_by_symbol = bars_by_symbol
        self.fail = set(fail)
        self.calls = []

    async def fetch_bars(self, symbol, interval, limit):
        self.calls.append((symbol, interval, limit))
        if symbol in self.fail:
            raise RuntimeError("boom")
        return list(self.bars_by_symbol.get(symbol, []))


class FakeNotifier:
    def __init__(self, *, fail_ids=(), raise_ids=()):
        self.fail_ids = set(fail_ids)
        self.raise_ids = set(raise_ids)
        self.sent = []

    async def send(self, chat_id, text, *, parse_mode="HTML"):
        if chat_id in self.raise_ids:
            raise RuntimeError("network down")
        if chat_id in self.fail_ids:
            return False
        self.sent.append((chat_id, text))
        return True


class Clock:
    def __init__(self, t: float = 1_700_000_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _cfg(symbols, context_intervals=()):
    return Config(
        provider=ProviderConfig(context_intervals=tuple(context_intervals)),
        scan=ScanConfig(symbols=tuple(symbols)),
        telegram=TelegramConfig(token="t", admin_id="1"),
    )


def _runner(provider, symbols, notifier=None, **kw):
    return AlertRunner(
        _cfg(symbols, **kw),
        provider=provider,
        notifier=notifier or FakeNotifier(),
        store=MemoryStore(),
        clock=Clock(),
    )


def test_cycle_isolates_empty_and_failing_symbols():
    async def _run():
        provider = FakeProvider(
            {"BUSDT": _breakout(), "CUSDT": _breakout()},
            fail={"DUSDT"},
        )
        runner = _runner(provider, ["AUSDT", "BUSDT", "DUSDT", "CUSDT"])
        out = await runner.cycle()
        assert [(a.kind, a.symbol) for a in out] == [("new", "BUSDT"), ("new", "CUSDT")]
        assert runner.metrics["symbol_errors_total"] == 1
        assert runner.book.last("AUSDT") is None
        assert runner.book.last("BUSDT").score == 9

    asyncio.run(_run())


def test_cycle_watch_hits_bypass_continuity_and_share_analysis():
    async def _run():
        provider = FakeProvider({"BUSDT": _breakout()})
        runner = _runner(provider, ["BUSDT"])
        runner.watchlists.add("42", "BUSDT")
        runner.watchlists.add("42", "AUSDT")
        runner.watchlists.add("77", "busdt")

        out = await runner.cycle()
        kinds = [(a.kind, a.symbol, a.recipient) for a in out]
        assert kinds == [("new", "BUSDT", None), ("watch", "BUSDT", "42"), ("watch", "BUSDT", "77")]
        primary = [c for c in provider.calls if c[0] == "BUSDT" and c[1] == "15m"]
        assert len(primary) == 1

        runner.clock.t += 60
        again = await runner.cycle()
        assert [a.kind for a in again].count("watch") == 2

    asyncio.run(_run())


def test_cycle_reentrancy_guard_skips_overlapping_call():
    async def _run():
        gate = asyncio.Event()

        class SlowProvider(FakeProvider):
            async def fetch_bars(self, symbol, interval, limit):
                await gate.wait()
                return await super().fetch_bars(symbol, interval, limit)

        runner = _runner(SlowProvider({"BUSDT": _breakout()}), ["BUSDT"])
        first = asyncio.ensure_future(runner.cycle())
        await asyncio.sleep(0)
        assert await runner.cycle() == []
        assert runner.metrics["cycles_skipped_total"] == 1
        gate.set()
        out = await first
        assert len(out) == 1
        assert runner.metrics["cycles_total"] == 1

    asyncio.run(_run())


def test_deliver_survives_failed_recipients():
    async def _run():
        notifier = FakeNotifier(fail_ids={"2"}, raise_ids={"3"})
        runner = _runner(FakeProvider({"BUSDT": _breakout()}), ["BUSDT"], notifier=notifier)
        for uid in ("2", "3", "4"):
            runner.permissions.grant(uid)
        runner.watchlists.add("42", "BUSDT")

        out = await runner.run_cycle()
        assert len(out) == 2
        recipients = [chat_id for chat_id, _ in notifier.sent]
        assert recipients == ["1", "4", "42"]
        assert "LONG BUSDT" in notifier.sent[0][1]
        assert runner.metrics["send_failures_total"] == 2

    asyncio.run(_run())


def test_context_intervals_are_passthrough_only():
    async def _run():
        provider = FakeProvider({"BUSDT": _breakout()})
        plain = await _runner(provider, ["BUSDT"]).scan("BUSDT")
        with_ctx = await _runner(provider, ["BUSDT"], context_intervals=("1h", "4h")).scan("busdt")
        assert set(with_ctx.context) == {"1h", "4h"}
        assert with_ctx.idea == plain.idea
        assert plain.context == {}

    asyncio.run(_run())


def test_scan_without_data():
    async def _run():
        res = await _runner(FakeProvider({}), ["AUSDT"]).scan("AUSDT")
        assert not res.ok
        assert res.reason == "no data"

    asyncio.run(_run())


def test_duplicate_symbols_announce_once():
    async def _run():
        notifier = FakeNotifier()
        runner = _runner(FakeProvider({"BUSDT": _breakout()}), ["BUSDT", "busdt", "BUSDT"], notifier=notifier)
        out = await runner.run_cycle()
        assert [(a.kind, a.symbol) for a in out] == [("new", "BUSDT")]
        assert [chat_id for chat_id, _ in notifier.sent] == ["1"]
        assert len(runner.book.history(10)) == 1

    asyncio.run(_run())
