import asyncio

from confluence_alert_bot.scheduler import IntervalScheduler


def test_tick_skips_while_previous_run_active():
    async def _run():
        gate = asyncio.Event()
        calls = []

        async def job():
            calls.append(1)
            await gate.wait()

        sched = IntervalScheduler(600, job)
        assert sched.tick()
        await asyncio.sleep(0)
        assert sched.running
        assert not sched.tick()
        assert sched.skipped == 1
        gate.set()
        await sched._task
        assert not sched.running
        assert sched.tick()
        await sched._task
        assert len(calls) == 2

    asyncio.run(_run())


def test_job_errors_do_not_escape():
    async def _run():
        async def job():
            raise RuntimeError("bad cycle")

        sched = IntervalScheduler(600, job)
        sched.tick()
        await sched._task
        assert sched.runs == 1

    asyncio.run(_run())


def test_run_forever_runs_once_at_startup():
    async def _run():
        calls = []

        async def job():
            calls.append(1)

        sched = IntervalScheduler(3600, job)
        try:
            await asyncio.wait_for(sched.run_forever(), timeout=0.05)
        except asyncio.TimeoutError:
            pass
        assert calls == [1]

    asyncio.run(_run())
