from __future__ import annotations

import argparse
import asyncio
import logging

from .commands import CommandRouter
from .config import ConfigError, load_config
from .health import HealthServer
from .runner import AlertRunner
from .scheduler import IntervalScheduler


def _setup_logging(level: str) -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Confluence Sentinel - market structure alert bot")
    p.add_argument("--config", default=None, help="Path to YAML config (env vars alone also work)")
    p.add_argument("--once", action="store_true", help="Run a single scan cycle and exit")
    args = p.parse_args(argv)

    cfg = load_config(args.config)
    _setup_logging(cfg.app.log_level)
    try:
        cfg.validate()
    except ConfigError as e:
        logging.getLogger("main").error("%s", e)
        return 2

    runner = AlertRunner(cfg)

    async def _run() -> None:
        health = HealthServer(runner, host=cfg.health.host, port=cfg.health.port) if cfg.health.enabled else None
        try:
            if args.once:
                await runner.run_cycle()
                return
            if health is not None:
                await health.start()
            scheduler = IntervalScheduler(cfg.scan.interval_min * 60, runner.run_cycle, name="auto_scan")
            tasks = [scheduler.run_forever()]
            if cfg.telegram.enabled:
                tasks.append(CommandRouter(runner, runner.notifier, cfg).poll_forever())
            await asyncio.gather(*tasks)
        finally:
            if health is not None:
                await health.stop()
            await runner.close()

    try:
        asyncio.run(_run())
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logging.getLogger("main").exception("fatal err=%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
