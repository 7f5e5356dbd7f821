from __future__ import annotations

import argparse
import dataclasses
import pprint

from confluence_alert_bot.config import load_config


def main():
    p = argparse.ArgumentParser(description="Print the resolved config (YAML + env overrides)")
    p.add_argument("--config", default=None, help="Path to YAML config")
    args = p.parse_args()

    cfg = load_config(args.config)
    resolved = dataclasses.asdict(cfg)
    if resolved["telegram"]["token"]:
        resolved["telegram"]["token"] = "***"

    print("RESOLVED CONFIG:")
    pprint.pprint(resolved)


if __name__ == "__main__":
    main()
