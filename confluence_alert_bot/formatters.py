from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .indicators import pct_change
from .models import (
    ANNOUNCE_NEW,
    RESEND_PREVIOUS,
    Analysis,
    Announcement,
    TradeIdea,
)


def _fmt_ms(ts_ms: int) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def _escape(text: Any) -> str:
    return html.escape(str(text), quote=False)


def _bold(text: Any) -> str:
    return f"<b>{_escape(text)}</b>"


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:.12f}".rstrip("0").rstrip(".") or "0"


def _idea_lines(idea: TradeIdea) -> List[str]:
    sl_dist = pct_change(idea.stop_loss, idea.entry)
    tp_dist = pct_change(idea.take_profit, idea.entry)
    sl_line = f"SL: {_fmt_price(idea.stop_loss)}"
    if sl_dist is not None:
        sl_line += f" ({sl_dist:+.2f}%)"
    tp_line = f"TP: {_fmt_price(idea.take_profit)}"
    if tp_dist is not None:
        tp_line += f" ({tp_dist:+.2f}%)"
    return [
        _escape(f"Entry: {_fmt_price(idea.entry)}"),
        _escape(sl_line),
        _escape(tp_line),
        _escape(f"RR: {idea.risk_reward:.2f} | Score: {idea.score}"),
        _escape(f"Confluence: {' '.join(idea.tags) or '-'}"),
    ]


def format_announcement(ann: Announcement, *, app_name: str = "") -> str:
    idea = ann.idea
    if ann.kind == ANNOUNCE_NEW:
        header = f"{_bold(f'{idea.direction} {ann.symbol}')}  |  auto-scan"
    elif ann.kind == RESEND_PREVIOUS:
        header = f"{_bold(f'{idea.direction} {ann.symbol}')}  |  repeat (no stronger idea since)"
    else:
        header = f"{_bold(f'{idea.direction} {ann.symbol}')}  |  watchlist"
    lines = [header, ""] + _idea_lines(idea)
    if app_name:
        lines.append("")
        lines.append(_escape(app_name))
    return "\n".join(lines)


def format_analysis(result: Analysis) -> str:
    obs = result.order_blocks
    ob_parts = []
    if obs.bullish is not None:
        ob_parts.append("Bullish")
    if obs.bearish is not None:
        ob_parts.append("Bearish")
    liq = result.liquidity
    lines = [
        f"{_bold(result.symbol)}  |  {_bold(result.timeframe)}",
        _escape(f"Price: {_fmt_price(result.price)}"),
        _escape(f"BOS: {result.bos.direction if result.bos else 'None'}"),
        _escape(
            f"FVG: {result.fvg.direction} [{_fmt_price(result.fvg.low)} - {_fmt_price(result.fvg.high)}]"
            if result.fvg
            else "FVG: None"
        ),
        _escape(f"OB: {' '.join(ob_parts) or 'None'}"),
        _escape(f"Liquidity: {f'{liq.ratio:.2f}x avg volume' if liq else 'No'}"),
        _escape(f"Pattern: {result.pattern or 'None'}"),
        "",
    ]
    idea = result.idea
    if isinstance(idea, TradeIdea):
        lines.append(_bold(f"Idea: {idea.direction}"))
        lines.extend(_idea_lines(idea))
    else:
        missing = f" (missing: {', '.join(idea.missing)})" if idea.missing else ""
        lines.append(_escape(f"Idea: none | {idea.reason}{missing} | Score: {idea.score}"))
    return "\n".join(lines)


def format_history(entries: List[Dict[str, Any]]) -> str:
    if not entries:
        return _escape("No history yet.")
    lines = [_bold("History")]
    for h in entries:
        idea = h.get("idea") or {}
        ts = h.get("time_ms")
        when = _fmt_ms(int(ts)) if ts else "-"
        lines.append(
            _escape(f"{when} | {h.get('symbol', '?')} | {idea.get('direction', '-')} | {h.get('kind', '-')} | score {idea.get('score', '-')}")
        )
    return "\n".join(lines)
