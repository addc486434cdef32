"""Plain-text formatters for status lines and ledger summaries."""

import json
from datetime import datetime

from updown.models.ledger import RedemptionRecord
from updown.models.state import PositionPhase, TickOutcome


def format_tick_line(outcomes: list[TickOutcome]) -> str:
    """One log line per tick batch; assets without an action are omitted."""
    acted = [o for o in outcomes if o.acted]
    if not acted:
        return f"Tick: {len(outcomes)} assets, no actions"
    parts = [f"{o.asset} {o.action.value}" + (f" ({o.detail})" if o.detail else "") for o in acted]
    return f"Tick: {len(outcomes)} assets | " + ", ".join(parts)


def format_status_text(
    now: datetime,
    phases: dict[str, PositionPhase],
    realized_pnl: float,
    mode: str,
) -> str:
    lines = [f"=== Status {now.strftime('%Y-%m-%d %H:%M:%S')} UTC ({mode}) ==="]
    for asset, phase in sorted(phases.items()):
        lines.append(f"  {asset:<6} {phase.value}")
    lines.append(f"Realized P&L: ${realized_pnl:+.2f}")
    return "\n".join(lines)


def format_pnl_text(
    summary: dict[str, dict[str, float]],
    redemptions: list[RedemptionRecord],
) -> str:
    """Per-asset cost, proceeds and realized P&L."""
    if not summary:
        return "No ledger entries"
    lines = [f"{'Asset':<8}{'Bought':>10}{'Sold':>10}{'Redeemed':>10}{'P&L':>10}"]
    total = 0.0
    for asset, row in sorted(summary.items()):
        total += row["pnl"]
        lines.append(
            f"{asset or '(manual)':<8}{row['BUY']:>10.2f}{row['SELL']:>10.2f}"
            f"{row['REDEEM']:>10.2f}{row['pnl']:>+10.2f}"
        )
    lines.append(f"Total realized P&L: ${total:+.2f}")
    lines.append(f"Redemptions recorded: {len(redemptions)}")
    return "\n".join(lines)


def format_pnl_json(
    summary: dict[str, dict[str, float]],
    redemptions: list[RedemptionRecord],
) -> str:
    data = {
        "assets": summary,
        "total_pnl": sum(row["pnl"] for row in summary.values()),
        "redemptions": [
            {
                "condition_id": r.condition_id,
                "asset": r.asset,
                "winning_side": r.winning_side.value if r.winning_side else None,
                "shares": r.shares,
                "redeemed_at": r.redeemed_at.isoformat(),
            }
            for r in redemptions
        ],
    }
    return json.dumps(data, indent=2)
