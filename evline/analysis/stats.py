# evline/analysis/stats.py
"""Сводка по игроку: ROI, ITM, гистограмма множителей, chip EV за игру."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from evline.database.db_utils import connect, fetch_tournaments
from evline.utils import round_half_up


def get_user_stats(
    db_path: Path | str | None = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> dict:
    cx = connect(db_path)
    try:
        tournaments = fetch_tournaments(cx, date_from=date_from, date_to=date_to)
        ids = {t["id"] for t in tournaments}
        rows = cx.execute(
            """
            SELECT h.tournament_id, COALESCE(h.ev_allin_adj_cents, h.ev_realized_cents, 0)
            FROM hands h
            ORDER BY h.played_utc, h.hand_no, h.rowid;
            """
        ).fetchall()
        deltas = [r[1] for r in rows if r[0] in ids]
    finally:
        cx.close()

    n = len(tournaments)
    total_buy_in = sum(t["buy_in_cents"] or 0 for t in tournaments)
    total_rake = sum(t["rake_cents"] or 0 for t in tournaments)
    total_profit = sum(t["profit_cents"] or 0 for t in tournaments)
    denom = total_buy_in + total_rake
    itm = sum(1 for t in tournaments if t["hero_position"] == 1)

    hist = Counter(t["prize_multiplier"] for t in tournaments)

    # пик кумулятивного adjusted EV
    cum = peak = 0
    for d in deltas:
        cum += d
        peak = max(peak, cum)

    return {
        "tournaments": n,
        "hands": len(deltas),
        "total_buy_in_cents": total_buy_in,
        "total_rake_cents": total_rake,
        "total_profit_cents": total_profit,
        "roi_pct": (total_profit / denom * 100) if denom else 0.0,
        "itm_pct": (itm / n * 100) if n else 0.0,
        "multiplier_histogram": [
            {"multiplier": m, "count": c} for m, c in sorted(hist.items())
        ],
        "chip_ev_per_game": round_half_up(peak / n) if n else 0,
    }


def stats_frame(stats: dict) -> pd.DataFrame:
    """Сводка → таблица «метрика / значение» без гистограммы."""
    rows = [(k, v) for k, v in stats.items() if k != "multiplier_histogram"]
    return pd.DataFrame(rows, columns=["metric", "value"])
