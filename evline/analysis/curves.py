# evline/analysis/curves.py
"""
Кумулятивные кривые для графиков.

▪ EV-кривая: раздачи по времени, неявная нулевая точка в начале,
  cum_actual (realized) и cum_adj (adjusted, иначе realized),
  плюс разбивка realized на «со вскрытием» / «без вскрытия»
▪ при > 7 500 раздач кривая схлопывается до одной точки на турнир
▪ bankroll-кривая: турниры по времени старта, фактический профит
  и «ожидаемый» через chip EV → вероятность выигрыша × призовой − бай-ин
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from evline.analysis.ev_service import ensure_hand_evs, pick_curve_samples
from evline.database.db_utils import (
    connect,
    fetch_ev_hands,
    fetch_first_hand_stacks,
    fetch_tournament_chip_ev,
    fetch_tournaments,
)
from evline.models import EvHand
from evline.utils import PLAYERS_PER_GAME, STARTING_CHIPS_FALLBACK, from_iso, round_half_up

log = logging.getLogger(__name__)

TOURNAMENT_MODE_THRESHOLD = 7_500


@dataclass
class EvCurvePoint:
    hand_id: Optional[str]
    hand_no: Optional[str]
    played_at: Optional[datetime]
    cum_actual: int
    cum_adj: int
    cum_showdown: int = 0
    cum_no_showdown: int = 0


@dataclass
class BankrollCurvePoint:
    tournament_id: Optional[int]
    started_at: Optional[datetime]
    cum_profit_cents: int
    cum_expected_cents: int


@dataclass
class BankrollDebugEntry:
    tournament_id: int
    started_at: Optional[datetime]
    profit_cents: int
    cum_profit_cents: int
    cev_chips: int
    players: int
    start_chips: int
    denom_chips: int
    prize_pool_cents: int
    buy_in_cents: int
    win_pct_raw: float
    win_pct: float
    win_pct_was_clamped: bool
    expected_net_cents: float
    cum_expected_cents: float


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _sort_key(hand: EvHand):
    # None в конец; sorted() стабилен
    return (hand.played_at is None, hand.played_at or datetime.min)


def _is_showdown(hand: EvHand) -> bool:
    """Герой не сфолдил и кто-то из оппонентов показал карты."""
    hero_seat = hand.hero_seat
    if hero_seat is None:
        hero_seat = next((p.seat_no for p in hand.players if p.is_hero), None)
    hero_folded = hero_seat is not None and any(
        a.seat_no == hero_seat and a.act == "fold" for a in hand.actions
    )
    villain_showed = any(p.seat_no != hero_seat and p.hole for p in hand.players)
    return not hero_folded and villain_showed


# ---------- EV-кривая ----------
def build_ev_curve(hands: Iterable[EvHand], tournament_mode: Optional[bool] = None) -> List[EvCurvePoint]:
    """
    Кумулятивная EV-кривая по уже посчитанным EV раздач.
    realized None → 0, adjusted None → realized.
    """
    ordered = sorted(hands, key=_sort_key)
    if tournament_mode is None:
        tournament_mode = len(ordered) > TOURNAMENT_MODE_THRESHOLD

    points = [EvCurvePoint(None, None, None, 0, 0)]
    if tournament_mode:
        return points + _tournament_points(ordered)

    cum_actual = cum_adj = cum_sd = cum_nsd = 0
    for hand in ordered:
        actual = hand.ev_realized_cents or 0
        adj = hand.ev_allin_adj_cents if hand.ev_allin_adj_cents is not None else actual
        cum_actual += actual
        cum_adj += adj
        if _is_showdown(hand):
            cum_sd += actual
        else:
            cum_nsd += actual
        points.append(
            EvCurvePoint(hand.id, hand.hand_no, hand.played_at, cum_actual, cum_adj, cum_sd, cum_nsd)
        )
    return points


def _tournament_points(ordered: Sequence[EvHand]) -> List[EvCurvePoint]:
    agg: Dict[object, dict] = {}
    for hand in ordered:
        actual = hand.ev_realized_cents or 0
        adj = hand.ev_allin_adj_cents if hand.ev_allin_adj_cents is not None else actual
        key = hand.tournament_id if hand.tournament_id is not None else hand.id
        entry = agg.setdefault(key, {"earliest": hand.played_at, "actual": 0, "adj": 0})
        if hand.played_at is not None and (entry["earliest"] is None or hand.played_at < entry["earliest"]):
            entry["earliest"] = hand.played_at
        entry["actual"] += actual
        entry["adj"] += adj

    items = sorted(
        agg.items(), key=lambda kv: (kv[1]["earliest"] is None, kv[1]["earliest"] or datetime.min)
    )
    out: List[EvCurvePoint] = []
    cum_actual = cum_adj = 0
    for key, entry in items:
        cum_actual += entry["actual"]
        cum_adj += entry["adj"]
        out.append(EvCurvePoint(str(key), None, entry["earliest"], cum_actual, cum_adj))
    return out


def get_ev_curve(
    db_path: Path | str | None = None,
    limit: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    buy_ins: Optional[Sequence[int]] = None,
    phase: Optional[str] = None,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
) -> dict:
    """
    EV-кривая из БД. Недостающие EV досчитываются «быстрыми» семплами
    и сохраняются.

    phase: 'preflop' — раздачи, закончившиеся до флопа; 'postflop' — видевшие флоп.
    """
    cx = connect(db_path)
    try:
        hands = fetch_ev_hands(cx, limit=limit, date_from=date_from, date_to=date_to, buy_ins=buy_ins)
        if phase == "preflop":
            hands = [h for h in hands if all(a.street == "preflop" for a in h.actions)]
        elif phase == "postflop":
            hands = [h for h in hands if any(a.street == "flop" for a in h.actions)]

        target = pick_curve_samples(len(hands), samples)
        ensure_hand_evs(cx, hands, target, seed)
    finally:
        cx.close()

    points = build_ev_curve(hands)
    last = points[-1]
    sampled = [h.ev_samples for h in hands if h.ev_allin_adj_cents is not None and h.ev_samples > 0]
    return {
        "points": points,
        "chip_ev_adj_total": last.cum_adj,
        "num_games": len({h.tournament_id for h in hands if h.tournament_id is not None}),
        "target_samples": target,
        "samples_used": min(sampled) if sampled else None,
    }


# ---------- bankroll ----------
def build_bankroll_curve(tournaments: Sequence[dict], debug: bool = False):
    """
    tournaments: [{id, started_at, profit_cents, prize_pool_cents, buy_in_cents,
                   cev_chips, start_chips}] по времени старта.
    Возвращает (points, debug_entries).
    """
    cum_profit = 0
    cum_expected = 0.0
    points: List[BankrollCurvePoint] = []
    entries: List[BankrollDebugEntry] = []
    for t in tournaments:
        profit = t.get("profit_cents") or 0
        cum_profit += profit

        cev = t.get("cev_chips") or 0
        start = t.get("start_chips") or STARTING_CHIPS_FALLBACK
        denom = PLAYERS_PER_GAME * start
        win_raw = (start + cev) / denom if denom > 0 else 0.0
        win = clamp01(win_raw)
        prize_pool = t.get("prize_pool_cents") or 0
        buy_in = t.get("buy_in_cents") or 0
        expected = prize_pool * win - buy_in
        cum_expected += expected

        points.append(
            BankrollCurvePoint(t.get("id"), t.get("started_at"), cum_profit, round_half_up(cum_expected))
        )
        if debug:
            entries.append(
                BankrollDebugEntry(
                    tournament_id=t.get("id"),
                    started_at=t.get("started_at"),
                    profit_cents=profit,
                    cum_profit_cents=cum_profit,
                    cev_chips=cev,
                    players=PLAYERS_PER_GAME,
                    start_chips=start,
                    denom_chips=denom,
                    prize_pool_cents=prize_pool,
                    buy_in_cents=buy_in,
                    win_pct_raw=win_raw,
                    win_pct=win,
                    win_pct_was_clamped=win != win_raw,
                    expected_net_cents=expected,
                    cum_expected_cents=cum_expected,
                )
            )
    return points, entries


def _start_chips(stacks) -> Optional[int]:
    """Стек героя в первой раздаче, иначе первый ненулевой стек."""
    hero = next((r["starting_stack_cents"] for r in stacks if r["is_hero"]), None)
    if hero and hero > 0:
        return hero
    any_start = [r["starting_stack_cents"] for r in stacks if (r["starting_stack_cents"] or 0) > 0]
    return any_start[0] if any_start else None


def get_bankroll_curve(
    db_path: Path | str | None = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    buy_ins: Optional[Sequence[int]] = None,
    debug: bool = False,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
):
    cx = connect(db_path)
    try:
        hands = fetch_ev_hands(cx, only_missing_ev=True)
        ensure_hand_evs(cx, hands, pick_curve_samples(len(hands), samples), seed)

        rows = []
        for t in fetch_tournaments(cx, date_from=date_from, date_to=date_to, buy_ins=buy_ins):
            cev, _ = fetch_tournament_chip_ev(cx, t["id"])
            rows.append(
                {
                    "id": t["id"],
                    "started_at": from_iso(t["started_utc"]),
                    "profit_cents": t["profit_cents"],
                    "prize_pool_cents": t["prize_pool_cents"],
                    "buy_in_cents": t["buy_in_cents"],
                    "cev_chips": cev,
                    "start_chips": _start_chips(fetch_first_hand_stacks(cx, t["id"])),
                }
            )
    finally:
        cx.close()
    return build_bankroll_curve(rows, debug=debug)


def to_frame(points: Sequence[object]) -> pd.DataFrame:
    """Точки кривой → DataFrame (для вывода в CLI / экспорта)."""
    return pd.DataFrame([asdict(p) for p in points])
