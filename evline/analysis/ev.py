# evline/analysis/ev.py
"""
EV одной раздачи с точки зрения героя.

realized  — фактическое изменение стека (на полном борде через долю в банке
            с учётом сайд-потов, иначе через Total Pot / победителя)
adjusted  — all-in adjusted: эквити в момент решающего олл-ина × банк − вклад

Оба поля могут быть None: «нет данных» ≠ «ноль профита».
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from evline.models import Action, EvHand, Player
from evline.poker.cards import card_tokens
from evline.poker.equity import (
    EquityResult,
    PotEquityResult,
    estimate_hero_pot_equity,
    estimate_multiway_equity,
    make_rng,
)
from evline.utils import DEFAULT_SAMPLES, round_half_up

log = logging.getLogger(__name__)

BOARD_SIZE = {"preflop": 0, "flop": 3, "turn": 4, "river": 5}


@dataclass
class HandEv:
    hand_id: str
    played_at: Optional[datetime]
    realized_change_cents: Optional[int]
    allin_adjusted_change_cents: Optional[int]
    equities: Dict[str, object] = field(default_factory=dict)
    allin_context: Optional[dict] = None


# ---------- вклады ----------
def _ordered(actions: Sequence[Action]) -> List[Action]:
    return sorted(actions, key=lambda a: a.order_no)


def street_investments(actions: Sequence[Action], end: Optional[int] = None) -> Dict[int, int]:
    """
    Суммарный вклад каждого места, проигрывая действия по порядку.
    Вложения считаются в пределах улицы (сброс на смене улицы);
    raise / push — это размер «до», call / bet — приращение.
    end — индекс последнего учитываемого действия (включительно).
    """
    ordered = _ordered(actions)
    if end is not None:
        ordered = ordered[: end + 1]
    totals: Dict[int, int] = {}
    on_street: Dict[int, int] = {}
    street = "preflop"
    for a in ordered:
        if a.street != street:
            on_street.clear()
            street = a.street
        if a.seat_no is None:
            continue
        prev = on_street.get(a.seat_no, 0)
        size = max(0, a.size_cents or 0)
        inc = 0
        if a.act in ("call", "bet"):
            inc = size
            on_street[a.seat_no] = prev + inc
        elif a.act in ("raise", "push"):
            inc = max(0, size - prev)
            on_street[a.seat_no] = max(prev, size)
        if inc > 0:
            totals[a.seat_no] = totals.get(a.seat_no, 0) + inc
    return totals


def hero_contribution(actions: Sequence[Action], hero_seat: int) -> int:
    return street_investments(actions).get(hero_seat, 0)


# ---------- борд ----------
class BoardPicker:
    """
    Борд нужной длины из street-полей раздачи.
    Источники по приоритету: river, board, turn, flop; если ни один не длинный
    достаточно — берём самый длинный.
    """

    def __init__(self, hand: EvHand):
        self.sources = [
            card_tokens(hand.board_river),
            card_tokens(hand.board),
            card_tokens(hand.board_turn),
            card_tokens(hand.board_flop),
        ]

    def pick(self, count: int) -> List[str]:
        if count <= 0:
            return []
        for src in self.sources:
            if len(src) >= count:
                return src[:count]
        longest = max(self.sources, key=len)
        return longest[:count]

    def by_street(self, street: str) -> List[str]:
        return self.pick(BOARD_SIZE.get(street, 0))

    def final(self) -> List[str]:
        return self.pick(5)


# ---------- решающий олл-ин ----------
def find_decisive_allin(actions: Sequence[Action], hero_seat: int) -> Optional[int]:
    """
    Индекс (в упорядоченном списке) действия, которым герой «закрыл» олл-ин:
    собственный олл-ин героя или колл / рейз героя в висящий олл-ин оппонента.
    Фолд героя в олл-ин → None.
    """
    pending: set = set()
    for i, a in enumerate(_ordered(actions)):
        if a.seat_no is None:
            continue
        if a.allin:
            if a.seat_no == hero_seat:
                return i
            pending.add(a.seat_no)
        if pending and a.seat_no == hero_seat:
            if a.act == "fold":
                return None
            if a.act in ("call", "raise", "push", "bet"):
                return i
        if pending and a.act == "fold":
            pending.discard(a.seat_no)
    return None


# ---------- helpers ----------
def _hero_seat(hand: EvHand) -> Optional[int]:
    if hand.hero_seat is not None:
        return hand.hero_seat
    hero = next((p for p in hand.players if p.is_hero), None)
    return hero.seat_no if hero else None


def _hole(player: Optional[Player]) -> Optional[List[str]]:
    if player is None:
        return None
    cards = card_tokens(player.hole)
    return cards if len(cards) == 2 else None


def _hero_hole(hand: EvHand, hero_seat: int) -> Optional[List[str]]:
    hero = next((p for p in hand.players if p.seat_no == hero_seat), None)
    cards = card_tokens(hero.hole if hero and hero.hole else hand.dealt_cards)
    return cards if len(cards) == 2 else None


def _folded_seats(ordered: Sequence[Action]) -> set:
    return {a.seat_no for a in ordered if a.act == "fold" and a.seat_no is not None}


def _distinct(*groups: Sequence[str]) -> bool:
    cards = [c for g in groups for c in g]
    return len(set(cards)) == len(cards)


def _pot_fallback(hand: EvHand, totals: Dict[int, int], hero_seat: int, hero_total: int) -> Optional[int]:
    """Итог по Total Pot / main pot / сумме вкладов и победителю."""
    pot = hand.total_pot_cents
    if pot is None:
        pot = hand.main_pot_cents
    if pot is None:
        summed = sum(totals.values())
        pot = summed if summed > 0 else None
    if pot is None:
        return None
    return pot - hero_total if hand.winner_seat == hero_seat else -hero_total


# ---------- realized ----------
def _realized(
    hand: EvHand,
    hero_seat: int,
    hero_hole: Optional[List[str]],
    ordered: List[Action],
    totals: Dict[int, int],
    board: BoardPicker,
    samples: int,
    seed: Optional[int],
) -> Tuple[Optional[int], Optional[PotEquityResult]]:
    hero_total = totals.get(hero_seat, 0)
    folded = _folded_seats(ordered)
    if hero_seat in folded:
        return -hero_total, None

    players = {p.seat_no: p for p in hand.players}
    # оппоненты, дошедшие до вскрытия с открытыми картами
    revealed = []
    for seat, p in players.items():
        if seat == hero_seat or seat in folded:
            continue
        hole = _hole(p)
        contribution = min(hero_total, max(0, totals.get(seat, 0)))
        if hole and contribution > 0:
            revealed.append((seat, hole, contribution))

    final_board = board.final()
    if hero_hole and len(final_board) == 5:
        shown = {seat for seat, _, _ in revealed}
        dead = sum(
            min(hero_total, max(0, v))
            for seat, v in totals.items()
            if seat != hero_seat and seat not in shown
        )
        matched = sum(c for _, _, c in revealed)
        eligible = hero_total + matched + dead
        if eligible <= 0:
            return None, None
        if not revealed:
            if hand.winner_seat is None or hand.winner_seat == hero_seat:
                return eligible - hero_total, None
            return _pot_fallback(hand, totals, hero_seat, hero_total), None
        if not _distinct(hero_hole, final_board, *(hole for _, hole, _ in revealed)):
            log.debug("hand %s: duplicate cards at showdown", hand.id)
            return None, None
        eq = estimate_hero_pot_equity(
            hero_hole,
            hero_total,
            [(hole, c) for _, hole, c in revealed],
            final_board,
            dead_money=dead,
            samples=max(1, samples),
            rng=make_rng(seed),
        )
        return round_half_up(eq.share_pct * eligible - hero_total), eq

    if revealed:
        # карты открыты, а борд не дошёл до ривера: делёж не посчитать
        return None, None
    return _pot_fallback(hand, totals, hero_seat, hero_total), None


# ---------- all-in adjusted ----------
def _adjusted(
    hand: EvHand,
    hero_seat: int,
    hero_hole: Optional[List[str]],
    ordered: List[Action],
    totals: Dict[int, int],
    board: BoardPicker,
    samples: int,
    seed: Optional[int],
) -> Tuple[Optional[int], Optional[EquityResult], Optional[dict]]:
    idx = find_decisive_allin(ordered, hero_seat)
    if idx is None:
        return None, None, None

    ai = ordered[idx]
    at_ai = street_investments(ordered, end=idx)
    hero_at_ai = at_ai.get(hero_seat, 0)
    if hero_at_ai <= 0:
        return None, None, None

    after = ordered[idx + 1 :]
    hero_acts_after = any(a.seat_no == hero_seat for a in after)
    hero_added_after = totals.get(hero_seat, 0) - hero_at_ai
    if not ai.allin and (hero_acts_after or hero_added_after > 0):
        return None, None, None

    def raw(seat: int) -> int:
        return max(0, at_ai.get(seat, 0), totals.get(seat, 0))

    seats = set(at_ai) | set(totals) | {p.seat_no for p in hand.players}
    opponents = sorted(s for s in seats if s != hero_seat)
    hero_cap = min(hero_at_ai, max((raw(s) for s in opponents), default=0))
    if hero_cap <= 0:
        return None, None, None

    # живые на улице олл-ина; фолд на следующих улицах оппонента не выключает
    ai_depth = BOARD_SIZE.get(ai.street, 0)
    folded = _folded_seats([a for a in ordered if BOARD_SIZE.get(a.street, 0) <= ai_depth])
    live = [s for s in opponents if s not in folded and raw(s) > 0]
    players = {p.seat_no: p for p in hand.players}
    frozen = board.by_street(ai.street)
    context = {
        "stage": ai.street,
        "board": frozen,
        "participants": [{"seat": hero_seat, "hole": hero_hole}]
        + [{"seat": s, "hole": _hole(players.get(s))} for s in live],
    }

    holes = [_hole(players.get(s)) for s in live]
    if hero_hole is None or any(h is None for h in holes):
        return None, None, context
    if not _distinct(hero_hole, frozen, *holes):
        log.debug("hand %s: duplicate cards at all-in", hand.id)
        return None, None, context

    villain_total = sum(min(hero_cap, raw(s)) for s in live)
    dead = sum(min(hero_cap, raw(s)) for s in opponents if s not in live)
    villain_total += dead
    hero_eff = min(hero_cap, villain_total)
    eligible = hero_eff + villain_total
    if eligible <= 0 or hero_eff <= 0:
        return None, None, context

    if not live:
        eq = EquityResult(1.0, 0.0)
        eff = 1.0
    else:
        eq = estimate_multiway_equity(
            hero_hole, holes, frozen, samples=max(1, samples), rng=make_rng(seed)
        )
        # делим ничью только в хедз-апе
        eff = eq.win_pct + 0.5 * eq.tie_pct if len(live) == 1 else eq.win_pct

    return round_half_up(eff * eligible - hero_eff), eq, context


def compute_hand_ev(hand: EvHand, samples: int = DEFAULT_SAMPLES, seed: Optional[int] = None) -> HandEv:
    """
    realized + all-in adjusted EV раздачи.

    Args:
        hand: раздача (действия, игроки, борды)
        samples: семплы Монте-Карло
        seed: фиксированный seed → воспроизводимый результат

    Returns:
        HandEv (поля None, если данных не хватает)
    """
    hero_seat = _hero_seat(hand)
    if hero_seat is None:
        return HandEv(hand.id, hand.played_at, None, None)

    ordered = _ordered(hand.actions)
    totals = street_investments(ordered)
    board = BoardPicker(hand)
    hero_hole = _hero_hole(hand, hero_seat)

    realized, realized_eq = _realized(hand, hero_seat, hero_hole, ordered, totals, board, samples, seed)
    adjusted, adjusted_eq, context = _adjusted(
        hand, hero_seat, hero_hole, ordered, totals, board, samples, seed
    )

    equities: Dict[str, object] = {}
    if realized_eq is not None:
        equities["realized"] = realized_eq
    if adjusted_eq is not None:
        equities["adjusted"] = adjusted_eq

    log.debug("hand %s: realized=%s adjusted=%s", hand.id, realized, adjusted)
    return HandEv(hand.id, hand.played_at, realized, adjusted, equities, context)
