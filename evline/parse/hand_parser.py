# evline/parse/hand_parser.py
"""
Betclic HH → ParsedResult (турниры → раздачи → действия / игроки).
▪ один проход по строкам, всё состояние — в ParserState (своё на каждый вызов)
▪ секции — Section (HEADER / PLAYERS / HOLE_CARDS / STREET / SUMMARY)
▪ диспетчер — упорядоченный список (regex, секции, handler), первый совпавший выигрывает
▪ толерантный: незнакомые строки пропускаются, наружу ничего не летит

Один и тот же Game ID из разных кусков текста сливается в один турнир
(скаляры — последнее непустое значение, started_at — самое раннее,
раздачи — просто склеиваются).
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Pattern, Tuple

from evline.models import (
    Action,
    ParsedHand,
    ParsedResult,
    ParsedTournament,
    Player,
)
from evline.poker.cards import canonicalize
from evline.utils import parse_money

log = logging.getLogger(__name__)


class Section(Enum):
    HEADER = "header"
    PLAYERS = "players"
    HOLE_CARDS = "hole_cards"
    STREET = "street"
    SUMMARY = "summary"


@dataclass
class ParserState:
    tournaments: Dict[str, ParsedTournament] = field(default_factory=dict)
    current: Optional[ParsedTournament] = None
    section: Section = Section.HEADER
    street: str = "preflop"
    hero_name: Optional[str] = None
    hero_seat: Optional[int] = None
    name_to_seat: Dict[str, int] = field(default_factory=dict)
    players: List[Player] = field(default_factory=list)
    hand: Optional[ParsedHand] = None
    action_order: int = 0
    # значения, пришедшие до открытия раздачи
    pending_hand_no: Optional[str] = None
    pending_sb: Optional[int] = None
    pending_bb: Optional[int] = None
    pending_total_pot: Optional[int] = None


# ---------- компилируем часто используемые regex’ы ----------
CARD = r"[2-9TJQKA][shdc]"

RE_HEADER = re.compile(r"^\*\*\* HEADER \*\*\*")
RE_SEPARATOR = re.compile(r"^-{10,}$")
RE_GAME_ID = re.compile(r"^Game ID:\s*(?P<value>.*)$")
RE_DATE = re.compile(r"^Date & Time:\s*(?P<value>.*)$")
RE_DATE_VALUE = re.compile(r"(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}:\d{2})")
RE_BUY_IN = re.compile(r"^Buy In:(?P<value>.*)$")
RE_RAKE = re.compile(r"^Rake:(?P<value>.*)$")
RE_PRIZE_POOL = re.compile(r"^Prize pool:(?P<value>.*)$")
RE_MULTIPLIER = re.compile(r"^Multiplier:.*?x(?P<value>\d+(?:\.\d+)?)")
RE_HAND_ID = re.compile(r"^Hand ID:\s*(?P<value>.+)$")
RE_BLINDS = re.compile(r"^Blinds:.*?(?P<sb>\d+)/(?P<bb>\d+)")

RE_PLAYERS = re.compile(r"^\*\*\* PLAYERS \*\*\*")
RE_HOLE_CARDS = re.compile(r"^\*\*\* HOLE CARDS \*\*\*")
RE_SUMMARY = re.compile(r"^\*\*\* SUMMARY \*\*\*")
RE_PREFLOP = re.compile(r"^\*\*\* PRE-FLOP \*\*\*")
RE_STREET_BOARD = re.compile(r"^\*\*\* (?P<street>FLOP|TURN|RIVER) \*\*\*\s*(?P<board>.*)$")

# «Seat 3: malicious (1080) [BTN SB Hero]»
RE_SEAT = re.compile(r"^Seat\s+(?P<seat>\d+):\s+(?P<name>[^(]+?)\s*\((?P<stack>\d+)\)(?P<tail>.*)$")
RE_HERO_MARK = re.compile(r"\bHero\b")
# «malicious: [As Kd]»
RE_DEALT = re.compile(
    rf"^(?P<name>[^:\[]+?):\s*\[(?P<c1>{CARD})\s+(?P<c2>{CARD})\]", re.IGNORECASE
)
# «Villain shows [Qh Qd]» / «12:00:05 - Villain: shows [Qh Qd]»
RE_SHOWS = re.compile(
    rf"^(?:\S+\s+-\s+)?(?P<name>[^:\[]+?):?\s+shows\s+\[(?P<c1>{CARD})\s+(?P<c2>{CARD})\]",
    re.IGNORECASE,
)
# «malicious finished 1st and wins 20.00 EUR»
RE_FINISHED = re.compile(
    r"^(?P<name>.+?)\s+finished\s+(?P<pos>\d+)(?:st|nd|rd|th)(?:\s+and\s+wins\s+(?P<prize>[\d.,]+))?",
    re.IGNORECASE,
)
# «malicious wins main pot of 2160» / «Villain wins 1st side pot of 10»
RE_WINS = re.compile(
    r"^(?P<name>.+)\s+wins\s+(?P<pot>(?:main|side)\s+pot)?\s*.*?\bof\s+(?P<amount>\d+)",
    re.IGNORECASE,
)
RE_TOTAL_POT = re.compile(r"^Total Pot:\s*(?P<amount>\d+)", re.IGNORECASE)
# «00:01:02 - malicious: Raises to 1080 and is all-in»
RE_ACTION = re.compile(r"^(?:(?P<time>[^-]*?)\s*-\s+)?(?P<name>[^:]+?):\s+(?P<rest>.+)$")

# глагол → (тип действия, учитывать all-in); порядок важен
ACTION_VERBS: List[Tuple[Pattern[str], str, bool]] = [
    # блайнды всегда bet, даже «and is all-in»
    (re.compile(r"^Posts\s+(?:SB|BB)\s+(?P<size>\d+)", re.IGNORECASE), "bet", False),
    (re.compile(r"^Raises\s+to\s+(?P<size>\d+)", re.IGNORECASE), "raise", True),
    (re.compile(r"^Bets\s+(?P<size>\d+)", re.IGNORECASE), "bet", True),
    (re.compile(r"^Calls\s+(?P<size>\d+)", re.IGNORECASE), "call", True),
    (re.compile(r"^Checks", re.IGNORECASE), "check", False),
    (re.compile(r"^Folds", re.IGNORECASE), "fold", False),
]
RE_ALL_IN = re.compile(r"all-in", re.IGNORECASE)

STREET_BY_MARKER = {"FLOP": "flop", "TURN": "turn", "RIVER": "river"}


# ------------------------------------------------------------
def merge_tournaments(existing: ParsedTournament, incoming: ParsedTournament) -> ParsedTournament:
    """Сливает incoming в existing (тот же Game ID из другого куска / файла)."""
    if existing.started_at and incoming.started_at:
        existing.started_at = min(existing.started_at, incoming.started_at)
    else:
        existing.started_at = existing.started_at or incoming.started_at
    existing.buy_in_cents = incoming.buy_in_cents or existing.buy_in_cents
    existing.rake_cents = incoming.rake_cents or existing.rake_cents
    existing.prize_pool_cents = incoming.prize_pool_cents or existing.prize_pool_cents
    existing.prize_multiplier = incoming.prize_multiplier or existing.prize_multiplier
    existing.hero_name = incoming.hero_name or existing.hero_name
    if incoming.hero_position is not None:
        existing.hero_position = incoming.hero_position
    if incoming.hero_prize_cents is not None:
        existing.hero_prize_cents = incoming.hero_prize_cents
    existing.hands.extend(incoming.hands)
    return existing


def finalize_profit(t: ParsedTournament) -> None:
    """Профит героя: приз − (бай-ин + рейк); без строки приза 1-е место забирает призовой."""
    if t.hero_prize_cents is not None:
        t.profit_cents = t.hero_prize_cents - (t.buy_in_cents + t.rake_cents)
    elif t.hero_position is not None:
        prize = t.prize_pool_cents if t.hero_position == 1 else 0
        t.profit_cents = prize - (t.buy_in_cents + t.rake_cents)


def _reset_hand_context(state: ParserState) -> None:
    state.section = Section.HEADER
    state.street = "preflop"
    state.hero_name = None
    state.hero_seat = None
    state.name_to_seat = {}
    state.players = []
    state.hand = None
    state.action_order = 0
    state.pending_hand_no = None
    state.pending_sb = None
    state.pending_bb = None
    state.pending_total_pot = None


def _flush(state: ParserState) -> None:
    t = state.current
    if t is not None:
        if not t.game_id:
            # без Game ID турнир ни с чем не сливается
            t.game_id = f"unknown-{uuid.uuid4().hex}"
        t.hero_name = state.hero_name or t.hero_name
        existing = state.tournaments.get(t.game_id)
        if existing is None:
            state.tournaments[t.game_id] = t
        else:
            merge_tournaments(existing, t)
        state.current = None
    _reset_hand_context(state)


def _open_hand(state: ParserState) -> ParsedHand:
    hero = next((p for p in state.players if p.seat_no == state.hero_seat), None)
    hand = ParsedHand(
        hand_no=state.pending_hand_no,
        sb_cents=state.pending_sb,
        bb_cents=state.pending_bb,
        hero_seat=state.hero_seat,
        dealt_cards=hero.hole if hero else None,
        played_at=state.current.started_at,
        total_pot_cents=state.pending_total_pot,
        # те же объекты игроков: карты, открытые на шоудауне, попадут и сюда
        players=list(state.players),
    )
    state.current.hands.append(hand)
    state.hand = hand
    state.action_order = 0
    state.street = "preflop"
    state.pending_hand_no = state.pending_sb = state.pending_bb = state.pending_total_pot = None
    return hand


def _ensure_hand(state: ParserState) -> ParsedHand:
    return state.hand if state.hand is not None else _open_hand(state)


def _seat_by_name(state: ParserState, name: str) -> Optional[int]:
    return state.name_to_seat.get(name.strip())


def _reveal(state: ParserState, name: str, c1: str, c2: str) -> None:
    seat = _seat_by_name(state, name)
    if seat is None:
        return
    hole = f"{canonicalize(c1)} {canonicalize(c2)}"
    for p in state.players:
        if p.seat_no == seat:
            p.hole = hole
    if state.hand is not None and state.hand.hero_seat == seat:
        state.hand.dealt_cards = hole


# ---------- handlers ----------
def _on_header(state: ParserState, m: re.Match) -> None:
    _flush(state)
    state.current = ParsedTournament()


def _on_separator(state: ParserState, m: re.Match) -> None:
    _flush(state)


def _on_game_id(state: ParserState, m: re.Match) -> None:
    state.current.game_id = m.group("value").strip()


def _on_date(state: ParserState, m: re.Match) -> None:
    dm = RE_DATE_VALUE.search(m.group("value"))
    started = None
    if dm:
        try:
            started = datetime.strptime(f"{dm.group(1)} {dm.group(2)}", "%Y-%m-%d %H:%M:%S")
            started = started.replace(tzinfo=timezone.utc)
        except ValueError:
            log.debug("bad date line: %r", m.group(0))
    state.current.started_at = started


def _on_buy_in(state: ParserState, m: re.Match) -> None:
    state.current.buy_in_cents = parse_money(m.group("value"))


def _on_rake(state: ParserState, m: re.Match) -> None:
    state.current.rake_cents = parse_money(m.group("value"))


def _on_prize_pool(state: ParserState, m: re.Match) -> None:
    state.current.prize_pool_cents = parse_money(m.group("value"))


def _on_multiplier(state: ParserState, m: re.Match) -> None:
    state.current.prize_multiplier = float(m.group("value"))


def _on_hand_id(state: ParserState, m: re.Match) -> None:
    value = m.group("value").strip()
    if state.hand is not None:
        state.hand.hand_no = value
    else:
        state.pending_hand_no = value


def _on_blinds(state: ParserState, m: re.Match) -> None:
    sb, bb = int(m.group("sb")), int(m.group("bb"))
    if state.hand is not None:
        state.hand.sb_cents, state.hand.bb_cents = sb, bb
    else:
        state.pending_sb, state.pending_bb = sb, bb


def _on_players(state: ParserState, m: re.Match) -> None:
    # новый список мест: предыдущая раздача блока (если была) закрыта
    state.section = Section.PLAYERS
    state.hero_name = None
    state.hero_seat = None
    state.name_to_seat = {}
    state.players = []
    state.hand = None


def _on_hole_cards(state: ParserState, m: re.Match) -> None:
    state.section = Section.HOLE_CARDS
    state.street = "preflop"


def _on_summary(state: ParserState, m: re.Match) -> None:
    state.section = Section.SUMMARY


def _on_preflop(state: ParserState, m: re.Match) -> None:
    if state.section == Section.HOLE_CARDS or state.hand is None:
        _open_hand(state)
    state.section = Section.STREET
    state.street = "preflop"


def _on_street_board(state: ParserState, m: re.Match) -> None:
    hand = _ensure_hand(state)
    state.section = Section.STREET
    state.street = STREET_BY_MARKER[m.group("street")]
    board = m.group("board").strip()
    hand.board = board
    setattr(hand, f"board_{state.street}", board)


def _on_seat(state: ParserState, m: re.Match) -> None:
    seat = int(m.group("seat"))
    name = m.group("name").strip()
    state.name_to_seat[name] = seat
    is_hero = bool(RE_HERO_MARK.search(m.group("tail")))
    if is_hero:
        state.hero_name = name
        state.hero_seat = seat
        state.current.hero_name = name
    if not any(p.seat_no == seat for p in state.players):
        state.players.append(
            Player(
                seat_no=seat,
                name=name,
                starting_stack_cents=int(m.group("stack")),
                is_hero=is_hero,
            )
        )


def _on_dealt(state: ParserState, m: re.Match) -> None:
    _reveal(state, m.group("name"), m.group("c1"), m.group("c2"))


def _on_shows(state: ParserState, m: re.Match) -> None:
    _reveal(state, m.group("name"), m.group("c1"), m.group("c2"))


def _on_finished(state: ParserState, m: re.Match) -> None:
    if not state.hero_name or m.group("name").strip() != state.hero_name:
        return
    state.current.hero_position = int(m.group("pos"))
    if m.group("prize"):
        state.current.hero_prize_cents = parse_money(m.group("prize"))


def _on_wins(state: ParserState, m: re.Match) -> None:
    hand = state.hand
    if hand is None:
        return
    name = m.group("name").strip()
    seat = _seat_by_name(state, name)
    if seat is None and state.hero_name and name == state.hero_name:
        seat = hand.hero_seat
    is_main = "main" in (m.group("pot") or "").lower()
    if seat is not None and (is_main or hand.winner_seat is None):
        hand.winner_seat = seat
    if is_main:
        hand.main_pot_cents = int(m.group("amount"))
    if not hand.players:
        hand.players = list(state.players)


def _on_total_pot(state: ParserState, m: re.Match) -> None:
    value = int(m.group("amount"))
    if state.hand is not None:
        state.hand.total_pot_cents = value
    else:
        state.pending_total_pot = value


def _on_action(state: ParserState, m: re.Match) -> None:
    hand = state.hand
    if hand is None:
        return
    rest = m.group("rest").strip()
    for verb_re, act, allin_counts in ACTION_VERBS:
        vm = verb_re.match(rest)
        if not vm:
            continue
        size = int(vm.group("size")) if "size" in vm.groupdict() else None
        allin = allin_counts and size is not None and bool(RE_ALL_IN.search(rest))
        if allin and act in ("bet", "raise"):
            act = "push"
        state.action_order += 1
        hand.actions.append(
            Action(
                order_no=state.action_order,
                street=state.street,
                seat_no=_seat_by_name(state, m.group("name")),
                act=act,
                size_cents=size,
                allin=allin,
            )
        )
        return
    log.debug("unknown action verb: %r", rest)


Handler = Callable[[ParserState, re.Match], None]
ANY = None

# (regex, секции где правило активно (None = везде), handler), первый совпавший выигрывает
RULES: List[Tuple[Pattern[str], Optional[FrozenSet[Section]], Handler]] = [
    (RE_SEPARATOR, ANY, _on_separator),
    (RE_GAME_ID, ANY, _on_game_id),
    (RE_DATE, ANY, _on_date),
    (RE_BUY_IN, ANY, _on_buy_in),
    (RE_RAKE, ANY, _on_rake),
    (RE_PRIZE_POOL, ANY, _on_prize_pool),
    (RE_MULTIPLIER, ANY, _on_multiplier),
    (RE_HAND_ID, ANY, _on_hand_id),
    (RE_BLINDS, ANY, _on_blinds),
    (RE_PLAYERS, ANY, _on_players),
    (RE_HOLE_CARDS, ANY, _on_hole_cards),
    (RE_SUMMARY, ANY, _on_summary),
    (RE_PREFLOP, ANY, _on_preflop),
    (RE_STREET_BOARD, ANY, _on_street_board),
    (RE_TOTAL_POT, ANY, _on_total_pot),
    (RE_SEAT, frozenset({Section.PLAYERS}), _on_seat),
    (RE_DEALT, frozenset({Section.HOLE_CARDS}), _on_dealt),
    (RE_SHOWS, ANY, _on_shows),
    (RE_FINISHED, frozenset({Section.SUMMARY}), _on_finished),
    (RE_WINS, frozenset({Section.SUMMARY}), _on_wins),
    (RE_ACTION, frozenset({Section.STREET}), _on_action),
]


def feed_line(state: ParserState, line: str) -> ParserState:
    """Один шаг автомата: применяет к состоянию первое подходящее правило."""
    line = line.strip()
    if not line:
        return state
    if RE_HEADER.match(line):
        _on_header(state, None)
        return state
    if state.current is None:
        return state
    for regex, sections, handler in RULES:
        if sections is not None and state.section not in sections:
            continue
        m = regex.match(line)
        if m:
            handler(state, m)
            break
    return state


def parse_text(raw: str) -> ParsedResult:
    """Парсит весь текст выгрузки. Никогда не падает, в худшем случае частичные записи."""
    state = ParserState()
    for line in (raw or "").splitlines():
        try:
            feed_line(state, line)
        except (ValueError, IndexError) as e:
            log.debug("skip line %r: %s", line, e)
    _flush(state)

    tournaments = list(state.tournaments.values())
    for t in tournaments:
        finalize_profit(t)
    return ParsedResult(tournaments=tournaments)


def parse_file(path: str | Path) -> ParsedResult:
    """Парсит все раздачи из файла."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_text(text)
