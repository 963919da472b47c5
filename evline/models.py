"""
Типизированные записи EVLine.

▪ Parsed* — то, что отдаёт парсер HH (турнир → раздачи → действия / игроки)
▪ EvHand  — «минимальная» раздача для калькулятора EV и воркеров
  (собирается из ParsedHand или из строк БД, сериализуется в dict для пула)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from evline.utils import from_iso, utc_iso


@dataclass
class Action:
    order_no: int
    street: str  # preflop / flop / turn / river
    seat_no: Optional[int]
    act: str  # check / fold / call / bet / raise / push
    size_cents: Optional[int] = None
    allin: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_no": self.order_no,
            "street": self.street,
            "seat_no": self.seat_no,
            "act": self.act,
            "size_cents": self.size_cents,
            "allin": self.allin,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Action":
        return cls(
            order_no=int(d["order_no"]),
            street=d["street"],
            seat_no=d.get("seat_no"),
            act=d["act"],
            size_cents=d.get("size_cents"),
            allin=bool(d.get("allin")),
        )


@dataclass
class Player:
    seat_no: int
    name: str
    starting_stack_cents: Optional[int] = None
    hole: Optional[str] = None  # 'As Kd'
    is_hero: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seat_no": self.seat_no,
            "name": self.name,
            "starting_stack_cents": self.starting_stack_cents,
            "hole": self.hole,
            "is_hero": self.is_hero,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Player":
        return cls(
            seat_no=int(d["seat_no"]),
            name=d.get("name") or "",
            starting_stack_cents=d.get("starting_stack_cents"),
            hole=d.get("hole"),
            is_hero=bool(d.get("is_hero")),
        )


@dataclass
class ParsedHand:
    hand_no: Optional[str] = None
    sb_cents: Optional[int] = None
    bb_cents: Optional[int] = None
    hero_seat: Optional[int] = None
    dealt_cards: Optional[str] = None
    board: Optional[str] = None
    board_flop: Optional[str] = None
    board_turn: Optional[str] = None
    board_river: Optional[str] = None
    winner_seat: Optional[int] = None
    played_at: Optional[datetime] = None
    total_pot_cents: Optional[int] = None
    main_pot_cents: Optional[int] = None
    actions: List[Action] = field(default_factory=list)
    players: List[Player] = field(default_factory=list)


@dataclass
class ParsedTournament:
    game_id: str = ""
    started_at: Optional[datetime] = None
    buy_in_cents: int = 0
    rake_cents: int = 0
    prize_pool_cents: int = 0
    prize_multiplier: float = 1.0
    hero_position: Optional[int] = None
    hero_prize_cents: Optional[int] = None
    profit_cents: Optional[int] = None
    hero_name: Optional[str] = None
    hands: List[ParsedHand] = field(default_factory=list)


@dataclass
class ParsedResult:
    tournaments: List[ParsedTournament] = field(default_factory=list)

    @property
    def num_hands(self) -> int:
        return sum(len(t.hands) for t in self.tournaments)


@dataclass
class EvHand:
    id: str
    played_at: Optional[datetime] = None
    hero_seat: Optional[int] = None
    winner_seat: Optional[int] = None
    dealt_cards: Optional[str] = None
    board: Optional[str] = None
    board_flop: Optional[str] = None
    board_turn: Optional[str] = None
    board_river: Optional[str] = None
    total_pot_cents: Optional[int] = None
    main_pot_cents: Optional[int] = None
    actions: List[Action] = field(default_factory=list)
    players: List[Player] = field(default_factory=list)
    # поля из БД (для кеша и кривых)
    hand_no: Optional[str] = None
    tournament_id: Optional[int] = None
    ev_realized_cents: Optional[int] = None
    ev_allin_adj_cents: Optional[int] = None
    ev_samples: int = 0

    @classmethod
    def from_parsed(cls, hand_id: str, hand: ParsedHand) -> "EvHand":
        return cls(
            id=hand_id,
            played_at=hand.played_at,
            hero_seat=hand.hero_seat,
            winner_seat=hand.winner_seat,
            dealt_cards=hand.dealt_cards,
            board=hand.board,
            board_flop=hand.board_flop,
            board_turn=hand.board_turn,
            board_river=hand.board_river,
            total_pot_cents=hand.total_pot_cents,
            main_pot_cents=hand.main_pot_cents,
            actions=list(hand.actions),
            players=list(hand.players),
            hand_no=hand.hand_no,
        )

    def to_dict(self) -> Dict[str, Any]:
        """MinimalHand для пула воркеров: только значения, без ссылок."""
        return {
            "id": self.id,
            "played_at": utc_iso(self.played_at),
            "hero_seat": self.hero_seat,
            "winner_seat": self.winner_seat,
            "dealt_cards": self.dealt_cards,
            "board": self.board,
            "board_flop": self.board_flop,
            "board_turn": self.board_turn,
            "board_river": self.board_river,
            "total_pot_cents": self.total_pot_cents,
            "main_pot_cents": self.main_pot_cents,
            "actions": [a.to_dict() for a in self.actions],
            "players": [p.to_dict() for p in self.players],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EvHand":
        return cls(
            id=str(d["id"]),
            played_at=from_iso(d.get("played_at")),
            hero_seat=d.get("hero_seat"),
            winner_seat=d.get("winner_seat"),
            dealt_cards=d.get("dealt_cards"),
            board=d.get("board"),
            board_flop=d.get("board_flop"),
            board_turn=d.get("board_turn"),
            board_river=d.get("board_river"),
            total_pot_cents=d.get("total_pot_cents"),
            main_pot_cents=d.get("main_pot_cents"),
            actions=[Action.from_dict(a) for a in d.get("actions") or []],
            players=[Player.from_dict(p) for p in d.get("players") or []],
        )
