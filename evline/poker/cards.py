# evline/poker/cards.py
"""Карты: канонизация токенов ('as' → 'As'), разбор бордов, колода."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

RANKS = "23456789TJQKA"
SUITS = "shdc"
RANK_VALUE = {r: i for i, r in enumerate(RANKS, start=2)}  # 2..14

RE_CARD = re.compile(r"^[2-9TJQKA][SHDC]$", re.IGNORECASE)
RE_BOARD_SPLIT = re.compile(r"[\s|,\[\]]+")


def canonicalize(card: str) -> str:
    """'ah' → 'Ah'. Кривой токен — ошибка вызывающего кода (ValueError)."""
    s = (card or "").strip()
    if not RE_CARD.match(s):
        raise ValueError(f"Bad card string: {card!r}")
    return s[0].upper() + s[1].lower()


def is_card(token: str) -> bool:
    return bool(RE_CARD.match(token or ""))


def card_tokens(text: Optional[str]) -> List[str]:
    """
    Толерантный разбор строки карт в канонические токены.
    '[2h 7s Jd] [4c]' / '6hQc8h|8c|3d' / 'As Kd' → ['2h', '7s', 'Jd', '4c'] ...
    Всё, что не похоже на карту, молча выкидывается.
    """
    if not text:
        return []
    out: List[str] = []
    for chunk in RE_BOARD_SPLIT.split(text):
        if not chunk:
            continue
        # склеенные карты 'AhKd' / '6hQc8h'
        if len(chunk) > 2 and len(chunk) % 2 == 0:
            pieces = [chunk[i : i + 2] for i in range(0, len(chunk), 2)]
        else:
            pieces = [chunk]
        out.extend(canonicalize(p) for p in pieces if is_card(p))
    return out


def make_deck(exclude: Iterable[str] = ()) -> List[str]:
    dead = {canonicalize(c) for c in exclude}
    return [r + s for r in RANKS for s in SUITS if r + s not in dead]
