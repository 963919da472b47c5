from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from evline.poker.cards import RANK_VALUE

CATEGORY = {
    "high_card": 0,
    "pair": 1,
    "two_pair": 2,
    "trips": 3,
    "straight": 4,
    "flush": 5,
    "full_house": 6,
    "quads": 7,
    "straight_flush": 8,
}

HandRank = Tuple[int, ...]


def straight_high(values: Iterable[int]) -> Optional[int]:
    uniq = set(values)
    if 14 in uniq:
        uniq.add(1)  # ace low
    for high in range(14, 4, -1):
        if all(high - i in uniq for i in range(5)):
            return high
    return None


def rank_cards(cards: Sequence[str]) -> HandRank:
    """
    Сила лучшей 5-карточной комбинации из 5..7 канонических карт.
    Возвращает кортеж (категория, кикеры...) — больше = сильнее.
    """
    if not 5 <= len(cards) <= 7:
        raise ValueError("rank_cards expects 5..7 cards")
    if len(set(cards)) != len(cards):
        raise ValueError("Duplicate cards detected")

    vals: List[int] = []
    by_suit: Dict[str, List[int]] = {}
    for c in cards:
        try:
            v = RANK_VALUE[c[0]]
        except (KeyError, IndexError, TypeError):
            raise ValueError(f"Bad card string: {c!r}") from None
        vals.append(v)
        by_suit.setdefault(c[1], []).append(v)

    flush_vals: Optional[List[int]] = None
    for suited in by_suit.values():
        if len(suited) >= 5:
            flush_vals = sorted(suited, reverse=True)
            sf = straight_high(flush_vals)
            if sf is not None:
                return (CATEGORY["straight_flush"], sf)

    counts = Counter(vals)
    # (кол-во, ранг) по убыванию
    groups = sorted(((n, v) for v, n in counts.items()), reverse=True)

    if groups[0][0] == 4:
        quad = groups[0][1]
        kicker = max(v for v in vals if v != quad)
        return (CATEGORY["quads"], quad, kicker)

    trips = [v for n, v in groups if n == 3]
    pairs = [v for n, v in groups if n == 2]
    if trips and (len(trips) > 1 or pairs):
        top = trips[0]
        second = max(trips[1:] + pairs)
        return (CATEGORY["full_house"], top, second)

    if flush_vals is not None:
        return (CATEGORY["flush"], *flush_vals[:5])

    sh = straight_high(vals)
    if sh is not None:
        return (CATEGORY["straight"], sh)

    singles = sorted((v for v in counts if counts[v] == 1), reverse=True)
    if trips:
        return (CATEGORY["trips"], trips[0], *singles[:2])
    if len(pairs) >= 2:
        p1, p2 = pairs[0], pairs[1]
        kicker = max(v for v in vals if v != p1 and v != p2)
        return (CATEGORY["two_pair"], p1, p2, kicker)
    if pairs:
        return (CATEGORY["pair"], pairs[0], *singles[:3])
    return (CATEGORY["high_card"], *singles[:5])

