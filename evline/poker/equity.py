# evline/poker/equity.py
"""
Эквити героя против известных рук оппонентов.

▪ need = 5 - len(board): 0 → одна оценка, 1..2 → полный перебор, ≥3 → Монте-Карло
▪ Монте-Карло — частичный Фишер–Йетс по оставшейся колоде
▪ LcgRandom даёт воспроизводимые прогоны (seed), по умолчанию random.Random()
▪ мультивей-ничья целиком идёт в tie_pct, делёж (½ в HU) считает калькулятор EV
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from itertools import combinations
from typing import Iterator, List, Optional, Sequence, Tuple

from evline.poker.cards import canonicalize, make_deck
from evline.poker.evaluator import rank_cards

EPSILON = 1e-6


class LcgRandom:
    """Линейный конгруэнтный генератор (numerical recipes), интерфейс как у random.Random."""

    def __init__(self, seed: int):
        self._state = int(seed) & 0xFFFFFFFF

    def random(self) -> float:
        self._state = (1664525 * self._state + 1013904223) & 0xFFFFFFFF
        return self._state / 0xFFFFFFFF


def make_rng(seed: Optional[int] = None):
    return LcgRandom(seed) if seed is not None else random.Random()


@dataclass(frozen=True)
class EquityResult:
    win_pct: float
    tie_pct: float


@dataclass(frozen=True)
class PotEquityResult:
    win_pct: float
    tie_pct: float
    share_pct: float


def board_completions(
    hero: Sequence[str],
    villains: Sequence[Sequence[str]],
    board: Sequence[str],
    samples: int,
    rng,
) -> Iterator[List[str]]:
    """Генерирует полные борды (5 карт) для оценки."""
    hero_c = [canonicalize(c) for c in hero]
    villains_c = [[canonicalize(c) for c in v] for v in villains]
    board_c = [canonicalize(c) for c in board]
    used = hero_c + board_c + [c for v in villains_c for c in v]
    remaining = make_deck(exclude=used)
    need = max(0, 5 - len(board_c))

    if need == 0:
        yield board_c[:5]
        return
    if need == 1:
        for c in remaining:
            yield board_c + [c]
        return
    if need == 2:
        for a, b in combinations(remaining, 2):
            yield board_c + [a, b]
        return

    draw = list(remaining)
    n = len(draw)
    for _ in range(max(1, samples)):
        for k in range(need):
            idx = min(int(rng.random() * (n - k)), n - k - 1)
            swap = n - 1 - k
            draw[idx], draw[swap] = draw[swap], draw[idx]
        yield board_c + draw[n - need :]


def estimate_multiway_equity(
    hero: Sequence[str],
    villains: Sequence[Sequence[str]],
    board: Sequence[str] = (),
    samples: int = 1000,
    rng=None,
) -> EquityResult:
    rng = rng if rng is not None else random.Random()
    hero_c = [canonicalize(c) for c in hero]
    villains_c = [[canonicalize(c) for c in v] for v in villains]

    win = tie = total = 0
    for full in board_completions(hero_c, villains_c, board, samples, rng):
        total += 1
        hero_rank = rank_cards(hero_c + full)
        best_villain = max((rank_cards(v + full) for v in villains_c), default=None)
        if best_villain is None or hero_rank > best_villain:
            win += 1
        elif hero_rank == best_villain:
            tie += 1

    if total == 0:
        return EquityResult(0.0, 0.0)
    return EquityResult(win / total, tie / total)


@dataclass(frozen=True)
class PotLayer:
    amount: int
    indices: Tuple[int, ...]


def build_pot_layers(contributions: Sequence[int]) -> List[PotLayer]:
    """
    Раскладывает вклады на слои (основной банк + сайд-поты).
    Индекс 0 — герой; если герой ничего не вложил, слоёв нет.
    """
    participants = [(i, c) for i, c in enumerate(contributions) if c > 0]
    if not any(i == 0 for i, _ in participants):
        return []

    layers: List[PotLayer] = []
    active = list(participants)
    prev = 0
    for _, cap in sorted(participants, key=lambda p: p[1]):
        if cap <= prev:
            continue
        eligible = tuple(i for i, _ in active)
        amount = (cap - prev) * len(eligible)
        if amount > 0:
            layers.append(PotLayer(amount, eligible))
        active = [p for p in active if p[1] > cap]
        prev = cap
    return layers


def estimate_hero_pot_equity(
    hero: Sequence[str],
    hero_contribution: int,
    villains: Sequence[Tuple[Sequence[str], int]],
    board: Sequence[str] = (),
    dead_money: int = 0,
    samples: int = 1000,
    rng=None,
) -> PotEquityResult:
    """
    Ожидаемая доля героя в банке, на который он претендует, с учётом сайд-потов.
    villains — [(hole, contribution)]; dead_money добавляется в нижний слой.
    """
    if hero_contribution <= 0:
        return PotEquityResult(0.0, 0.0, 0.0)

    live = [(hole, c) for hole, c in villains if c > 0]
    if not live:
        return PotEquityResult(1.0, 0.0, 1.0)

    rng = rng if rng is not None else random.Random()
    holes = [[canonicalize(c) for c in hole] for hole, _ in live]
    layers = build_pot_layers([hero_contribution] + [c for _, c in live])
    if not layers:
        eq = estimate_multiway_equity(hero, holes, board, samples, rng)
        return PotEquityResult(eq.win_pct, eq.tie_pct, eq.win_pct + eq.tie_pct / (len(holes) + 1))

    if dead_money > 0:
        layers[0] = PotLayer(layers[0].amount + dead_money, layers[0].indices)
    hero_layers = [layer for layer in layers if 0 in layer.indices]
    hero_pot = sum(layer.amount for layer in hero_layers)
    if hero_pot <= 0:
        return PotEquityResult(0.0, 0.0, 0.0)

    hero_c = [canonicalize(c) for c in hero]
    win = tie = total = 0
    share = 0.0
    for full in board_completions(hero_c, holes, board, samples, rng):
        total += 1
        ranks = [rank_cards(hero_c + full)] + [rank_cards(h + full) for h in holes]
        payout = 0.0
        for layer in hero_layers:
            best = max(ranks[i] for i in layer.indices)
            if ranks[0] == best:
                n_winners = sum(1 for i in layer.indices if ranks[i] == best)
                payout += layer.amount / n_winners
        if payout >= hero_pot - EPSILON:
            win += 1
        elif payout > EPSILON:
            tie += 1
        share += payout / hero_pot

    if total == 0:
        return PotEquityResult(0.0, 0.0, 0.0)
    return PotEquityResult(win / total, tie / total, share / total)
