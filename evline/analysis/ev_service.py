# evline/analysis/ev_service.py
"""
EV поверх БД: одиночная раздача по id (с переиспользованием сохранённого EV),
быстрый добор недостающих EV для кривых и полный пересчёт через пул воркеров.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from evline.analysis.ev import HandEv, compute_hand_ev
from evline.database import ev_cache
from evline.database.db_utils import (
    connect,
    fetch_ev_hand,
    fetch_ev_hands,
    update_hand_ev,
    update_many_hand_ev,
)
from evline.models import EvHand
from evline.utils import DEFAULT_SAMPLE_TARGET, normalize_samples
from evline.workers.pool import EvWorkerPool, run_job

log = logging.getLogger(__name__)

# меньше считаем в текущем процессе
POOL_MIN_HANDS = 200
BATCH_SIZE = 50


class HandNotFoundError(LookupError):
    """EV запрошен для раздачи, которой нет в БД."""


def _next_samples(ev: HandEv, used: int, requested: int) -> int:
    # семплы имеют смысл только для all-in adjusted
    return max(used, requested) if ev.allin_adjusted_change_cents is not None else used


def compute_hand_ev_for_id(
    cx: sqlite3.Connection,
    hand_id: str,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
) -> HandEv:
    hand = fetch_ev_hand(cx, hand_id)
    if hand is None:
        raise HandNotFoundError(hand_id)

    required = normalize_samples(samples)
    if (
        hand.ev_realized_cents is not None
        and hand.ev_allin_adj_cents is not None
        and hand.ev_samples >= required
    ):
        return HandEv(hand.id, hand.played_at, hand.ev_realized_cents, hand.ev_allin_adj_cents)

    ev = compute_hand_ev(hand, samples=required, seed=seed)
    used = required if ev.allin_adjusted_change_cents is not None else hand.ev_samples
    update_hand_ev(cx, hand.id, ev.realized_change_cents, ev.allin_adjusted_change_cents, used)
    ev_cache.set_many(cx, [(hand.id, ev.realized_change_cents, ev.allin_adjusted_change_cents, used)])
    cx.commit()
    return ev


def pick_curve_samples(n_hands: int, requested: Optional[int] = None) -> int:
    """Чем больше раздач, тем меньше семплов на быстрый добор."""
    if requested is not None:
        return normalize_samples(requested)
    if n_hands >= 10_000:
        return 50
    if n_hands >= 3_000:
        return 100
    return DEFAULT_SAMPLE_TARGET


def ensure_hand_evs(
    cx: sqlite3.Connection,
    hands: Sequence[EvHand],
    samples: int,
    seed: Optional[int] = None,
) -> int:
    """
    Досчитывает EV, где его нет (или adjusted посчитан на меньшем числе семплов).
    Мутирует EvHand-ы и сохраняет результат. Возвращает число пересчитанных раздач.
    """
    updates: List[Tuple[str, Optional[int], Optional[int], int]] = []
    for hand in hands:
        needs = hand.ev_realized_cents is None or (
            hand.ev_allin_adj_cents is not None and hand.ev_samples < samples
        )
        if not needs:
            continue
        ev = compute_hand_ev(hand, samples=samples, seed=seed)
        # пересчёт перезаписывает, в т.ч. None
        realized, adjusted = ev.realized_change_cents, ev.allin_adjusted_change_cents
        used = _next_samples(ev, hand.ev_samples, samples)
        hand.ev_realized_cents, hand.ev_allin_adj_cents, hand.ev_samples = realized, adjusted, used
        updates.append((hand.id, realized, adjusted, used))

    if updates:
        update_many_hand_ev(cx, updates)
        ev_cache.set_many(cx, updates)
        cx.commit()
        log.info("EV досчитан для %d раздач (samples=%d)", len(updates), samples)
    return len(updates)


def recompute_all(
    db_path: Path | str | None = None,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    workers: Optional[int] = None,
    force: bool = False,
) -> dict:
    """
    Пересчитывает EV всех раздач. Кеш (hand_id + версия) отсекает уже посчитанное
    с тем же или большим числом семплов; force игнорирует кеш.
    """
    started = time.perf_counter()
    samples = samples or DEFAULT_SAMPLE_TARGET
    cx = connect(db_path)
    try:
        hands = fetch_ev_hands(cx)
        cached = {} if force else ev_cache.get_many(cx, [h.id for h in hands])
        misses = [
            h for h in hands if h.id not in cached or cached[h.id].samples < samples
        ]
        miss_ids = {h.id for h in misses}
        batches = [misses[i : i + BATCH_SIZE] for i in range(0, len(misses), BATCH_SIZE)]

        if workers == 0 or len(misses) < POOL_MIN_HANDS:
            responses = [
                run_job({"job_id": i, "hands": [h.to_dict() for h in b], "samples": samples, "seed": seed})
                for i, b in enumerate(batches)
            ]
        else:
            with EvWorkerPool(size=workers) as pool:
                responses = pool.map(batches, samples, seed)

        rows = [
            (r["id"], r["realized"], r["adjusted"], r["samples"])
            for resp in responses
            for r in resp["results"]
        ]
        update_many_hand_ev(cx, rows)
        ev_cache.set_many(cx, rows)
        # попадания кеша тоже переносим в hands (на случай сброса полей)
        update_many_hand_ev(
            cx,
            [
                (hid, c.realized, c.adjusted, c.samples)
                for hid, c in cached.items()
                if hid not in miss_ids
            ],
        )
        cx.commit()
    finally:
        cx.close()

    summary = {
        "hands": len(hands),
        "computed": len(misses),
        "cached": len(hands) - len(misses),
        "duration_ms": int((time.perf_counter() - started) * 1000),
    }
    log.info("recompute: %s", summary)
    return summary
