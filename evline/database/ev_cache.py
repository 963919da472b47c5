"""
Кеш посчитанных EV по hand_id + версии схемы.

Промах и несовпадение версии — одно и то же («не посчитано»).
Запись — last-write-wins (INSERT OR REPLACE), блокировки не нужны:
при тех же данных / seed / samples результат детерминирован.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Sequence

from evline.utils import EV_CACHE_VERSION, utc_iso

CHUNK = 500


@dataclass(frozen=True)
class CachedEv:
    realized: Optional[int]
    adjusted: Optional[int]
    samples: int


def get_many(
    cx: sqlite3.Connection, hand_ids: Sequence[str], version: int = EV_CACHE_VERSION
) -> Dict[str, CachedEv]:
    out: Dict[str, CachedEv] = {}
    for i in range(0, len(hand_ids), CHUNK):
        chunk = list(hand_ids[i : i + CHUNK])
        marks = ",".join("?" * len(chunk))
        rows = cx.execute(
            f"SELECT hand_id, version, realized, adjusted, samples FROM ev_cache WHERE hand_id IN ({marks});",
            chunk,
        ).fetchall()
        for hand_id, ver, realized, adjusted, samples in rows:
            if ver != version:
                continue
            out[hand_id] = CachedEv(realized, adjusted, samples)
    return out


def set_many(
    cx: sqlite3.Connection,
    entries: Iterable[tuple],
    version: int = EV_CACHE_VERSION,
) -> None:
    """entries: [(hand_id, realized, adjusted, samples)]"""
    now = utc_iso(datetime.now(timezone.utc))
    cx.executemany(
        "INSERT OR REPLACE INTO ev_cache (hand_id, version, realized, adjusted, samples, updated_utc) VALUES (?,?,?,?,?,?);",
        [(hid, version, realized, adjusted, samples, now) for hid, realized, adjusted, samples in entries],
    )

