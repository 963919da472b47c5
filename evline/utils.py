"""
Общие константы и мелкие утилиты EVLine.

Путь к БД по умолчанию лежит рядом с пакетом, его можно переопределить
переменной окружения EVLINE_DB.
"""

from __future__ import annotations

import math
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Путь к БД (относительно текущего файла)
DB_PATH = Path(os.environ.get("EVLINE_DB", Path(__file__).parent / "database" / "evline.sqlite"))

# Семплы Монте-Карло
DEFAULT_SAMPLES = 10_000
IMPORT_EV_SAMPLES = 100
IMPORT_EV_SEED = 1337
SAMPLE_TIERS = (50, 100, 250)
DEFAULT_SAMPLE_TARGET = 250

# Формат игры (Expresso-like 3-max)
PLAYERS_PER_GAME = 3
STARTING_CHIPS_FALLBACK = 500

# Версия схемы кеша EV
EV_CACHE_VERSION = 1

RE_MONEY_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def round_half_up(value: float) -> int:
    """Округление «как в кассе»: .5 всегда вверх (в т.ч. -2.5 → -2)."""
    return int(math.floor(value + 0.5))


def parse_money(text: str) -> int:
    """'Buy In: 1,80 EUR' → 180 (центы). Мусор → 0, никогда не падает."""
    cleaned = re.sub(r"[^0-9.,-]", "", text or "").replace(",", ".")
    m = RE_MONEY_NUMBER.search(cleaned)
    if not m:
        return 0
    return round_half_up(float(m.group(0)) * 100)


def utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """datetime → ISO 8601 UTC (секунды)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_samples(requested: Optional[int] = None) -> int:
    """Подтягивает запрошенное число семплов вверх до ближайшей ступени (50/100/250)."""
    desired = requested if requested is not None else DEFAULT_SAMPLE_TARGET
    for tier in SAMPLE_TIERS:
        if desired <= tier:
            return tier
    return SAMPLE_TIERS[-1]


def default_pool_size() -> int:
    """Половина логических ядер, минимум 1, максимум 4."""
    return max(1, min(4, (os.cpu_count() or 2) // 2))
