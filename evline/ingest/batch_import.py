"""
batch_import.py — импорт Betclic HH (.txt / .zip) в базу EVLine
Запуск:
    python -m evline.ingest.batch_import <файл_или_папка> [--ext .txt]

Важно:
- Один Game ID из нескольких файлов / членов архива сливается в один турнир.
- Повторный импорт турнира полностью заменяет его раздачи (без дублей).
- EV считается сразу при импорте (IMPORT_EV_SAMPLES, фиксированный seed).
- Ноль раздач в результате = импорт failed.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
import zipfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from evline.analysis.ev import compute_hand_ev
from evline.database.db_utils import connect, finish_import, save_tournament, start_import
from evline.models import EvHand, ParsedTournament
from evline.parse.hand_parser import finalize_profit, merge_tournaments, parse_text
from evline.utils import IMPORT_EV_SAMPLES, IMPORT_EV_SEED

log = logging.getLogger(__name__)


class ImportFailedError(RuntimeError):
    """Импорт не дал ни одной раздачи (или упал по дороге)."""


def read_sources(path: Path) -> Iterable[Tuple[str, str]]:
    """(имя, текст) для .txt файла или каждого .txt внутри .zip."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            for info in zf.infolist():
                if info.is_dir() or not info.filename.lower().endswith(".txt"):
                    continue
                yield info.filename, zf.read(info).decode("utf-8", errors="replace")
    else:
        yield path.name, path.read_text(encoding="utf-8", errors="replace")


def parse_sources(sources: Iterable[Tuple[str, str]]) -> List[ParsedTournament]:
    """Парсит все источники и сливает турниры по Game ID."""
    aggregate: dict = {}
    for name, text in sources:
        result = parse_text(text)
        log.debug("%s: %d турниров, %d раздач", name, len(result.tournaments), result.num_hands)
        for t in result.tournaments:
            existing = aggregate.get(t.game_id)
            if existing is None:
                aggregate[t.game_id] = t
            else:
                merge_tournaments(existing, t)
    tournaments = list(aggregate.values())
    for t in tournaments:
        finalize_profit(t)
    return tournaments


def import_file(
    path: str | Path,
    db_path: str | Path | None = None,
    samples: int = IMPORT_EV_SAMPLES,
    seed: Optional[int] = IMPORT_EV_SEED,
) -> dict:
    """
    Импортирует один файл (.txt или .zip).

    Returns:
        dict: {import_id, tournaments, hands, parse_ms, persist_ms}

    Raises:
        ImportFailedError: если не распознано ни одной раздачи
    """
    path = Path(path)
    cx = connect(db_path)
    import_id = start_import(cx, path.name)
    try:
        t0 = time.perf_counter()
        tournaments = parse_sources(read_sources(path))
        num_hands = sum(len(t.hands) for t in tournaments)
        parse_ms = int((time.perf_counter() - t0) * 1000)
        if num_hands == 0:
            raise ImportFailedError(f"{path.name}: не найдено ни одной раздачи")

        t1 = time.perf_counter()
        for t in tournaments:
            entries = []
            for hand in t.hands:
                hand_id = uuid.uuid4().hex
                ev = compute_hand_ev(EvHand.from_parsed(hand_id, hand), samples=samples, seed=seed)
                entries.append((hand_id, hand, ev))
            save_tournament(t, entries, import_id=import_id, ev_samples=samples, cx=cx)
        cx.commit()
        persist_ms = int((time.perf_counter() - t1) * 1000)

        finish_import(cx, import_id, "done", hands_count=num_hands)
        log.info(
            "import %s: %d турниров, %d раздач (parse %d ms, persist %d ms)",
            path.name, len(tournaments), num_hands, parse_ms, persist_ms,
        )
        return {
            "import_id": import_id,
            "tournaments": len(tournaments),
            "hands": num_hands,
            "parse_ms": parse_ms,
            "persist_ms": persist_ms,
        }
    except Exception as e:
        cx.rollback()
        finish_import(cx, import_id, "failed", error=str(e))
        log.error("import %s failed: %s", path.name, e)
        raise
    finally:
        cx.close()


def batch_import(folder: str | Path, ext: str = ".txt", db_path: str | Path | None = None) -> dict:
    """
    Импортирует все файлы с расширением ext из папки (по одному импорту на файл).
    Ошибка одного файла не останавливает остальные.
    """
    folder = Path(folder)
    files = sorted(folder.glob(f"*{ext}"))
    if not files:
        log.warning("Нет файлов с расширением %s в %s", ext, folder)
        return {"files": 0, "done": 0, "failed": 0, "hands": 0}

    done = failed = hands = 0
    for file in files:
        try:
            res = import_file(file, db_path=db_path)
        except (ImportFailedError, OSError, zipfile.BadZipFile) as e:
            failed += 1
            log.error("[ERR] Не удалось импортировать %s: %s", file.name, e)
            continue
        done += 1
        hands += res["hands"]

    summary = {"files": len(files), "done": done, "failed": failed, "hands": hands}
    log.info("=== Batch импорт завершён === %s", summary)
    return summary


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    if len(sys.argv) < 2:
        print("Используй: python -m evline.ingest.batch_import <файл_или_папка> [--ext .txt]")
        sys.exit(1)
    target = Path(sys.argv[1])
    ext = ".txt"
    if len(sys.argv) > 2 and sys.argv[2].startswith("--ext"):
        ext = sys.argv[2].split("=")[-1]
    if target.is_dir():
        batch_import(target, ext)
    else:
        import_file(target)
