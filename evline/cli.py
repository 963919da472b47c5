# cli.py

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd
import typer

from evline.analysis.curves import get_bankroll_curve, get_ev_curve, to_frame
from evline.analysis.ev_service import HandNotFoundError, compute_hand_ev_for_id, recompute_all
from evline.analysis.stats import get_user_stats, stats_frame
from evline.database.db_utils import connect, count_rows, reset_database
from evline.ingest.batch_import import ImportFailedError, batch_import, import_file
from evline.utils import IMPORT_EV_SAMPLES, IMPORT_EV_SEED

app = typer.Typer(add_completion=False, help="EVLine CLI — импорт Betclic HH, EV и кривые по Hero.")

# путь к БД из глобальной опции --db (None = DB_PATH по умолчанию)
state = {"db": None}


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _date(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _cents(buy_ins: Optional[List[float]]) -> Optional[List[int]]:
    return [round(b * 100) for b in buy_ins] if buy_ins else None


@app.callback()
def main(
    db: Optional[Path] = typer.Option(None, "--db", help="Путь к evline.sqlite"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG-логи"),
):
    setup_logging(verbose)
    state["db"] = db


@app.command("import")
def import_cmd(
    path: Path = typer.Argument(..., help=".txt / .zip или папка с ними"),
    ext: str = typer.Option(".txt", "--ext", help="Расширение файлов при импорте папки"),
    samples: int = typer.Option(IMPORT_EV_SAMPLES, "--samples", help="Семплы Монте-Карло для EV"),
    seed: int = typer.Option(IMPORT_EV_SEED, "--seed", help="Seed для воспроизводимого EV"),
):
    """Импортирует HH в базу, турниры с тем же Game ID перезаписываются."""
    if path.is_dir():
        res = batch_import(path, ext, db_path=state["db"])
        typer.echo(f"✅ Файлов: {res['files']} | ok: {res['done']} | failed: {res['failed']} | рук: {res['hands']}")
        return
    try:
        res = import_file(path, db_path=state["db"], samples=samples, seed=seed)
    except ImportFailedError as e:
        typer.echo(f"[ERR] {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✅ Импорт завершён: турниров {res['tournaments']}, рук {res['hands']}")


@app.command("ev")
def ev_cmd(
    hand_id: str = typer.Argument(..., help="id раздачи в базе"),
    samples: Optional[int] = typer.Option(None, "--samples", help="50 / 100 / 250"),
    seed: Optional[int] = typer.Option(None, "--seed"),
):
    """EV одной раздачи (сохранённый, если хватает семплов)."""
    cx = connect(state["db"])
    try:
        ev = compute_hand_ev_for_id(cx, hand_id, samples=samples, seed=seed)
    except HandNotFoundError:
        typer.echo(f"[ERR] Раздача {hand_id} не найдена", err=True)
        raise typer.Exit(code=1)
    finally:
        cx.close()
    typer.echo(f"realized: {ev.realized_change_cents}")
    typer.echo(f"adjusted: {ev.allin_adjusted_change_cents}")


@app.command("recompute")
def recompute_cmd(
    samples: int = typer.Option(250, "--samples"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    workers: Optional[int] = typer.Option(None, "--workers", help="0 = без пула"),
    force: bool = typer.Option(False, "--force", help="Игнорировать кеш EV"),
):
    """Пересчитывает EV всех раздач (пул процессов)."""
    res = recompute_all(state["db"], samples=samples, seed=seed, workers=workers, force=force)
    typer.echo(f"✅ Рук: {res['hands']} | посчитано: {res['computed']} | из кеша: {res['cached']}")


@app.command("curve")
def curve_cmd(
    limit: Optional[int] = typer.Option(None, "--limit", "-l"),
    date_from: Optional[str] = typer.Option(None, "--from", help="ISO дата"),
    date_to: Optional[str] = typer.Option(None, "--to", help="ISO дата"),
    buy_in: Optional[List[float]] = typer.Option(None, "--buy-in", help="Бай-ин в валюте, можно несколько"),
    phase: Optional[str] = typer.Option(None, "--phase", help="preflop | postflop"),
    tail: int = typer.Option(20, "--tail", help="Сколько последних точек показать"),
):
    """Кумулятивная EV-кривая (realized vs all-in adjusted)."""
    res = get_ev_curve(
        state["db"],
        limit=limit,
        date_from=_date(date_from),
        date_to=_date(date_to),
        buy_ins=_cents(buy_in),
        phase=phase,
    )
    if len(res["points"]) <= 1:
        typer.echo("Нет раздач.")
        return
    df = to_frame(res["points"])
    typer.echo(df.tail(tail).to_string(index=False))
    typer.echo(f"\nchip EV adj: {res['chip_ev_adj_total']} | игр: {res['num_games']}")


@app.command("bankroll")
def bankroll_cmd(
    date_from: Optional[str] = typer.Option(None, "--from"),
    date_to: Optional[str] = typer.Option(None, "--to"),
    buy_in: Optional[List[float]] = typer.Option(None, "--buy-in"),
    debug: bool = typer.Option(False, "--debug", help="Разбивка ожидания по турнирам"),
):
    """Bankroll-кривая: фактический профит vs ожидаемый по chip EV."""
    points, entries = get_bankroll_curve(
        state["db"], date_from=_date(date_from), date_to=_date(date_to), buy_ins=_cents(buy_in), debug=debug
    )
    if not points:
        typer.echo("Нет турниров.")
        return
    typer.echo(to_frame(points).to_string(index=False))
    if debug:
        typer.echo("")
        typer.echo(to_frame(entries).to_string(index=False))


@app.command("stats")
def stats_cmd():
    """ROI / ITM / множители / chip EV за игру."""
    stats = get_user_stats(state["db"])
    typer.echo(stats_frame(stats).to_string(index=False))
    hist = pd.DataFrame(stats["multiplier_histogram"])
    if not hist.empty:
        typer.echo("")
        typer.echo(hist.to_string(index=False))


@app.command("reset")
def reset_cmd(confirm: bool = typer.Option(False, "--confirm", prompt="Удалить все данные?")):
    """Удаляет все турниры / раздачи / импорты (осторожно!)"""
    if not confirm:
        typer.echo("Отмена удаления.")
        return
    cx = connect(state["db"])
    try:
        before = count_rows(cx)
        reset_database(cx)
    finally:
        cx.close()
    typer.echo(f"🗑️ Удалено: {before}")


if __name__ == "__main__":
    app()
