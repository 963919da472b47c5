# db_utils.py
"""
Чтение / запись турниров, раздач и EV в SQLite.

Функции принимают готовое соединение (cx), транзакцией управляет вызывающий
код. save_tournament без cx сам открывает и коммитит соединение.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from evline.database.create_schema import ensure_schema
from evline.models import Action, EvHand, ParsedHand, ParsedTournament, Player
from evline.utils import DB_PATH, from_iso, utc_iso

# лимит плейсхолдеров в одном IN (...)
CHUNK = 500

HAND_ORDER = "h.played_utc, h.hand_no, h.rowid"


def connect(db_path: Path | str | None = None) -> sqlite3.Connection:
    """Открывает БД (создаёт схему при необходимости), row_factory = sqlite3.Row."""
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(exist_ok=True, parents=True)
    cx = sqlite3.connect(path, timeout=30.0)
    cx.row_factory = sqlite3.Row
    cx.execute("PRAGMA foreign_keys = ON;")
    ensure_schema(cx)
    return cx


def _now() -> str:
    return utc_iso(datetime.now(timezone.utc))


# ---------- imports ----------
def start_import(cx: sqlite3.Connection, source: str) -> int:
    cur = cx.execute(
        "INSERT INTO imports (source, status, created_utc) VALUES (?, 'processing', ?);",
        (source, _now()),
    )
    cx.commit()
    return cur.lastrowid


def finish_import(
    cx: sqlite3.Connection,
    import_id: int,
    status: str,
    hands_count: int = 0,
    error: Optional[str] = None,
) -> None:
    cx.execute(
        "UPDATE imports SET status = ?, hands_count = ?, error = ?, finished_utc = ? WHERE id = ?;",
        (status, hands_count, error, _now(), import_id),
    )
    cx.commit()


def fetch_import(cx: sqlite3.Connection, import_id: int) -> Optional[sqlite3.Row]:
    return cx.execute("SELECT * FROM imports WHERE id = ?;", (import_id,)).fetchone()


# ---------- tournaments ----------
def save_tournament(
    tournament: ParsedTournament,
    hands: Sequence[Tuple[str, ParsedHand, Optional[object]]],
    import_id: Optional[int] = None,
    ev_samples: int = 0,
    cx: sqlite3.Connection | None = None,
) -> int:
    """
    Upsert турнира по game_id + полная замена его раздач.

    Args:
        tournament: распарсенный турнир
        hands: [(hand_id, ParsedHand, HandEv | None)] — EV уже посчитан (или None)
        import_id: запись в imports (опционально)
        ev_samples: сколько семплов ушло на EV
        cx: существующее соединение (опционально)

    Returns:
        int: id турнира

    Raises:
        sqlite3.Error: при ошибках работы с БД
    """
    own_conn = cx is None
    try:
        if own_conn:
            cx = connect()
        cur = cx.cursor()
        cur.execute(
            """
            INSERT INTO tournaments (
                game_id, import_id, started_utc, buy_in_cents, rake_cents,
                prize_pool_cents, prize_multiplier, hero_position,
                hero_prize_cents, profit_cents, hero_name
            )
            VALUES (?,?,?,?,?,?,?,?,?,?,?)
            ON CONFLICT(game_id) DO UPDATE SET
                import_id        = COALESCE(excluded.import_id, import_id),
                started_utc      = excluded.started_utc,
                buy_in_cents     = excluded.buy_in_cents,
                rake_cents       = excluded.rake_cents,
                prize_pool_cents = excluded.prize_pool_cents,
                prize_multiplier = excluded.prize_multiplier,
                hero_position    = excluded.hero_position,
                hero_prize_cents = excluded.hero_prize_cents,
                profit_cents     = excluded.profit_cents,
                hero_name        = excluded.hero_name;
            """,
            (
                tournament.game_id,
                import_id,
                utc_iso(tournament.started_at),
                tournament.buy_in_cents,
                tournament.rake_cents,
                tournament.prize_pool_cents,
                tournament.prize_multiplier,
                tournament.hero_position,
                tournament.hero_prize_cents,
                tournament.profit_cents,
                tournament.hero_name,
            ),
        )
        tournament_id = cur.execute(
            "SELECT id FROM tournaments WHERE game_id = ?;", (tournament.game_id,)
        ).fetchone()[0]

        # полная замена: actions / players / ev_cache уходят каскадом
        cur.execute("DELETE FROM hands WHERE tournament_id = ?;", (tournament_id,))

        for hand_id, hand, ev in hands:
            realized = ev.realized_change_cents if ev is not None else None
            adjusted = ev.allin_adjusted_change_cents if ev is not None else None
            cur.execute(
                """
                INSERT INTO hands (
                    id, tournament_id, hand_no, played_utc, sb_cents, bb_cents,
                    hero_seat, winner_seat, dealt_cards, board, board_flop,
                    board_turn, board_river, total_pot_cents, main_pot_cents,
                    ev_realized_cents, ev_allin_adj_cents, ev_samples, ev_updated_utc
                )
                VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?);
                """,
                (
                    hand_id,
                    tournament_id,
                    hand.hand_no,
                    utc_iso(hand.played_at),
                    hand.sb_cents,
                    hand.bb_cents,
                    hand.hero_seat,
                    hand.winner_seat,
                    hand.dealt_cards,
                    hand.board,
                    hand.board_flop,
                    hand.board_turn,
                    hand.board_river,
                    hand.total_pot_cents,
                    hand.main_pot_cents,
                    realized,
                    adjusted,
                    ev_samples if ev is not None else 0,
                    _now() if ev is not None else None,
                ),
            )
            cur.executemany(
                "INSERT INTO actions (hand_id, order_no, street, seat_no, act, size_cents, allin) VALUES (?,?,?,?,?,?,?);",
                [
                    (hand_id, a.order_no, a.street, a.seat_no, a.act, a.size_cents, int(a.allin))
                    for a in hand.actions
                ],
            )
            cur.executemany(
                "INSERT OR REPLACE INTO players (hand_id, seat_no, name, starting_stack_cents, hole, is_hero) VALUES (?,?,?,?,?,?);",
                [
                    (hand_id, p.seat_no, p.name, p.starting_stack_cents, p.hole, int(p.is_hero))
                    for p in hand.players
                ],
            )

        if own_conn:
            cx.commit()
        return tournament_id

    except sqlite3.Error as e:
        if cx is not None:
            cx.rollback()
        raise sqlite3.Error(f"Ошибка при сохранении турнира {tournament.game_id}: {e}") from e
    finally:
        if own_conn and cx is not None:
            cx.close()


def fetch_tournaments(
    cx: sqlite3.Connection,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    buy_ins: Optional[Sequence[int]] = None,
) -> List[sqlite3.Row]:
    """Турниры по времени старта (+ фильтры)."""
    where, params = _tournament_filters("t", date_from, date_to, buy_ins)
    sql = f"SELECT t.* FROM tournaments t {where} ORDER BY t.started_utc, t.id;"
    return cx.execute(sql, params).fetchall()


def fetch_tournament_chip_ev(cx: sqlite3.Connection, tournament_id: int) -> Tuple[int, int]:
    """(сумма adjusted-иначе-realized EV, число раздач) по турниру."""
    row = cx.execute(
        """
        SELECT COALESCE(SUM(COALESCE(ev_allin_adj_cents, ev_realized_cents, 0)), 0) AS cev,
               COUNT(*) AS n
        FROM hands WHERE tournament_id = ?;
        """,
        (tournament_id,),
    ).fetchone()
    return int(row["cev"]), int(row["n"])


def fetch_first_hand_stacks(cx: sqlite3.Connection, tournament_id: int) -> List[sqlite3.Row]:
    """Стеки игроков первой раздачи турнира (seat_no, starting_stack_cents, is_hero)."""
    first = cx.execute(
        f"SELECT h.id FROM hands h WHERE h.tournament_id = ? ORDER BY {HAND_ORDER} LIMIT 1;",
        (tournament_id,),
    ).fetchone()
    if first is None:
        return []
    return cx.execute(
        "SELECT seat_no, starting_stack_cents, is_hero FROM players WHERE hand_id = ? ORDER BY seat_no;",
        (first["id"],),
    ).fetchall()


# ---------- hands / EV ----------
def _tournament_filters(
    alias: str,
    date_from: Optional[datetime],
    date_to: Optional[datetime],
    buy_ins: Optional[Sequence[int]],
    date_column: Optional[str] = None,
) -> Tuple[str, list]:
    column = date_column or f"{alias}.started_utc"
    clauses: List[str] = []
    params: list = []
    if date_from is not None:
        clauses.append(f"{column} >= ?")
        params.append(utc_iso(date_from))
    if date_to is not None:
        clauses.append(f"{column} <= ?")
        params.append(utc_iso(date_to))
    if buy_ins:
        clauses.append(f"{alias}.buy_in_cents IN ({','.join('?' * len(buy_ins))})")
        params.extend(int(b) for b in buy_ins)
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def _row_to_ev_hand(row: sqlite3.Row, actions: List[Action], players: List[Player]) -> EvHand:
    return EvHand(
        id=row["id"],
        played_at=from_iso(row["played_utc"]),
        hero_seat=row["hero_seat"],
        winner_seat=row["winner_seat"],
        dealt_cards=row["dealt_cards"],
        board=row["board"],
        board_flop=row["board_flop"],
        board_turn=row["board_turn"],
        board_river=row["board_river"],
        total_pot_cents=row["total_pot_cents"],
        main_pot_cents=row["main_pot_cents"],
        actions=actions,
        players=players,
        hand_no=row["hand_no"],
        tournament_id=row["tournament_id"],
        ev_realized_cents=row["ev_realized_cents"],
        ev_allin_adj_cents=row["ev_allin_adj_cents"],
        ev_samples=row["ev_samples"] or 0,
    )


def _load_children(
    cx: sqlite3.Connection, hand_ids: Sequence[str]
) -> Tuple[Dict[str, List[Action]], Dict[str, List[Player]]]:
    actions: Dict[str, List[Action]] = {hid: [] for hid in hand_ids}
    players: Dict[str, List[Player]] = {hid: [] for hid in hand_ids}
    for i in range(0, len(hand_ids), CHUNK):
        chunk = list(hand_ids[i : i + CHUNK])
        marks = ",".join("?" * len(chunk))
        for r in cx.execute(
            f"SELECT * FROM actions WHERE hand_id IN ({marks}) ORDER BY hand_id, order_no;", chunk
        ):
            actions[r["hand_id"]].append(
                Action(
                    order_no=r["order_no"],
                    street=r["street"],
                    seat_no=r["seat_no"],
                    act=r["act"],
                    size_cents=r["size_cents"],
                    allin=bool(r["allin"]),
                )
            )
        for r in cx.execute(
            f"SELECT * FROM players WHERE hand_id IN ({marks}) ORDER BY hand_id, seat_no;", chunk
        ):
            players[r["hand_id"]].append(
                Player(
                    seat_no=r["seat_no"],
                    name=r["name"],
                    starting_stack_cents=r["starting_stack_cents"],
                    hole=r["hole"],
                    is_hero=bool(r["is_hero"]),
                )
            )
    return actions, players


def fetch_ev_hand(cx: sqlite3.Connection, hand_id: str) -> Optional[EvHand]:
    row = cx.execute("SELECT * FROM hands WHERE id = ?;", (hand_id,)).fetchone()
    if row is None:
        return None
    actions, players = _load_children(cx, [hand_id])
    return _row_to_ev_hand(row, actions[hand_id], players[hand_id])


def fetch_ev_hands(
    cx: sqlite3.Connection,
    limit: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    buy_ins: Optional[Sequence[int]] = None,
    only_missing_ev: bool = False,
) -> List[EvHand]:
    """
    Раздачи в хронологическом порядке (played_utc, hand_no, порядок вставки).
    limit — первые N раздач.
    """
    where, params = _tournament_filters("t", date_from, date_to, buy_ins, date_column="h.played_utc")
    if only_missing_ev:
        where = (where + " AND " if where else "WHERE ") + "h.ev_realized_cents IS NULL"
    sql = f"""
        SELECT h.* FROM hands h
        JOIN tournaments t ON t.id = h.tournament_id
        {where}
        ORDER BY {HAND_ORDER}
    """
    rows = cx.execute(sql, params).fetchall()
    if limit is not None:
        rows = rows[:limit] if limit > 0 else rows
    ids = [r["id"] for r in rows]
    actions, players = _load_children(cx, ids)
    return [_row_to_ev_hand(r, actions[r["id"]], players[r["id"]]) for r in rows]


def update_hand_ev(
    cx: sqlite3.Connection,
    hand_id: str,
    realized: Optional[int],
    adjusted: Optional[int],
    samples: int,
) -> None:
    """Перезаписывает EV раздачи (повторный расчёт не накапливает)."""
    cx.execute(
        """
        UPDATE hands
        SET ev_realized_cents = ?, ev_allin_adj_cents = ?, ev_samples = ?, ev_updated_utc = ?
        WHERE id = ?;
        """,
        (realized, adjusted, samples, _now(), hand_id),
    )


def update_many_hand_ev(
    cx: sqlite3.Connection, rows: Iterable[Tuple[str, Optional[int], Optional[int], int]]
) -> None:
    now = _now()
    cx.executemany(
        """
        UPDATE hands
        SET ev_realized_cents = ?, ev_allin_adj_cents = ?, ev_samples = ?, ev_updated_utc = ?
        WHERE id = ?;
        """,
        [(realized, adjusted, samples, now, hand_id) for hand_id, realized, adjusted, samples in rows],
    )


def count_rows(cx: sqlite3.Connection) -> Dict[str, int]:
    return {
        table: cx.execute(f"SELECT COUNT(*) FROM {table};").fetchone()[0]
        for table in ("tournaments", "hands", "actions", "players")
    }


def reset_database(cx: sqlite3.Connection) -> None:
    """Удаляет все данные (схема остаётся)."""
    cx.executescript(
        """
        DELETE FROM ev_cache;
        DELETE FROM players;
        DELETE FROM actions;
        DELETE FROM hands;
        DELETE FROM tournaments;
        DELETE FROM imports;
        """
    )
    cx.commit()
