"""
Создаёт структуру базы EVLine.

▪ турнир → раздачи → действия / игроки, всё с ON DELETE CASCADE:
  повторный импорт турнира удаляет его раздачи и пишет заново
▪ EV-поля раздачи nullable: NULL = «ещё не считали / не хватает данных»
▪ ev_cache — маленький кеш по (hand_id, version), промах = «не посчитано»
"""

import sqlite3
from pathlib import Path

from evline.utils import DB_PATH

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

/* 1. imports — журнал загрузок */
CREATE TABLE IF NOT EXISTS imports (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    source        TEXT    NOT NULL,        -- имя файла / архива
    status        TEXT    NOT NULL,        -- processing / done / failed
    hands_count   INTEGER DEFAULT 0,
    error         TEXT,
    created_utc   TEXT    NOT NULL,
    finished_utc  TEXT
);

/* 2. tournaments — «шапка» турнира, game_id уникален */
CREATE TABLE IF NOT EXISTS tournaments (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id           TEXT    NOT NULL UNIQUE,
    import_id         INTEGER REFERENCES imports(id) ON DELETE SET NULL,
    started_utc       TEXT,
    buy_in_cents      INTEGER DEFAULT 0,
    rake_cents        INTEGER DEFAULT 0,
    prize_pool_cents  INTEGER DEFAULT 0,
    prize_multiplier  REAL    DEFAULT 1,
    hero_position     INTEGER,
    hero_prize_cents  INTEGER,
    profit_cents      INTEGER,
    hero_name         TEXT
);

/* 3. hands — раздача + вычисленные EV */
CREATE TABLE IF NOT EXISTS hands (
    id                  TEXT    PRIMARY KEY,   -- uuid4 hex
    tournament_id       INTEGER NOT NULL REFERENCES tournaments(id) ON DELETE CASCADE,
    hand_no             TEXT,                  -- id раздачи у рума
    played_utc          TEXT,
    sb_cents            INTEGER,
    bb_cents            INTEGER,
    hero_seat           INTEGER,
    winner_seat         INTEGER,
    dealt_cards         TEXT,                  -- 'As Kd'
    board               TEXT,                  -- '[2h 7s Jd] [4c] [9s]'
    board_flop          TEXT,
    board_turn          TEXT,
    board_river         TEXT,
    total_pot_cents     INTEGER,
    main_pot_cents      INTEGER,
    ev_realized_cents   INTEGER,
    ev_allin_adj_cents  INTEGER,
    ev_samples          INTEGER DEFAULT 0,
    ev_updated_utc      TEXT
);

/* 4. actions — все действия по порядку */
CREATE TABLE IF NOT EXISTS actions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    hand_id     TEXT    NOT NULL REFERENCES hands(id) ON DELETE CASCADE,
    order_no    INTEGER NOT NULL,
    street      TEXT    NOT NULL,        -- preflop / flop / turn / river
    seat_no     INTEGER,                 -- NULL если актор не распознан
    act         TEXT    NOT NULL,        -- check / fold / call / bet / raise / push
    size_cents  INTEGER,
    allin       INTEGER DEFAULT 0
);

/* 5. players — участники раздачи (1 строка = 1 сид) */
CREATE TABLE IF NOT EXISTS players (
    hand_id               TEXT    NOT NULL REFERENCES hands(id) ON DELETE CASCADE,
    seat_no               INTEGER NOT NULL,
    name                  TEXT    NOT NULL,
    starting_stack_cents  INTEGER,
    hole                  TEXT,
    is_hero               INTEGER DEFAULT 0,
    PRIMARY KEY (hand_id, seat_no)
);

/* 6. ev_cache — посчитанные EV по версии схемы */
CREATE TABLE IF NOT EXISTS ev_cache (
    hand_id       TEXT    PRIMARY KEY REFERENCES hands(id) ON DELETE CASCADE,
    version       INTEGER NOT NULL,
    realized      INTEGER,
    adjusted      INTEGER,
    samples       INTEGER NOT NULL,
    updated_utc   TEXT
);

/* --------- индексы для кривых ---------- */
CREATE INDEX IF NOT EXISTS idx_hands_tournament ON hands(tournament_id);
CREATE INDEX IF NOT EXISTS idx_hands_played ON hands(played_utc);
CREATE INDEX IF NOT EXISTS idx_actions_hand_order ON actions(hand_id, order_no);
CREATE INDEX IF NOT EXISTS idx_tournaments_started ON tournaments(started_utc);
"""


def ensure_schema(cx: sqlite3.Connection) -> None:
    cx.executescript(SCHEMA_SQL)


def create_schema(db_path: Path | str | None = None) -> Path:
    """Создаёт файл БД и все таблицы (идемпотентно)."""
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(exist_ok=True, parents=True)
    with sqlite3.connect(path) as conn:
        ensure_schema(conn)
    conn.close()
    return path


if __name__ == "__main__":
    print(f"✅  База создана: {create_schema().resolve()}")
