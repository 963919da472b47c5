import pytest

from evline.analysis.ev_service import (
    HandNotFoundError,
    compute_hand_ev_for_id,
    ensure_hand_evs,
    pick_curve_samples,
    recompute_all,
)
from evline.database import ev_cache
from evline.database.db_utils import connect, fetch_ev_hands
from evline.ingest.batch_import import import_file
from evline.utils import normalize_samples


@pytest.fixture
def imported(db_path, sample_path):
    import_file(sample_path, db_path=db_path)
    return db_path


def _hand_id(cx, hand_no):
    return cx.execute("SELECT id FROM hands WHERE hand_no = ?;", (hand_no,)).fetchone()["id"]


def test_normalize_samples_tiers():
    assert normalize_samples(None) == 250
    assert normalize_samples(1) == 50
    assert normalize_samples(50) == 50
    assert normalize_samples(51) == 100
    assert normalize_samples(5000) == 250


def test_pick_curve_samples():
    assert pick_curve_samples(10) == 250
    assert pick_curve_samples(3_000) == 100
    assert pick_curve_samples(10_000) == 50
    assert pick_curve_samples(10_000, requested=200) == 250


def test_unknown_hand_raises(db_path):
    cx = connect(db_path)
    try:
        with pytest.raises(HandNotFoundError):
            compute_hand_ev_for_id(cx, "nope")
    finally:
        cx.close()


def test_stored_ev_is_reused(imported):
    cx = connect(imported)
    try:
        hid = _hand_id(cx, "2")
        stored = cx.execute("SELECT ev_allin_adj_cents FROM hands WHERE id = ?;", (hid,)).fetchone()[0]
        ev = compute_hand_ev_for_id(cx, hid, samples=50)
        # импорт сохранил 100 семплов, 50 хватает
        assert ev.allin_adjusted_change_cents == stored
        assert ev.equities == {}
    finally:
        cx.close()


def test_more_samples_trigger_recompute(imported):
    cx = connect(imported)
    try:
        hid = _hand_id(cx, "2")
        ev = compute_hand_ev_for_id(cx, hid, samples=250, seed=7)
        assert "adjusted" in ev.equities
        row = cx.execute("SELECT * FROM hands WHERE id = ?;", (hid,)).fetchone()
        assert row["ev_samples"] == 250
        assert row["ev_allin_adj_cents"] == ev.allin_adjusted_change_cents
        assert ev_cache.get_many(cx, [hid])[hid].samples == 250
    finally:
        cx.close()


def test_hand_without_allin_keeps_previous_samples(imported):
    cx = connect(imported)
    try:
        hid = _hand_id(cx, "1")
        ev = compute_hand_ev_for_id(cx, hid, samples=250)
        assert ev.realized_change_cents == 10
        assert ev.allin_adjusted_change_cents is None
        row = cx.execute("SELECT ev_samples FROM hands WHERE id = ?;", (hid,)).fetchone()
        assert row[0] == 100
    finally:
        cx.close()


def test_ensure_hand_evs_fills_missing(imported):
    cx = connect(imported)
    try:
        cx.execute("UPDATE hands SET ev_realized_cents = NULL, ev_allin_adj_cents = NULL, ev_samples = 0;")
        cx.commit()
        hands = fetch_ev_hands(cx, only_missing_ev=True)
        assert len(hands) == 3
        assert ensure_hand_evs(cx, hands, 50, seed=1) == 3
        assert {h.hand_no: h.ev_realized_cents for h in hands} == {"1": 10, "2": -500, "7": 60}
        assert fetch_ev_hands(cx, only_missing_ev=True) == []
        # второй проход ничего не делает
        assert ensure_hand_evs(cx, fetch_ev_hands(cx), 50, seed=1) == 0
    finally:
        cx.close()


def test_recompute_all_uses_cache(imported):
    res = recompute_all(imported, samples=250, seed=3, workers=0)
    assert res["hands"] == 3
    assert (res["computed"], res["cached"]) == (3, 0)

    res = recompute_all(imported, samples=250, seed=3, workers=0)
    assert (res["computed"], res["cached"]) == (0, 3)

    res = recompute_all(imported, samples=250, seed=3, workers=0, force=True)
    assert res["computed"] == 3

    cx = connect(imported)
    try:
        rows = cx.execute("SELECT hand_no, ev_realized_cents, ev_samples FROM hands;").fetchall()
    finally:
        cx.close()
    assert {r["hand_no"]: r["ev_realized_cents"] for r in rows} == {"1": 10, "2": -500, "7": 60}
    assert all(r["ev_samples"] == 250 for r in rows)


def test_recompute_all_is_idempotent_with_seed(imported):
    recompute_all(imported, samples=100, seed=11, workers=0, force=True)
    cx = connect(imported)
    try:
        first = cx.execute("SELECT id, ev_allin_adj_cents FROM hands ORDER BY id;").fetchall()
    finally:
        cx.close()
    recompute_all(imported, samples=100, seed=11, workers=0, force=True)
    cx = connect(imported)
    try:
        second = cx.execute("SELECT id, ev_allin_adj_cents FROM hands ORDER BY id;").fetchall()
    finally:
        cx.close()
    assert [tuple(r) for r in first] == [tuple(r) for r in second]


def test_ensure_hand_evs_overwrites_stale_values(imported):
    cx = connect(imported)
    try:
        hid = _hand_id(cx, "1")
        cx.execute(
            "UPDATE hands SET ev_allin_adj_cents = 999, ev_samples = 50 WHERE id = ?;", (hid,)
        )
        cx.commit()
        hands = [h for h in fetch_ev_hands(cx) if h.id == hid]
        assert ensure_hand_evs(cx, hands, 250, seed=1) == 1
        row = cx.execute("SELECT ev_realized_cents, ev_allin_adj_cents FROM hands WHERE id = ?;", (hid,)).fetchone()
    finally:
        cx.close()
    # в раздаче нет олл-ина: старое adjusted не переживает пересчёт
    assert hands[0].ev_allin_adj_cents is None
    assert (row[0], row[1]) == (10, None)
