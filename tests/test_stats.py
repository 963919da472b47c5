from evline.analysis.stats import get_user_stats, stats_frame
from evline.database.db_utils import connect
from evline.ingest.batch_import import import_file
from evline.utils import round_half_up


def test_empty_database(db_path):
    stats = get_user_stats(db_path)
    assert stats["tournaments"] == 0
    assert stats["roi_pct"] == 0.0
    assert stats["itm_pct"] == 0.0
    assert stats["chip_ev_per_game"] == 0
    assert stats["multiplier_histogram"] == []


def test_sample_stats(db_path, sample_path):
    import_file(sample_path, db_path=db_path)
    stats = get_user_stats(db_path)
    assert stats["tournaments"] == 2
    assert stats["hands"] == 3
    assert stats["total_buy_in_cents"] == 360
    assert stats["total_rake_cents"] == 40
    # -200 + 200
    assert stats["total_profit_cents"] == 0
    assert stats["roi_pct"] == 0.0
    assert stats["itm_pct"] == 50.0
    assert stats["multiplier_histogram"] == [{"multiplier": 2.0, "count": 2}]

    cx = connect(db_path)
    try:
        adj = cx.execute("SELECT ev_allin_adj_cents FROM hands WHERE hand_no = '2';").fetchone()[0]
    finally:
        cx.close()
    # кумулятив: 10, 10 + adj, 70 + adj
    peak = max(0, 10, 10 + adj, 70 + adj)
    assert stats["chip_ev_per_game"] == round_half_up(peak / 2)


def test_roi_uses_buy_in_and_rake(db_path, sample_path):
    import_file(sample_path, db_path=db_path)
    cx = connect(db_path)
    try:
        cx.execute("UPDATE tournaments SET profit_cents = 100;")
        cx.commit()
    finally:
        cx.close()
    stats = get_user_stats(db_path)
    assert stats["roi_pct"] == 200 / 400 * 100


def test_stats_frame_has_no_histogram():
    frame = stats_frame({"tournaments": 1, "roi_pct": 5.0, "multiplier_histogram": []})
    assert list(frame["metric"]) == ["tournaments", "roi_pct"]
