import pytest

from evline.models import Action, EvHand, Player
from evline.workers.pool import EvWorkerPool, PoolClosedError, run_job


def allin_hand(hid, villain_hole="Qh Qd"):
    return EvHand(
        id=hid,
        hero_seat=1,
        dealt_cards="As Kd",
        total_pot_cents=2000,
        actions=[
            Action(1, "preflop", 1, "push", 1000, True),
            Action(2, "preflop", 2, "call", 1000, True),
        ],
        players=[Player(1, "hero", 1000, "As Kd", True), Player(2, "v", 1000, villain_hole)],
    )


def test_run_job_shape():
    hands = [allin_hand("a"), allin_hand("b", "2c 7d")]
    res = run_job({"job_id": 5, "hands": [h.to_dict() for h in hands], "samples": 50, "seed": 1})
    assert res["job_id"] == 5
    assert [r["id"] for r in res["results"]] == ["a", "b"]
    assert all(r["samples"] == 50 for r in res["results"])
    assert res["results"][1]["adjusted"] > res["results"][0]["adjusted"]
    assert res["duration_ms"] >= 0


def test_hand_survives_dict_round_trip():
    hand = allin_hand("x")
    again = EvHand.from_dict(hand.to_dict())
    assert again.actions == hand.actions
    assert again.players == hand.players


def test_pool_matches_sync_results():
    batches = [[allin_hand("a"), allin_hand("b", "2c 7d")], [allin_hand("c", "Ac Kc")]]
    expected = [
        run_job({"job_id": i, "hands": [h.to_dict() for h in b], "samples": 50, "seed": 9})["results"]
        for i, b in enumerate(batches)
    ]
    with EvWorkerPool(size=2) as pool:
        responses = pool.map(batches, 50, seed=9)
    assert [r["results"] for r in responses] == expected


def test_terminated_pool_rejects_jobs():
    pool = EvWorkerPool(size=1)
    pool.terminate()
    with pytest.raises(PoolClosedError):
        pool.run([allin_hand("a")], 50)
    # повторный terminate безопасен
    pool.terminate()
