import pytest

from evline.poker.equity import (
    LcgRandom,
    build_pot_layers,
    estimate_hero_pot_equity,
    estimate_multiway_equity,
    make_rng,
)
from evline.poker.evaluator import rank_cards
from evline.poker.cards import make_deck


def test_lcg_is_reproducible():
    a, b = LcgRandom(42), LcgRandom(42)
    seq = [a.random() for _ in range(5)]
    assert seq == [b.random() for _ in range(5)]
    assert all(0.0 <= x <= 1.0 for x in seq)


def test_ako_vs_qq_preflop():
    eq = estimate_multiway_equity(["As", "Kd"], [["Qh", "Qc"]], samples=6000, rng=make_rng(123456789))
    assert 0.38 < eq.win_pct < 0.50
    assert eq.win_pct + eq.tie_pct <= 1.0


def test_three_way_preflop():
    eq = estimate_multiway_equity(
        ["Ac", "Kh"], [["Qs", "Qd"], ["8s", "8d"]], samples=8000, rng=make_rng(987654321)
    )
    assert 0.25 < eq.win_pct < 0.45


def test_seed_gives_same_result():
    a = estimate_multiway_equity(["As", "Kd"], [["Qh", "Qd"]], samples=2000, rng=make_rng(7))
    b = estimate_multiway_equity(["As", "Kd"], [["Qh", "Qd"]], samples=2000, rng=make_rng(7))
    assert a == b


def test_river_single_evaluation():
    eq = estimate_multiway_equity(["Ah", "Kh"], [["Qs", "Qd"]], ["Ac", "7d", "2s", "9h", "3c"])
    assert (eq.win_pct, eq.tie_pct) == (1.0, 0.0)
    eq = estimate_multiway_equity(["2h", "3h"], [["4d", "5d"]], ["Ac", "Kc", "Qc", "Jc", "Tc"])
    assert (eq.win_pct, eq.tie_pct) == (0.0, 1.0)


def test_turn_is_exhaustive():
    hero, villain, board = ["Ah", "Kh"], ["Qs", "Qd"], ["Qc", "7h", "2h", "3s"]
    eq = estimate_multiway_equity(hero, [villain], board, samples=1)
    remaining = make_deck(hero + villain + board)
    wins = sum(1 for c in remaining if rank_cards(hero + board + [c]) > rank_cards(villain + board + [c]))
    ties = sum(1 for c in remaining if rank_cards(hero + board + [c]) == rank_cards(villain + board + [c]))
    assert eq.win_pct == pytest.approx(wins / len(remaining))
    assert eq.tie_pct == pytest.approx(ties / len(remaining))


def test_flop_enumeration_matches_turn_average():
    hero, villain, board = ["Ah", "Kd"], ["Qs", "Qd"], ["2c", "7h", "Js"]
    exact = estimate_multiway_equity(hero, [villain], board)
    # перебор пар на флопе = среднее переборов ривера по всем тёрнам
    sampled = [
        estimate_multiway_equity(hero, [villain], board + [c], samples=1)
        for c in make_deck(hero + villain + board)
    ]
    avg = sum(e.win_pct for e in sampled) / len(sampled)
    assert exact.win_pct == pytest.approx(avg, abs=1e-9)
    assert exact.win_pct + exact.tie_pct <= 1.0


def test_pot_layers():
    layers = build_pot_layers([500, 700, 300])
    assert [layer.amount for layer in layers] == [900, 400, 200]
    assert layers[0].indices == (0, 1, 2)
    assert layers[-1].indices == (1,)
    assert build_pot_layers([0, 100]) == []


def test_pot_equity_hero_scoops():
    res = estimate_hero_pot_equity(
        ["8h", "Th"],
        500,
        [(["2c", "5c"], 500), (["Jd", "Ac"], 500)],
        ["5s", "9s", "Qh", "9h", "Kh"],
        samples=10,
    )
    assert res.share_pct == pytest.approx(1.0)
    assert res.win_pct == 1.0 and res.tie_pct == 0.0


def test_pot_equity_side_pot_only():
    res = estimate_hero_pot_equity(
        ["Ah", "Kd"],
        500,
        [(["2c", "5c"], 700), (["Qh", "Qd"], 300)],
        ["Qc", "Jd", "7s", "3h", "9c"],
        samples=10,
    )
    assert res.win_pct == 0.0
    assert res.tie_pct == 1.0
    assert res.share_pct == pytest.approx(400 / 1300)


def test_pot_equity_no_contribution():
    res = estimate_hero_pot_equity(["Ah", "Kd"], 0, [(["Qh", "Qd"], 300)], [])
    assert res.share_pct == 0.0


def test_sampling_converges_for_known_matchup():
    # AA vs KK префлоп ~ 0.82
    eq = estimate_multiway_equity(["Ah", "As"], [["Kh", "Kd"]], samples=20000, rng=make_rng(2024))
    assert eq.win_pct == pytest.approx(0.82, abs=0.02)


def test_seeded_monte_carlo_approaches_exact_enumeration():
    hero, villain, board = ["As", "Kd"], ["Qh", "Qd"], ["2h", "7s"]
    # две карты борда → Монте-Карло, три → полный перебор
    sampled = estimate_multiway_equity(hero, [villain], board, samples=50_000, rng=make_rng(2024))

    rest = make_deck(exclude=hero + villain + board)
    exact = [estimate_multiway_equity(hero, [villain], board + [c]) for c in rest]
    exact_win = sum(e.win_pct for e in exact) / len(exact)
    exact_tie = sum(e.tie_pct for e in exact) / len(exact)

    assert sampled.win_pct == pytest.approx(exact_win, abs=0.01)
    assert sampled.tie_pct == pytest.approx(exact_tie, abs=0.01)
