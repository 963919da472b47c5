import pytest

from evline.analysis.ev import (
    BoardPicker,
    compute_hand_ev,
    find_decisive_allin,
    hero_contribution,
    street_investments,
)
from evline.models import Action, EvHand, Player
from evline.parse.hand_parser import parse_text
from evline.utils import round_half_up


def act(no, street, seat, kind, size=None, allin=False):
    return Action(order_no=no, street=street, seat_no=seat, act=kind, size_cents=size, allin=allin)


def heads_up_allin(**kw):
    """Hero (1) AsKd пушит 1000 с SB, злодей (2) QhQd коллирует: по 1000 в банке."""
    fields = dict(
        id="hu",
        hero_seat=1,
        dealt_cards="As Kd",
        total_pot_cents=2000,
        actions=[
            act(1, "preflop", 1, "bet", 10),
            act(2, "preflop", 2, "bet", 20),
            act(3, "preflop", 1, "push", 1000, allin=True),
            act(4, "preflop", 2, "call", 980, allin=True),
        ],
        players=[
            Player(1, "hero", 1000, "As Kd", True),
            Player(2, "villain", 1000, "Qh Qd"),
        ],
    )
    fields.update(kw)
    return EvHand(**fields)


def test_street_investments_raise_is_to_amount():
    actions = [
        act(1, "preflop", 1, "bet", 10),
        act(2, "preflop", 2, "bet", 20),
        act(3, "preflop", 1, "raise", 60),
        act(4, "preflop", 2, "call", 40),
        act(5, "flop", 2, "bet", 30),
        act(6, "flop", 1, "raise", 90),
        act(7, "flop", 2, "call", 60),
    ]
    assert street_investments(actions) == {1: 150, 2: 150}
    assert street_investments(actions, end=2) == {1: 60, 2: 20}
    assert hero_contribution(actions, 1) == 150


def test_decisive_allin_variants():
    own = [act(1, "preflop", 2, "bet", 20), act(2, "preflop", 1, "push", 500, True)]
    assert find_decisive_allin(own, 1) == 1

    call_into = [act(1, "preflop", 2, "push", 500, True), act(2, "preflop", 1, "call", 480)]
    assert find_decisive_allin(call_into, 1) == 1

    fold_to = [act(1, "preflop", 2, "push", 500, True), act(2, "preflop", 1, "fold")]
    assert find_decisive_allin(fold_to, 1) is None

    nothing = [act(1, "preflop", 2, "bet", 20), act(2, "preflop", 1, "call", 20)]
    assert find_decisive_allin(nothing, 1) is None


def test_board_picker_fallback():
    hand = EvHand(id="b", board="[2h 7s Jd] [4c]", board_flop="[2h 7s Jd]")
    picker = BoardPicker(hand)
    assert picker.by_street("preflop") == []
    assert picker.by_street("flop") == ["2h", "7s", "Jd"]
    assert picker.by_street("turn") == ["2h", "7s", "Jd", "4c"]
    # ривера нет, берём самый длинный источник
    assert picker.final() == ["2h", "7s", "Jd", "4c"]


def test_bb_walk_realizes_small_blind():
    text = """*** HEADER ***
Game ID: walk
*** PLAYERS ***
Seat 1: hero (500) [BB Hero]
Seat 2: sb (500) [SB]
*** HOLE CARDS ***
hero: [7c 2d]
*** PRE-FLOP ***
00:00:01 - sb: Posts SB 10
00:00:02 - hero: Posts BB 20
00:00:03 - sb: Folds
*** SUMMARY ***
Total Pot: 30
hero wins main pot of 30
"""
    hand = parse_text(text).tournaments[0].hands[0]
    ev = compute_hand_ev(EvHand.from_parsed("walk", hand), samples=100, seed=1)
    assert ev.realized_change_cents == 10
    assert ev.allin_adjusted_change_cents is None


def test_heads_up_allin_adjusted_matches_equity():
    ev = compute_hand_ev(heads_up_allin(), samples=20000, seed=1337)
    eq = ev.equities["adjusted"]
    assert 0.40 < eq.win_pct < 0.50
    eff = eq.win_pct + 0.5 * eq.tie_pct
    assert ev.allin_adjusted_change_cents == round_half_up(eff * 2000 - 1000)
    assert ev.allin_adjusted_change_cents == pytest.approx((2 * eff - 1) * 1000, abs=1)
    assert ev.allin_context["stage"] == "preflop"
    assert ev.allin_context["board"] == []


def test_adjusted_is_deterministic_with_seed():
    a = compute_hand_ev(heads_up_allin(), samples=500, seed=99)
    b = compute_hand_ev(heads_up_allin(), samples=500, seed=99)
    assert a.allin_adjusted_change_cents == b.allin_adjusted_change_cents


def test_realized_on_full_board():
    lost = heads_up_allin(board="[2h 7s Jd 4c 9s]", winner_seat=2)
    ev = compute_hand_ev(lost, samples=100, seed=1)
    assert ev.realized_change_cents == -1000

    won = heads_up_allin(board="[Ah 7s Jd 4c 9s]", winner_seat=1)
    ev = compute_hand_ev(won, samples=100, seed=1)
    assert ev.realized_change_cents == 1000


def test_realized_none_without_river_when_cards_shown():
    hand = heads_up_allin(board="[2h 7s Jd]")
    ev = compute_hand_ev(hand, samples=100, seed=1)
    assert ev.realized_change_cents is None
    # олл-ин на префлопе, борд для adjusted не нужен
    assert ev.allin_adjusted_change_cents is not None


def test_adjusted_none_without_villain_cards():
    hand = heads_up_allin(players=[Player(1, "hero", 1000, "As Kd", True), Player(2, "villain", 1000)])
    ev = compute_hand_ev(hand, samples=100, seed=1)
    assert ev.allin_adjusted_change_cents is None
    assert ev.allin_context["participants"][1]["hole"] is None


def test_hero_fold_loses_contribution():
    hand = EvHand(
        id="f",
        hero_seat=1,
        dealt_cards="7c 2d",
        total_pot_cents=60,
        winner_seat=2,
        actions=[
            act(1, "preflop", 1, "bet", 10),
            act(2, "preflop", 2, "bet", 20),
            act(3, "preflop", 1, "call", 10),
            act(4, "flop", 2, "bet", 20),
            act(5, "flop", 1, "fold"),
        ],
        players=[Player(1, "hero", 500, None, True), Player(2, "v", 500)],
    )
    ev = compute_hand_ev(hand)
    assert ev.realized_change_cents == -20
    assert ev.allin_adjusted_change_cents is None


def test_no_hero_seat_gives_nothing():
    ev = compute_hand_ev(EvHand(id="x", actions=[act(1, "preflop", 2, "bet", 20)]))
    assert (ev.realized_change_cents, ev.allin_adjusted_change_cents) == (None, None)


def test_uncalled_push_wins_blinds():
    hand = EvHand(
        id="u",
        hero_seat=1,
        dealt_cards="As Kd",
        total_pot_cents=520,
        winner_seat=1,
        actions=[
            act(1, "preflop", 2, "bet", 10),
            act(2, "preflop", 3, "bet", 20),
            act(3, "preflop", 1, "push", 500, True),
            act(4, "preflop", 2, "fold"),
            act(5, "preflop", 3, "fold"),
        ],
        players=[Player(1, "hero", 500, "As Kd", True), Player(2, "a", 500), Player(3, "b", 500)],
    )
    ev = compute_hand_ev(hand, samples=10, seed=1)
    assert ev.realized_change_cents == 20
    # мёртвые блайнды 10 + 20, вклад героя капнут до 20
    assert ev.allin_adjusted_change_cents == 30


def test_opponent_folding_after_allin_street_stays_in_equity():
    hand = EvHand(
        id="3way",
        hero_seat=1,
        dealt_cards="As Kd",
        board_flop="[2h 7s Jd]",
        actions=[
            act(1, "preflop", 2, "bet", 10),
            act(2, "preflop", 3, "bet", 20),
            act(3, "preflop", 1, "push", 500, True),
            act(4, "preflop", 2, "call", 490),
            act(5, "preflop", 3, "call", 480),
            act(6, "flop", 2, "bet", 200),
            act(7, "flop", 3, "fold"),
        ],
        players=[
            Player(1, "hero", 500, "As Kd", True),
            Player(2, "qq", 2000, "Qh Qd"),
            Player(3, "sevens", 2000, "7c 7d"),
        ],
    )
    ev = compute_hand_ev(hand, samples=20000, seed=1)
    assert [p["seat"] for p in ev.allin_context["participants"]] == [1, 2, 3]
    assert ev.allin_context["board"] == []
    eq = ev.equities["adjusted"]
    assert eq.win_pct < 0.4
    # три живых руки, банк 500 * 3, ничьи в мультивее не делятся
    assert ev.allin_adjusted_change_cents == round_half_up(eq.win_pct * 1500 - 500)
