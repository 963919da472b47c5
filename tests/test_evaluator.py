import pytest

from evline.poker.cards import canonicalize, card_tokens, make_deck
from evline.poker.evaluator import CATEGORY, rank_cards


def test_canonicalize():
    assert canonicalize("as") == "As"
    assert canonicalize("tD") == "Td"
    with pytest.raises(ValueError):
        canonicalize("1x")


def test_card_tokens_tolerant():
    assert card_tokens("[2h 7s Jd] [4c]") == ["2h", "7s", "Jd", "4c"]
    assert card_tokens("6hQc8h|8c|3d") == ["6h", "Qc", "8h", "8c", "3d"]
    assert card_tokens("ah kd zz") == ["Ah", "Kd"]
    assert card_tokens(None) == []


def test_make_deck_excludes():
    deck = make_deck(["As", "kd"])
    assert len(deck) == 50
    assert "As" not in deck and "Kd" not in deck


def test_categories():
    assert rank_cards(["Ah", "Kh", "Qh", "Jh", "Th", "2c", "3d"])[0] == CATEGORY["straight_flush"]
    assert rank_cards(["9s", "9h", "9d", "9c", "2h"])[0] == CATEGORY["quads"]
    assert rank_cards(["9s", "9h", "9d", "2c", "2h", "2d", "Ah"]) == (CATEGORY["full_house"], 9, 2)
    assert rank_cards(["Ah", "2c", "3d", "4s", "5h", "Kd", "Kc"]) == (CATEGORY["straight"], 5)
    assert rank_cards(["Ah", "Kh", "8h", "4h", "2h", "As", "Ad"])[0] == CATEGORY["flush"]


def test_kickers_decide():
    board = ["Kc", "8d", "3s", "2h", "7c"]
    ak = rank_cards(["Ah", "Kh"] + board)
    kq = rank_cards(["Kd", "Qs"] + board)
    eights = rank_cards(["8h", "8s"] + board)
    assert ak > kq
    assert eights > ak


def test_split_board():
    board = ["Ac", "Kc", "Qc", "Jc", "Tc"]
    assert rank_cards(["2h", "3h"] + board) == rank_cards(["4d", "5d"] + board)


def test_bad_input():
    with pytest.raises(ValueError):
        rank_cards(["Ah", "Ah", "Kc", "8d", "3s"])
    with pytest.raises(ValueError):
        rank_cards(["Ah", "Kc", "8d", "3s"])
    with pytest.raises(ValueError):
        rank_cards(["Xx", "Kc", "8d", "3s", "2h"])
