import pytest
from hashsplit.analysis import (
    CompositionError,
    LowercaseFilter,
    RegexTokenizer,
    simple_analyzer,
)


def test_positions():
    ana = simple_analyzer()
    tokens = [(t.text, t.pos) for t in ana("Alfa BRAVO alfa", positions=True)]
    assert tokens == [("alfa", 0), ("bravo", 1), ("alfa", 2)]


def test_start_pos():
    tk = RegexTokenizer()
    tokens = [t.pos for t in tk("one two", positions=True, start_pos=10)]
    assert tokens == [10, 11]


def test_token_reuse():
    tk = RegexTokenizer()
    tokens = list(tk("alfa bravo"))
    # The tokenizer yields the same object every time
    assert tokens[0] is tokens[1]


def test_custom_expression():
    ana = simple_analyzer(r"[^,]+")
    assert [t.text for t in ana("Red Wine,Blue")] == ["red wine", "blue"]


def test_composition():
    ana = RegexTokenizer() | LowercaseFilter()
    assert ana == simple_analyzer()

    with pytest.raises(CompositionError):
        ana | RegexTokenizer()
    with pytest.raises(TypeError):
        ana | "not composable"
