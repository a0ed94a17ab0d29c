import pytest
from hashsplit.support.bitvector import BitVector


def test_set_and_count():
    bv = BitVector(20)
    assert not bv
    assert bv.count() == 0

    bv.set(0)
    bv.set(19)
    bv[7] = True
    assert bv.count() == 3
    assert list(bv) == [0, 7, 19]
    assert 7 in bv
    assert 8 not in bv

    bv.clear(7)
    assert bv.count() == 2
    bv[19] = False
    assert list(bv) == [0]


def test_set_twice():
    bv = BitVector(8)
    bv.set(3)
    bv.set(3)
    assert bv.count() == 1


def test_out_of_range():
    bv = BitVector(10)
    with pytest.raises(IndexError):
        bv.set(10)
    with pytest.raises(IndexError):
        bv.set(-1)


def test_copy_is_independent():
    original = BitVector(12, [1, 5])
    working = original.copy()
    assert working == original

    working.set(9)
    assert working.count() == 3
    assert original.count() == 2
    assert not original[9]
    assert working != original


def test_or():
    a = BitVector(10, [1, 2])
    b = BitVector(10, [2, 8])
    assert list(a | b) == [1, 2, 8]
    assert list(a | [0]) == [0, 1, 2]

    with pytest.raises(ValueError):
        a | BitVector(11)


def test_str():
    bv = BitVector(5, [0, 3])
    assert str(bv) == "10010"
    assert repr(bv) == "<BitVector 10010>"
