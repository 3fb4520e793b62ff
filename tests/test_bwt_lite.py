import random

import pytest

from bwtkit.bwt_lite import LiteBWT

_rng = random.Random(7)
SEQUENCES = [
    "ACGTACGTTAGC",
    "A" * 37,
    "".join(_rng.choice("ACGT") for _ in range(150)),
    "GATTACAGATTACACCGGTT",
]

_CODE = {"A": 0, "C": 1, "G": 2, "T": 3}


def _codes(s):
    return [_CODE[ch] for ch in s]


def test_small_example_is_fixed():
    b = LiteBWT.from_sequence("ACGT")
    assert b.sa == (4, 0, 1, 2, 3)
    assert b.primary == 1
    assert b.codes == bytes([3, 0, 1, 2])
    assert b.L2 == (0, 1, 2, 3, 4)


@pytest.mark.parametrize("seq", SEQUENCES)
def test_suffix_array_is_sorted_permutation(seq):
    b = LiteBWT.from_sequence(seq)
    text = _codes(seq)
    assert sorted(b.sa) == list(range(len(seq) + 1))
    suffixes = [tuple(text[i:]) for i in b.sa]
    assert suffixes == sorted(suffixes)
    assert b.sa[b.primary] == 0


@pytest.mark.parametrize("seq", SEQUENCES)
def test_bwt_rows_precede_suffixes(seq):
    b = LiteBWT.from_sequence(seq)
    text = _codes(seq)
    for row, pos in enumerate(b.sa):
        if row == b.primary:
            continue
        assert b.codes[row - (row > b.primary)] == text[pos - 1]


@pytest.mark.parametrize("seq", SEQUENCES)
def test_occ_agrees_with_occ4_and_totals(seq):
    b = LiteBWT.from_sequence(seq)
    text = _codes(seq)
    for k in range(-1, b.seq_len):
        counts = b.occ4(k)
        assert [b.occ(k, c) for c in range(4)] == list(counts)
        if k >= 0:
            assert sum(counts) == k + 1 - (k >= b.primary)
    for c in range(4):
        assert b.occ(b.seq_len, c) == text.count(c)
        assert b.L2[c + 1] - b.L2[c] == text.count(c)


@pytest.mark.parametrize("seq", SEQUENCES)
def test_lf_mapping_steps_back_one_position(seq):
    b = LiteBWT.from_sequence(seq)
    for row in range(b.seq_len + 1):
        if row == b.primary:
            continue
        c = b.codes[row - (row > b.primary)]
        nxt = b.L2[c] + b.occ(row, c)
        assert b.sa[nxt] == b.sa[row] - 1


def test_two_occ4_matches_single_calls():
    b = LiteBWT.from_sequence(SEQUENCES[2])
    for k, l in [(-1, 5), (3, 40), (17, 149), (0, 0)]:
        assert b.two_occ4(k, l) == (b.occ4(k), b.occ4(l))


def test_empty_sequence():
    b = LiteBWT.from_sequence("")
    assert b.sa == (0,)
    assert b.occ4(-1) == (0, 0, 0, 0)
    assert b.occ(0, 2) == 0


def test_ambiguous_base_rejected():
    with pytest.raises(ValueError):
        LiteBWT.from_sequence("ACNT")


def test_row_beyond_end_rejected():
    b = LiteBWT.from_sequence("ACGTAC")
    with pytest.raises(IndexError):
        b.occ(b.seq_len + 1, 0)