import random

import pytest

from bwtkit.bwase import SaiAlignment
from bwtkit.isize import InsertSizeInfo, PairOptions
from bwtkit.pairing import SAM_FPP, Hit, pair_reads
from bwtkit.seqio import Read


def make_read(name, pos, strand, mapq, length=50):
    read = Read(name=name, seq=bytearray(length))
    read.pos = pos
    read.strand = strand
    read.mapq = mapq
    read.seq_q = mapq
    return read


def simple_alns():
    return [[SaiAlignment(k=1, l=1, score=0)], [SaiAlignment(k=2, l=2, score=0)]]


def test_no_hits_changes_nothing():
    r0 = make_read("a", 100, 0, 25)
    r1 = make_read("a", 300, 1, 30)
    assert pair_reads([r0, r1], simple_alns(), [], PairOptions(), 3, InsertSizeInfo()) == 0
    assert r0.extra_flag & SAM_FPP == 0
    assert r1.extra_flag & SAM_FPP == 0
    assert (r0.mapq, r1.mapq) == (25, 30)


def test_proper_pair_in_place_caps_mapq():
    r0 = make_read("a", 100, 0, 37)
    r1 = make_read("a", 300, 1, 37)
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1)]
    changed = pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, InsertSizeInfo())
    assert changed == 0
    assert r0.mapq == r1.mapq == 60
    assert r0.extra_flag & SAM_FPP and r1.extra_flag & SAM_FPP
    assert (r0.pos, r1.pos) == (100, 300)


def test_in_place_pair_sums_qualities_below_cap():
    r0 = make_read("a", 100, 0, 10)
    r1 = make_read("a", 300, 1, 12)
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1)]
    pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, InsertSizeInfo())
    assert r0.mapq == r1.mapq == 10 + 12


def test_insert_size_beyond_maximum_is_not_paired():
    r0 = make_read("a", 100, 0, 25)
    r1 = make_read("a", 1000, 1, 30)
    hits = [Hit(100, 0, 0, 0), Hit(1000, 1, 0, 1)]
    assert pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, InsertSizeInfo()) == 0
    assert r0.extra_flag & SAM_FPP == 0
    assert (r0.mapq, r1.mapq) == (25, 30)


def test_wrong_orientation_is_not_paired():
    r0 = make_read("a", 100, 1, 25)
    r1 = make_read("a", 300, 0, 30)
    hits = [Hit(100, 0, 0, 1), Hit(300, 1, 0, 0)]
    assert pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, InsertSizeInfo()) == 0
    assert r1.extra_flag & SAM_FPP == 0


def test_one_end_moved_to_mate():
    r0 = make_read("a", 100, 0, 37)
    r1 = make_read("a", 5000, 1, 20)
    alns = [
        [SaiAlignment(k=1, l=1, score=0)],
        [SaiAlignment(k=2, l=2, score=0), SaiAlignment(k=3, l=3, score=1, n_mm=2, n_gapo=1)],
    ]
    hits = [Hit(100, 0, 0, 0), Hit(5000, 1, 0, 1), Hit(300, 1, 1, 1)]
    changed = pair_reads([r0, r1], alns, hits, PairOptions(), 3, InsertSizeInfo())
    assert changed == 1
    assert r1.pos == 300
    assert r1.n_mm == 2 and r1.n_gapo == 1 and r1.score == 1
    assert r1.seq_q == 0
    assert r1.mapq == 29
    assert r0.pos == 100 and r0.mapq == 37


def test_both_ends_moved_lowers_quality():
    r0 = make_read("a", 9000, 0, 30)
    r1 = make_read("a", 9900, 1, 30)
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1)]
    changed = pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, InsertSizeInfo())
    assert (r0.pos, r1.pos) == (100, 300)
    assert r0.mapq == r1.mapq
    assert r0.mapq < 29
    assert r0.seq_q == r1.seq_q == 0
    assert changed == 2


def test_tied_pairs_give_zero_quality_to_moved_end():
    r0 = make_read("a", 100, 0, 37)
    r1 = make_read("a", 5000, 1, 30)
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1), Hit(310, 1, 0, 1)]
    pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, InsertSizeInfo())
    assert r1.pos in (300, 310)
    assert r1.mapq == 0


def test_lower_score_pair_wins():
    r0 = make_read("a", 100, 0, 37)
    r1 = make_read("a", 300, 1, 25)
    alns = [
        [SaiAlignment(k=1, l=1, score=0)],
        [SaiAlignment(k=2, l=2, score=5), SaiAlignment(k=3, l=3, score=0)],
    ]
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1), Hit(320, 1, 1, 1)]
    pair_reads([r0, r1], alns, hits, PairOptions(), 3, InsertSizeInfo())
    assert r1.pos == 320
    assert r1.score == 0


def test_hit_order_does_not_matter():
    alns = [
        [SaiAlignment(k=1, l=1, score=0)],
        [SaiAlignment(k=2, l=2, score=5), SaiAlignment(k=3, l=3, score=0)],
    ]
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1), Hit(320, 1, 1, 1), Hit(120, 0, 0, 0)]
    results = set()
    for seed in range(5):
        shuffled = hits[:]
        random.Random(seed).shuffle(shuffled)
        r0 = make_read("a", 100, 0, 37)
        r1 = make_read("a", 300, 1, 25)
        changed = pair_reads([r0, r1], alns, shuffled, PairOptions(), 3, InsertSizeInfo())
        results.add((r0.pos, r1.pos, r0.mapq, r1.mapq, changed))
    assert len(results) == 1


def test_estimated_isize_bounds_pairing():
    ii = InsertSizeInfo(avg=250.0, std=20.0, ap_prior=1e-5, low=50, high=400, high_bayesian=330)
    r0 = make_read("a", 100, 0, 25)
    r1 = make_read("a", 450, 1, 30)
    hits = [Hit(100, 0, 0, 0), Hit(450, 1, 0, 1)]
    assert pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, ii) == 0
    assert r0.extra_flag & SAM_FPP == 0

    r0 = make_read("a", 100, 0, 25)
    r1 = make_read("a", 300, 1, 30)
    hits = [Hit(100, 0, 0, 0), Hit(300, 1, 0, 1)]
    pair_reads([r0, r1], simple_alns(), hits, PairOptions(), 3, ii)
    assert r0.extra_flag & SAM_FPP and r1.extra_flag & SAM_FPP


def test_requires_two_reads():
    r0 = make_read("a", 100, 0, 25)
    with pytest.raises(ValueError):
        pair_reads([r0], simple_alns(), [], PairOptions(), 3, InsertSizeInfo())


def test_hit_rejects_bad_end():
    with pytest.raises(ValueError):
        Hit(100, 2, 0, 0)
    with pytest.raises(ValueError):
        Hit(100, 0, 0, 3)


def test_hit_key_orders_by_position_first():
    a = Hit(100, 1, 5, 1)
    b = Hit(101, 0, 0, 0)
    assert a.key < b.key
    assert a.key == (100, 5 << 2 | 1 << 1 | 1)