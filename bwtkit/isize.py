"""Insert-size estimation for paired-end reads.

The estimate is taken from pairs in which both ends map with quality 20 or
more.  Outliers are dropped with a quartile-based fence, and an upper bound
on the insert size is derived from a normal model and a prior on chimeric
(anomalous) pairs.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Iterable

from bwtkit.seqio import Read

log = logging.getLogger(__name__)

_MIN_PAIR_MAPQ = 20
_MAX_ISIZE = 100000
_MIN_GOOD_PAIRS = 20
# for a normal distribution this is about three standard deviations
_OUTLIER_BOUND = 2.0


class PairType(enum.Enum):
    """Orientation model of a read pair."""

    STD = "std"


@dataclass
class PairOptions:
    """Settings for pairing the two ends of paired reads."""

    max_isize: int = 500
    force_isize: bool = False
    max_occ: int = 100000
    n_multi: int = 3
    N_multi: int = 10
    type: PairType = PairType.STD
    is_sw: bool = True
    is_preload: bool = False
    ap_prior: float = 1e-5


@dataclass
class InsertSizeInfo:
    """Insert-size distribution; ``avg`` below zero means no estimate."""

    avg: float = -1.0
    std: float = -1.0
    ap_prior: float = 0.0
    low: int = 0
    high: int = 0
    high_bayesian: int = 0

    @property
    def is_valid(self) -> bool:
        return self.avg >= 0.0

    def clear(self) -> None:
        """Discard the estimate, keeping the prior."""
        self.low = self.high = self.high_bayesian = 0
        self.avg = self.std = -1.0


def _insert_size(a: Read, b: Read) -> int:
    if a.pos < b.pos:
        return b.pos + b.length - a.pos
    return a.pos + a.length - b.pos


def _div(num: float, den: float) -> float:
    if den == 0:
        return math.nan if num == 0 or math.isnan(num) else math.copysign(math.inf, num)
    return num / den


def _bayesian_bound(avg: float, std: float, ap_prior: float, ref_len: int) -> tuple[int, float]:
    y = 1.0
    while y < 10.0:
        if 0.5 * math.erfc(y / math.sqrt(2.0)) < ap_prior / ref_len * (y * std + avg):
            break
        y += 0.01
    return int(y * std + avg + 0.499), y


def infer_isize(
    pairs: Iterable[tuple[Read, Read]], ap_prior: float, ref_len: int
) -> InsertSizeInfo:
    """Estimate the insert-size distribution from mapped read pairs.

    ``ref_len`` is the length of the (single-strand) reference.  When no
    estimate can be made, the returned info has ``avg`` and ``std`` of -1.
    """
    if ref_len <= 0:
        raise ValueError("reference length must be positive")
    ii = InsertSizeInfo(ap_prior=ap_prior)
    isizes: list[int] = []
    max_len = 1
    for a, b in pairs:
        if a.mapq >= _MIN_PAIR_MAPQ and b.mapq >= _MIN_PAIR_MAPQ:
            x = _insert_size(a, b)
            if 0 <= x < _MAX_ISIZE:
                isizes.append(x)
        max_len = max(max_len, a.length, b.length)

    tot = len(isizes)
    if tot < _MIN_GOOD_PAIRS:
        log.warning("fail to infer insert size: too few good pairs")
        return ii

    isizes.sort()
    p25 = isizes[int(tot * 0.25 + 0.5)]
    p50 = isizes[int(tot * 0.50 + 0.5)]
    p75 = isizes[int(tot * 0.75 + 0.5)]
    fence = int(p25 - _OUTLIER_BOUND * (p75 - p25) + 0.499)
    ii.low = max(fence, max_len)
    ii.high = int(p75 + _OUTLIER_BOUND * (p75 - p25) + 0.499)
    if ii.low > ii.high:
        log.warning("fail to infer insert size: upper bound is smaller than read length")
        ii.clear()
        return ii

    kept = [v for v in isizes if ii.low <= v <= ii.high]
    n = len(kept)
    avg = _div(float(sum(kept)), n)
    # the accumulator starts from the "unset" value of -1
    var_sum = -1.0
    skewness = kurtosis = 0.0
    for v in kept:
        d2 = (v - avg) * (v - avg)
        var_sum += d2
        skewness += d2 * (v - avg)
        kurtosis += d2 * d2
    kurtosis = _div(_div(kurtosis, n), _div(var_sum, n) * _div(var_sum, n)) - 3
    variance = _div(var_sum, n)
    std = math.sqrt(variance) if variance >= 0 else math.nan
    skewness = _div(_div(skewness, n), std * std * std)

    log.info("(25, 50, 75) percentile: (%d, %d, %d)", p25, p50, p75)
    if math.isnan(std) or math.isnan(avg) or p75 > _MAX_ISIZE:
        log.warning("fail to infer insert size: weird pairing")
        ii.clear()
        return ii

    ii.avg, ii.std = avg, std
    ii.high_bayesian, y = _bayesian_bound(avg, std, ap_prior, ref_len)
    n_ap = sum(1 for v in isizes if v > ii.high_bayesian)
    ii.ap_prior = max(0.01 * (n_ap + 0.01) / tot, ap_prior)

    log.info("low and high boundaries: %d and %d for estimating avg and std", ii.low, ii.high)
    log.info("inferred external isize from %d pairs: %.3f +/- %.3f", n, ii.avg, ii.std)
    log.info("skewness: %.3f; kurtosis: %.3f; ap_prior: %.2e", skewness, kurtosis, ii.ap_prior)
    log.info("inferred maximum insert size: %d (%.2f sigma)", ii.high_bayesian, y)
    return ii