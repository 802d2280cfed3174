"""
Numeric primitives over ordered metric samples.

All functions are pure. Series are sequences of numbers where ``None``
marks a missing sample; missing samples are skipped by the aggregates and
never treated as zero. Aggregates return ``None`` for empty, all-missing or
non-sequence input.

Example:
    ```python
    from auroralens.stats import kernel

    kernel.average([1.0, None, 3.0])  # 2.0
    kernel.two_sigma_bound([40, 60] * 12)  # 70.0
    kernel.directional_correlation([1, 2, 3], [5, 6, 4])  # 0.5
    ```
"""

import math
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

Series = Sequence[float | None] | NDArray[np.floating]


def _as_array(seq) -> NDArray[np.floating] | None:
    """Convert a series to a float array (None -> NaN); None if unusable."""
    if not isinstance(seq, (Sequence, np.ndarray)) or isinstance(seq, (str, bytes)):
        return None
    if len(seq) == 0:
        return None
    return np.asarray([np.nan if v is None else v for v in seq], dtype=float)


def _present(seq) -> NDArray[np.floating] | None:
    arr = _as_array(seq)
    if arr is None:
        return None
    arr = arr[~np.isnan(arr)]
    return arr if arr.size else None


def average(seq: Series) -> float | None:
    """Mean of the present samples."""
    arr = _present(seq)
    return None if arr is None else float(arr.mean())


def maximum(seq: Series) -> float | None:
    """Largest present sample."""
    arr = _present(seq)
    return None if arr is None else float(arr.max())


def minimum(seq: Series) -> float | None:
    """Smallest present sample."""
    arr = _present(seq)
    return None if arr is None else float(arr.min())


def total(seq: Series) -> float | None:
    """Sum of the present samples."""
    arr = _present(seq)
    return None if arr is None else float(arr.sum())


def standard_deviation(seq: Series, mean: float) -> float | None:
    """
    Population standard deviation around a precomputed mean.

    Args:
        seq: Samples
        mean: Mean of ``seq`` (usually from ``average``)

    Returns:
        sqrt(mean((x - mean)^2)) over present samples
    """
    arr = _present(seq)
    if arr is None:
        return None
    return float(math.sqrt(np.mean((arr - mean) ** 2)))


def two_sigma_bound(seq: Series) -> float | None:
    """
    Noise-tolerant upper estimate: mean + 2 standard deviations.

    Used instead of the raw maximum when a few spikes should not drive
    capacity decisions.
    """
    mean = average(seq)
    if mean is None:
        return None
    return mean + 2 * standard_deviation(seq, mean)


def elementwise_sum(seq_a: Series, seq_b: Series) -> NDArray[np.floating]:
    """
    Add two aligned series sample by sample.

    Raises:
        ValueError: If the series differ in length
    """
    a = np.asarray(seq_a, dtype=float)
    b = np.asarray(seq_b, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Cannot add series of different lengths: {len(a)} != {len(b)}")
    return a + b


def elementwise_scale(seq: Series, factor: float) -> NDArray[np.floating]:
    """Multiply every sample by ``factor``."""
    return np.asarray(seq, dtype=float) * factor


def max_across_series(seq_a: Series, seq_b: Series, seq_c: Series) -> NDArray[np.floating]:
    """
    Per-index maximum of three aligned series.

    Raises:
        ValueError: If the series differ in length
    """
    arrays = [np.asarray(s, dtype=float) for s in (seq_a, seq_b, seq_c)]
    lengths = {a.shape for a in arrays}
    if len(lengths) != 1:
        raise ValueError(f"Cannot merge series of different lengths: {[len(a) for a in arrays]}")
    return np.maximum.reduce(arrays)


def directional_correlation(series_a: Series, series_b: Series) -> float | None:
    """
    Share of consecutive steps where both series move the same way.

    A step matches when both series rise, both fall, or both stay flat.
    This is a sign-of-delta agreement ratio in [0, 1], not a Pearson
    coefficient: two series with very different magnitudes still score 1.0
    when they always move together.

    Args:
        series_a: First series
        series_b: Second series, aligned with the first

    Returns:
        matches / (n - 1), or None when fewer than two samples exist

    Raises:
        ValueError: If the series differ in length
    """
    a = np.asarray([np.nan if v is None else v for v in series_a], dtype=float)
    b = np.asarray([np.nan if v is None else v for v in series_b], dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Cannot correlate series of different lengths: {len(a)} != {len(b)}")
    if a.size < 2:
        return None

    # NaN steps compare unequal, so a missing sample never counts as a match
    matches = np.sign(np.diff(a)) == np.sign(np.diff(b))
    return float(matches.sum() / (a.size - 1))


def round_half_up_units(value: float) -> float:
    """Round up to the next multiple of 0.5 (0.2 -> 0.5, 0.7 -> 1.0, 1.5 -> 1.5)."""
    return math.ceil(value * 2) / 2


def round_up_to_thousand(value: float) -> float:
    """Round up to the next multiple of 1000; anything below 1000 becomes 1000."""
    if value < 1000:
        return 1000
    return math.ceil(value / 1000) * 1000
