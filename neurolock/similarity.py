"""
Cosine similarity between feature vectors.
"""

import math

import numpy as np

from neurolock.errors import DegenerateVector, DimensionMismatch
from neurolock.features import as_array

NORM_EPSILON = 1e-6


def similarity(a, b) -> float:
    """
    Cosine similarity clamped to [0, 1].

    Negative correlation carries no matching evidence and is floored to 0.
    The denominator is sqrt(|a|^2 * |b|^2) so that similarity(v, v) is
    exactly 1.0.

    Args:
        a: FeatureVector or 1-D numeric sequence
        b: FeatureVector or 1-D numeric sequence

    Returns:
        Similarity score in [0, 1]

    Raises:
        DimensionMismatch: If the vectors have different lengths
        DegenerateVector: If either vector has (near) zero L2 norm
    """
    x = as_array(a).astype(np.float64)
    y = as_array(b).astype(np.float64)
    if x.shape != y.shape:
        raise DimensionMismatch(f"Cannot compare vectors of length {x.size} and {y.size}")

    xx = float(np.sum(x * x))
    yy = float(np.sum(y * y))
    if math.sqrt(xx) < NORM_EPSILON or math.sqrt(yy) < NORM_EPSILON:
        raise DegenerateVector("Similarity is undefined for a zero-norm vector")

    dot = float(np.sum(x * y))
    score = dot / math.sqrt(xx * yy)
    return min(max(score, 0.0), 1.0)
