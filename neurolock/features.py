"""
Feature vectors and enrolment averaging.

A FeatureVector is the fixed-length numeric summary of one processed EEG
sample. Values are stored as float32, the width used on disk, so that what is
hashed, compared and persisted is always the same number.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

import numpy as np

from neurolock.config import MentalTask
from neurolock.errors import AllocationFailure, DimensionMismatch, InvalidInput
from neurolock.memory import secure_wipe, wiped_array

logger = logging.getLogger(__name__)

FEATURE_DTYPE = np.float32


def current_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, eq=False)
class FeatureVector:
    """
    Immutable feature vector tagged with its task and capture time.

    Attributes:
        values: 1-D float32 array (read-only)
        task: Mental task the sample was recorded under
        timestamp_ms: Capture timestamp in milliseconds since the epoch
    """

    values: np.ndarray
    task: MentalTask = MentalTask.EYES_CLOSED_REST
    timestamp_ms: int = field(default_factory=current_millis)

    def __post_init__(self):
        try:
            arr = np.array(self.values, dtype=FEATURE_DTYPE)
        except MemoryError as e:
            raise AllocationFailure("Could not allocate feature vector") from e
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Feature values are not numeric: {e}") from e
        if arr.ndim != 1 or arr.size == 0:
            raise InvalidInput("Feature vector must be a non-empty 1-D sequence")
        if not np.all(np.isfinite(arr)):
            raise InvalidInput("Feature vector contains NaN or infinite values")
        arr.setflags(write=False)
        try:
            task = MentalTask(self.task)
        except ValueError as e:
            raise InvalidInput(f"Unknown mental task: {self.task!r}") from e
        object.__setattr__(self, "values", arr)
        object.__setattr__(self, "task", task)
        object.__setattr__(self, "timestamp_ms", int(self.timestamp_ms))

    def __len__(self) -> int:
        return int(self.values.shape[0])

    def __eq__(self, other) -> bool:
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return (self.task == other.task
                and self.timestamp_ms == other.timestamp_ms
                and self.values.tobytes() == other.values.tobytes())

    __hash__ = None

    def tolist(self) -> List[float]:
        return self.values.tolist()

    def wipe(self) -> None:
        """Zero the feature values in place."""
        secure_wipe(self.values)


def as_array(vector) -> np.ndarray:
    """Return the float32 values of a FeatureVector or plain sequence."""
    if isinstance(vector, FeatureVector):
        return vector.values
    try:
        arr = np.asarray(vector, dtype=FEATURE_DTYPE)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Feature values are not numeric: {e}") from e
    if arr.ndim != 1:
        raise InvalidInput("Feature vector must be 1-D")
    if not np.all(np.isfinite(arr)):
        raise InvalidInput("Feature vector contains NaN or infinite values")
    return arr


def check_dimension(vectors: Iterable[FeatureVector], expected=None) -> int:
    """
    Verify that all vectors share one length.

    Args:
        vectors: Vectors to check
        expected: Required length, or None to accept the first vector's length

    Returns:
        The common length

    Raises:
        InvalidInput: If no vectors are given
        DimensionMismatch: If lengths differ from each other or from expected
    """
    lengths = [len(v) for v in vectors]
    if not lengths:
        raise InvalidInput("At least one feature vector is required")
    first = lengths[0]
    if any(n != first for n in lengths):
        raise DimensionMismatch(f"Feature vectors have different lengths: {lengths}")
    if expected is not None and first != expected:
        raise DimensionMismatch(f"Expected {expected} features, got {first}")
    return first


def average_feature_vectors(vectors: Sequence[FeatureVector],
                            dimension=None, task=None,
                            timestamp_ms: Optional[int] = None) -> FeatureVector:
    """
    Element-wise arithmetic mean of enrolment trials.

    The sum is accumulated in float64, so averaging N copies of the same
    vector returns that vector exactly.

    Args:
        vectors: Trial feature vectors (non-empty, equal length)
        dimension: Required length, or None
        task: Task tag for the result (default: the first trial's task)
        timestamp_ms: Timestamp for the result (default: now)

    Returns:
        Averaged FeatureVector
    """
    check_dimension(vectors, dimension)
    try:
        stacked = np.stack([v.values for v in vectors]).astype(np.float64)
    except MemoryError as e:
        raise AllocationFailure("Could not allocate averaging buffer") from e

    with wiped_array(stacked):
        mean = stacked.mean(axis=0)
        with wiped_array(mean):
            averaged = FeatureVector(
                mean,
                task=vectors[0].task if task is None else task,
                timestamp_ms=current_millis() if timestamp_ms is None else timestamp_ms,
            )

    logger.debug("Averaged %d feature vectors of length %d", len(vectors), len(averaged))
    return averaged
