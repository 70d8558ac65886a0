"""
Template records.

A Template binds an owner id and mental task to the averaged enrolment
feature vector and its salted digest. Templates hold sensitive material and
are wiped by whichever flow owns them; using one as a context manager wipes
it on exit.
"""

import itertools
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.errors import DegenerateVector, InvalidInput
from neurolock.features import FeatureVector, average_feature_vectors
from neurolock.hashing import (
    SaltedDigest, digest, digest_to_hex, generate_salt, get_algorithm, verify_digest
)
from neurolock.similarity import similarity

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
OWNER_ID_MAX_BYTES = 64

_OWNER_ID_RE = re.compile(r"^[A-Za-z0-9_\-][A-Za-z0-9_.\-]*$")


def validate_owner_id(owner_id: str) -> str:
    """
    Check that an owner id is usable as a record key.

    Owner ids are non-empty, at most 64 UTF-8 bytes, consist of letters,
    digits, '_', '-' and '.', and do not start with '.'.

    Raises:
        InvalidInput: If the id violates any of these rules
    """
    if not isinstance(owner_id, str) or not owner_id:
        raise InvalidInput("Owner id must be a non-empty string")
    if len(owner_id.encode("utf-8")) > OWNER_ID_MAX_BYTES:
        raise InvalidInput(f"Owner id exceeds {OWNER_ID_MAX_BYTES} bytes")
    if not _OWNER_ID_RE.match(owner_id):
        raise InvalidInput(f"Owner id contains unsupported characters: {owner_id!r}")
    return owner_id


def now() -> int:
    return int(time.time())


@dataclass(eq=False)
class Template:
    owner_id: str
    task_type: MentalTask
    feature_vector: FeatureVector
    digest: SaltedDigest
    created_at: int = field(default_factory=now)
    last_used: Optional[int] = None
    format_version: int = FORMAT_VERSION

    def __post_init__(self):
        validate_owner_id(self.owner_id)
        self.task_type = MentalTask(self.task_type)
        if self.last_used is None:
            self.last_used = self.created_at

    def __eq__(self, other) -> bool:
        if not isinstance(other, Template):
            return NotImplemented
        return (self.owner_id == other.owner_id
                and self.task_type == other.task_type
                and self.feature_vector.values.tobytes() == other.feature_vector.values.tobytes()
                and self.digest == other.digest
                and self.created_at == other.created_at
                and self.last_used == other.last_used
                and self.format_version == other.format_version)

    __hash__ = None

    def __enter__(self) -> "Template":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.wipe()
        return False

    @property
    def dimension(self) -> int:
        return len(self.feature_vector)

    def touch(self, timestamp: Optional[int] = None) -> None:
        """Record a use of the template."""
        self.last_used = now() if timestamp is None else int(timestamp)

    def verify_digest(self, algorithm=None) -> bool:
        """True if the digest was computed over exactly this feature vector."""
        return verify_digest(self.feature_vector, self.digest, algorithm)

    def wipe(self) -> None:
        """Zero the feature vector, digest and salt."""
        self.feature_vector.wipe()
        self.digest.wipe()

    def describe(self) -> dict:
        """Non-sensitive summary of the template."""
        return {
            "owner_id": self.owner_id,
            "task": self.task_type.name,
            "format_version": self.format_version,
            "dimension": self.dimension,
            "digest_size": len(self.digest.digest),
            "salt_size": len(self.digest.salt),
            "digest_prefix": digest_to_hex(self.digest.digest[:4]),
            "created_at": self.created_at,
            "last_used": self.last_used,
        }


def trial_consistency(trials: Sequence[FeatureVector]) -> Optional[float]:
    """
    Minimum pairwise similarity across enrolment trials.

    Returns None when there are fewer than two trials or a trial is
    degenerate.
    """
    if len(trials) < 2:
        return None
    try:
        return min(similarity(a, b) for a, b in itertools.combinations(trials, 2))
    except DegenerateVector:
        return None


def build_template(owner_id: str, trials: Sequence[FeatureVector],
                   task: MentalTask,
                   config: Optional[NeuroLockConfig] = None) -> Template:
    """
    Average enrolment trials into a new salted template.

    Args:
        owner_id: Identity the template belongs to
        trials: Feature vectors from each enrolment trial
        task: Mental task the trials were recorded under
        config: Configuration (dimension, salt length, digest algorithm)

    Returns:
        New Template with created_at == last_used and format_version 1

    Raises:
        InvalidInput: Empty trial set or invalid owner id
        DimensionMismatch: Trials of different or unexpected lengths
        EntropyUnavailable, CryptoFailure, AllocationFailure: From hashing
    """
    config = config or NeuroLockConfig()
    validate_owner_id(owner_id)
    if not trials:
        raise InvalidInput("At least one enrolment trial is required")
    try:
        task = MentalTask(task)
    except ValueError as e:
        raise InvalidInput(f"Unknown mental task: {task!r}") from e

    logger.info("Creating template for '%s' from %d trials", owner_id, len(trials))
    created = now()
    averaged = average_feature_vectors(trials, config.dimension, task=task,
                                       timestamp_ms=created * 1000)

    consistency = trial_consistency(trials)
    if consistency is not None and consistency < config.threshold:
        logger.warning("Enrolment trials for '%s' are inconsistent (min similarity %.3f)",
                       owner_id, consistency)

    try:
        salted = digest(averaged, generate_salt(config.salt_length),
                        get_algorithm(config.digest_algorithm))
    except Exception:
        averaged.wipe()
        raise

    template = Template(
        owner_id=owner_id,
        task_type=task,
        feature_vector=averaged,
        digest=salted,
        created_at=created,
        last_used=created,
    )
    logger.info("Template created for '%s'", owner_id)
    return template
