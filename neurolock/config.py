"""
Configuration for NeuroLock.

All tunables live in NeuroLockConfig. Defaults match the values the system
was calibrated with; each can be overridden through a NEUROLOCK_* environment
variable via NeuroLockConfig.from_env().
"""

import enum
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, Optional

from neurolock.errors import InvalidInput


# ============================================================================
# Mental tasks
# ============================================================================

class MentalTask(enum.IntEnum):
    """Mental task performed while a sample is recorded."""

    EYES_CLOSED_REST = 0
    EYES_OPEN_REST = 1
    MENTAL_ARITHMETIC = 2
    MOTOR_IMAGERY = 3
    VISUAL_IMAGERY = 4


TASK_INSTRUCTIONS = {
    MentalTask.EYES_CLOSED_REST: "Close your eyes, relax and breathe normally.",
    MentalTask.EYES_OPEN_REST: "Keep your eyes open and focus on a point in front of you.",
    MentalTask.MENTAL_ARITHMETIC: "Count backwards from 100 by 7 in your head.",
    MentalTask.MOTOR_IMAGERY: "Imagine moving your right hand without moving it.",
    MentalTask.VISUAL_IMAGERY: "Close your eyes and picture a peaceful scene in detail.",
}


# ============================================================================
# Defaults
# ============================================================================

NUM_FREQUENCY_BANDS = 5

DEFAULT_SAMPLING_RATE = 256
DEFAULT_NUM_CHANNELS = 8
DEFAULT_DIMENSION = DEFAULT_NUM_CHANNELS * NUM_FREQUENCY_BANDS
DEFAULT_THRESHOLD = 0.85
DEFAULT_SALT_LENGTH = 32
DEFAULT_DIGEST_ALGORITHM = "sha256"
DEFAULT_ENROLMENT_TRIALS = 3
DEFAULT_MAX_AUTH_ATTEMPTS = 3
DEFAULT_CAPTURE_DURATION = 5.0
DEFAULT_TEMPLATE_DIR = Path("templates")
DEFAULT_TEMPLATE_EXTENSION = ".nlt"

ENV_PREFIX = "NEUROLOCK_"


@dataclass(frozen=True)
class NeuroLockConfig:
    """
    Read-only configuration consumed by the core.

    Attributes:
        dimension: Expected feature vector length (None accepts any length)
        threshold: Minimum cosine similarity required to authenticate
        salt_length: Salt size in bytes
        digest_algorithm: Name of the DigestAlgorithm used for templates
        enrolment_trials: Number of trials averaged into a template
        max_auth_attempts: Capture rounds allowed per authentication
        capture_duration: Seconds recorded per trial
        sampling_rate: Capture sampling rate in Hz
        num_channels: Number of EEG channels recorded
        template_dir: Directory holding one record per identity
        template_extension: File extension of template records
    """

    dimension: Optional[int] = DEFAULT_DIMENSION
    threshold: float = DEFAULT_THRESHOLD
    salt_length: int = DEFAULT_SALT_LENGTH
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    enrolment_trials: int = DEFAULT_ENROLMENT_TRIALS
    max_auth_attempts: int = DEFAULT_MAX_AUTH_ATTEMPTS
    capture_duration: float = DEFAULT_CAPTURE_DURATION
    sampling_rate: int = DEFAULT_SAMPLING_RATE
    num_channels: int = DEFAULT_NUM_CHANNELS
    template_dir: Path = DEFAULT_TEMPLATE_DIR
    template_extension: str = DEFAULT_TEMPLATE_EXTENSION

    def validate(self) -> "NeuroLockConfig":
        """
        Check value ranges.

        Returns:
            self, to allow chaining

        Raises:
            InvalidInput: If any value is out of range
        """
        if self.dimension is not None and self.dimension <= 0:
            raise InvalidInput(f"dimension must be positive, got {self.dimension}")
        if not 0.0 <= self.threshold <= 1.0:
            raise InvalidInput(f"threshold must be within [0, 1], got {self.threshold}")
        if self.salt_length <= 0:
            raise InvalidInput(f"salt_length must be positive, got {self.salt_length}")
        if self.enrolment_trials <= 0:
            raise InvalidInput("enrolment_trials must be at least 1")
        if self.max_auth_attempts <= 0:
            raise InvalidInput("max_auth_attempts must be at least 1")
        if self.capture_duration <= 0:
            raise InvalidInput("capture_duration must be positive")
        if self.sampling_rate <= 0 or self.num_channels <= 0:
            raise InvalidInput("sampling_rate and num_channels must be positive")
        if not self.template_extension.startswith("."):
            raise InvalidInput("template_extension must start with '.'")
        return self

    def with_overrides(self, **overrides) -> "NeuroLockConfig":
        """Return a copy with the non-None overrides applied and validated."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes).validate()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NeuroLockConfig":
        """
        Build a configuration from NEUROLOCK_* environment variables.

        Variable names are the upper-cased field names, for example
        NEUROLOCK_THRESHOLD=0.9 or NEUROLOCK_TEMPLATE_DIR=/var/lib/neurolock.
        NEUROLOCK_DIMENSION=none disables the dimension check.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Validated configuration

        Raises:
            InvalidInput: If a variable cannot be parsed or is out of range
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            values[f.name] = _parse_field(f.name, raw)
        return cls(**values).validate()


def _parse_field(name: str, raw: str):
    try:
        if name == "dimension":
            return None if raw.strip().lower() in ("", "none") else int(raw)
        if name in ("threshold", "capture_duration"):
            return float(raw)
        if name in ("salt_length", "enrolment_trials", "max_auth_attempts",
                    "sampling_rate", "num_channels"):
            return int(raw)
        if name == "template_dir":
            return Path(raw)
        return raw
    except ValueError as e:
        raise InvalidInput(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e
