"""
Authentication decision.

A similarity score below the threshold is a denial and comes back as an
AuthResult. Anything that prevents computing the score (dimension mismatch,
degenerate vector) is raised instead, so callers never confuse "access
denied" with "could not evaluate".
"""

import logging
import time
from dataclasses import asdict, dataclass, field

from neurolock.errors import InvalidInput
from neurolock.similarity import similarity

logger = logging.getLogger(__name__)

# Score rendered by front ends when no evaluation could be made.
SCORE_UNAVAILABLE = -1.0


@dataclass
class AuthResult:
    authenticated: bool
    similarity_score: float
    threshold: float
    owner_id: str = ""
    attempts: int = 1
    decided_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self):
        return asdict(self)


def check_threshold(threshold: float) -> float:
    threshold = float(threshold)
    if not 0.0 <= threshold <= 1.0:
        raise InvalidInput(f"Threshold must be within [0, 1], got {threshold}")
    return threshold


def authenticate(candidate, stored, threshold: float) -> AuthResult:
    """
    Decide whether a fresh feature vector matches a stored template.

    Args:
        candidate: FeatureVector from the authentication trial
        stored: Template to match against
        threshold: Minimum similarity score to accept

    Returns:
        AuthResult with authenticated == (score >= threshold)

    Raises:
        InvalidInput: If the threshold is outside [0, 1]
        DimensionMismatch, DegenerateVector: If the score cannot be computed
    """
    threshold = check_threshold(threshold)
    score = similarity(candidate, stored.feature_vector)
    accepted = score >= threshold

    if accepted:
        logger.info("Authentication succeeded for '%s' (similarity %.3f >= %.3f)",
                    stored.owner_id, score, threshold)
    else:
        logger.warning("Authentication failed for '%s' (similarity %.3f < %.3f)",
                       stored.owner_id, score, threshold)

    return AuthResult(
        authenticated=accepted,
        similarity_score=score,
        threshold=threshold,
        owner_id=stored.owner_id,
    )
