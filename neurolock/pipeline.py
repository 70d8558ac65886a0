"""
Enrolment and authentication flows.

Both flows own every intermediate they create (raw samples, per-trial
feature vectors, templates) and release them through one ExitStack, so each
is wiped exactly once on success and on failure alike.
"""

import logging
from contextlib import ExitStack
from typing import Callable, Optional

from neurolock.auth import AuthResult, authenticate
from neurolock.capture import CaptureSession, EEGSample
from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.errors import AlreadyExists, InvalidInput
from neurolock.features import FeatureVector
from neurolock.extraction import extract_features
from neurolock.store import TemplateStore
from neurolock.template import build_template, validate_owner_id

logger = logging.getLogger(__name__)

Extractor = Callable[[EEGSample], FeatureVector]


def _capture_features(session: CaptureSession, task: MentalTask,
                      extractor: Extractor, stack: ExitStack,
                      duration: Optional[float] = None) -> FeatureVector:
    sample = session.record(duration, task)
    stack.callback(sample.wipe)
    vector = extractor(sample)
    stack.callback(vector.wipe)
    return vector


def enroll_user(owner_id: str, session: CaptureSession, store: TemplateStore,
                config: Optional[NeuroLockConfig] = None,
                task: MentalTask = MentalTask.EYES_CLOSED_REST,
                extractor: Extractor = extract_features,
                on_trial: Optional[Callable[[int, int], None]] = None) -> dict:
    """
    Record trials, build a template and persist it.

    Args:
        owner_id: Identity to enrol
        session: Streaming capture session
        store: Template store to write to
        config: Configuration (number of trials, dimension, salt length)
        task: Mental task the user performs
        extractor: Maps a raw sample to a feature vector
        on_trial: Optional callback(trial_number, total) before each trial

    Returns:
        Non-sensitive summary of the saved template (Template.describe())
        plus the record path; the in-memory template is wiped before return

    Raises:
        AlreadyExists: If the owner already has a template
        InvalidInput, CaptureError, IOFailure and hashing errors propagate;
            no record is written unless every step succeeds
    """
    config = config or store.config
    validate_owner_id(owner_id)
    if store.exists(owner_id):
        raise AlreadyExists(
            f"User '{owner_id}' already enrolled. Delete the existing template first."
        )

    logger.info("Enrolling '%s' with %d trials", owner_id, config.enrolment_trials)
    with ExitStack() as stack:
        trials = []
        for i in range(config.enrolment_trials):
            if on_trial:
                on_trial(i + 1, config.enrolment_trials)
            trials.append(_capture_features(session, task, extractor, stack))

        template = stack.enter_context(build_template(owner_id, trials, task, config))
        path = store.save(template)
        summary = template.describe()
        summary["path"] = str(path)
        logger.info("Enrolment of '%s' complete", owner_id)
        return summary


def authenticate_user(owner_id: str, session: CaptureSession, store: TemplateStore,
                      config: Optional[NeuroLockConfig] = None,
                      extractor: Extractor = extract_features,
                      threshold: Optional[float] = None,
                      on_attempt: Optional[Callable[[int, int], None]] = None) -> AuthResult:
    """
    Authenticate a user against their stored template.

    Captures up to config.max_auth_attempts trials under the template's task
    and stops at the first accepted one.

    Args:
        owner_id: Identity claimed
        session: Streaming capture session
        store: Template store to read from
        config: Configuration (threshold, attempts)
        extractor: Maps a raw sample to a feature vector
        threshold: Override of config.threshold
        on_attempt: Optional callback(attempt_number, total) before each try

    Returns:
        AuthResult of the last attempt, with attempts set to the number used

    Raises:
        NotFound, CorruptRecord, IOFailure: If the template cannot be loaded
        DimensionMismatch, DegenerateVector, CaptureError: Processing failures
    """
    config = config or store.config
    threshold = config.threshold if threshold is None else threshold
    if config.max_auth_attempts < 1:
        raise InvalidInput("max_auth_attempts must be at least 1")

    with ExitStack() as stack:
        template = stack.enter_context(store.load(owner_id))
        result = None
        for attempt in range(1, config.max_auth_attempts + 1):
            if on_attempt:
                on_attempt(attempt, config.max_auth_attempts)
            with ExitStack() as trial_stack:
                candidate = _capture_features(session, template.task_type, extractor, trial_stack)
                result = authenticate(candidate, template, threshold)
            result.attempts = attempt
            if result.authenticated:
                break
        return result
