"""
Integration tests for the enrolment and authentication flows.
"""

from unittest.mock import patch

import pytest

from neurolock.capture import CaptureSession, SimulatedHeadset
from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.errors import (
    AlreadyExists, DegenerateVector, DimensionMismatch, EntropyUnavailable, NotFound
)
from neurolock.extraction import extract_features
from neurolock.features import FeatureVector
from neurolock.pipeline import authenticate_user, enroll_user
from neurolock.store import TemplateStore

from conftest import ToneSource


@pytest.fixture
def store(full_config):
    return TemplateStore(config=full_config)


def session_for(source):
    return CaptureSession("test_device", source=source)


class TestEnrollUser:
    """Test enrolment."""

    def test_enroll(self, store, full_config):
        """Test that enrolment stores a verified 40-feature template."""
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            summary = enroll_user("alice", session, store, full_config)

        assert summary["owner_id"] == "alice"
        assert summary["dimension"] == 40
        assert summary["task"] == "EYES_CLOSED_REST"
        assert store.exists("alice")
        with store.load("alice") as template:
            assert template.verify_digest()
            assert summary["path"] == str(store.path_for("alice"))

    def test_enroll_task(self, store, full_config):
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config, task=MentalTask.MOTOR_IMAGERY)

        with store.load("alice") as template:
            assert template.task_type is MentalTask.MOTOR_IMAGERY

    def test_trial_callback(self, store, full_config):
        calls = []
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config,
                        on_trial=lambda n, total: calls.append((n, total)))

        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_already_enrolled(self, store, full_config):
        """Test that re-enrolment is refused and the record is left alone."""
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config)
        before = store.path_for("alice").read_bytes()

        with session_for(SimulatedHeadset("alice", seed=2)) as session:
            with pytest.raises(AlreadyExists):
                enroll_user("alice", session, store, full_config)

        assert store.path_for("alice").read_bytes() == before

    def test_failure_writes_nothing(self, store, full_config):
        with patch("neurolock.template.generate_salt",
                   side_effect=EntropyUnavailable("no entropy")):
            with session_for(SimulatedHeadset("alice", seed=1)) as session:
                with pytest.raises(EntropyUnavailable):
                    enroll_user("alice", session, store, full_config)

        assert not store.exists("alice")

    def test_intermediates_wiped(self, store, full_config):
        """Test that every per-trial feature vector is zeroed afterwards."""
        produced = []

        def extractor(sample):
            vector = extract_features(sample)
            produced.append(vector)
            return vector

        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config, extractor=extractor)

        assert len(produced) == 3
        assert all(not v.values.any() for v in produced)


class TestAuthenticateUser:
    """Test authentication."""

    def test_genuine_user(self, store, full_config):
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config)

        with session_for(SimulatedHeadset("alice", seed=2)) as session:
            result = authenticate_user("alice", session, store, full_config)

        assert result.authenticated
        assert result.similarity_score >= full_config.threshold
        assert result.attempts == 1
        assert result.owner_id == "alice"

    def test_impostor_denied_after_all_attempts(self, store, full_config):
        with session_for(ToneSource(10.0)) as session:
            enroll_user("carol", session, store, full_config)

        with session_for(ToneSource(20.0, seed=1)) as session:
            result = authenticate_user("carol", session, store, full_config)

        assert not result.authenticated
        assert result.similarity_score < full_config.threshold
        assert result.attempts == full_config.max_auth_attempts

    def test_second_attempt_succeeds(self, store, full_config):
        with session_for(ToneSource(10.0)) as session:
            enroll_user("carol", session, store, full_config)

        source = ToneSource(20.0, 10.0, seed=1)
        with session_for(source) as session:
            result = authenticate_user("carol", session, store, full_config)

        assert result.authenticated
        assert result.attempts == 2
        assert source.reads == 2

    def test_attempt_callback(self, store, full_config):
        with session_for(ToneSource(10.0)) as session:
            enroll_user("carol", session, store, full_config)

        calls = []
        with session_for(ToneSource(20.0, seed=1)) as session:
            authenticate_user("carol", session, store, full_config,
                              on_attempt=lambda n, total: calls.append(n))

        assert calls == [1, 2, 3]

    def test_threshold_override(self, store, full_config):
        with session_for(ToneSource(10.0)) as session:
            enroll_user("carol", session, store, full_config)

        with session_for(ToneSource(20.0, seed=1)) as session:
            result = authenticate_user("carol", session, store, full_config, threshold=0.0)

        assert result.authenticated
        assert result.threshold == 0.0

    def test_not_enrolled(self, store, full_config):
        with session_for(SimulatedHeadset("bob", seed=1)) as session:
            with pytest.raises(NotFound):
                authenticate_user("bob", session, store, full_config)

    def test_dimension_mismatch_propagates(self, store, full_config):
        """Test that a processing failure is raised, not reported as a denial."""
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config)

        with session_for(SimulatedHeadset("alice", seed=2)) as session:
            with pytest.raises(DimensionMismatch):
                authenticate_user("alice", session, store, full_config,
                                  extractor=lambda sample: FeatureVector([1.0, 2.0, 3.0]))

    def test_degenerate_candidate_propagates(self, store, full_config):
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config)

        with session_for(SimulatedHeadset("alice", seed=2)) as session:
            with pytest.raises(DegenerateVector):
                authenticate_user("alice", session, store, full_config,
                                  extractor=lambda sample: FeatureVector([0.0] * 40))

    def test_uses_template_task(self, store, full_config):
        """Test that authentication records under the enrolled task."""
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store, full_config, task=MentalTask.VISUAL_IMAGERY)

        tasks = []

        def extractor(sample):
            tasks.append(sample.task)
            return extract_features(sample)

        with session_for(SimulatedHeadset("alice", seed=2)) as session:
            authenticate_user("alice", session, store, full_config, extractor=extractor)

        assert tasks and all(t is MentalTask.VISUAL_IMAGERY for t in tasks)

    def test_default_config_from_store(self, tmp_path):
        config = NeuroLockConfig(template_dir=tmp_path)
        store = TemplateStore(config=config)
        with session_for(SimulatedHeadset("alice", seed=1)) as session:
            enroll_user("alice", session, store)
        with session_for(SimulatedHeadset("alice", seed=2)) as session:
            assert authenticate_user("alice", session, store).authenticated
