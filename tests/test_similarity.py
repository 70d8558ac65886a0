"""
Unit tests for similarity.py and auth.py modules.
"""

import numpy as np
import pytest

from neurolock.auth import AuthResult, authenticate, check_threshold
from neurolock.errors import DegenerateVector, DimensionMismatch, InvalidInput
from neurolock.features import FeatureVector
from neurolock.similarity import similarity


class TestSimilarity:
    """Test the cosine similarity engine."""

    def test_identity(self):
        """Test that every non-degenerate vector is exactly similar to itself."""
        rng = np.random.default_rng(0)
        for _ in range(50):
            v = FeatureVector(rng.lognormal(size=40))
            assert similarity(v, v) == 1.0

    def test_symmetry(self):
        """Test that similarity(a, b) == similarity(b, a)."""
        rng = np.random.default_rng(1)
        for _ in range(50):
            a = FeatureVector(rng.normal(size=40))
            b = FeatureVector(rng.normal(size=40))
            assert similarity(a, b) == similarity(b, a)

    def test_range(self):
        """Test that scores always lie within [0, 1]."""
        rng = np.random.default_rng(2)
        for _ in range(50):
            score = similarity(rng.normal(size=10), rng.normal(size=10))
            assert 0.0 <= score <= 1.0

    def test_orthogonal(self):
        assert similarity([1, 0, 0, 0], [0, 1, 0, 0]) == 0.0

    def test_negative_correlation_floored(self):
        """Test that opposite vectors score 0 rather than -1."""
        assert similarity([1, 2, 3], [-1, -2, -3]) == 0.0

    def test_scale_invariant(self):
        assert similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_known_value(self):
        """Test a hand-computed score."""
        # cos([1, 1], [1, 0]) = 1 / sqrt(2)
        assert similarity([1, 1], [1, 0]) == pytest.approx(2 ** -0.5)

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatch):
            similarity(FeatureVector([1, 2, 3]), FeatureVector([1, 2, 3, 4]))

    def test_zero_vector(self):
        """Test that zero-norm vectors are rejected instead of scored."""
        with pytest.raises(DegenerateVector):
            similarity([0, 0, 0], [1, 2, 3])
        with pytest.raises(DegenerateVector):
            similarity([1, 2, 3], [0, 0, 0])

    def test_near_zero_vector(self):
        with pytest.raises(DegenerateVector):
            similarity([1e-9, 0, 0], [1, 0, 0])

    @pytest.mark.parametrize("values", [
        [float("nan"), 0, 0, 0],
        [float("inf"), 1, 0, 0],
        [-float("inf"), 1, 0, 0],
    ])
    def test_non_finite_rejected(self, values):
        """Test that NaN or infinite input raises instead of scoring NaN."""
        with pytest.raises(InvalidInput):
            similarity(values, [1, 0, 0, 0])
        with pytest.raises(InvalidInput):
            similarity([1, 0, 0, 0], values)

    def test_float32_overflow_rejected(self):
        with pytest.raises(InvalidInput):
            similarity([1e39, 0, 0, 0], [1, 0, 0, 0])

    def test_degenerate_is_value_error(self):
        """Test that degenerate input can be handled as a ValueError."""
        with pytest.raises(ValueError):
            similarity([0, 0], [0, 0])


class TestAuthenticate:
    """Test the authentication decision."""

    def test_exact_match_accepted(self, alice_template):
        """Test that the enrolled vector itself authenticates."""
        result = authenticate(FeatureVector([1, 0, 0, 0]), alice_template, 0.85)

        assert isinstance(result, AuthResult)
        assert result.authenticated
        assert result.similarity_score == 1.0
        assert result.threshold == 0.85
        assert result.owner_id == "alice"

    def test_close_match_accepted(self, alice_template):
        """Test a candidate slightly off the template direction."""
        result = authenticate(FeatureVector([0.95, 0.1, 0.05, 0.0]), alice_template, 0.85)

        assert result.authenticated
        assert result.similarity_score == pytest.approx(0.9931, abs=1e-3)

    def test_orthogonal_denied(self, alice_template):
        result = authenticate(FeatureVector([0, 1, 0, 0]), alice_template, 0.85)

        assert not result.authenticated
        assert result.similarity_score == 0.0

    def test_decision_matches_threshold(self, alice_template):
        """Test authenticated == (score >= threshold) over many candidates."""
        rng = np.random.default_rng(3)
        for _ in range(100):
            candidate = FeatureVector(rng.lognormal(size=4))
            score = similarity(candidate, alice_template.feature_vector)
            for threshold in (0.0, 0.25, 0.5, 0.85, 1.0):
                result = authenticate(candidate, alice_template, threshold)
                assert result.authenticated == (score >= threshold)
                assert result.similarity_score == score

    def test_score_equal_to_threshold_accepted(self, alice_template):
        candidate = FeatureVector([1, 1, 0, 0])
        score = similarity(candidate, alice_template.feature_vector)

        assert authenticate(candidate, alice_template, score).authenticated

    def test_zero_threshold_accepts_any_scorable(self, alice_template):
        assert authenticate(FeatureVector([0, 0, 0, 1]), alice_template, 0.0).authenticated

    def test_invalid_threshold(self, alice_template):
        with pytest.raises(InvalidInput):
            authenticate(FeatureVector([1, 0, 0, 0]), alice_template, 1.5)
        with pytest.raises(InvalidInput):
            check_threshold(-0.1)

    def test_dimension_mismatch_is_not_denial(self, alice_template):
        """Test that an unscorable candidate raises rather than returning a denial."""
        with pytest.raises(DimensionMismatch):
            authenticate(FeatureVector([1, 0, 0]), alice_template, 0.85)

    def test_degenerate_candidate_is_not_denial(self, alice_template):
        with pytest.raises(DegenerateVector):
            authenticate(FeatureVector([0, 0, 0, 0]), alice_template, 0.85)

    @pytest.mark.parametrize("values", [
        [float("nan"), 0, 0, 0],
        [float("inf"), 1, 0, 0],
    ])
    def test_non_finite_candidate_is_not_denial(self, alice_template, values):
        """Test that a candidate that cannot be scored raises rather than being denied."""
        with pytest.raises(InvalidInput):
            authenticate(values, alice_template, 0.85)

    def test_to_dict(self, alice_template):
        result = authenticate(FeatureVector([1, 0, 0, 0]), alice_template, 0.85)
        data = result.to_dict()

        assert data["authenticated"] is True
        assert data["owner_id"] == "alice"
        assert data["attempts"] == 1
