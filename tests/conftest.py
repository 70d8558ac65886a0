"""
Pytest configuration and fixtures.
"""

import numpy as np
import pytest

from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.features import FeatureVector
from neurolock.store import TemplateStore
from neurolock.template import build_template


class ToneSource:
    """Signal source producing the same pure tone on every channel."""

    def __init__(self, *freqs, noise_std=0.01, seed=0):
        self.freqs = list(freqs)
        self.noise_std = noise_std
        self.reads = 0
        self._rng = np.random.default_rng(seed)

    def read(self, num_channels, num_samples, sampling_rate, task):
        freq = self.freqs[self.reads % len(self.freqs)]
        self.reads += 1
        t = np.arange(num_samples) / sampling_rate
        tone = np.sin(2 * np.pi * freq * t)
        data = np.tile(tone, (num_channels, 1))
        return data + self._rng.normal(scale=self.noise_std, size=data.shape)


@pytest.fixture
def small_config(tmp_path):
    """Four-dimensional configuration with a temporary template directory."""
    return NeuroLockConfig(dimension=4, template_dir=tmp_path / "templates")


@pytest.fixture
def store(small_config):
    return TemplateStore(config=small_config)


@pytest.fixture
def alice_template(small_config):
    """Template enrolled from three identical [1, 0, 0, 0] trials."""
    trials = [FeatureVector([1, 0, 0, 0]) for _ in range(3)]
    return build_template("alice", trials, MentalTask.EYES_CLOSED_REST, small_config)


@pytest.fixture
def full_config(tmp_path):
    """Default 40-feature configuration with a temporary template directory."""
    return NeuroLockConfig(template_dir=tmp_path / "templates")
