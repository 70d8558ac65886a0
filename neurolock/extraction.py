"""
Band-power feature extraction.

Each channel is normalised to zero mean and unit variance, transformed with
an FFT over the first window, and reduced to the summed power in the five
classical EEG bands. The feature vector is laid out channel-major:
[ch0_delta, ch0_theta, ..., ch7_gamma].
"""

import logging

import numpy as np

from neurolock.capture import EEGSample
from neurolock.errors import InvalidInput
from neurolock.features import FeatureVector
from neurolock.memory import wiped_array

logger = logging.getLogger(__name__)

WINDOW_SIZE = 256

FREQUENCY_BANDS = (
    ("delta", 0.5, 4.0),
    ("theta", 4.0, 8.0),
    ("alpha", 8.0, 13.0),
    ("beta", 13.0, 30.0),
    ("gamma", 30.0, 100.0),
)


def normalize_signal(data: np.ndarray) -> np.ndarray:
    """Per-channel z-score; flat channels are only mean-centred."""
    data = np.asarray(data, dtype=np.float64)
    mean = data.mean(axis=1, keepdims=True)
    std = data.std(axis=1, keepdims=True)
    std[std < 1e-6] = 1.0
    return (data - mean) / std


def band_powers(channel: np.ndarray, sampling_rate: float,
                window: int = WINDOW_SIZE) -> np.ndarray:
    """Summed squared FFT magnitude in each frequency band of one channel."""
    spectrum = np.abs(np.fft.rfft(channel[:window]))
    fft_size = window // 2
    resolution = sampling_rate / window

    powers = np.zeros(len(FREQUENCY_BANDS))
    for i, (_, low, high) in enumerate(FREQUENCY_BANDS):
        lo = int(low / resolution)
        hi = min(int(high / resolution), fft_size)
        powers[i] = np.sum(spectrum[lo:hi] ** 2)
    return powers


def extract_features(sample: EEGSample, window: int = WINDOW_SIZE) -> FeatureVector:
    """
    Map a raw sample to its band-power feature vector.

    Args:
        sample: Recording of shape (channels, samples)
        window: FFT window length in samples

    Returns:
        FeatureVector of length channels * 5, tagged with the sample's task

    Raises:
        InvalidInput: If the sample is shorter than one window
    """
    if sample.data.ndim != 2:
        raise InvalidInput("EEG sample must be a (channels, samples) array")
    if sample.num_samples < window:
        raise InvalidInput(
            f"Sample has {sample.num_samples} samples, at least {window} are required"
        )

    with wiped_array(normalize_signal(sample.data)) as normalized:
        features = np.concatenate([
            band_powers(normalized[ch], sample.sampling_rate, window)
            for ch in range(sample.num_channels)
        ])
        with wiped_array(features):
            vector = FeatureVector(features, task=sample.task)

    logger.debug("Extracted %d band power features", len(vector))
    return vector
