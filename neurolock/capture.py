"""
EEG capture sessions.

Device state lives on an explicit CaptureSession handle rather than in module
globals, so independent sessions (and tests) never share connection state.
The bundled source is a synthetic headset: each subject gets a stable
spectral profile derived from their name, and every recording adds
per-trial variability and white noise on top of it.
"""

import enum
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import numpy as np
from numpy.random import Generator

from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.errors import CaptureError, InvalidInput
from neurolock.memory import secure_wipe

logger = logging.getLogger(__name__)

# Centre frequency (Hz) of the rhythm simulated in each band
BAND_CENTRES = (2.0, 6.0, 10.0, 20.0, 40.0)


class DeviceStatus(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass(eq=False)
class EEGSample:
    """
    Raw multi-channel recording.

    Attributes:
        data: Array of shape (channels, samples)
        sampling_rate: Sampling rate in Hz
        task: Mental task performed during the recording
        timestamp_ms: Capture time in milliseconds since the epoch
    """

    data: np.ndarray
    sampling_rate: float
    task: MentalTask
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def num_channels(self) -> int:
        return int(self.data.shape[0])

    @property
    def num_samples(self) -> int:
        return int(self.data.shape[1])

    def wipe(self) -> None:
        secure_wipe(self.data)


class SignalSource(Protocol):
    """Anything that can produce raw samples for a session."""

    def read(self, num_channels: int, num_samples: int,
             sampling_rate: float, task: MentalTask) -> np.ndarray:
        ...


# ============================================================================
# Simulated headset
# ============================================================================

def subject_rng(subject: str, label: str = "") -> Generator:
    """
    Deterministic NumPy RNG for a subject and optional label.

    Uses HMAC-SHA256(subject, label) to derive the seed.
    """
    h = hmac.new(subject.encode("utf-8"), label.encode("utf-8"), hashlib.sha256)
    entropy = int.from_bytes(h.digest()[:8], "little")
    return np.random.default_rng(np.random.SeedSequence(entropy))


class SimulatedHeadset:
    """Synthetic EEG source with a stable per-subject spectral signature."""

    def __init__(self, subject: str = "default", noise_std: float = 0.2,
                 trial_jitter: float = 0.05, seed: Optional[int] = None):
        """
        Args:
            subject: Name keying the spectral profile
            noise_std: Standard deviation of additive white noise
            trial_jitter: Log-scale spread of per-trial amplitude changes
            seed: Seed for the per-recording randomness (None: OS entropy)
        """
        self.subject = subject
        self.noise_std = noise_std
        self.trial_jitter = trial_jitter
        self._rng = np.random.default_rng(seed)

    def profile(self, num_channels: int, task: MentalTask) -> np.ndarray:
        """Per-channel, per-band amplitudes for a subject performing a task."""
        base = subject_rng(self.subject, "profile").lognormal(
            sigma=1.0, size=(num_channels, len(BAND_CENTRES)))
        task_mod = subject_rng(self.subject, f"task-{int(task)}").lognormal(
            sigma=0.3, size=(num_channels, len(BAND_CENTRES)))
        return base * task_mod

    def read(self, num_channels: int, num_samples: int,
             sampling_rate: float, task: MentalTask) -> np.ndarray:
        amplitudes = self.profile(num_channels, task)
        amplitudes = amplitudes * self._rng.lognormal(
            sigma=self.trial_jitter, size=amplitudes.shape)
        t = np.arange(num_samples) / sampling_rate
        phases = self._rng.uniform(0, 2 * np.pi, size=amplitudes.shape)

        data = np.zeros((num_channels, num_samples), dtype=np.float64)
        for b, freq in enumerate(BAND_CENTRES):
            data += amplitudes[:, b:b + 1] * np.sin(
                2 * np.pi * freq * t[np.newaxis, :] + phases[:, b:b + 1])
        data += self._rng.normal(scale=self.noise_std, size=data.shape)
        return data.astype(np.float32)


# ============================================================================
# Session
# ============================================================================

class CaptureSession:
    """Connection to one EEG device."""

    def __init__(self, device_name: str = "default_eeg_device",
                 source: Optional[SignalSource] = None,
                 config: Optional[NeuroLockConfig] = None):
        self.device_name = device_name
        self.source = source or SimulatedHeadset()
        self.config = config or NeuroLockConfig()
        self._status = DeviceStatus.DISCONNECTED

    @property
    def status(self) -> DeviceStatus:
        return self._status

    def connect(self) -> None:
        if self._status != DeviceStatus.DISCONNECTED:
            raise CaptureError(f"Device '{self.device_name}' is already {self._status.value}")
        logger.info("Connecting to device: %s", self.device_name)
        self._status = DeviceStatus.CONNECTED

    def start_streaming(self) -> None:
        if self._status != DeviceStatus.CONNECTED:
            raise CaptureError("Device not connected")
        logger.info("EEG streaming started")
        self._status = DeviceStatus.STREAMING

    def stop_streaming(self) -> None:
        if self._status != DeviceStatus.STREAMING:
            raise CaptureError("Device not streaming")
        logger.info("EEG streaming stopped")
        self._status = DeviceStatus.CONNECTED

    def disconnect(self) -> None:
        if self._status == DeviceStatus.STREAMING:
            self.stop_streaming()
        if self._status != DeviceStatus.DISCONNECTED:
            logger.info("Disconnected from device: %s", self.device_name)
        self._status = DeviceStatus.DISCONNECTED

    def __enter__(self) -> "CaptureSession":
        self.connect()
        self.start_streaming()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()
        return False

    def record(self, duration: Optional[float] = None,
               task: MentalTask = MentalTask.EYES_CLOSED_REST) -> EEGSample:
        """
        Record a sample while the subject performs a task.

        Args:
            duration: Seconds to record (default: config.capture_duration)
            task: Mental task being performed

        Returns:
            EEGSample of shape (num_channels, duration * sampling_rate)

        Raises:
            CaptureError: If the session is not streaming or the source fails
            InvalidInput: If the duration is not positive
        """
        if self._status != DeviceStatus.STREAMING:
            raise CaptureError("Device not streaming")
        duration = self.config.capture_duration if duration is None else duration
        if duration <= 0:
            raise InvalidInput(f"Capture duration must be positive, got {duration}")

        rate = self.config.sampling_rate
        num_samples = int(duration * rate)
        logger.info("Recording %.1f s of EEG (%s)", duration, MentalTask(task).name)
        try:
            data = self.source.read(self.config.num_channels, num_samples, rate, MentalTask(task))
        except (OSError, RuntimeError) as e:
            self._status = DeviceStatus.ERROR
            raise CaptureError(f"Capture from '{self.device_name}' failed: {e}") from e

        return EEGSample(data=np.asarray(data, dtype=np.float32),
                         sampling_rate=float(rate), task=MentalTask(task))
