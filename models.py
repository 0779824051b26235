"""
Speaker Align - Measurement data model

Value types shared by the analysis modules and the capture orchestrator.
All measurement types are frozen; sample and band arrays are made read-only
when they are wrapped so that snapshots handed to readers cannot be mutated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

import numpy as np


class Channel(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class SignalKind(str, Enum):
    """Excitation signal played during a capture"""
    SWEEP = "sweep"
    NOISE = "noise"       # Pink noise (Voss-McCartney)


class Step(str, Enum):
    IDLE = "idle"
    CAPTURING_LEFT = "capturing_left"
    CAPTURING_RIGHT = "capturing_right"
    ANALYZING = "analyzing"
    RESULTS = "results"


class Confidence(str, Enum):
    HIGH = "high"
    LOW = "low"


class MeasurementIssue(str, Enum):
    """Non-fatal conditions that lower confidence in a result"""
    WEAK_SIGNAL = "weak_signal"
    AMBIGUOUS_CORRELATION = "ambiguous_correlation"
    SHORT_CAPTURE = "short_capture"


class Trend(str, Enum):
    NONE = "none"         # First entry, nothing to compare against
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


def _frozen_array(values) -> np.ndarray:
    array = np.array(values, dtype=np.float64)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class CaptureBuffer:
    """Mono samples recorded for one channel"""
    samples: np.ndarray
    channel: Channel
    sample_rate: int

    def __post_init__(self):
        object.__setattr__(self, "samples", _frozen_array(self.samples))

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        return len(self) / float(self.sample_rate)


@dataclass(frozen=True, eq=False)
class SpectrumBands:
    """Log-spaced band levels in dB; same band edges for every analysis"""
    values: np.ndarray
    low_confidence: bool = False   # Capture was shorter than one FFT frame

    def __post_init__(self):
        object.__setattr__(self, "values", _frozen_array(self.values))

    def __len__(self) -> int:
        return int(self.values.shape[0])


@dataclass(frozen=True, eq=False)
class ChannelMeasurement:
    buffer: CaptureBuffer
    bands: SpectrumBands
    rms_db: Optional[float]        # None when the channel is below the noise floor

    @property
    def channel(self) -> Channel:
        return self.buffer.channel

    @property
    def weak(self) -> bool:
        return self.rms_db is None


@dataclass(frozen=True, eq=False)
class AnalysisResult:
    """Comparison of the left and right measurements"""
    delay_ms: float                 # Positive = right arrives later than left
    distance_cm: float              # Path-length equivalent of delay_ms
    leading_channel: Optional[Channel]
    level_diff_db: float            # Positive = right louder
    spectral_diff_db: float         # Mean absolute per-band difference
    tilt_db: float                  # Display-only diagnostic
    score: int                      # 0-100
    spectral_points: float
    level_points: float
    timing_points: float
    optimal: bool
    recommendations: tuple[str, ...] = ()
    issues: tuple[MeasurementIssue, ...] = ()
    band_diff_db: np.ndarray = field(default_factory=lambda: np.zeros(0))
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        object.__setattr__(self, "band_diff_db", _frozen_array(self.band_diff_db))
        object.__setattr__(self, "recommendations", tuple(self.recommendations))
        object.__setattr__(self, "issues", tuple(self.issues))

    @property
    def confidence(self) -> Confidence:
        return Confidence.LOW if self.issues else Confidence.HIGH

    @property
    def low_confidence(self) -> bool:
        return bool(self.issues)
