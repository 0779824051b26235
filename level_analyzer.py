from dataclasses import dataclass
from typing import Optional

import numpy as np

from errors import WeakSignalError
from logging_utils import log_event
from models import Channel


@dataclass(frozen=True)
class LevelComparison:
    """RMS levels of both channels and their signed difference"""
    rms_left_db: Optional[float]    # None when below the noise floor
    rms_right_db: Optional[float]
    diff_db: float                  # right - left (positive = right louder), 0 when weak
    weak_channels: tuple[Channel, ...] = ()

    @property
    def weak(self) -> bool:
        return bool(self.weak_channels)


def rms(samples: np.ndarray) -> float:
    """Root-mean-square amplitude over the whole buffer."""
    samples = np.asarray(samples, dtype=np.float64)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples ** 2)))


def rms_db(samples: np.ndarray, noise_floor_db: float = -70.0,
           channel: Optional[Channel] = None) -> float:
    """RMS in dBFS. Raises WeakSignalError below the noise floor (never returns -inf)."""
    value = rms(samples)
    if value <= 0.0 or 20.0 * np.log10(value) < noise_floor_db:
        raise WeakSignalError(channel, value, noise_floor_db)
    return float(20.0 * np.log10(value))


def measure_rms_db(samples: np.ndarray, noise_floor_db: float,
                   channel: Optional[Channel] = None) -> Optional[float]:
    """rms_db, or None (logged) when the channel is weak."""
    try:
        return rms_db(samples, noise_floor_db, channel)
    except WeakSignalError as e:
        log_event("WARNING", "Analysis", "Weak signal", error=e)
        return None


def level_diff(left: np.ndarray, right: np.ndarray,
               noise_floor_db: float = -70.0) -> LevelComparison:
    """Compare the RMS level of both captures."""
    left_db = measure_rms_db(left, noise_floor_db, Channel.LEFT)
    right_db = measure_rms_db(right, noise_floor_db, Channel.RIGHT)
    weak = tuple(
        ch for ch, value in ((Channel.LEFT, left_db), (Channel.RIGHT, right_db)) if value is None
    )
    diff = 0.0 if weak else right_db - left_db
    return LevelComparison(left_db, right_db, diff, weak)
