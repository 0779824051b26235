"""Low- vs high-band balance comparison.

Display-only diagnostic: the tilt difference feeds the toe-in/toe-out
recommendation but is not part of the composite score.
"""

from typing import Optional

import numpy as np

from config import AudioConfig
from frequency_utils import band_index_for_frequency


def split_index(num_bands: int, split_hz: Optional[float] = None,
                audio: Optional[AudioConfig] = None) -> int:
    """First band of the 'high' subset."""
    if split_hz is None:
        return num_bands // 2
    audio = audio or AudioConfig()
    index = band_index_for_frequency(split_hz, num_bands, audio.min_freq_hz, audio.max_freq_hz)
    if index is None:
        raise ValueError(f"Tilt split {split_hz} Hz is outside the banded range")
    return min(max(index, 1), num_bands - 1)


def spectral_slope(bands: np.ndarray, split: int) -> float:
    """Mean high-band level minus mean low-band level (dB)."""
    bands = np.asarray(bands, dtype=np.float64)
    return float(bands[split:].mean() - bands[:split].mean())


def tilt_diff(bands_left: np.ndarray, bands_right: np.ndarray,
              split_hz: Optional[float] = None,
              audio: Optional[AudioConfig] = None) -> float:
    """Right slope minus left slope; positive = right speaker relatively brighter."""
    bands_left = np.asarray(bands_left, dtype=np.float64)
    bands_right = np.asarray(bands_right, dtype=np.float64)
    if bands_left.shape != bands_right.shape or bands_left.size < 2:
        raise ValueError("Band arrays must have the same length (>= 2)")
    split = split_index(bands_left.size, split_hz, audio)
    return spectral_slope(bands_right, split) - spectral_slope(bands_left, split)
