from functools import lru_cache
from typing import Optional

import numpy as np


@lru_cache(maxsize=8)
def band_edges(num_bands: int, min_freq: float = 20.0, max_freq: float = 20000.0) -> np.ndarray:
    """Return num_bands + 1 log-spaced band edges in Hz (read-only, cached)."""
    if num_bands <= 0:
        raise ValueError(f"num_bands must be positive, got {num_bands}")
    if not 0.0 < min_freq < max_freq:
        raise ValueError(f"Invalid band range: {min_freq}-{max_freq} Hz")
    edges = np.logspace(np.log10(min_freq), np.log10(max_freq), num_bands + 1)
    edges.setflags(write=False)
    return edges


def band_center_freq(index: int, num_bands: int, min_freq: float = 20.0,
                     max_freq: float = 20000.0) -> float:
    """Geometric center frequency of a band."""
    log_min = np.log10(min_freq)
    log_max = np.log10(max_freq)
    return float(10 ** (log_min + (log_max - log_min) * (index + 0.5) / num_bands))


def freq_label(index: int, num_bands: int, min_freq: float = 20.0,
               max_freq: float = 20000.0) -> str:
    """Short axis label for a band ('20', '440', '1k', '16k')."""
    f = band_center_freq(index, num_bands, min_freq, max_freq)
    if f >= 1000.0:
        return f"{f / 1000.0:.0f}k"
    return f"{f:.0f}"


def band_index_for_frequency(freq: float, num_bands: int, min_freq: float = 20.0,
                             max_freq: float = 20000.0) -> Optional[int]:
    """Index of the band whose range contains freq, or None outside the banded range."""
    if freq < min_freq or freq > max_freq:
        return None
    edges = band_edges(num_bands, min_freq, max_freq)
    index = int(np.searchsorted(edges, freq, side='right')) - 1
    return min(max(index, 0), num_bands - 1)
