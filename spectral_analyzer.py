"""
Speaker Align - Spectral analysis

Averaged Hann-windowed FFT of a capture, folded into log-spaced bands.
Band edges depend only on (num_bands, min_freq, max_freq), so two analyses
with the same config can be compared index by index.
"""

from typing import Optional

import numpy as np
from scipy.signal import butter, sosfilt
from scipy.signal.windows import hann

from config import AnalysisConfig, AudioConfig
from frequency_utils import band_edges
from models import SpectrumBands


def highpass_filter(samples: np.ndarray, cutoff_hz: float, sample_rate: int,
                    order: int = 2) -> np.ndarray:
    """Butterworth high-pass used to strip room rumble (fans, desk vibration) from captures."""
    samples = np.asarray(samples, dtype=np.float64)
    if cutoff_hz <= 0 or samples.size == 0:
        return samples.copy()
    nyquist = sample_rate / 2.0
    sos = butter(order, min(cutoff_hz / nyquist, 0.99), btype='highpass', output='sos')
    return sosfilt(sos, samples)


def average_power_spectrum(samples: np.ndarray, fft_size: int) -> tuple[np.ndarray, bool]:
    """
    Mean power spectrum over consecutive non-overlapping frames.

    Each frame is Hann-windowed and transformed with an rfft; power is
    |X|^2 / fft_size^2. Returns (power, short) where short is True when the
    buffer was shorter than one frame and had to be zero-padded.
    """
    samples = np.asarray(samples, dtype=np.float64)
    num_frames = samples.size // fft_size
    short = num_frames == 0
    if short:
        padded = np.zeros(fft_size)
        padded[:samples.size] = samples
        frames = padded.reshape(1, fft_size)
    else:
        frames = samples[:num_frames * fft_size].reshape(num_frames, fft_size)

    window = hann(fft_size, sym=False)
    spectra = np.fft.rfft(frames * window, axis=1)
    power = (np.abs(spectra) ** 2) / float(fft_size) ** 2
    return power.mean(axis=0), short


def _band_bin_ranges(num_bins: int, fft_size: int, sample_rate: int,
                     edges: np.ndarray) -> list[tuple[int, int]]:
    """(start, stop) bin slice per band; empty bands fall back to the nearest bin."""
    bin_freqs = np.arange(num_bins) * sample_rate / fft_size
    starts = np.searchsorted(bin_freqs, edges[:-1], side='left')
    stops = np.searchsorted(bin_freqs, edges[1:], side='left')
    ranges = []
    for band, (start, stop) in enumerate(zip(starts, stops)):
        if stop > start:
            ranges.append((int(start), int(stop)))
            continue
        center = np.sqrt(edges[band] * edges[band + 1])
        nearest = int(np.clip(round(center * fft_size / sample_rate), 0, num_bins - 1))
        ranges.append((nearest, nearest + 1))
    return ranges


def spectrum_to_bands(power: np.ndarray, sample_rate: int, fft_size: int,
                      audio: Optional[AudioConfig] = None,
                      analysis: Optional[AnalysisConfig] = None) -> np.ndarray:
    """Mean power of the bins inside each log band, in dB, floored at db_floor."""
    audio = audio or AudioConfig()
    analysis = analysis or AnalysisConfig()
    edges = band_edges(audio.num_bands, audio.min_freq_hz, audio.max_freq_hz)
    ranges = _band_bin_ranges(len(power), fft_size, sample_rate, edges)

    band_power = np.array([power[start:stop].mean() for start, stop in ranges])
    floor_power = analysis.db_reference * 10.0 ** (analysis.db_floor / 10.0)
    with np.errstate(divide='ignore'):
        db = 10.0 * np.log10(np.maximum(band_power, floor_power) / analysis.db_reference)
    return np.maximum(db, analysis.db_floor)


def analyze(samples: np.ndarray, sample_rate: int, audio: Optional[AudioConfig] = None,
            analysis: Optional[AnalysisConfig] = None) -> SpectrumBands:
    """Convert a captured waveform into num_bands log-spaced dB levels."""
    audio = audio or AudioConfig()
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    power, short = average_power_spectrum(samples, audio.fft_size)
    values = spectrum_to_bands(power, sample_rate, audio.fft_size, audio, analysis)
    return SpectrumBands(values=values, low_confidence=short)
