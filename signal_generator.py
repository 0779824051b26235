"""
Speaker Align - Test signal synthesis

Logarithmic sine sweep (20 Hz - 20 kHz) and Voss-McCartney pink noise.
Both are returned as float64 numpy arrays with samples in [-1.0, 1.0].
"""

from typing import Optional

import numpy as np

from config import AudioConfig
from models import SignalKind

SWEEP_START_HZ = 20.0
SWEEP_END_HZ = 20000.0


def _num_samples(duration: float, sample_rate: int) -> int:
    if duration <= 0:
        raise ValueError(f"duration must be positive, got {duration}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    return int(round(duration * sample_rate))


def _fade_envelope(n: int, sample_rate: int, fade_s: float) -> np.ndarray:
    """Linear fade in/out ramp; 1.0 in the middle."""
    t = np.arange(n) / sample_rate
    duration = n / sample_rate
    if fade_s <= 0:
        return np.ones(n)
    rate = 1.0 / fade_s
    return np.minimum(1.0, t * rate) * np.minimum(1.0, (duration - t) * rate)


def sweep_instantaneous_frequency(t, duration: float,
                                  f_start: float = SWEEP_START_HZ,
                                  f_end: float = SWEEP_END_HZ) -> np.ndarray:
    """f(t) = f_start * (f_end / f_start) ** (t / duration)"""
    ratio = f_end / f_start
    return f_start * ratio ** (np.asarray(t, dtype=np.float64) / duration)


def sweep_phase(t, duration: float, f_start: float = SWEEP_START_HZ,
                f_end: float = SWEEP_END_HZ) -> np.ndarray:
    """Closed-form integral of 2*pi*f(t); continuous, starts at 0."""
    ratio = f_end / f_start
    t = np.asarray(t, dtype=np.float64)
    return 2.0 * np.pi * f_start * duration / np.log(ratio) * (ratio ** (t / duration) - 1.0)


def generate_sweep(duration: float, sample_rate: int, amplitude: float = 0.7,
                   fade_s: float = 0.05) -> np.ndarray:
    """Exponential sine sweep from 20 Hz to 20 kHz over duration seconds."""
    n = _num_samples(duration, sample_rate)
    t = np.arange(n) / sample_rate
    envelope = _fade_envelope(n, sample_rate, fade_s)
    return np.sin(sweep_phase(t, duration)) * amplitude * envelope


def generate_pink_noise(duration: float, sample_rate: int, amplitude: float = 0.25,
                        fade_s: float = 0.1, rows: int = 16,
                        seed: Optional[int] = None) -> np.ndarray:
    """
    Voss-McCartney pink noise.

    Row k holds a random value that is refreshed every 2**k samples (the row
    picked at sample n is the number of trailing zeros of n), so each row
    covers one octave. Summing the rows plus a per-sample white term gives an
    approximately 1/f spectrum. The result is peak-normalised to amplitude.
    """
    n = _num_samples(duration, sample_rate)
    if rows < 1:
        raise ValueError(f"rows must be >= 1, got {rows}")
    rng = np.random.default_rng(seed)

    counter = np.arange(1, n + 1)
    lowest_bit = counter & -counter
    trailing_zeros = np.log2(lowest_bit).astype(np.int64)

    values = np.full((rows, n), np.nan)
    values[:, 0] = rng.uniform(-1.0, 1.0, rows)
    for row in range(rows):
        updates = np.nonzero(trailing_zeros == row)[0]
        updates = updates[updates > 0]
        values[row, updates] = rng.uniform(-1.0, 1.0, updates.size)

    # Forward-fill each row between its updates
    held = np.where(np.isnan(values), 0, np.arange(n))
    np.maximum.accumulate(held, axis=1, out=held)
    values = values[np.arange(rows)[:, None], held]

    pink = values.sum(axis=0) + rng.uniform(-1.0, 1.0, n)
    peak = float(np.max(np.abs(pink)))
    if peak > 0:
        pink = pink / peak
    return pink * amplitude * _fade_envelope(n, sample_rate, fade_s)


def generate(kind: SignalKind, duration: float, sample_rate: int,
             audio: Optional[AudioConfig] = None) -> np.ndarray:
    """Synthesize the excitation signal selected for a capture."""
    audio = audio or AudioConfig()
    kind = SignalKind(kind)
    if kind is SignalKind.SWEEP:
        return generate_sweep(duration, sample_rate, audio.sweep_amplitude, audio.sweep_fade_s)
    return generate_pink_noise(
        duration,
        sample_rate,
        amplitude=audio.noise_amplitude,
        fade_s=audio.noise_fade_s,
        rows=audio.noise_rows,
        seed=audio.noise_seed,
    )
