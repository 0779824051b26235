"""
Speaker Align - Inter-channel delay estimation

Normalized cross-correlation of the left and right captures inside a bounded
lag window. A positive lag means the right capture arrives later, i.e. the
left speaker leads.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.signal import correlate, correlation_lags, find_peaks

from config import AnalysisConfig
from errors import AmbiguousCorrelationError
from level_analyzer import rms
from logging_utils import log_event
from models import Channel, Confidence, MeasurementIssue


@dataclass(frozen=True)
class DelayEstimate:
    lag_samples: int
    delay_ms: float
    leading_channel: Optional[Channel]   # None when both arrive together
    confidence: Confidence
    peak: float                          # Normalized correlation at the chosen lag
    runner_up: float = 0.0               # Highest peak outside the main lobe
    issues: tuple[MeasurementIssue, ...] = ()

    def distance_cm(self, speed_of_sound_m_s: float = AnalysisConfig.speed_of_sound_m_s) -> float:
        return delay_to_distance_cm(self.delay_ms, speed_of_sound_m_s)


def delay_to_distance_cm(delay_ms: float,
                         speed_of_sound_m_s: float = AnalysisConfig.speed_of_sound_m_s) -> float:
    """Path-length difference (cm) equivalent to an arrival-time difference."""
    return abs(delay_ms) * speed_of_sound_m_s / 10.0


def _leading(lag: int) -> Optional[Channel]:
    if lag > 0:
        return Channel.LEFT
    if lag < 0:
        return Channel.RIGHT
    return None


def _runner_up(corr: np.ndarray, peak_idx: int, exclusion: int) -> float:
    """Highest local maximum of corr outside +/- exclusion samples of the main peak."""
    peaks, _ = find_peaks(corr)
    far = peaks[np.abs(peaks - peak_idx) > exclusion]
    if far.size == 0:
        return 0.0
    return float(corr[far].max())


def estimate_delay(left: np.ndarray, right: np.ndarray, sample_rate: int,
                   analysis: Optional[AnalysisConfig] = None) -> DelayEstimate:
    """Estimate how much later the right capture arrives than the left one."""
    analysis = analysis or AnalysisConfig()
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    left = np.asarray(left, dtype=np.float64)
    right = np.asarray(right, dtype=np.float64)

    issues = []
    noise_floor = 10.0 ** (analysis.noise_floor_db / 20.0)
    if rms(left) < noise_floor or rms(right) < noise_floor:
        issues.append(MeasurementIssue.WEAK_SIGNAL)

    energy = float(np.sqrt(np.sum(left ** 2) * np.sum(right ** 2)))
    if energy <= 0.0:
        log_event("WARNING", "Analysis", "Cannot correlate silent capture")
        return DelayEstimate(0, 0.0, None, Confidence.LOW, 0.0, 0.0,
                             (MeasurementIssue.WEAK_SIGNAL,))

    # corr[k] = sum_n right[n + k] * left[n]
    corr = correlate(right, left, mode='full', method='fft') / energy
    lags = correlation_lags(right.size, left.size, mode='full')

    max_lag = int(round(analysis.max_lag_ms * sample_rate / 1000.0))
    window = np.abs(lags) <= max_lag
    corr = corr[window]
    lags = lags[window]

    peak_idx = int(np.argmax(corr))
    peak = float(corr[peak_idx])
    lag = int(lags[peak_idx])

    exclusion = max(1, int(round(analysis.peak_exclusion_ms * sample_rate / 1000.0)))
    runner_up = _runner_up(corr, peak_idx, exclusion)
    # A weak global peak means the captures are not copies of one signal
    if peak < analysis.min_correlation_peak or runner_up >= analysis.ambiguity_ratio * peak:
        issues.append(MeasurementIssue.AMBIGUOUS_CORRELATION)
        log_event("WARNING", "Analysis", "Delay estimate is low-confidence",
                  error=AmbiguousCorrelationError(peak, runner_up))

    delay_ms = lag * 1000.0 / sample_rate
    confidence = Confidence.LOW if issues else Confidence.HIGH
    log_event("DEBUG", "Analysis", "Delay estimated", lag=lag, delay_ms=f"{delay_ms:.3f}",
              peak=f"{peak:.3f}", runner_up=f"{runner_up:.3f}", confidence=confidence.value)
    return DelayEstimate(lag, delay_ms, _leading(lag), confidence, peak, runner_up, tuple(issues))
