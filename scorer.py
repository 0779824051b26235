"""
Speaker Align - Composite scoring

score = spectral (0-50) + level (0-25) + timing (0-25), each term a clamped
linear function that is maximal at zero difference and reaches 0 at its
saturation threshold. Low-confidence inputs are scored conservatively:
an ambiguous delay peak scales the timing term down and a weak channel caps
the total below the optimal threshold.
"""

from typing import Iterable, Optional

import numpy as np

from config import AnalysisConfig, ScoringConfig
from correlation_estimator import delay_to_distance_cm
from models import AnalysisResult, Channel, Confidence, MeasurementIssue

def _linear_points(value: float, max_points: float, saturation: float) -> float:
    if saturation <= 0:
        return max_points if value == 0 else 0.0
    return float(np.clip(max_points * (1.0 - abs(value) / saturation), 0.0, max_points))


def spectral_difference(bands_left: np.ndarray, bands_right: np.ndarray) -> float:
    """Mean absolute per-band dB difference."""
    bands_left = np.asarray(bands_left, dtype=np.float64)
    bands_right = np.asarray(bands_right, dtype=np.float64)
    if bands_left.shape != bands_right.shape or bands_left.size == 0:
        raise ValueError("Band arrays must be non-empty and the same length")
    return float(np.mean(np.abs(bands_right - bands_left)))


def spectral_points(spectral_diff_db: float, config: ScoringConfig) -> float:
    return _linear_points(spectral_diff_db, config.spectral_max_points, config.spectral_saturation_db)


def level_points(level_diff_db: float, config: ScoringConfig) -> float:
    return _linear_points(level_diff_db, config.level_max_points, config.level_saturation_db)


def timing_points(delay_ms: float, config: ScoringConfig, ambiguous: bool = False) -> float:
    points = _linear_points(delay_ms, config.timing_max_points, config.timing_saturation_ms)
    if ambiguous:
        points *= config.ambiguous_timing_factor
    return points


def _distance_label(distance_cm: float) -> str:
    if distance_cm < 1.0:
        return f"{distance_cm * 10.0:.1f} mm"
    return f"{distance_cm:.1f} cm"


def build_recommendations(delay_ms: float, distance_cm: float, level_diff_db: float,
                          tilt_db: float, score: int, issues: Iterable[MeasurementIssue],
                          config: ScoringConfig) -> list[str]:
    """Threshold-triggered placement advice, most urgent first."""
    issues = tuple(issues)
    guides = []

    if MeasurementIssue.WEAK_SIGNAL in issues:
        guides.append("Measurement unreliable: microphone level is too low. "
                      "Raise the playback volume or move the microphone closer and re-capture.")
    if MeasurementIssue.SHORT_CAPTURE in issues:
        guides.append("Measurement unreliable: the capture was too short for a full analysis frame.")
    if MeasurementIssue.AMBIGUOUS_CORRELATION in issues:
        guides.append("Timing estimate is uncertain (no clear correlation peak); "
                      "treat the delay advice with caution and re-capture with the room quiet.")

    if abs(delay_ms) > config.delay_threshold_ms:
        if delay_ms > 0:
            action = "Move the right speaker closer (or the left speaker farther)"
        else:
            action = "Move the left speaker closer (or the right speaker farther)"
        marker = " (large)" if abs(delay_ms) > config.delay_severe_ms else ""
        guides.append(f"{action} by about {_distance_label(distance_cm)}{marker}")

    if abs(level_diff_db) > config.level_threshold_db:
        if level_diff_db > 0:
            action = "Right speaker is louder: lower its gain or move it away / angle it off-axis"
        else:
            action = "Right speaker is quieter: raise its gain or move it closer / aim it at the listener"
        marker = " (large)" if abs(level_diff_db) > config.level_severe_db else ""
        guides.append(f"{action} (difference {abs(level_diff_db):.1f} dB){marker}")

    if abs(tilt_db) > config.tilt_threshold_db:
        if tilt_db > 0:
            action = "Right speaker has more treble than the left: toe it out slightly"
        else:
            action = "Right speaker lacks treble compared to the left: toe it in toward the listener"
        marker = " (large)" if abs(tilt_db) > config.tilt_severe_db else ""
        guides.append(f"{action} (tilt {abs(tilt_db):.1f} dB){marker}")

    if not guides and score >= config.optimal_score:
        guides.append("Optimal placement reached: both speakers are symmetrically aligned.")
    return guides


def score(bands_left: np.ndarray, bands_right: np.ndarray, level_diff_db: float,
          delay_ms: float, confidence: Confidence = Confidence.HIGH, *,
          tilt_db: float = 0.0, issues: Iterable[MeasurementIssue] = (),
          config: Optional[ScoringConfig] = None,
          speed_of_sound_m_s: float = AnalysisConfig.speed_of_sound_m_s) -> AnalysisResult:
    """Combine the channel comparisons into a 0-100 score with recommendations."""
    config = config or ScoringConfig()
    issues = tuple(dict.fromkeys(issues))
    if Confidence(confidence) is Confidence.LOW and not issues:
        # Low confidence without a reason is treated as an unreliable delay
        issues = (MeasurementIssue.AMBIGUOUS_CORRELATION,)

    bands_left = np.asarray(bands_left, dtype=np.float64)
    bands_right = np.asarray(bands_right, dtype=np.float64)
    spectral_diff = spectral_difference(bands_left, bands_right)

    spectral = spectral_points(spectral_diff, config)
    level = level_points(level_diff_db, config)
    timing = timing_points(delay_ms, config,
                           ambiguous=MeasurementIssue.AMBIGUOUS_CORRELATION in issues)

    total = int(round(min(100.0, max(0.0, spectral + level + timing))))
    if MeasurementIssue.WEAK_SIGNAL in issues or MeasurementIssue.SHORT_CAPTURE in issues:
        total = min(total, int(config.weak_signal_score_cap))

    distance_cm = delay_to_distance_cm(delay_ms, speed_of_sound_m_s)
    if delay_ms > 0:
        leading = Channel.LEFT
    elif delay_ms < 0:
        leading = Channel.RIGHT
    else:
        leading = None

    recommendations = build_recommendations(delay_ms, distance_cm, level_diff_db, tilt_db,
                                            total, issues, config)
    return AnalysisResult(
        delay_ms=float(delay_ms),
        distance_cm=float(distance_cm),
        leading_channel=leading,
        level_diff_db=float(level_diff_db),
        spectral_diff_db=spectral_diff,
        tilt_db=float(tilt_db),
        score=total,
        spectral_points=spectral,
        level_points=level,
        timing_points=timing,
        optimal=total >= config.optimal_score and not issues,
        recommendations=tuple(recommendations),
        issues=issues,
        band_diff_db=bands_right - bands_left,
    )
