import unittest

import numpy as np

from config import AnalysisConfig
from correlation_estimator import delay_to_distance_cm, estimate_delay
from models import Channel, Confidence, MeasurementIssue


def _noise(n=48000, seed=0):
    return np.random.default_rng(seed).normal(0.0, 0.1, n)


def _delayed(samples, shift):
    """Copy of samples arriving shift samples later (earlier when negative)."""
    out = np.zeros_like(samples)
    if shift >= 0:
        out[shift:] = samples[:samples.size - shift]
    else:
        out[:shift] = samples[-shift:]
    return out


class TestCorrelationEstimator(unittest.TestCase):
    def test_self_correlation_is_zero_delay(self):
        noise = _noise()
        est = estimate_delay(noise, noise, 48000)

        self.assertEqual(est.lag_samples, 0)
        self.assertEqual(est.delay_ms, 0.0)
        self.assertIsNone(est.leading_channel)
        self.assertEqual(est.confidence, Confidence.HIGH)
        self.assertAlmostEqual(est.peak, 1.0, places=6)
        self.assertEqual(est.issues, ())

    def test_right_lag_means_left_leads(self):
        left = _noise()
        right = _delayed(left, 240)
        est = estimate_delay(left, right, 48000)

        self.assertLessEqual(abs(est.lag_samples - 240), 1)
        self.assertAlmostEqual(est.delay_ms, 5.0, delta=1000.0 / 48000)
        self.assertEqual(est.leading_channel, Channel.LEFT)
        self.assertEqual(est.confidence, Confidence.HIGH)

    def test_left_lag_means_right_leads(self):
        left = _noise(seed=1)
        right = _delayed(left, -96)
        est = estimate_delay(left, right, 48000)

        self.assertEqual(est.lag_samples, -96)
        self.assertAlmostEqual(est.delay_ms, -2.0, places=6)
        self.assertEqual(est.leading_channel, Channel.RIGHT)

    def test_distance_equivalent(self):
        left = _noise(seed=2)
        est = estimate_delay(left, _delayed(left, 48), 48000)

        # 1 ms at 343 m/s
        self.assertAlmostEqual(est.distance_cm(), 34.3, places=6)

    def test_lag_outside_window_is_not_found(self):
        left = _noise(seed=3)
        right = _delayed(left, 480)
        est = estimate_delay(left, right, 48000, AnalysisConfig(max_lag_ms=5.0))

        self.assertLessEqual(abs(est.delay_ms), 5.0)

    def test_periodic_signal_is_ambiguous(self):
        t = np.arange(48000) / 48000.0
        tone = 0.5 * np.sin(2.0 * np.pi * 500.0 * t)
        est = estimate_delay(tone, tone, 48000)

        self.assertEqual(est.confidence, Confidence.LOW)
        self.assertIn(MeasurementIssue.AMBIGUOUS_CORRELATION, est.issues)
        self.assertGreaterEqual(est.runner_up, 0.9 * est.peak)

    def test_silent_input_is_weak_not_exact(self):
        silent = np.zeros(48000)
        est = estimate_delay(silent, _noise(), 48000)

        self.assertEqual(est.confidence, Confidence.LOW)
        self.assertIn(MeasurementIssue.WEAK_SIGNAL, est.issues)
        self.assertEqual(est.delay_ms, 0.0)

    def test_quiet_channel_is_low_confidence(self):
        left = _noise(seed=4)
        right = left * 1e-4    # about -100 dBFS
        est = estimate_delay(left, right, 48000)

        self.assertEqual(est.lag_samples, 0)
        self.assertEqual(est.confidence, Confidence.LOW)
        self.assertIn(MeasurementIssue.WEAK_SIGNAL, est.issues)

    def test_unrelated_signals_are_not_high_confidence(self):
        est = estimate_delay(_noise(seed=5), _noise(seed=6), 48000)

        self.assertLess(est.peak, 0.3)
        self.assertEqual(est.confidence, Confidence.LOW)
        self.assertIn(MeasurementIssue.AMBIGUOUS_CORRELATION, est.issues)

    def test_min_peak_is_configurable(self):
        left = _noise(seed=7)
        right = 0.5 * left + _noise(seed=8)    # normalized peak about 0.45

        self.assertEqual(estimate_delay(left, right, 48000).confidence, Confidence.HIGH)
        strict = estimate_delay(left, right, 48000, AnalysisConfig(min_correlation_peak=0.6))
        self.assertEqual(strict.confidence, Confidence.LOW)

    def test_distance_helper_matches_estimate(self):
        self.assertAlmostEqual(delay_to_distance_cm(-2.0), 68.6)
        self.assertAlmostEqual(delay_to_distance_cm(1.0, 340.0), 34.0)

    def test_invalid_sample_rate(self):
        with self.assertRaises(ValueError):
            estimate_delay(_noise(), _noise(), 0)


if __name__ == "__main__":
    unittest.main()
