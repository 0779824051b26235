"""
Speaker Align - Error taxonomy

DeviceError is raised by the audio transport and surfaces as a failed capture.
WeakSignalError and AmbiguousCorrelationError describe measurement problems that
never abort a session; they end up as issue flags on the analysis result.
"""


class SpeakerAlignError(Exception):
    """Base class for all measurement errors."""


class DeviceError(SpeakerAlignError):
    """Capture/playback negotiation or I/O failure."""


class WeakSignalError(SpeakerAlignError):
    """A channel's RMS level is below the configured noise floor."""

    def __init__(self, channel, rms_linear: float, noise_floor_db: float):
        self.channel = channel
        self.rms_linear = rms_linear
        self.noise_floor_db = noise_floor_db
        label = getattr(channel, "value", channel) or "signal"
        super().__init__(
            f"{label} RMS {rms_linear:.3g} is below the noise floor ({noise_floor_db:.0f} dBFS)"
        )


class AmbiguousCorrelationError(SpeakerAlignError):
    """No clear cross-correlation peak; the delay estimate is unreliable."""

    def __init__(self, peak: float, runner_up: float):
        self.peak = peak
        self.runner_up = runner_up
        super().__init__(
            f"Second correlation peak {runner_up:.3f} is too close to the main peak {peak:.3f}"
        )
