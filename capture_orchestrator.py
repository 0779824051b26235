"""
Speaker Align - Capture orchestration

Owns the session state machine:

    Idle -> CapturingLeft/CapturingRight -> Idle
    Idle (both captured) -> Analyzing -> Results
    Results/Idle -> Idle (reset)

A capture runs in one worker thread that only talks to the coordination
loop through a queue (progress updates, then exactly one Done/Failed
message). All session state is mutated on the coordination loop in
dispatch(); readers get immutable SessionSnapshot objects.
"""

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Union

import numpy as np

import correlation_estimator
import level_analyzer
import scorer
import signal_generator
import spectral_analyzer
import tilt_analyzer
from config import Config
from history_log import HistoryEntry, HistoryLog
from logging_utils import log_event, set_log_level
from models import (
    AnalysisResult,
    CaptureBuffer,
    Channel,
    ChannelMeasurement,
    MeasurementIssue,
    SignalKind,
    SpectrumBands,
    Step,
)

ProgressCallback = Callable[[float], None]

CAPTURING_STEPS = (Step.CAPTURING_LEFT, Step.CAPTURING_RIGHT)


class AudioTransport(Protocol):
    def play_and_record(self, signal: np.ndarray, sample_rate: int, channel: Channel,
                        capture_duration: float,
                        progress_callback: Optional[ProgressCallback] = None) -> np.ndarray:
        """Play signal on channel and return the mono recording. Raises DeviceError."""
        ...


# ─── Events ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StartCapture:
    channel: Channel

@dataclass(frozen=True)
class CaptureProgress:
    fraction: float

@dataclass(frozen=True, eq=False)
class CaptureDone:
    channel: Channel
    samples: np.ndarray

@dataclass(frozen=True)
class CaptureFailed:
    error: str

@dataclass(frozen=True)
class Analyze:
    pass

@dataclass(frozen=True)
class Reset:
    pass

@dataclass(frozen=True)
class SelectSignal:
    kind: Optional[SignalKind] = None   # None toggles sweep <-> noise

@dataclass(frozen=True)
class AdjustPreDelay:
    delta_s: float


Event = Union[StartCapture, CaptureProgress, CaptureDone, CaptureFailed,
              Analyze, Reset, SelectSignal, AdjustPreDelay]


# ─── State ───────────────────────────────────────────────────────────────────

@dataclass
class SessionState:
    """Mutable session state; only touched by the coordination loop"""
    step: Step = Step.IDLE
    signal_kind: SignalKind = SignalKind.NOISE
    left: Optional[ChannelMeasurement] = None
    right: Optional[ChannelMeasurement] = None
    result: Optional[AnalysisResult] = None
    history: HistoryLog = field(default_factory=HistoryLog)
    progress: float = 0.0
    error: Optional[str] = None
    pre_delay_s: float = 1.0
    excitation: Optional[np.ndarray] = None   # Played for both channels until reset/signal change


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view handed to the presentation layer once per tick"""
    step: Step
    signal_kind: SignalKind
    progress: float
    error: Optional[str]
    pre_delay_s: float
    left_bands: Optional[SpectrumBands]
    right_bands: Optional[SpectrumBands]
    result: Optional[AnalysisResult]
    history: tuple[HistoryEntry, ...]

    @property
    def has_left(self) -> bool:
        return self.left_bands is not None

    @property
    def has_right(self) -> bool:
        return self.right_bands is not None

    @property
    def can_analyze(self) -> bool:
        return self.has_left and self.has_right and self.step not in CAPTURING_STEPS


def default_transport(config: Config) -> AudioTransport:
    """sounddevice transport (imported lazily; needs the PortAudio library)."""
    from audio_transport import SoundDeviceTransport

    return SoundDeviceTransport(config.audio.input_device, config.audio.output_device,
                                progress_interval_s=config.session.tick_ms / 1000.0)


def spawn_daemon_thread(target: Callable[[], None]) -> threading.Thread:
    thread = threading.Thread(target=target, daemon=True, name="capture-worker")
    thread.start()
    return thread


class CaptureOrchestrator:
    """
    Coordinates capture, analysis and history for one stereo pair.

    Args:
        config: Application configuration
        transport: Audio transport; defaults to the sounddevice implementation
        spawn: Starts the capture worker (a daemon thread by default)
    """

    def __init__(self, config: Optional[Config] = None,
                 transport: Optional[AudioTransport] = None,
                 spawn: Callable[[Callable[[], None]], object] = spawn_daemon_thread):
        self.config = config or Config()
        set_log_level(self.config.log_level)
        self.transport = transport if transport is not None else default_transport(self.config)
        self.spawn = spawn

        try:
            default_kind = SignalKind(self.config.session.default_signal)
        except ValueError:
            default_kind = SignalKind.NOISE
        self.state = SessionState(signal_kind=default_kind,
                                  pre_delay_s=self.config.session.pre_delay_s)

        # Capture task -> coordination loop
        self.messages: "queue.Queue[Event]" = queue.Queue()
        self.worker = None

        self._handlers = {
            StartCapture: self._on_start_capture,
            CaptureProgress: self._on_capture_progress,
            CaptureDone: self._on_capture_done,
            CaptureFailed: self._on_capture_failed,
            Analyze: self._on_analyze,
            Reset: self._on_reset,
            SelectSignal: self._on_select_signal,
            AdjustPreDelay: self._on_adjust_pre_delay,
        }

    # ── Coordination loop ────────────────────────────────────────────────────

    @property
    def capturing(self) -> bool:
        return self.state.step in CAPTURING_STEPS

    def dispatch(self, event: Event) -> bool:
        """Apply one event. Returns False when the event was ignored."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown event: {event!r}")
        return handler(event)

    def poll(self) -> int:
        """Drain pending capture messages without blocking. Returns how many were handled."""
        handled = 0
        while True:
            try:
                message = self.messages.get_nowait()
            except queue.Empty:
                return handled
            self.dispatch(message)
            handled += 1

    def snapshot(self) -> SessionSnapshot:
        state = self.state
        return SessionSnapshot(
            step=state.step,
            signal_kind=state.signal_kind,
            progress=state.progress,
            error=state.error,
            pre_delay_s=state.pre_delay_s,
            left_bands=state.left.bands if state.left else None,
            right_bands=state.right.bands if state.right else None,
            result=state.result,
            history=state.history.entries,
        )

    def run(self, stop_event: threading.Event,
            on_tick: Optional[Callable[[SessionSnapshot], None]] = None,
            next_event: Optional[Callable[[], Optional[Event]]] = None) -> None:
        """Interactive loop: poll captures, apply input, publish a snapshot every tick."""
        tick_s = self.config.session.tick_ms / 1000.0
        log_event("INFO", "Session", "Loop started", tick_ms=self.config.session.tick_ms)
        while not stop_event.is_set():
            started = time.monotonic()
            self.poll()
            if next_event is not None:
                event = next_event()
                if event is not None:
                    self.dispatch(event)
            if on_tick is not None:
                on_tick(self.snapshot())
            remaining = tick_s - (time.monotonic() - started)
            if remaining > 0:
                stop_event.wait(remaining)
        log_event("INFO", "Session", "Loop stopped", history=len(self.state.history))

    # ── Capture worker (runs off the coordination loop) ──────────────────────

    def _capture_worker(self, channel: Channel, signal: np.ndarray, sample_rate: int,
                        capture_duration: float, pre_delay_s: float) -> None:
        """Only touches its arguments, the transport and the message queue."""
        try:
            if pre_delay_s > 0:
                time.sleep(pre_delay_s)
            samples = self.transport.play_and_record(
                signal,
                sample_rate,
                channel,
                capture_duration,
                lambda fraction: self.messages.put(CaptureProgress(fraction)),
            )
        except Exception as e:
            log_event("ERROR", "Capture", "Capture failed", channel=channel.value, error=e)
            self.messages.put(CaptureFailed(str(e) or e.__class__.__name__))
            return
        self.messages.put(CaptureDone(channel, np.asarray(samples, dtype=np.float64)))

    # ── Handlers ─────────────────────────────────────────────────────────────

    def _ignored(self, event: Event, reason: str) -> bool:
        log_event("DEBUG", "Session", "Event ignored", event=type(event).__name__,
                  step=self.state.step.value, reason=reason)
        return False

    def _on_start_capture(self, event: StartCapture) -> bool:
        if self.capturing:
            return self._ignored(event, "capture in flight")
        if self.state.step not in (Step.IDLE, Step.RESULTS):
            return self._ignored(event, "busy")

        channel = Channel(event.channel)
        try:
            signal = self._excitation()
        except ValueError as e:
            log_event("ERROR", "Capture", "Could not generate test signal", error=e)
            self.state.error = str(e)
            return False

        audio = self.config.audio
        sample_rate = audio.sample_rate
        capture_duration = audio.capture_duration_s
        pre_delay_s = self.state.pre_delay_s
        self.state.step = Step.CAPTURING_LEFT if channel is Channel.LEFT else Step.CAPTURING_RIGHT
        self.state.progress = 0.0
        self.state.error = None
        log_event("INFO", "Capture", "Started", channel=channel.value,
                  signal=self.state.signal_kind.value, pre_delay_s=f"{pre_delay_s:.1f}")
        self.worker = self.spawn(lambda: self._capture_worker(
            channel, signal, sample_rate, capture_duration, pre_delay_s))
        return True

    def _excitation(self) -> np.ndarray:
        """Test signal for this session; both channels must hear the same samples."""
        if self.state.excitation is None:
            audio = self.config.audio
            signal = signal_generator.generate(self.state.signal_kind, audio.sweep_duration_s,
                                               audio.sample_rate, audio)
            signal.setflags(write=False)
            self.state.excitation = signal
            log_event("DEBUG", "Capture", "Test signal generated",
                      signal=self.state.signal_kind.value, samples=signal.size)
        return self.state.excitation

    def _on_capture_progress(self, event: CaptureProgress) -> bool:
        if not self.capturing:
            return self._ignored(event, "no capture in flight")
        fraction = min(1.0, max(0.0, float(event.fraction)))
        self.state.progress = max(self.state.progress, fraction)
        return True

    def _on_capture_done(self, event: CaptureDone) -> bool:
        if not self.capturing:
            return self._ignored(event, "no capture in flight")
        channel = Channel.LEFT if self.state.step is Step.CAPTURING_LEFT else Channel.RIGHT
        if Channel(event.channel) is not channel:
            log_event("WARNING", "Capture", "Done message channel mismatch",
                      expected=channel.value, got=Channel(event.channel).value)

        measurement = self._measure(channel, event.samples)
        if channel is Channel.LEFT:
            self.state.left = measurement
        else:
            self.state.right = measurement
        self.state.progress = 1.0
        self.state.step = Step.IDLE
        log_event("INFO", "Capture", "Stored", channel=channel.value,
                  rms_db="weak" if measurement.weak else f"{measurement.rms_db:.1f}")
        return True

    def _on_capture_failed(self, event: CaptureFailed) -> bool:
        if not self.capturing:
            return self._ignored(event, "no capture in flight")
        self.state.error = event.error
        self.state.step = Step.IDLE
        return True

    def _on_analyze(self, event: Analyze) -> bool:
        if self.capturing:
            return self._ignored(event, "capture in flight")
        if self.state.left is None or self.state.right is None:
            return self._ignored(event, "both channels must be captured")

        self.state.step = Step.ANALYZING
        try:
            result = self._analyze(self.state.left, self.state.right)
        except Exception as e:
            log_event("ERROR", "Analysis", "Analysis failed", error=e)
            self.state.error = f"Analysis failed: {e}"
            self.state.step = Step.IDLE
            return False
        self.state.error = None
        self.state.result = result
        self.state.history.append(result)
        self.state.step = Step.RESULTS
        log_event("INFO", "Analysis", "Completed", score=result.score,
                  delay_ms=f"{result.delay_ms:.3f}", level_diff_db=f"{result.level_diff_db:.2f}",
                  tilt_db=f"{result.tilt_db:.2f}",
                  issues=",".join(i.value for i in result.issues) or "none")
        return True

    def _on_reset(self, event: Reset) -> bool:
        if self.capturing:
            return self._ignored(event, "capture in flight")
        self.state.left = None
        self.state.right = None
        self.state.result = None
        self.state.excitation = None
        self.state.progress = 0.0
        self.state.error = None
        self.state.step = Step.IDLE
        log_event("INFO", "Session", "Reset", history=len(self.state.history))
        return True

    def _on_select_signal(self, event: SelectSignal) -> bool:
        if self.capturing:
            return self._ignored(event, "capture in flight")
        if event.kind is None:
            kind = SignalKind.SWEEP if self.state.signal_kind is SignalKind.NOISE else SignalKind.NOISE
        else:
            kind = SignalKind(event.kind)
        self.state.signal_kind = kind
        self.state.excitation = None
        log_event("INFO", "Session", "Signal selected", signal=kind.value)
        return True

    def _on_adjust_pre_delay(self, event: AdjustPreDelay) -> bool:
        if self.capturing:
            return self._ignored(event, "capture in flight")
        limit = self.config.session.pre_delay_max_s
        self.state.pre_delay_s = min(limit, max(0.0, self.state.pre_delay_s + event.delta_s))
        return True

    # ── Measurement / analysis ───────────────────────────────────────────────

    def _fit_capture_length(self, samples: np.ndarray) -> np.ndarray:
        """Trim or zero-pad to sample_rate * capture_duration."""
        audio = self.config.audio
        expected = int(round(audio.sample_rate * audio.capture_duration_s))
        samples = np.asarray(samples, dtype=np.float64).reshape(-1)
        if samples.size == expected:
            return samples
        log_event("DEBUG", "Capture", "Capture length adjusted", got=samples.size, expected=expected)
        fitted = np.zeros(expected)
        count = min(expected, samples.size)
        fitted[:count] = samples[:count]
        return fitted

    def _measure(self, channel: Channel, samples: np.ndarray) -> ChannelMeasurement:
        audio = self.config.audio
        filtered = spectral_analyzer.highpass_filter(
            self._fit_capture_length(samples), audio.highpass_hz, audio.sample_rate)
        buffer = CaptureBuffer(filtered, channel, audio.sample_rate)
        bands = spectral_analyzer.analyze(buffer.samples, audio.sample_rate, audio, self.config.analysis)
        rms_db = level_analyzer.measure_rms_db(buffer.samples, self.config.analysis.noise_floor_db, channel)
        return ChannelMeasurement(buffer=buffer, bands=bands, rms_db=rms_db)

    def _analyze(self, left: ChannelMeasurement, right: ChannelMeasurement) -> AnalysisResult:
        audio = self.config.audio
        analysis = self.config.analysis
        delay = correlation_estimator.estimate_delay(
            left.buffer.samples, right.buffer.samples, audio.sample_rate, analysis)
        levels = level_analyzer.level_diff(left.buffer.samples, right.buffer.samples,
                                           analysis.noise_floor_db)
        tilt = tilt_analyzer.tilt_diff(left.bands.values, right.bands.values,
                                       analysis.tilt_split_hz, audio)

        issues = list(delay.issues)
        if levels.weak:
            issues.append(MeasurementIssue.WEAK_SIGNAL)
        if left.bands.low_confidence or right.bands.low_confidence:
            issues.append(MeasurementIssue.SHORT_CAPTURE)

        return scorer.score(
            left.bands.values,
            right.bands.values,
            levels.diff_db,
            delay.delay_ms,
            delay.confidence,
            tilt_db=tilt,
            issues=issues,
            config=self.config.scoring,
            speed_of_sound_m_s=analysis.speed_of_sound_m_s,
        )
