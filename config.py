# Speaker Align Configuration
# All default values and calibration constants

from dataclasses import dataclass, field, is_dataclass
from enum import Enum
from typing import Optional

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1

@dataclass
class AudioConfig:
    """Capture format and excitation signal parameters"""
    sample_rate: int = 48000
    fft_size: int = 8192              # Samples per analysis frame
    num_bands: int = 128              # Log-spaced bands between min and max freq
    min_freq_hz: float = 20.0
    max_freq_hz: float = 20000.0
    sweep_duration_s: float = 3.0     # Length of the played test signal
    capture_duration_s: float = 4.0   # Recording length (signal + tail margin)
    highpass_hz: float = 30.0         # Rumble filter on captures (0=disabled)
    sweep_amplitude: float = 0.7
    sweep_fade_s: float = 0.05        # Linear fade in/out to avoid clicks
    noise_amplitude: float = 0.25     # Peak level of the pink noise
    noise_fade_s: float = 0.1
    noise_rows: int = 16              # Voss-McCartney octave generators
    noise_seed: Optional[int] = None  # None = fresh noise every session
    input_device: Optional[int] = None   # sounddevice index (None=default)
    output_device: Optional[int] = None

@dataclass
class AnalysisConfig:
    """Spectral, delay and level analysis calibration"""
    db_floor: float = -100.0          # Lowest band value (avoids -inf)
    db_reference: float = 1.0         # Power that maps to 0 dB
    noise_floor_db: float = -70.0     # RMS dBFS below which a channel is weak
    max_lag_ms: float = 50.0          # Cross-correlation search window (+/-)
    ambiguity_ratio: float = 0.9      # 2nd peak >= ratio * main peak -> ambiguous
    min_correlation_peak: float = 0.3  # Normalized peak below this -> no common signal
    peak_exclusion_ms: float = 1.0    # Main-lobe half width ignored when looking for a 2nd peak
    speed_of_sound_m_s: float = 343.0
    tilt_split_hz: Optional[float] = None  # Low/high boundary for tilt (None=middle band)

@dataclass
class ScoringConfig:
    """Composite score terms and recommendation thresholds"""
    spectral_max_points: float = 50.0
    spectral_saturation_db: float = 25.0  # Mean band difference worth 0 points
    level_max_points: float = 25.0
    level_saturation_db: float = 5.0
    timing_max_points: float = 25.0
    timing_saturation_ms: float = 2.5
    ambiguous_timing_factor: float = 0.5  # Timing term multiplier when the delay peak is unclear
    weak_signal_score_cap: int = 50       # Max score when a channel is below the noise floor
    optimal_score: int = 85
    # Recommendation triggers (absolute values)
    delay_threshold_ms: float = 0.1
    delay_severe_ms: float = 0.5
    level_threshold_db: float = 0.5
    level_severe_db: float = 2.0
    tilt_threshold_db: float = 1.0
    tilt_severe_db: float = 3.0

@dataclass
class SessionConfig:
    """Interactive loop behaviour"""
    tick_ms: int = 50                 # Coordination loop poll interval
    pre_delay_s: float = 1.0          # Silence before playback (lets key noise die out)
    pre_delay_step_s: float = 0.5
    pre_delay_max_s: float = 5.0
    default_signal: str = "noise"     # 'sweep' or 'noise'
    history_display: int = 4          # Entries shown by the presentation layer

@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    audio: AudioConfig = field(default_factory=AudioConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; Enum fields are coerced when possible."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARNING", "Config", "Section is not an object, keeping defaults",
                          key=key, value=value)
            continue

        if isinstance(current, Enum):
            try:
                setattr(target, key, current.__class__(value))
            except ValueError:
                log_event("WARNING", "Config", "Could not convert value, keeping default",
                          key=key, type=current.__class__.__name__)
            continue

        setattr(target, key, value)


def _defaults_for(section) -> dict:
    return {name: getattr(section.__class__(), name) for name in section.__dataclass_fields__}


def _restore_none_fields(section, keep_none: tuple[str, ...] = ()) -> None:
    """Replace None values (left by hand-edited files) with the dataclass defaults."""
    defaults = _defaults_for(section)
    for name, default in defaults.items():
        if name in keep_none:
            continue
        if getattr(section, name) is None:
            setattr(section, name, default)


def _clamp_field(section, name: str, low: float, high: float) -> None:
    default = getattr(section.__class__(), name)
    try:
        value = float(getattr(section, name))
    except (TypeError, ValueError):
        value = float(default)
    clamped = max(low, min(high, value))
    if isinstance(default, int) and not isinstance(default, bool):
        clamped = int(round(clamped))
    setattr(section, name, clamped)


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Restores defaults for missing values, clamps tunables and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < 1:
        # Pre-release files stored the signal as 'pink'
        if config.session.default_signal == "pink":
            config.session.default_signal = "noise"

    _restore_none_fields(config.audio, keep_none=("noise_seed", "input_device", "output_device"))
    _restore_none_fields(config.analysis, keep_none=("tilt_split_hz",))
    _restore_none_fields(config.scoring)
    _restore_none_fields(config.session)
    if config.log_level is None:
        config.log_level = "INFO"

    if config.session.default_signal not in ("sweep", "noise"):
        config.session.default_signal = "noise"

    split_hz = config.analysis.tilt_split_hz
    if split_hz is not None:
        try:
            split_hz = float(split_hz)
        except (TypeError, ValueError):
            split_hz = None
        # Must fall strictly inside the banded range to leave bands on both sides
        if split_hz is not None and not config.audio.min_freq_hz < split_hz < config.audio.max_freq_hz:
            log_event("WARNING", "Config", "Tilt split outside band range, using middle band",
                      tilt_split_hz=split_hz)
            split_hz = None
        config.analysis.tilt_split_hz = split_hz

    # Always clamp safety ranges
    _clamp_field(config.audio, "sweep_amplitude", 0.0, 1.0)
    _clamp_field(config.audio, "noise_amplitude", 0.0, 1.0)
    _clamp_field(config.audio, "noise_rows", 1, 32)
    _clamp_field(config.analysis, "ambiguity_ratio", 0.0, 1.0)
    _clamp_field(config.analysis, "min_correlation_peak", 0.0, 1.0)
    _clamp_field(config.analysis, "max_lag_ms", 1.0, 500.0)
    _clamp_field(config.scoring, "ambiguous_timing_factor", 0.0, 1.0)
    _clamp_field(config.scoring, "weak_signal_score_cap", 0, 100)
    _clamp_field(config.scoring, "optimal_score", 0, 100)
    _clamp_field(config.session, "tick_ms", 10, 1000)
    _clamp_field(config.session, "pre_delay_max_s", 0.0, 30.0)
    _clamp_field(config.session, "pre_delay_s", 0.0, config.session.pre_delay_max_s)

    config.version = CURRENT_CONFIG_VERSION
