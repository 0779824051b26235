"""
Speaker Align - Audio transport

Plays the test signal on one output channel while recording the microphone.
Uses sounddevice (PortAudio); recording starts together with playback and
runs for the whole capture duration so the playback tail is included.
"""

import time
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from errors import DeviceError
from logging_utils import log_event
from models import Channel

ProgressCallback = Callable[[float], None]


def playback_buffer(signal: np.ndarray, total_frames: int) -> np.ndarray:
    """Mono float32 column padded with silence (or truncated) to total_frames."""
    out = np.zeros((total_frames, 1), dtype=np.float32)
    count = min(total_frames, len(signal))
    out[:count, 0] = np.asarray(signal[:count], dtype=np.float32)
    return out


def output_mapping(channel: Channel) -> list[int]:
    """1-based device output channel for the speaker (FL=1, FR=2)."""
    return [1] if Channel(channel) is Channel.LEFT else [2]


class SoundDeviceTransport:
    """Simultaneous playback and recording through the default (or configured) devices."""

    def __init__(self, input_device: Optional[int] = None, output_device: Optional[int] = None,
                 progress_interval_s: float = 0.05):
        self.input_device = input_device
        self.output_device = output_device
        self.progress_interval_s = progress_interval_s

    def _device_kwargs(self) -> dict:
        if self.input_device is None and self.output_device is None:
            return {}
        return {"device": (self.input_device, self.output_device)}

    def play_and_record(self, signal: np.ndarray, sample_rate: int, channel: Channel,
                        capture_duration: float,
                        progress_callback: Optional[ProgressCallback] = None) -> np.ndarray:
        total_frames = int(round(capture_duration * sample_rate))
        if total_frames <= 0:
            raise ValueError(f"capture_duration must be positive, got {capture_duration}")
        playback = playback_buffer(signal, total_frames)

        log_event("INFO", "Transport", "Play+record started", channel=Channel(channel).value,
                  frames=total_frames, sample_rate=sample_rate)
        try:
            recording = sd.playrec(
                playback,
                samplerate=sample_rate,
                channels=1,
                dtype='float32',
                output_mapping=output_mapping(channel),
                **self._device_kwargs(),
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"Could not open audio devices: {e}") from e

        started = time.monotonic()
        while True:
            elapsed = time.monotonic() - started
            if elapsed >= capture_duration:
                break
            time.sleep(self.progress_interval_s)
            if progress_callback is not None:
                progress_callback(min(1.0, (time.monotonic() - started) / capture_duration))

        try:
            status = sd.wait()
        except sd.PortAudioError as e:
            raise DeviceError(f"Audio stream failed: {e}") from e
        if status:
            log_event("WARNING", "Transport", "Stream reported problems", status=status)
        if progress_callback is not None:
            progress_callback(1.0)

        samples = np.asarray(recording, dtype=np.float64).reshape(-1)
        if samples.size == 0:
            raise DeviceError("No samples captured. Check that the microphone is active.")
        log_event("INFO", "Transport", "Play+record finished", samples=samples.size)
        return samples


def _device_name(kind: str) -> str:
    try:
        info = sd.query_devices(kind=kind)
    except (sd.PortAudioError, ValueError):
        return "None"
    return str(info.get('name', 'Unknown'))


def default_device_names() -> tuple[str, str]:
    """(output, input) default device names for the status line."""
    return _device_name('output'), _device_name('input')


def list_devices() -> list[dict]:
    """Describe every audio device (index, name, channel counts, default rate)."""
    devices = []
    for i, d in enumerate(sd.query_devices()):
        devices.append({
            "index": i,
            "name": d['name'],
            "inputs": d['max_input_channels'],
            "outputs": d['max_output_channels'],
            "default_samplerate": d['default_samplerate'],
        })
        log_event("DEBUG", "Transport", "Device", index=i, name=d['name'],
                  inputs=d['max_input_channels'], outputs=d['max_output_channels'])
    return devices
