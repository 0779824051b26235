from typing import Optional

from capture_orchestrator import (
    AdjustPreDelay,
    Analyze,
    Event,
    Reset,
    SelectSignal,
    StartCapture,
)
from models import Channel

QUIT_KEYS = frozenset({"q", "Q", "escape"})

# Key name -> event. Pre-delay keys are resolved in event_for_key (step comes from config).
KEY_BINDINGS = {
    "l": StartCapture(Channel.LEFT),
    "L": StartCapture(Channel.LEFT),
    "r": StartCapture(Channel.RIGHT),
    "R": StartCapture(Channel.RIGHT),
    "a": Analyze(),
    "A": Analyze(),
    "enter": Analyze(),
    "\n": Analyze(),
    "\r": Analyze(),
    "x": Reset(),
    "X": Reset(),
    "delete": Reset(),
    "tab": SelectSignal(),
    "\t": SelectSignal(),
}

PRE_DELAY_UP_KEYS = frozenset({"+", "="})
PRE_DELAY_DOWN_KEYS = frozenset({"-", "_"})


def is_quit_key(key: str) -> bool:
    return key in QUIT_KEYS


def event_for_key(key: str, pre_delay_step_s: float = 0.5) -> Optional[Event]:
    """Map one key press to a session event; None for quit and unbound keys."""
    if key in PRE_DELAY_UP_KEYS:
        return AdjustPreDelay(pre_delay_step_s)
    if key in PRE_DELAY_DOWN_KEYS:
        return AdjustPreDelay(-pre_delay_step_s)
    return KEY_BINDINGS.get(key)
