"""Action -> event type taxonomy.

A UI interaction arrives with an action id (press, valueChange, submit,
...). Declarative widget events are authored against event types. This
table says which event types an action triggers. It is fixed; bump
TAXONOMY_VERSION when it changes.
"""

from typing import Dict, Tuple

TAXONOMY_VERSION = 1

ACTION_EVENT_TYPES: Dict[str, Tuple[str, ...]] = {
    "press": ("push", "click"),
    "release": ("release",),
    "click": ("click",),
    "toggle": ("toggle", "change"),
    "valueChange": ("change", "slide", "slideEnd"),
    "colorChange": ("change",),
    "positionChange": ("change",),
    # on/off never match toggle or each other
    "on": ("on",),
    "off": ("off",),
    "submit": ("submit", "change"),
    "clear": ("clear",),
    "complete": ("complete",),
    "start": ("start",),
    "pause": ("pause",),
    "reset": ("reset",),
    "speechStart": ("speechStart",),
    "speechEnd": ("speechEnd", "submit"),
    "speechResult": ("speechResult", "change"),
    "paymentSuccess": ("paymentSuccess", "payment.success"),
    "paymentFailed": ("paymentFailed", "payment.failure"),
}


def event_types_for(action_id: str) -> Tuple[str, ...]:
    """Event types an action triggers (empty for unknown actions)."""
    return ACTION_EVENT_TYPES.get(action_id, ())


def matches(action_id: str, event_type: str) -> bool:
    return event_type in event_types_for(action_id)
