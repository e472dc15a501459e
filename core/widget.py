"""Widget model for the dashboard runtime.

A Widget is the live, script-visible record of one dashboard element:
its type tag, its config bag, its current value and where it sits in its
lifecycle. Declarative WidgetEvents (design-time wiring of an event type
to command targets) are stored inside ``config["widgetEvents"]`` and are
parsed read-only when an interaction is resolved.
"""

import copy
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from core.widget_types import variant_for

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    UNINITIALIZED = 0
    LOADED = 1
    READY = 2
    DESTROYED = 3

    def __lt__(self, other):
        if not isinstance(other, LifecycleState):
            return NotImplemented
        return self.value < other.value


LIFECYCLE_EVENTS = {
    "load": LifecycleState.LOADED,
    "ready": LifecycleState.READY,
    "destroy": LifecycleState.DESTROYED,
}


class EventTarget:
    """A destination plus the JSON payload template sent to it."""

    def __init__(self, target_id: str, payload: Any):
        self.target_id = target_id
        self.payload = payload

    @classmethod
    def from_dict(cls, data: Dict) -> "EventTarget":
        return cls(data.get("targetId", ""), data.get("payload"))

    def is_dispatchable(self) -> bool:
        return bool(self.target_id) and bool(self.payload)

    def __repr__(self) -> str:
        return f"<EventTarget {self.target_id}>"


class WidgetEvent:
    """Design-time mapping of an event type to dispatch targets."""

    def __init__(self, event_id: str, event_type: str, targets: List[EventTarget]):
        self.id = event_id
        self.event_type = event_type
        self.targets = targets

    @classmethod
    def from_dict(cls, data: Dict) -> "WidgetEvent":
        raw_targets = data.get("targets")
        if not isinstance(raw_targets, list):
            raw_targets = []
        targets = [EventTarget.from_dict(t) for t in raw_targets if isinstance(t, dict)]
        return cls(data.get("id", ""), data.get("eventType", ""), targets)

    def __repr__(self) -> str:
        return f"<WidgetEvent {self.id} {self.event_type} targets={len(self.targets)}>"


class Widget:
    """Live state of one dashboard widget."""

    def __init__(
        self,
        widget_id: str,
        widget_type: str,
        config: Optional[Dict] = None,
        title: str = "",
        value: Any = None,
        style: Optional[Dict] = None,
        position: Optional[Dict] = None,
        size: Optional[Dict] = None,
        rotation: Optional[float] = None,
    ):
        if not widget_id:
            raise ValueError("widget id is required")
        self.id = widget_id
        self.type = widget_type
        self.config: Dict[str, Any] = dict(config or {})
        self.title = title
        self.style: Dict[str, Any] = dict(style or {})
        self.position = position
        self.size = size
        self.rotation = rotation
        self.lifecycle_state = LifecycleState.UNINITIALIZED
        self.value = value if value is not None else self.variant.read_value(self.config)

    @classmethod
    def from_dict(cls, data: Dict) -> "Widget":
        return cls(
            data["id"],
            data.get("type", ""),
            config=copy.deepcopy(data.get("config") or {}),
            title=data.get("title", ""),
            value=data.get("value"),
            style=copy.deepcopy(data.get("style") or {}),
            position=data.get("position"),
            size=data.get("size"),
            rotation=data.get("rotation"),
        )

    @property
    def variant(self):
        return variant_for(self.type)

    @property
    def widget_events(self) -> List[WidgetEvent]:
        raw = self.config.get("widgetEvents")
        if not isinstance(raw, list):
            return []
        return [WidgetEvent.from_dict(e) for e in raw if isinstance(e, dict)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "value": self.value,
            "config": copy.deepcopy(self.config),
            "style": copy.deepcopy(self.style),
            "position": self.position,
            "size": self.size,
            "rotation": self.rotation,
            "lifecycleState": self.lifecycle_state.name.lower(),
        }

    def __repr__(self) -> str:
        return f"<Widget {self.id} type={self.type} {self.lifecycle_state.name}>"
