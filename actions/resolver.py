"""Action resolver.

Turns one UI interaction (widget id, action id, parameters) into
transport sends and exactly one script-visible widget event:

1. look up the event types the action triggers;
2. every declarative widget event of a matching type is processed, in
   declaration order, its targets in array order, each payload rendered
   by the templater;
3. when nothing matched, the widget type's legacy rule may build one
   payload from config.deviceCommand;
4. the derived event is always delivered to script listeners.

Nothing here raises to the caller.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from actions import taxonomy
from actions.legacy import Dispatch, legacy_dispatch
from actions.templater import render
from core.widget import Widget

logger = logging.getLogger(__name__)

_BOOLEAN_ACTIONS = ("on", "off", "toggle")
_CHANGE_VALUE_KEYS = {
    "valueChange": "value",
    "colorChange": "colorData",
    "positionChange": "position",
}


def derive_event(action_id: str, parameters: Optional[Dict[str, Any]]) -> Tuple[str, Any]:
    """Name and value of the script event raised for an interaction."""
    parameters = parameters or {}
    if action_id == "press":
        return "push", True
    if action_id == "release":
        return "release", False
    if action_id == "click":
        return "click", True
    if action_id in _BOOLEAN_ACTIONS:
        if "checked" in parameters:
            return action_id, parameters["checked"]
        if action_id == "toggle":
            return action_id, parameters.get("value")
        return action_id, action_id == "on"
    if action_id in _CHANGE_VALUE_KEYS:
        return "change", parameters.get(_CHANGE_VALUE_KEYS[action_id])
    return action_id, parameters


class ActionResolver:
    """Resolve interactions for the widgets of one runtime.

    get_widget:     widget id -> Widget (or None)
    send:           transport send(target_id, payload)
    trigger_event:  runtime trigger_widget_event(widget_id, event, value)
    """

    def __init__(
        self,
        get_widget: Callable[[str], Optional[Widget]],
        send: Callable[[str, Any], Any],
        trigger_event: Callable[[str, str, Any], None],
        default_device_id: str = "default-device",
    ):
        self._get_widget = get_widget
        self._send = send
        self._trigger_event = trigger_event
        self._default_device_id = default_device_id

    def resolve(self, widget: Widget, action_id: str,
                parameters: Optional[Dict[str, Any]] = None) -> List[Dispatch]:
        """Dispatches an interaction produces, in send order. No side effects."""
        event_types = taxonomy.event_types_for(action_id)
        dispatches: List[Dispatch] = []
        matched = 0
        for event in widget.widget_events:
            if event.event_type not in event_types:
                continue
            matched += 1
            for target in event.targets:
                if not target.is_dispatchable():
                    logger.debug("Skipping incomplete target on %s.%s", widget.id, event.id)
                    continue
                payload = render(widget.type, action_id, target.payload, parameters)
                dispatches.append(Dispatch(target.target_id, payload))

        if matched:
            return dispatches

        legacy = legacy_dispatch(widget, action_id, parameters or {}, self._default_device_id)
        return [legacy] if legacy else []

    def handle(self, widget_id: str, action_id: str,
               parameters: Optional[Dict[str, Any]] = None) -> List[Dispatch]:
        """Resolve, send every dispatch, then raise the derived widget event."""
        sent: List[Dispatch] = []
        widget = self._get_widget(widget_id)
        if widget is None:
            logger.warning("Interaction for unknown widget %s (%s)", widget_id, action_id)
        else:
            try:
                dispatches = self.resolve(widget, action_id, parameters)
            except Exception as exc:
                logger.error("Resolve error [%s.%s]: %s", widget_id, action_id, exc)
                dispatches = []

            for dispatch in dispatches:
                try:
                    self._send(dispatch.target_id, dispatch.payload)
                    sent.append(dispatch)
                except Exception as exc:
                    logger.error("Send to %s failed: %s", dispatch.target_id, exc)

            logger.debug("%s.%s -> %d dispatch(es)", widget_id, action_id, len(sent))

        name, value = derive_event(action_id, parameters)
        try:
            self._trigger_event(widget_id, name, value)
        except Exception as exc:
            logger.error("Widget event error [%s.%s]: %s", widget_id, name, exc)
        return sent
