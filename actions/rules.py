"""Declarative payload injection table.

One InjectionRule per (widget types, actions) pair. For each structural
location of a payload template it names the fields to fill and where
their values come from in the interaction's value bag:

    top               top-level keys of the payload
    parameters        keys of payload["parameters"]
    params            keys of every payload["commands"][i]["actions"][j]["params"]
    action_parameters keys of payload["actionParameters"]

The first three locations are overwrite-only: a key is written only if
the template already has it. ``action_parameters`` entries carry a
``create`` flag; only those may add keys, and only when the template
already has an actionParameters dict.
"""

from collections import namedtuple
from typing import Any, Callable, Dict, List, Optional, Tuple

MISSING = object()

# getter(bag, action_id) -> value or MISSING
Getter = Callable[[Dict[str, Any], str], Any]

Slot = namedtuple("Slot", "key getter create")


class InjectionRule:
    def __init__(
        self,
        name: str,
        widget_types: Tuple[str, ...],
        actions: Tuple[str, ...],
        requires: Optional[str] = None,
        top: Optional[Dict[str, Getter]] = None,
        parameters: Optional[Dict[str, Getter]] = None,
        params: Optional[Dict[str, Getter]] = None,
        action_parameters: Optional[List[Slot]] = None,
        merge_fields: Optional[str] = None,
    ):
        self.name = name
        self.widget_types = widget_types
        self.actions = actions
        self.requires = requires
        self.top = top or {}
        self.parameters = parameters or {}
        self.params = params or {}
        self.action_parameters = action_parameters or []
        self.merge_fields = merge_fields

    def applies(self, widget_type: str, action_id: str, bag: Optional[Dict]) -> bool:
        if widget_type not in self.widget_types or action_id not in self.actions:
            return False
        if not isinstance(bag, dict):
            return False
        if self.requires is None:
            return True
        # a bare value may be falsy (0, ""); structured inputs may not
        if self.requires == "value":
            return "value" in bag
        return bool(bag.get(self.requires))

    def __repr__(self) -> str:
        return f"<InjectionRule {self.name}>"


# ---------------------------------------------------------------------------
# Value getters
# ---------------------------------------------------------------------------
def bag(*path: str) -> Getter:
    """Read bag[path[0]][path[1]]...; MISSING if any step is absent."""
    def get(values, action_id):
        current: Any = values
        for key in path:
            if not isinstance(current, dict) or key not in current:
                return MISSING
            current = current[key]
        return current
    return get


def hex_or_color(values, action_id):
    color = values.get("colorData", MISSING)
    if color is MISSING:
        return MISSING
    if isinstance(color, dict) and color.get("hex"):
        return color["hex"]
    return color


def rgb_component(channel: str) -> Getter:
    def get(values, action_id):
        rgb = (values.get("colorData") or {}).get("rgb")
        if not rgb or not isinstance(rgb, dict) or channel not in rgb:
            return MISSING
        return rgb[channel]
    return get


def truthy(getter: Getter) -> Getter:
    def get(values, action_id):
        value = getter(values, action_id)
        return value if value is not MISSING and value else MISSING
    return get


def action_name(values, action_id):
    return action_id


def whole_bag(values, action_id):
    return values


def fields(names: Tuple[str, ...], getter: Getter) -> Dict[str, Getter]:
    return {name: getter for name in names}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------
_value = bag("value")
_color = bag("colorData")
_position = bag("position")
_text = bag("text")

RULES: List[InjectionRule] = [
    InjectionRule(
        "text-input-submit",
        ("text-input",), ("submit",),
        requires="value",
        top={"value": _value},
        parameters=fields(("value", "message", "text"), _value),
        params=fields(("value", "message", "text"), _value),
        action_parameters=[Slot("inputValue", _value, True), Slot("value", _value, False)],
    ),
    InjectionRule(
        "slider-value",
        ("slider",), ("valueChange", "slideEnd", "change"),
        requires="value",
        top={"value": _value},
        parameters=fields(("value", "speed", "level", "intensity"), _value),
        params=fields(("value", "speed", "level", "intensity"), _value),
        action_parameters=[Slot("sliderValue", _value, True), Slot("value", _value, False)],
    ),
    InjectionRule(
        "form-submit",
        ("form", "database-form"), ("submit",),
        requires="formData",
        top=fields(("formData", "data"), bag("formData")),
        parameters=fields(("formData", "data"), bag("formData")),
        params=fields(("formData", "data"), bag("formData")),
        action_parameters=[Slot("formData", bag("formData"), True)],
        merge_fields="formData",
    ),
    InjectionRule(
        "color-change",
        ("color-picker",), ("colorChange", "change"),
        requires="colorData",
        top={
            "color": hex_or_color,
            "hex": bag("colorData", "hex"),
            "rgb": bag("colorData", "rgb"),
            "hsl": bag("colorData", "hsl"),
        },
        parameters={
            "color": hex_or_color,
            "hex": bag("colorData", "hex"),
            "rgb": bag("colorData", "rgb"),
            "hsl": bag("colorData", "hsl"),
            "r": rgb_component("r"),
            "g": rgb_component("g"),
            "b": rgb_component("b"),
        },
        params={
            "color": hex_or_color,
            "hex": bag("colorData", "hex"),
            "rgb": bag("colorData", "rgb"),
            "hsl": bag("colorData", "hsl"),
            "r": rgb_component("r"),
            "g": rgb_component("g"),
            "b": rgb_component("b"),
        },
        action_parameters=[
            Slot("colorData", _color, True),
            Slot("color", hex_or_color, True),
            Slot("hex", truthy(bag("colorData", "hex")), True),
            Slot("rgb", truthy(bag("colorData", "rgb")), True),
            Slot("hsl", truthy(bag("colorData", "hsl")), True),
        ],
    ),
    InjectionRule(
        "countdown-timer",
        ("countdown-timer",), ("complete", "start", "pause", "reset"),
        top={
            "widgetId": bag("widgetId"),
            "initialSeconds": bag("initialSeconds"),
            "timeLeft": bag("timeLeft"),
            "completedAt": bag("completedAt"),
        },
        parameters={
            "widgetId": bag("widgetId"),
            "initialSeconds": bag("initialSeconds"),
            "timeLeft": bag("timeLeft"),
            "completedAt": bag("completedAt"),
            "event": action_name,
        },
        params={
            "widgetId": bag("widgetId"),
            "initialSeconds": bag("initialSeconds"),
            "timeLeft": bag("timeLeft"),
            "completedAt": bag("completedAt"),
            "event": action_name,
        },
        action_parameters=[
            Slot("timerData", whole_bag, True),
            Slot("widgetId", bag("widgetId"), True),
            Slot("initialSeconds", bag("initialSeconds"), True),
            Slot("timeLeft", bag("timeLeft"), True),
            Slot("completedAt", bag("completedAt"), True),
            Slot("event", action_name, True),
        ],
    ),
    InjectionRule(
        "voice-text",
        ("voice-to-text",), ("speechEnd", "speechResult", "submit"),
        requires="text",
        top={
            "text": _text,
            "value": _text,
            "message": _text,
            "widgetId": bag("widgetId"),
        },
        parameters={
            **fields(("text", "value", "message", "command", "data"), _text),
            "widgetId": bag("widgetId"),
        },
        params={
            **fields(("text", "value", "message", "command", "data"), _text),
            "widgetId": bag("widgetId"),
        },
        action_parameters=[
            Slot("text", _text, True),
            Slot("value", _text, True),
            Slot("widgetId", truthy(bag("widgetId")), True),
        ],
    ),
    InjectionRule(
        "joystick-position",
        ("joystick",), ("positionChange", "change"),
        requires="position",
        top={
            "position": _position,
            "x": bag("position", "x"),
            "y": bag("position", "y"),
            "joystick": _position,
        },
        parameters={
            "position": _position,
            "x": bag("position", "x"),
            "y": bag("position", "y"),
            "joystick": _position,
            "horizontal": bag("position", "x"),
            "vertical": bag("position", "y"),
        },
        params={
            "position": _position,
            "x": bag("position", "x"),
            "y": bag("position", "y"),
            "joystick": _position,
            "horizontal": bag("position", "x"),
            "vertical": bag("position", "y"),
        },
        action_parameters=[
            Slot("position", _position, True),
            Slot("x", bag("position", "x"), True),
            Slot("y", bag("position", "y"), True),
            Slot("joystick", _position, True),
        ],
    ),
]


def rule_for(widget_type: str, action_id: str, values: Optional[Dict]) -> Optional[InjectionRule]:
    """First rule that applies to this interaction, or None (payload sent as-is)."""
    for rule in RULES:
        if rule.applies(widget_type, action_id, values):
            return rule
    return None
