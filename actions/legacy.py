"""Legacy per-widget-type dispatch rules.

Widgets configured before declarative widget events existed carry a
``deviceCommand`` block in their config (joysticks may carry its keys
directly in config). When no declarative event matches an interaction,
the resolver asks the rule registered for the widget's type to build one
command payload from that block:

    {"widgetId": ..., "commands": [{"command": name,
                                    "actions": [{"action": name, "params": {...}}]}],
     <extra field, e.g. "value": "42">}

Rules return a Dispatch, or None when the widget is not configured for
the action.

Usage:
    @register_legacy("slider")
    def slider_rule(widget, action_id, parameters, device_id):
        ...
"""

import copy
import logging
from collections import namedtuple
from typing import Any, Callable, Dict, Optional

from core.widget import Widget

logger = logging.getLogger(__name__)

Dispatch = namedtuple("Dispatch", "target_id payload")

LEGACY_RULES: Dict[str, Callable] = {}


def register_legacy(*widget_types):
    """Decorator to register a legacy rule for one or more widget types."""
    def decorator(fn):
        for widget_type in widget_types:
            LEGACY_RULES[widget_type] = fn
        return fn
    return decorator


def device_command(widget: Widget) -> Optional[Dict[str, Any]]:
    block = widget.config.get("deviceCommand")
    return block if isinstance(block, dict) and block else None


def _name(config: Dict, kind: str, field: str, use_generic: bool = True) -> str:
    """Look up a command/action display name.

    Order: config[field + "s"][kind].name, config[kind + Field].name,
    then config[field].name when use_generic.
    """
    plural = config.get(field + "s")
    if isinstance(plural, dict) and isinstance(plural.get(kind), dict) and plural[kind].get("name"):
        return plural[kind]["name"]
    specific = config.get(kind + field.capitalize())
    if isinstance(specific, dict) and specific.get("name"):
        return specific["name"]
    generic = config.get(field)
    if use_generic and isinstance(generic, dict) and generic.get("name"):
        return generic["name"]
    return "unknown_" + field


def build_command(
    widget: Widget,
    config: Dict,
    kind: str,
    device_id: str,
    params: Optional[Dict] = None,
    use_generic: bool = True,
    **extra,
) -> Optional[Dispatch]:
    """Build the single legacy command payload for one kind of interaction."""
    command_id = config.get(kind + "CommandId") or (config.get("commandId") if use_generic else None)
    action_id = config.get(kind + "ActionId") or (config.get("actionId") if use_generic else None)
    if not command_id or not action_id:
        logger.warning("Widget %s: %s command not properly configured", widget.id, kind)
        return None

    if params is None:
        params = config.get(kind + "Parameters")
        if not params and use_generic:
            params = config.get("parameters")
        params = dict(params or {})

    payload: Dict[str, Any] = {}
    if widget.id:
        payload["widgetId"] = widget.id
    payload.update(extra)
    payload["commands"] = [
        {
            "command": _name(config, kind, "command", use_generic),
            "actions": [{"action": _name(config, kind, "action", use_generic), "params": params}],
        }
    ]
    return Dispatch(device_id, payload)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------
@register_legacy("button")
def button_rule(widget, action_id, parameters, device_id):
    config = device_command(widget)
    if config is None:
        return None
    button_type = config.get("buttonType") or widget.config.get("buttonType")
    if button_type == "push":
        if action_id == "press":
            return build_command(widget, config, "press", device_id)
        if action_id == "release":
            return build_command(widget, config, "release", device_id, use_generic=False)
        return None
    return build_command(widget, config, "click", device_id)


@register_legacy("switch")
def switch_rule(widget, action_id, parameters, device_id):
    config = device_command(widget)
    if config is None:
        return None
    if "checked" in parameters:
        is_on = bool(parameters["checked"])
    elif action_id in ("on", "off"):
        is_on = action_id == "on"
    else:
        is_on = not widget.variant.read_value(widget.config)

    kind = "on" if is_on else "off"
    params = copy.deepcopy(config.get(kind + "Parameters") or config.get("parameters") or {})
    if params.get("status"):
        params["status"] = "HIGH" if is_on else "LOW"
    return build_command(widget, config, kind, device_id, params=params)


@register_legacy("form")
def form_rule(widget, action_id, parameters, device_id):
    config = device_command(widget)
    if config is None:
        return None
    form_data = parameters.get("formData") or {}
    return build_command(widget, config, "submit", device_id, form_data=form_data)


@register_legacy("color-picker")
def color_rule(widget, action_id, parameters, device_id):
    config = device_command(widget)
    if config is None or action_id != "colorChange" or not parameters.get("colorData"):
        return None
    return build_command(widget, config, "colorChange", device_id, color_data=parameters["colorData"])


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@register_legacy("slider", "compass")
def value_rule(widget, action_id, parameters, device_id):
    config = device_command(widget)
    if config is None or action_id != "valueChange" or "value" not in parameters:
        return None
    return build_command(widget, config, "valueChange", device_id, value=_as_text(parameters["value"]))


@register_legacy("heatmap")
def heatmap_rule(widget, action_id, parameters, device_id):
    config = device_command(widget)
    if config is None or action_id != "valueChange" or "data" not in parameters:
        return None
    return build_command(widget, config, "valueChange", device_id, heatmap_data=parameters["data"])


@register_legacy("joystick")
def joystick_rule(widget, action_id, parameters, device_id):
    block = device_command(widget)
    if block and (block.get("positionChangeCommandId") or block.get("positionChangeActionId")):
        config = block
    elif widget.config.get("positionChangeCommandId") or widget.config.get("positionChangeActionId"):
        config = widget.config
    else:
        return None
    if action_id != "positionChange" or not parameters.get("position"):
        return None
    return build_command(widget, config, "positionChange", device_id, position=parameters["position"])


def legacy_dispatch(widget: Widget, action_id: str, parameters: Dict,
                    default_device_id: str) -> Optional[Dispatch]:
    """Run the legacy rule for widget's type, if any."""
    rule = LEGACY_RULES.get(widget.type)
    if rule is None:
        return None
    device_id = widget.config.get("deviceId") or default_device_id
    return rule(widget, action_id, parameters or {}, device_id)
