"""Widget type variants.

Each widget type tag maps to a variant class that knows where the
widget's live value lives in its config, how a written value is coerced,
which extra events a value write raises, and how the widget's text is
read. Variants are stateless; the Widget keeps the data.
"""

import logging
import math
from typing import Any, Dict, List, Tuple

from core.registry import WIDGET_REGISTRY, register_widget

logger = logging.getLogger(__name__)


def _to_number(value: Any) -> Any:
    """Coerce like a numeric input field would: '42' -> 42, '4.5' -> 4.5."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return float("nan")
    return int(number) if number.is_integer() else number


class WidgetVariant:
    """Default behaviour: the value lives in config["value"]."""

    type_names: Tuple[str, ...] = ()
    VALUE_KEY = "value"

    @classmethod
    def read_value(cls, config: Dict) -> Any:
        return config.get(cls.VALUE_KEY)

    @classmethod
    def coerce(cls, value: Any) -> Any:
        return value

    @classmethod
    def write_value(cls, config: Dict, value: Any) -> Any:
        """Store value in config and return the value as stored."""
        stored = cls.coerce(value)
        config[cls.VALUE_KEY] = stored
        return stored

    @classmethod
    def value_events(cls, config: Dict, old: Any, new: Any) -> List[Tuple[str, Any]]:
        """Extra (event, value) pairs raised after change/update."""
        return []

    @classmethod
    def read_text(cls, title: str, config: Dict) -> str:
        return title or ""


@register_widget(
    "chart", "image", "svg", "form", "table", "database-form", "color-picker",
    "menu", "map", "mission-planning-map", "joystick", "navigate-page",
    "url-button", "dynamic-repeater", "compass", "heatmap", "attitude",
    "html-viewer", "3d-viewer", "datetime-weather", "countdown-timer",
    "schedule", "rule", "text-to-speech", "webrtc-viewer", "webrtc-camera",
    "voice-to-text", "video-player", "spotify-player", "usb-serial",
    "rectangle", "ellipse", "triangle", "polygon", "star", "line", "arrow",
    "em-spectrum", "spectral-graph", "vector-plot-3d", "virtual-twin-3d",
    "payment-action",
)
class GenericWidget(WidgetVariant):
    pass


@register_widget("button")
class ButtonWidget(WidgetVariant):
    VALUE_KEY = "state"


@register_widget("switch")
class SwitchWidget(WidgetVariant):
    VALUE_KEY = "state"

    @classmethod
    def value_events(cls, config, old, new):
        events = [("toggle", new)]
        if new is True or new == "on" or new == 1:
            events.append(("on", new))
        elif new is False or new == "off" or new == 0:
            events.append(("off", new))
        return events


@register_widget("slider", "gauge")
class NumericWidget(WidgetVariant):
    @classmethod
    def coerce(cls, value):
        return _to_number(value)

    @classmethod
    def value_events(cls, config, old, new):
        events = []
        old_num = _to_number(old)
        # Falsy bounds fall back to the 0..100 default range
        min_value = _to_number(config.get("minValue") or 0)
        max_value = _to_number(config.get("maxValue") or 100)

        if not math.isnan(min_value) and new <= min_value < old_num:
            events.append(("min", new))
        if not math.isnan(max_value) and old_num < max_value <= new:
            events.append(("max", new))

        if config.get("threshold") is not None:
            threshold = _to_number(config["threshold"])
            crossed = old_num < threshold <= new or new < threshold <= old_num
            if not math.isnan(threshold) and crossed:
                events.append(("threshold", {"value": new, "threshold": threshold}))
        return events


@register_widget("status")
class StatusWidget(WidgetVariant):
    VALUE_KEY = "status"


@register_widget("text-input")
class TextInputWidget(WidgetVariant):
    @classmethod
    def read_value(cls, config):
        if config.get("value") is not None:
            return config["value"]
        return config.get("textInputDefaultValue") or ""


@register_widget("label")
class LabelWidget(WidgetVariant):
    @classmethod
    def read_text(cls, title, config):
        if config.get("value") is not None:
            return str(config["value"])
        return title or ""


def variant_for(widget_type: str):
    """Return the variant class for a type tag (GenericWidget if unknown)."""
    variant = WIDGET_REGISTRY.get(widget_type)
    if variant is None:
        logger.debug("Unknown widget type %r, using generic variant", widget_type)
        return GenericWidget
    return variant
