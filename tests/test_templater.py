"""
Tests for payload rendering
"""

import copy
import json

from actions.templater import render


def test_slider_value_fills_top_and_parameters():
    template = {"value": 0, "parameters": {"speed": 0}, "name": "fan"}
    result = render("slider", "valueChange", template, {"value": 42})
    assert result == {"value": 42, "parameters": {"speed": 42}, "name": "fan"}


def test_template_is_never_mutated():
    template = {"value": 0, "parameters": {"speed": 0, "level": 0},
                "commands": [{"command": "c", "actions": [{"action": "a", "params": {"value": 0}}]}]}
    before = copy.deepcopy(template)
    for value in (1, 2, 3):
        render("slider", "valueChange", template, {"value": value})
    assert template == before


def test_color_skips_fields_absent_from_template():
    template = {"color": "#000"}
    colors = {"hex": "#fff", "rgb": {"r": 255, "g": 255, "b": 255}}
    assert render("color-picker", "colorChange", template, {"colorData": colors}) == {"color": "#fff"}


def test_color_components_in_params():
    template = {"commands": [{"command": "led", "actions": [{"action": "set", "params": {"r": 0, "g": 0, "b": 0}}]}]}
    colors = {"hex": "#102030", "rgb": {"r": 16, "g": 32, "b": 48}}
    result = render("color-picker", "colorChange", template, {"colorData": colors})
    assert result["commands"][0]["actions"][0]["params"] == {"r": 16, "g": 32, "b": 48}


def test_action_parameters_may_gain_keys():
    template = {"actionParameters": {}}
    result = render("slider", "valueChange", template, {"value": 7})
    assert result == {"actionParameters": {"sliderValue": 7}}


def test_action_parameters_not_created_when_missing():
    result = render("slider", "valueChange", {"value": 0}, {"value": 7})
    assert "actionParameters" not in result


def test_falsy_slider_value_is_still_injected():
    result = render("slider", "valueChange", {"value": 50}, {"value": 0})
    assert result == {"value": 0}


def test_text_input_submit():
    template = {"value": "", "message": "", "parameters": {"text": ""}, "other": 1}
    result = render("text-input", "submit", template, {"value": "hello"})
    # only value is filled at the top level
    assert result == {"value": "hello", "message": "", "parameters": {"text": "hello"}, "other": 1}


def test_form_submit_merges_known_fields():
    template = {
        "formData": {},
        "parameters": {"name": "", "age": 0, "unrelated": True},
        "actionParameters": {},
    }
    form = {"name": "Ada", "age": 36, "extra": "x"}
    result = render("form", "submit", template, {"formData": form})

    assert result["formData"] == form
    assert result["parameters"] == {"name": "Ada", "age": 36, "unrelated": True}
    assert result["actionParameters"] == {"formData": form, "name": "Ada", "age": 36, "extra": "x"}


def test_joystick_position():
    template = {"parameters": {"horizontal": 0, "vertical": 0}, "x": 0}
    result = render("joystick", "positionChange", template, {"position": {"x": 0.5, "y": -1}})
    assert result == {"parameters": {"horizontal": 0.5, "vertical": -1}, "x": 0.5}


def test_countdown_complete_uses_caller_timestamp():
    template = {"parameters": {"event": "", "completedAt": None}, "actionParameters": {}}
    bag = {"widgetId": "t1", "initialSeconds": 60, "timeLeft": 0, "completedAt": "2024-01-01T00:00:00Z"}
    result = render("countdown-timer", "complete", template, bag)

    assert result["parameters"] == {"event": "complete", "completedAt": "2024-01-01T00:00:00Z"}
    assert result["actionParameters"]["timerData"] == bag
    assert result["actionParameters"]["event"] == "complete"


def test_voice_text():
    template = {"text": "", "parameters": {"command": ""}}
    result = render("voice-to-text", "speechResult", template, {"text": "lights on", "widgetId": "v1"})
    assert result == {"text": "lights on", "parameters": {"command": "lights on"}}


def test_unmatched_widget_type_sends_template_as_is():
    template = {"value": 0}
    result = render("chart", "valueChange", template, {"value": 5})
    assert result == template
    assert result is not template


def test_missing_value_bag_leaves_template_untouched():
    assert render("slider", "valueChange", {"value": 3}, None) == {"value": 3}
    assert render("color-picker", "colorChange", {"color": "#000"}, {}) == {"color": "#000"}


def test_render_is_deterministic():
    template = {"value": 0, "parameters": {"speed": 0}, "actionParameters": {"value": 0}}
    first = render("slider", "valueChange", template, {"value": 9})
    second = render("slider", "valueChange", template, {"value": 9})
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


def test_non_dict_payload_passes_through():
    assert render("slider", "valueChange", "raw", {"value": 1}) == "raw"
