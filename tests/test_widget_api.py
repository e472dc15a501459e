"""
Tests for the script-visible widget, storage and context objects
"""

import math

from config import RuntimeConfig
from core.bridge import SessionStorage, StorageAPI
from core.widget import Widget

from conftest import slider, switch


def test_set_value_updates_cache_then_notifies(make_runtime, updates):
    runtime = make_runtime([slider(value=10)])
    api = runtime.widget_api

    api.setValue("s1", "42")
    assert api.getValue("s1") == 42
    assert runtime.registry.get("s1").value == 42
    widget_id, partial = updates.updates[-1]
    assert widget_id == "s1"
    assert partial["value"] == 42
    assert partial["config"]["value"] == 42


def test_slider_write_raises_change_update_and_threshold(make_runtime):
    runtime = make_runtime([slider(value=10, threshold=40)])
    events = []
    for name in ("change", "update", "threshold", "max"):
        runtime.widget_api.on("s1", name, lambda v, name=name: events.append((name, v)))

    runtime.widget_api.setValue("s1", 42)
    assert events == [
        ("change", 42),
        ("update", 42),
        ("threshold", {"value": 42, "threshold": 40}),
    ]

    events.clear()
    runtime.widget_api.setValue("s1", 100)
    assert ("max", 100) in events


def test_slider_bounds_given_as_strings(make_runtime, console):
    runtime = make_runtime([slider(value=10, minValue="0", maxValue="100", threshold="40")])
    runtime.execute(
        "widget.on('s1', 'max', lambda v: console.log('max', v))\n"
        "widget.on('s1', 'threshold', lambda v: console.log('threshold', v['threshold']))\n"
        "widget.setValue('s1', 50)\n"
        "widget.setValue('s1', 100)\n"
        "console.log('after')\n"
    )
    assert not console.has("Script execution failed")
    assert console.messages("log") == ["threshold 40", "max 100", "after"]


def test_unparseable_slider_bounds_raise_no_boundary_events(make_runtime):
    runtime = make_runtime([slider(value=10, maxValue="lots", threshold="n/a")])
    events = []
    for name in ("max", "threshold"):
        runtime.widget_api.on("s1", name, lambda v, name=name: events.append(name))
    runtime.widget_api.setValue("s1", 100)
    assert events == []
    assert runtime.widget_api.getValue("s1") == 100


def test_non_numeric_slider_value_becomes_nan(make_runtime):
    runtime = make_runtime([slider()])
    runtime.widget_api.setValue("s1", "fast")
    assert math.isnan(runtime.widget_api.getValue("s1"))


def test_switch_value_lives_in_state(make_runtime):
    runtime = make_runtime([switch(state=False)])
    events = []
    for name in ("toggle", "on", "off"):
        runtime.widget_api.on("sw1", name, lambda v, name=name: events.append(name))

    runtime.widget_api.setValue("sw1", True)
    assert runtime.registry.get("sw1").config["state"] is True
    assert events == ["toggle", "on"]


def test_text_show_hide_and_config(make_runtime, updates):
    runtime = make_runtime([{"id": "l1", "type": "label", "title": "Idle", "config": {}}])
    api = runtime.widget_api

    assert api.getText("l1") == "Idle"
    api.setText("l1", "Busy")
    assert api.getText("l1") == "Busy"

    api.hide("l1")
    assert updates.updates[-1] == ("l1", {"style": {"visible": False}})
    api.show("l1")
    assert runtime.registry.get("l1").style["visible"] is True

    api.setConfig("l1", "color", "red")
    assert api.getConfig("l1", "color") == "red"
    assert api.getConfig("l1") == {"color": "red"}


def test_get_config_returns_a_copy(make_runtime, updates):
    runtime = make_runtime([{"id": "c1", "type": "chart", "config": {"series": [1, 2]}}])
    api = runtime.widget_api

    api.getConfig("c1")["series"].append(3)
    api.getConfig("c1", "series").append(4)
    assert runtime.registry.get("c1").config == {"series": [1, 2]}
    assert updates.updates == []


def test_label_text_reads_value_first(make_runtime):
    runtime = make_runtime([{"id": "l1", "type": "label", "title": "T", "config": {"value": 12}}])
    assert runtime.widget_api.getText("l1") == "12"


def test_unknown_widget_is_reported_not_raised(make_runtime, console):
    runtime = make_runtime([slider()])
    assert runtime.widget_api.getValue("nope") is None
    runtime.widget_api.setValue("nope", 1)
    assert console.has("Widget nope not found", "warn")
    assert runtime.widget_api.get("nope") is None


def test_geometry_goes_to_transform_callback(make_runtime, updates):
    transforms = []
    runtime = make_runtime(
        [slider()], on_transform_update=lambda wid, t: transforms.append((wid, t))
    )
    api = runtime.widget_api
    api.setPosition("s1", 10, 20)
    api.setSize("s1", 100, 50)
    api.setRotation("s1", 90)

    assert transforms == [
        ("s1", {"position": {"x": 10, "y": 20}}),
        ("s1", {"size": {"width": 100, "height": 50}}),
        ("s1", {"rotation": 90}),
    ]
    assert api.getPosition("s1") == {"x": 10, "y": 20}
    assert updates.updates == []


def test_geometry_falls_back_to_widget_update(make_runtime, updates):
    runtime = make_runtime([slider()])
    runtime.widget_api.setRotation("s1", 45)
    assert updates.updates == [("s1", {"rotation": 45})]


def test_once_unregisters_after_first_call(make_runtime):
    runtime = make_runtime([slider()])
    calls = []
    runtime.widget_api.once("s1", "change", calls.append)
    runtime.widget_api.emit("s1", "change", 1)
    runtime.widget_api.emit("s1", "change", 2)
    assert calls == [1]


def test_on_returns_unregister(make_runtime):
    runtime = make_runtime([slider()])
    calls = []
    off = runtime.widget_api.on("s1", "change", calls.append)
    off()
    runtime.widget_api.emit("s1", "change", 1)
    assert calls == []


def test_text_input_default_value():
    widget = Widget.from_dict({"id": "t", "type": "text-input", "config": {"textInputDefaultValue": "hi"}})
    assert widget.value == "hi"


# ---------------------------------------------------------------------------
# storage
# ---------------------------------------------------------------------------

def test_storage_round_trip_returns_copies():
    storage = StorageAPI(SessionStorage(), "p_", lambda *a: None)
    data = {"count": 1}
    storage.set("k", data)
    data["count"] = 2

    assert storage.get("k") == {"count": 1}
    assert storage.get("k") is not storage.get("k")


def test_storage_clear_only_touches_prefix():
    backend = SessionStorage()
    backend.set_item("other", "1")
    storage = StorageAPI(backend, "p_", lambda *a: None)
    storage.set("a", 1)
    storage.set("b", 2)
    storage.remove("a")
    assert storage.get("a") is None

    storage.clear()
    assert backend.keys() == ["other"]


def test_storage_unserializable_value_is_reported():
    reports = []
    storage = StorageAPI(SessionStorage(), "p_", lambda *a: reports.append(a))
    storage.set("k", object())
    assert storage.get("k") is None
    assert reports[0][0] == "error"


def test_storage_survives_script_reexecution(make_runtime):
    runtime = make_runtime([slider()])
    runtime.execute("storage.set('n', 5)")
    runtime.execute("storage.set('m', storage.get('n') + 1)")
    assert runtime.storage.get("m") == 6


# ---------------------------------------------------------------------------
# context
# ---------------------------------------------------------------------------

def test_context_from_flat_user_fields(make_runtime):
    runtime = make_runtime(
        context={"userId": "u1", "userEmail": "a@b.c", "userRole": "admin", "dashboardId": "d1"},
        config=RuntimeConfig({"screen": {"width": 800, "height": 480, "touch": True}}),
    )
    ctx = runtime.context
    assert ctx.user == {"id": "u1", "email": "a@b.c", "role": "admin"}
    assert ctx.dashboardId == "d1"
    assert ctx.device["type"] == "tablet"
    assert ctx.device["orientation"] == "landscape"
    assert ctx.device["touchEnabled"] is True
