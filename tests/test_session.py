"""
Tests for DashboardSession: mounting rules, interactions and teardown
"""

import pytest

from config import RuntimeConfig
from core.calls import InlineExecutor
from core.session import DashboardSession, make_transport
from core.widget import LifecycleState
from transport.base import LoggingTransport

from conftest import slider, switch


@pytest.fixture
def make_session(scheduler, transport, console, updates):
    sessions = []

    def factory(widgets, script="", **kwargs):
        session = DashboardSession(
            widgets,
            script,
            on_widget_update=updates,
            on_console_log=console,
            config=kwargs.pop("config", RuntimeConfig({"ready_delay_ms": 100})),
            scheduler=scheduler,
            transport=transport,
            executor=InlineExecutor(),
            sensor_drivers={},
            **kwargs,
        )
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.close()


COUNT_LOADS = (
    "def on_load(e):\n"
    "    console.log('load', e['widgetId'])\n"
    "widget.on('s1', 'load', on_load)\n"
    "widget.on('sw1', 'load', on_load)\n"
)


def test_first_sync_executes_and_starts_widgets(make_session, console, scheduler, clock):
    session = make_session([slider(), switch()], COUNT_LOADS)
    assert console.messages("log") == ["load s1", "load sw1"]

    clock.advance(0.1)
    scheduler.run_pending()
    states = {w["id"]: w["lifecycleState"] for w in session.widgets()}
    assert states == {"s1": "ready", "sw1": "ready"}


def test_adding_widget_with_same_script_does_not_reexecute(make_session, console, scheduler):
    session = make_session([slider()], COUNT_LOADS)
    generation = session.runtime.generation

    session.update_widgets([slider(), switch()])
    scheduler.run_pending()

    assert session.runtime.generation == generation
    assert console.messages("log") == ["load s1", "load sw1"]
    assert console.messages("info").count("Script executed successfully") == 1


def test_removed_widget_gets_destroy(make_session, console, scheduler):
    script = "widget.on('sw1', 'destroy', lambda e: console.log('destroyed', e['widgetId']))"
    session = make_session([slider(), switch()], script)

    session.update_widgets([slider()])
    scheduler.run_pending()

    assert "destroyed sw1" in console.messages("log")
    assert session.widget("sw1") is None


def test_replacing_script_reexecutes_and_restarts(make_session, console, scheduler):
    session = make_session([slider()], "console.log('v1')")
    session.replace_script("console.log('v2')")
    scheduler.run_pending()

    assert console.messages("log") == ["v1", "v2"]
    assert session.script == "console.log('v2')"
    assert session.runtime.registry.get("s1").lifecycle_state is LifecycleState.LOADED


def test_existing_widget_edits_are_copied(make_session, scheduler):
    session = make_session([slider(value=10)])
    edited = slider(value=55)
    edited["title"] = "Speed"
    session.update_widgets([edited])
    scheduler.run_pending()

    widget = session.runtime.registry.get("s1")
    assert widget.title == "Speed"
    assert widget.value == 55


def test_interaction_dispatches_and_notifies_script(make_session, transport, console, scheduler):
    widgets = [switch(widgetEvents=[{
        "id": "e1", "eventType": "on",
        "targets": [{"targetId": "relay", "payload": {"state": "on"}}],
    }])]
    session = make_session(widgets, "widget.on('sw1', 'on', lambda v: console.log('on', v))")

    session.interact("sw1", "on", {"checked": True})
    assert transport.sent == []
    scheduler.run_pending()

    assert transport.sent == [{"targetId": "relay", "payload": {"state": "on"}}]
    assert "on true" in console.messages("log")


def test_telemetry_reaches_script(make_session, console, scheduler):
    session = make_session([slider()], "widget.on('s1', 'reading', lambda v: console.log('t', v))")
    session.telemetry("s1", "reading", 21.5)
    scheduler.run_pending()
    assert "t 21.5" in console.messages("log")


def test_close_destroys_widgets_and_stops_runtime(make_session, console):
    session = make_session([slider()], "widget.on('s1', 'destroy', lambda e: console.log('bye'))")
    session.close()
    session.close()

    assert console.messages("log") == ["bye"]
    assert not session.runtime.live


def test_empty_script_still_starts_widgets(make_session):
    session = make_session([slider()])
    assert session.runtime.registry.get("s1").lifecycle_state is LifecycleState.LOADED


def test_script_added_after_empty_start_gets_load_and_ready(make_session, console, scheduler, clock):
    session = make_session([slider()])
    clock.advance(0.1)
    scheduler.run_pending()
    assert session.runtime.registry.get("s1").lifecycle_state is LifecycleState.READY

    session.replace_script(
        "widget.on('s1', 'load', lambda e: console.log('load', e['widgetId']))\n"
        "widget.on('s1', 'ready', lambda e: console.log('ready', e['widgetId']))\n"
    )
    scheduler.run_pending()
    assert console.messages("log") == ["load s1"]

    clock.advance(0.1)
    scheduler.run_pending()
    assert console.messages("log") == ["load s1", "ready s1"]


def test_close_leaves_widgets_destroyed(make_session):
    session = make_session([slider()])
    session.close()
    assert session.runtime.registry.get("s1").lifecycle_state is LifecycleState.DESTROYED


def test_make_transport_without_url_logs_sends():
    transport = make_transport(RuntimeConfig())
    assert isinstance(transport, LoggingTransport)
    assert transport.send("dev", {"a": 1}) is True
    assert transport.sent == [{"targetId": "dev", "payload": {"a": 1}}]
