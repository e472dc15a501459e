"""
Tests for DataStore and WebEventBus
"""

import pytest

from core.data_store import DataStore
from core.web_event_bus import WebEventBus


@pytest.fixture
def store(tmp_path):
    db = DataStore(str(tmp_path / "test.db"))
    yield db
    db.close()


def test_insert_assigns_id_and_returns_copy(store):
    doc = {"device_name": "Pump"}
    saved = store.insert("user_devices", doc)
    assert saved["device_name"] == "Pump"
    assert saved["id"]
    assert "id" not in doc


def test_query_filters_by_equality(store):
    store.insert("user_devices", {"user_id": "u1", "device_name": "A"})
    store.insert("user_devices", {"user_id": "u2", "device_name": "B"})
    store.insert("user_devices", {"user_id": "u1", "device_name": "C"})

    rows = store.query("user_devices", {"user_id": "u1"})
    assert [r["device_name"] for r in rows] == ["A", "C"]
    assert store.query("user_devices", {"user_id": "nobody"}) == []


def test_query_order_and_limit(store):
    for ts in (3, 1, 2):
        store.insert("sensor_data", {"device_id": "d", "timestamp": ts})
    store.insert("sensor_data", {"device_id": "d"})

    rows = store.query("sensor_data", {"device_id": "d"}, {"order": "timestamp", "ascending": False, "limit": 2})
    assert [r["timestamp"] for r in rows] == [3, 2]

    rows = store.query("sensor_data", {}, {"order": "timestamp"})
    assert [r.get("timestamp") for r in rows] == [1, 2, 3, None]


def test_delete_and_tables(store):
    store.insert("a", {"k": 1})
    store.insert("a", {"k": 2})
    store.insert("b", {"k": 1})

    assert store.delete("a", {"k": 1}) == 1
    assert [r["k"] for r in store.query("a")] == [2]
    assert store.tables() == ["a", "b"]


def test_insert_with_id_replaces(store):
    store.insert("t", {"id": "x", "v": 1})
    store.insert("t", {"id": "x", "v": 2})
    assert store.query("t") == [{"id": "x", "v": 2}]


def test_insert_rejects_non_dict(store):
    with pytest.raises(TypeError):
        store.insert("t", ["not", "a", "dict"])


def test_memory_store():
    store = DataStore(":memory:")
    store.insert("t", {"v": 1})
    assert store.query("t")[0]["v"] == 1
    store.close()


# ---------------------------------------------------------------------------
# WebEventBus
# ---------------------------------------------------------------------------

def test_console_history_is_bounded():
    bus = WebEventBus(console_history=2)
    bus.console("log", "one", [])
    bus.console("warn", "two", [{"a": 1}])
    bus.console("error", "three", [])

    history = bus.console_history()
    assert [e["message"] for e in history] == ["two", "three"]
    assert history[0]["args"] == ['{"a": 1}']


def test_sse_stream_receives_published_updates():
    bus = WebEventBus()
    stream = bus.sse_stream(keepalive=0.01)

    assert next(stream) == ("keepalive", None)
    assert bus.client_count == 1

    bus.widget_updated("s1", {"value": 3})
    assert next(stream) == ("widget", {"widgetId": "s1", "update": {"value": 3}})

    stream.close()
    assert bus.client_count == 0


def test_latest_payload_per_topic():
    bus = WebEventBus()
    bus.transform_updated("s1", {"rotation": 90})
    assert bus.get_latest("transform") == {"widgetId": "s1", "transform": {"rotation": 90}}
    assert "transform" in bus.get_latest()
