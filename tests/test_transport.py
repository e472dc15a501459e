"""
Tests for transports, script-owned sockets and the ``ws`` object
"""

import json
import queue
import threading

from websockets.exceptions import ConnectionClosedOK

from transport.base import LoggingTransport, TransportAdapter
from transport.custom import CustomConnections
from transport.device_link import DeviceLink


class FakeSocket:
    """Iterates over queued inbound frames until closed."""

    def __init__(self, url):
        self.url = url
        self.sent = []
        self.inbound = queue.Queue()
        self.closed = False

    def send(self, message):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    def close(self):
        self.closed = True
        self.inbound.put(None)

    def __iter__(self):
        while True:
            frame = self.inbound.get()
            if frame is None:
                return
            yield frame


class FakeConnector:
    def __init__(self, fail=False):
        self.fail = fail
        self.sockets = {}
        self.opened = threading.Event()

    def __call__(self, url, open_timeout=None):
        if self.fail:
            raise OSError("connection refused")
        socket = FakeSocket(url)
        self.sockets[url] = socket
        self.opened.set()
        return socket


def pump(scheduler, until, attempts=200):
    """Run posted work until the predicate holds or attempts run out."""
    for _ in range(attempts):
        scheduler.run_pending()
        if until():
            return True
        threading.Event().wait(0.01)
    return False


# ---------------------------------------------------------------------------
# TransportAdapter
# ---------------------------------------------------------------------------

def test_logging_transport_keeps_bounded_history():
    transport = LoggingTransport(history=2)
    for n in range(3):
        assert transport.send("dev", {"n": n}) is True
    assert [m["payload"]["n"] for m in transport.sent] == [1, 2]


def test_dispatch_reaches_handlers_until_unsubscribed():
    transport = TransportAdapter()
    seen = []
    unsubscribe = transport.on_message(seen.append)
    transport.on_message(lambda m: 1 / 0)

    transport.dispatch_message({"a": 1})
    unsubscribe()
    unsubscribe()
    transport.dispatch_message({"a": 2})
    assert seen == [{"a": 1}]


def test_device_link_endpoint_and_unconnected_send():
    link = DeviceLink("wss://relay.example.com/", connection_id="panel-1")
    assert link.endpoint == "wss://relay.example.com/?id=panel-1"
    assert link.send("dev", {"x": 1}) is False
    assert not link.is_connected()


def test_device_link_receives_and_sends(scheduler):
    connector = FakeConnector()
    link = DeviceLink("ws://relay", reconnect_attempts=0, connect=connector)
    inbound = []
    link.on_message(inbound.append)
    link.start()
    try:
        assert link.wait_connected(2)
        socket = connector.sockets["ws://relay/?id=device-service"]
        assert link.send("dev", {"led": 1}) is True
        assert json.loads(socket.sent[0]) == {"targetId": "dev", "payload": {"led": 1}}

        socket.inbound.put("not json")
        socket.inbound.put(json.dumps({"temp": 20}))
        assert pump(scheduler, lambda: inbound)
        assert inbound == [{"temp": 20}]
    finally:
        link.close()


# ---------------------------------------------------------------------------
# CustomConnections
# ---------------------------------------------------------------------------

def test_custom_connection_round_trip(scheduler, console):
    connector = FakeConnector()
    conns = CustomConnections(scheduler, console, connect=connector)
    results, messages = [], []

    conns.connect("ws://a", messages.append, results.append)
    assert pump(scheduler, lambda: results)
    assert results == [True]
    assert conns.is_connected("ws://a")
    assert console.has("Connected to ws://a", "log")

    assert conns.send_to("ws://a", {"cmd": "go"}) is True
    assert connector.sockets["ws://a"].sent == ['{"cmd": "go"}']

    connector.sockets["ws://a"].inbound.put('{"ok": true}')
    connector.sockets["ws://a"].inbound.put("plain")
    assert pump(scheduler, lambda: len(messages) == 2)
    assert messages == [{"ok": True}, "plain"]

    assert conns.close_all() == 1
    assert connector.sockets["ws://a"].closed
    assert conns.urls() == []


def test_second_connect_while_opening_shares_one_socket(scheduler, console):
    release = threading.Event()
    connector = FakeConnector()
    calls = []

    def slow_connect(url, open_timeout=None):
        calls.append(url)
        release.wait(2)
        return connector(url, open_timeout)

    conns = CustomConnections(scheduler, console, connect=slow_connect)
    results, first, second = [], [], []
    conns.connect("ws://a", first.append, results.append)
    conns.connect("ws://a", second.append, results.append)
    release.set()

    assert pump(scheduler, lambda: len(results) == 2)
    assert results == [True, True]
    assert calls == ["ws://a"]

    connector.sockets["ws://a"].inbound.put('{"n": 1}')
    assert pump(scheduler, lambda: first and second)
    assert first == second == [{"n": 1}]

    assert conns.close_all() == 1
    assert connector.sockets["ws://a"].closed


def test_custom_connection_failure_reports_false(scheduler, console):
    conns = CustomConnections(scheduler, console, connect=FakeConnector(fail=True))
    results = []
    conns.connect("ws://down", callback=results.append)
    assert pump(scheduler, lambda: results)
    assert results == [False]
    assert console.has("Error connecting to ws://down", "error")
    assert not conns.is_connected("ws://down")


def test_send_to_unknown_url_reports(scheduler, console):
    conns = CustomConnections(scheduler, console, connect=FakeConnector())
    assert conns.send_to("ws://nowhere", "x") is False
    assert console.has("Not connected to ws://nowhere", "error")


# ---------------------------------------------------------------------------
# ws object
# ---------------------------------------------------------------------------

def test_ws_send_uses_transport(make_runtime, transport):
    runtime = make_runtime()
    runtime.execute("ws.send('pump', {'on': True})")
    assert transport.sent == [{"targetId": "pump", "payload": {"on": True}}]


def test_ws_on_message_parses_and_posts(make_runtime, transport, scheduler, console):
    runtime = make_runtime()
    runtime.execute("ws.onMessage(lambda m: console.log('got', m['temp']))")

    transport.dispatch_message('{"temp": 19}')
    transport.dispatch_message("{broken")
    transport.dispatch_message({"temp": 20})
    assert console.messages("log") == []

    scheduler.run_pending()
    assert console.messages("log") == ["got 19", "got 20"]


def test_ws_handlers_removed_on_cleanup(make_runtime, transport, scheduler, console):
    runtime = make_runtime()
    runtime.execute("ws.onMessage(lambda m: console.log('got'))")
    runtime.cleanup()

    transport.dispatch_message({"temp": 1})
    scheduler.run_pending()
    assert console.messages("log") == []


def test_ws_connect_through_runtime(make_runtime, scheduler, console):
    connector = FakeConnector()
    runtime = make_runtime(ws_connect=connector)
    runtime.execute(
        "ws.connect('ws://b', lambda m: console.log('msg', m), lambda ok: console.log('open', ok))"
    )
    assert pump(scheduler, lambda: "open true" in console.messages("log"))
    assert runtime.ws.isConnected("ws://b")

    connector.sockets["ws://b"].inbound.put('"hi"')
    assert pump(scheduler, lambda: "msg hi" in console.messages("log"))

    runtime.cleanup()
    assert connector.sockets["ws://b"].closed
