"""Shared fixtures: a manual clock, a scheduler on it and runtime factories."""

import pytest

from config import RuntimeConfig
from core.calls import InlineExecutor
from core.runtime import ScriptRuntime
from core.scheduler import Scheduler
from transport.base import TransportAdapter


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingTransport(TransportAdapter):
    """Keeps every send as a {targetId, payload} envelope."""

    def __init__(self):
        super().__init__()
        self.sent = []

    def send(self, target_id, payload):
        self.sent.append(self.envelope(target_id, payload))
        return True


class ConsoleRecorder:
    def __init__(self):
        self.lines = []

    def __call__(self, level, message, args):
        self.lines.append((level, message, args))

    def messages(self, level=None):
        return [m for lvl, m, _ in self.lines if level is None or lvl == level]

    def has(self, fragment, level=None):
        return any(fragment in m for m in self.messages(level))


class UpdateRecorder:
    def __init__(self):
        self.updates = []

    def __call__(self, widget_id, partial):
        self.updates.append((widget_id, partial))

    def for_widget(self, widget_id):
        return [p for wid, p in self.updates if wid == widget_id]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock=clock)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def console():
    return ConsoleRecorder()


@pytest.fixture
def updates():
    return UpdateRecorder()


@pytest.fixture
def make_runtime(scheduler, transport, console, updates):
    """Build a ScriptRuntime with inline off-thread calls and no real I/O."""
    created = []

    def factory(widgets=(), config=None, **kwargs):
        kwargs.setdefault("executor", InlineExecutor())
        kwargs.setdefault("sensor_drivers", {})
        runtime = ScriptRuntime(
            list(widgets),
            updates,
            console,
            kwargs.pop("context", None),
            kwargs.pop("data_client", None),
            kwargs.pop("on_transform_update", None),
            config=config or RuntimeConfig(),
            scheduler=scheduler,
            transport=transport,
            **kwargs,
        )
        created.append(runtime)
        return runtime

    yield factory
    for runtime in created:
        runtime.close()


def slider(widget_id="s1", value=10, **config):
    cfg = {"value": value}
    cfg.update(config)
    return {"id": widget_id, "type": "slider", "config": cfg}


def switch(widget_id="sw1", state=False, **config):
    cfg = {"state": state}
    cfg.update(config)
    return {"id": widget_id, "type": "switch", "config": cfg}
