"""Script runtime: runs a dashboard's automation script against live widgets.

The script is Python source executed once per execution with a fixed
namespace of capability objects (widget, ws, storage, db, context,
location, http, device, sensor, usb, console and the timer functions).
It wires callbacks with widget.on(), timers, watches and sockets; the
runtime keeps track of all of them so cleanup() can tear an execution
down completely before the next one starts.

Threading: everything script-visible runs on the scheduler's thread.
Background work (sensor and location polling, HTTP, sockets, serial
reads) posts its results to the scheduler, and each such callback is
wrapped by guard() so it is dropped once its execution is cleaned up.
"""

import builtins
import json
import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from config import RuntimeConfig
from capabilities.device import DeviceAPI
from capabilities.http import HttpAPI
from capabilities.location import LocationAPI, LocationProvider, StaticLocationProvider
from capabilities.usb import UsbAPI
from core.bridge import (
    ConsoleAPI, ContextAPI, DatabaseAPI, SessionStorage, StorageAPI, TimerAPI, WebSocketAPI, WidgetAPI,
)
from core.calls import AsyncCaller, default_executor
from core.event_bus import EventBus
from core.scheduler import Scheduler
from core.widget import LIFECYCLE_EVENTS, LifecycleState, Widget
from core.widget_registry import WidgetRegistry
from sensors.api import SensorAPI, build_drivers
from transport.base import LoggingTransport, TransportAdapter
from transport.custom import CustomConnections

logger = logging.getLogger(__name__)

SCRIPT_FILENAME = "<dashboard-script>"

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "bytes", "callable", "chr", "dict", "divmod", "enumerate",
    "filter", "float", "format", "frozenset", "hasattr", "hex", "int", "isinstance", "iter",
    "len", "list", "map", "max", "min", "next", "object", "ord", "pow", "range", "repr",
    "reversed", "round", "set", "slice", "sorted", "str", "sum", "super", "tuple", "zip",
    "classmethod", "staticmethod", "property", "__build_class__",
    "Exception", "ArithmeticError", "AttributeError", "IndexError", "KeyError", "LookupError",
    "RuntimeError", "StopIteration", "TypeError", "ValueError", "ZeroDivisionError",
)
SAFE_BUILTINS = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}

# Lifecycle transitions: target state -> states it may be entered from
_ALLOWED_FROM = {
    LifecycleState.LOADED: (LifecycleState.UNINITIALIZED,),
    LifecycleState.READY: (LifecycleState.LOADED,),
    LifecycleState.DESTROYED: (LifecycleState.LOADED, LifecycleState.READY),
}

WidgetUpdateCallback = Callable[[str, Dict[str, Any]], None]
ConsoleCallback = Callable[[str, str, list], None]


class ScriptRuntime:
    """Owns one dashboard's widgets, script execution and capability objects."""

    def __init__(
        self,
        widgets: Iterable[Union[Widget, Dict]],
        on_widget_update: WidgetUpdateCallback,
        on_console_log: Optional[ConsoleCallback] = None,
        context: Optional[Dict[str, Any]] = None,
        data_client=None,
        on_transform_update: Optional[WidgetUpdateCallback] = None,
        *,
        config: Optional[RuntimeConfig] = None,
        scheduler: Optional[Scheduler] = None,
        transport: Optional[TransportAdapter] = None,
        storage: Optional[SessionStorage] = None,
        sensor_drivers: Optional[Dict[str, Any]] = None,
        location_provider: Optional[LocationProvider] = None,
        executor=None,
        http_session=None,
        ws_connect=None,
        usb_options: Optional[Dict[str, Any]] = None,
    ):
        self.config = config or RuntimeConfig()
        self.scheduler = scheduler or Scheduler()
        self.transport = transport or LoggingTransport()
        self.storage_backend = storage or SessionStorage()
        self.data_client = data_client

        self._on_widget_update = on_widget_update
        self._on_console_log = on_console_log
        self._on_transform_update = on_transform_update

        self.registry = WidgetRegistry(
            w if isinstance(w, Widget) else Widget.from_dict(w) for w in (widgets or [])
        )
        self.bus = EventBus(on_error=self._on_listener_error)

        self._generation = 0
        self._live = False
        self._script: Optional[str] = None
        self._last_result = False

        self._owns_executor = executor is None
        self._executor = executor or default_executor(self.config.max_workers)
        self.caller = AsyncCaller(self.scheduler, self._executor, self.guard, self.report)

        if sensor_drivers is None:
            sensor_drivers = build_drivers(self.config.sensors, demo=self.config.demo)
        if location_provider is None and self.config.location:
            location_provider = StaticLocationProvider(self.config.location)

        # Script-visible objects
        self.console = ConsoleAPI(self.report)
        self.widget_api = WidgetAPI(self)
        self.context = ContextAPI(context, self.config.device_info())
        self.storage = StorageAPI(self.storage_backend, self.config.storage_prefix, self.report)
        self.db = DatabaseAPI(data_client, self.caller, self.report)
        self.timers = TimerAPI(self.scheduler, self.guard)
        self.http = HttpAPI(self.caller, session=http_session, timeout=self.config.http_timeout)
        self.location = LocationAPI(
            location_provider, self.scheduler, self.caller, self.guard, self.report,
            interval_ms=self.config.location_interval_ms,
        )
        self.sensor = SensorAPI(
            sensor_drivers, self.scheduler, self.caller, self.guard, self.report,
            frequency_ms=self.config.sensor_frequency_ms,
        )
        self.usb = UsbAPI(self.scheduler, self.guard, self.report, **(usb_options or {}))
        self.device = DeviceAPI(data_client, self.context.user_id, self.transport, self.caller, self.report)
        connect_kwargs = {"connect": ws_connect} if ws_connect else {}
        self.connections = CustomConnections(self.scheduler, self.report, **connect_kwargs)
        self.ws = WebSocketAPI(self.transport, self.connections, self.scheduler, self.guard, self.report)

    # ------------------------------------------------------------------
    # Host callbacks
    # ------------------------------------------------------------------

    def report(self, level: str, message: str, args: Optional[list] = None):
        """Forward a console line to the host."""
        if self._on_console_log is None:
            return
        try:
            self._on_console_log(level, message, list(args or []))
        except Exception as exc:
            logger.error("Console callback error: %s", exc)

    def notify_update(self, widget_id: str, partial: Dict[str, Any]):
        try:
            self._on_widget_update(widget_id, partial)
        except Exception as exc:
            logger.error("Widget update callback error [%s]: %s", widget_id, exc)

    def notify_transform(self, widget_id: str, transform: Dict[str, Any]):
        callback = self._on_transform_update or self._on_widget_update
        try:
            callback(widget_id, transform)
        except Exception as exc:
            logger.error("Transform update callback error [%s]: %s", widget_id, exc)

    def _on_listener_error(self, widget_id: str, event: str, exc: Exception):
        self.report("error", f"Error in event handler for {widget_id}.{event}", [str(exc)])

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @property
    def live(self) -> bool:
        return self._live

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def script(self) -> Optional[str]:
        return self._script

    def guard(self, callback: Callable) -> Callable:
        """Bind callback to the current execution.

        The wrapper does nothing once that execution has been cleaned up,
        and reports instead of raising if the callback fails.
        """
        generation = self._generation

        def guarded(*args):
            if not self._live or generation != self._generation:
                logger.debug("Dropping stale callback %s (generation %d)",
                             getattr(callback, "__name__", callback), generation)
                return None
            try:
                return callback(*args)
            except Exception as exc:
                logger.error("Script callback error: %s", exc)
                self.report("error", f"Error in script callback: {exc}", [str(exc)])
                return None

        return guarded

    def _namespace(self) -> Dict[str, Any]:
        timers = self.timers
        return {
            "__builtins__": SAFE_BUILTINS,
            "__name__": "dashboard_script",
            "widget": self.widget_api,
            "ws": self.ws,
            "storage": self.storage,
            "db": self.db,
            "context": self.context,
            "location": self.location,
            "http": self.http,
            "device": self.device,
            "sensor": self.sensor,
            "usb": self.usb,
            "console": self.console,
            "setTimeout": timers.set_timeout,
            "setInterval": timers.set_interval,
            "clearTimeout": timers.clear,
            "clearInterval": timers.clear,
            "print": self.console.log,
            "json": json,
            "math": math,
        }

    def execute(self, script_text: str) -> bool:
        """Run script_text once. Returns False if it failed to compile or run.

        Re-running the text that is already live does nothing. Different
        text cleans up the current execution first. A script that fails
        part-way stays live: listeners it registered before the error
        keep working.
        """
        if self._live and script_text == self._script:
            logger.debug("Script unchanged; not re-executing")
            return self._last_result
        if self._live:
            self.cleanup()

        self._generation += 1
        self._live = True
        self._script = script_text
        namespace = self._namespace()

        try:
            code = compile(script_text or "", SCRIPT_FILENAME, "exec")
            exec(code, namespace)
        except Exception as exc:
            logger.error("Script execution failed: %s: %s", type(exc).__name__, exc)
            self.report("error", "Script execution failed", [f"{type(exc).__name__}: {exc}"])
            self._last_result = False
            return False

        logger.info("Script executed (generation %d)", self._generation)
        self.report("info", "Script executed successfully", [])
        self._last_result = True
        return True

    def cleanup(self):
        """Tear down everything the current execution created."""
        timers = self.timers.cancel_all()
        watches = self.sensor.stop_all() + self.location.stop_all()
        ports = self.usb.close_all()
        sockets = self.ws.close()
        self.bus.clear()

        self._generation += 1
        self._live = False
        self._script = None
        self._last_result = False
        for widget in self.registry:
            if widget.lifecycle_state is not LifecycleState.DESTROYED:
                widget.lifecycle_state = LifecycleState.UNINITIALIZED

        logger.info("Runtime cleanup: %d timer(s), %d watch(es), %d port(s), %d socket handler(s)",
                    timers, watches, ports, sockets)

    def close(self):
        """cleanup() plus release of the runtime's own resources."""
        self.cleanup()
        self.http.close()
        if self._owns_executor:
            self.caller.shutdown()

    # ------------------------------------------------------------------
    # Lifecycle and events
    # ------------------------------------------------------------------

    def trigger_lifecycle_event(self, widget_id: str, event: str) -> bool:
        """Move widget_id to the state for event and notify listeners.

        Repeated or out-of-order events are ignored; returns whether the
        transition happened.
        """
        target = LIFECYCLE_EVENTS.get(event)
        if target is None:
            raise ValueError(f"unknown lifecycle event: {event}")

        widget = self.registry.get(widget_id)
        if widget is None:
            logger.warning("Lifecycle %s for unknown widget %s", event, widget_id)
            return False
        if widget.lifecycle_state not in _ALLOWED_FROM[target]:
            logger.debug("Ignoring %s for %s in state %s", event, widget_id, widget.lifecycle_state.name)
            return False

        widget.lifecycle_state = target
        self.trigger_widget_event(widget_id, event, {"widgetId": widget_id})
        return True

    def start_widget(self, widget_id: str):
        """Fire load now and ready after the configured delay."""
        self.trigger_lifecycle_event(widget_id, "load")
        generation = self._generation

        def ready():
            if generation == self._generation:
                self.trigger_lifecycle_event(widget_id, "ready")

        timer = self.scheduler.call_later(self.config.ready_delay_ms / 1000.0, ready)
        self.timers.track(timer)

    def start_all(self):
        for widget in self.registry:
            self.start_widget(widget.id)

    def add_widget(self, widget: Union[Widget, Dict]) -> Widget:
        if not isinstance(widget, Widget):
            widget = Widget.from_dict(widget)
        self.registry.add(widget)
        self.start_widget(widget.id)
        return widget

    def remove_widget(self, widget_id: str) -> Optional[Widget]:
        if widget_id not in self.registry:
            return None
        self.trigger_lifecycle_event(widget_id, "destroy")
        self.bus.unsubscribe(widget_id)
        return self.registry.remove(widget_id)

    def trigger_widget_event(self, widget_id: str, event: str, value: Any = None) -> int:
        """Deliver an event to script listeners. Never raises."""
        try:
            if not self.bus.has_listeners(widget_id, event):
                logger.debug("No script listeners for %s.%s", widget_id, event)
                return 0
            self.report("info", f"[Event] {widget_id}.{event}", [value])
            return self.bus.emit(widget_id, event, value)
        except Exception as exc:
            logger.error("Event dispatch error [%s.%s]: %s", widget_id, event, exc)
            return 0

    triggerLifecycleEvent = trigger_lifecycle_event
    triggerWidgetEvent = trigger_widget_event

    def __repr__(self) -> str:
        return (f"<ScriptRuntime widgets={len(self.registry)} live={self._live} "
                f"generation={self._generation}>")
