"""Script-visible bridging API.

Each class here is one object in the script namespace (``widget``,
``console``, ``storage``, ``db``, ``context`` and the timer functions).
Methods are snake_case with camelCase aliases, so scripts can use either
spelling (widget.setValue or widget.set_value). Nothing here raises into the
script for ordinary misuse: unknown widgets, a missing database client
or unserializable storage values are reported to the console instead.
"""

import copy
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from core.calls import AsyncCaller
from core.scheduler import Scheduler, Timer

logger = logging.getLogger(__name__)
script_logger = logging.getLogger("dashboard.script")

_LOG_LEVELS = {
    "log": logging.INFO,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def format_console_arg(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    try:
        return json.dumps(arg, default=str)
    except (TypeError, ValueError):
        return str(arg)


# ---------------------------------------------------------------------------
# console
# ---------------------------------------------------------------------------
class ConsoleAPI:
    """console.log/info/warn/error forwarded to the host console callback."""

    def __init__(self, report: Callable[[str, str, list], None]):
        self._report = report

    def _emit(self, level: str, args):
        message = " ".join(format_console_arg(a) for a in args)
        script_logger.log(_LOG_LEVELS[level], "%s", message)
        self._report(level, message, list(args))

    def log(self, *args):
        self._emit("log", args)

    def info(self, *args):
        self._emit("info", args)

    def warn(self, *args):
        self._emit("warn", args)

    def error(self, *args):
        self._emit("error", args)

    warning = warn


# ---------------------------------------------------------------------------
# widget
# ---------------------------------------------------------------------------
class WidgetAPI:
    """Read/write access to live widget state.

    Reads go to the registry's cached Widget objects. Writes update the
    cache synchronously, notify the host through on_widget_update (or
    on_transform_update for geometry) and then raise widget events.
    """

    def __init__(self, runtime):
        self._rt = runtime

    def _find(self, widget_id: str):
        widget = self._rt.registry.get(widget_id)
        if widget is None:
            logger.warning("Widget %s not found", widget_id)
            self._rt.report("warn", f"Widget {widget_id} not found", [])
        return widget

    def get(self, widget_id: str) -> Optional[Dict[str, Any]]:
        widget = self._rt.registry.get(widget_id)
        return widget.to_dict() if widget else None

    def get_value(self, widget_id: str) -> Any:
        widget = self._find(widget_id)
        if widget is None:
            return None
        return widget.variant.read_value(widget.config)

    def set_value(self, widget_id: str, value: Any):
        widget = self._find(widget_id)
        if widget is None:
            return
        variant = widget.variant
        old = variant.read_value(widget.config)
        stored = variant.write_value(widget.config, value)
        widget.value = stored
        self._rt.notify_update(widget_id, {"config": copy.deepcopy(widget.config), "value": stored})

        self._rt.trigger_widget_event(widget_id, "change", value)
        self._rt.trigger_widget_event(widget_id, "update", value)
        for event, event_value in variant.value_events(widget.config, old, stored):
            self._rt.trigger_widget_event(widget_id, event, event_value)

    def get_text(self, widget_id: str) -> Optional[str]:
        widget = self._find(widget_id)
        if widget is None:
            return None
        return widget.variant.read_text(widget.title, widget.config)

    def set_text(self, widget_id: str, text: str):
        widget = self._find(widget_id)
        if widget is None:
            return
        widget.title = text
        self._rt.notify_update(widget_id, {"title": text})
        self._rt.trigger_widget_event(widget_id, "change", text)
        self._rt.trigger_widget_event(widget_id, "update", text)

    def show(self, widget_id: str):
        self._set_visible(widget_id, True, "visible")

    def hide(self, widget_id: str):
        self._set_visible(widget_id, False, "hidden")

    def _set_visible(self, widget_id, visible, event):
        widget = self._find(widget_id)
        if widget is None:
            return
        widget.style["visible"] = visible
        self._rt.notify_update(widget_id, {"style": dict(widget.style)})
        self._rt.trigger_widget_event(widget_id, event, True)

    def set_config(self, widget_id: str, config_key: str, value: Any):
        widget = self._find(widget_id)
        if widget is None:
            return
        widget.config[config_key] = value
        self._rt.notify_update(widget_id, {"config": copy.deepcopy(widget.config)})
        self._rt.trigger_widget_event(widget_id, "update", {"configKey": config_key, "value": value})

    def get_config(self, widget_id: str, config_key: Optional[str] = None) -> Any:
        widget = self._find(widget_id)
        if widget is None:
            return None
        if config_key is None:
            return copy.deepcopy(widget.config)
        return copy.deepcopy(widget.config.get(config_key))

    # -- geometry -----------------------------------------------------------

    def set_position(self, widget_id: str, x: float, y: float):
        widget = self._find(widget_id)
        if widget is None:
            return
        widget.position = {"x": x, "y": y}
        self._rt.notify_transform(widget_id, {"position": {"x": x, "y": y}})

    def get_position(self, widget_id: str) -> Optional[Dict]:
        widget = self._find(widget_id)
        return widget.position if widget else None

    def set_size(self, widget_id: str, width: float, height: float):
        widget = self._find(widget_id)
        if widget is None:
            return
        widget.size = {"width": width, "height": height}
        self._rt.notify_transform(widget_id, {"size": {"width": width, "height": height}})

    def get_size(self, widget_id: str) -> Optional[Dict]:
        widget = self._find(widget_id)
        return widget.size if widget else None

    def set_rotation(self, widget_id: str, degrees: float):
        widget = self._find(widget_id)
        if widget is None:
            return
        widget.rotation = degrees
        self._rt.notify_transform(widget_id, {"rotation": degrees})

    def get_rotation(self, widget_id: str) -> Optional[float]:
        widget = self._find(widget_id)
        return widget.rotation if widget else None

    def resize(self, widget_id: str, width: float, height: float):
        self.set_size(widget_id, width, height)

    def move(self, widget_id: str, x: float, y: float):
        self.set_position(widget_id, x, y)

    # -- events -------------------------------------------------------------

    def on(self, widget_id: str, event: str, callback: Callable) -> Callable[[], None]:
        """Register callback for (widget_id, event); returns unregister()."""
        return self._rt.bus.subscribe(widget_id, event, callback)

    def once(self, widget_id: str, event: str, callback: Callable) -> Callable[[], None]:
        holder: List[Callable] = []

        def once_wrapper(value):
            holder[0]()
            callback(value)

        holder.append(self._rt.bus.subscribe(widget_id, event, once_wrapper))
        return holder[0]

    def off(self, widget_id: str, event: Optional[str] = None, callback: Optional[Callable] = None):
        self._rt.bus.unsubscribe(widget_id, event, callback)

    def emit(self, widget_id: str, event: str, value: Any = None):
        self._rt.trigger_widget_event(widget_id, event, value)

    getValue = get_value
    setValue = set_value
    getText = get_text
    setText = set_text
    setConfig = set_config
    getConfig = get_config
    setPosition = set_position
    getPosition = get_position
    setSize = set_size
    getSize = get_size
    setRotation = set_rotation
    getRotation = get_rotation


# ---------------------------------------------------------------------------
# context
# ---------------------------------------------------------------------------
class ContextAPI:
    """Read-only session context: user, device and dashboardId."""

    def __init__(self, context: Optional[Dict[str, Any]], device_info: Dict[str, Any]):
        context = context or {}
        user = context.get("user")
        if user is None and context.get("userId"):
            user = {
                "id": context["userId"],
                "email": context.get("userEmail"),
                "role": context.get("userRole"),
            }
        self.user = copy.deepcopy(user)
        self.device = copy.deepcopy(context.get("device") or device_info)
        self.dashboardId = context.get("dashboardId")

    @property
    def user_id(self) -> Optional[str]:
        return (self.user or {}).get("id")

    def as_dict(self) -> Dict[str, Any]:
        return {"user": self.user, "device": self.device, "dashboardId": self.dashboardId}

    def __repr__(self) -> str:
        return f"<ContextAPI dashboard={self.dashboardId} user={self.user_id}>"


# ---------------------------------------------------------------------------
# storage
# ---------------------------------------------------------------------------
class SessionStorage:
    """Key/value store shared by every script execution of one session.

    Holds JSON text so stored values behave like browser local storage:
    what comes back is a fresh copy, never the object that was stored.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def set_item(self, key: str, text: str):
        with self._lock:
            self._data[key] = text

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def remove_item(self, key: str):
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class StorageAPI:
    """storage.set/get/remove/clear scoped by a key prefix."""

    def __init__(self, store: SessionStorage, prefix: str, report: Callable[[str, str, list], None]):
        self._store = store
        self._prefix = prefix
        self._report = report

    def set(self, key: str, value: Any):
        try:
            self._store.set_item(self._prefix + key, json.dumps(value))
        except (TypeError, ValueError) as exc:
            logger.error("Error storing value for %s: %s", key, exc)
            self._report("error", f"Error storing value: {exc}", [key])

    def get(self, key: str) -> Any:
        text = self._store.get_item(self._prefix + key)
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError as exc:
            logger.error("Error retrieving value for %s: %s", key, exc)
            self._report("error", f"Error retrieving value: {exc}", [key])
            return None

    def remove(self, key: str):
        self._store.remove_item(self._prefix + key)

    def clear(self):
        for key in self._store.keys():
            if key.startswith(self._prefix):
                self._store.remove_item(key)


# ---------------------------------------------------------------------------
# db
# ---------------------------------------------------------------------------
class DatabaseAPI:
    """db.query/db.insert passed through to the host's data client.

    Calls run off-thread; results reach the optional callback (or the
    errback on failure) on the logical thread. Returns the Future, or
    None when no data client is configured.
    """

    def __init__(self, data_client, caller: AsyncCaller, report: Callable[[str, str, list], None]):
        self._client = data_client
        self._caller = caller
        self._report = report

    @property
    def available(self) -> bool:
        return self._client is not None

    def _unavailable(self, op: str):
        logger.warning("db.%s called without a data client", op)
        self._report("error", "Database not available", [op])
        return None

    def query(self, table: str, filters: Optional[Dict] = None, options: Optional[Dict] = None,
              callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        if self._client is None:
            return self._unavailable("query")
        return self._caller.call(
            f"[Database] query {table}", self._client.query, table, filters or {}, options or {},
            callback=callback, errback=errback,
        )

    def insert(self, table: str, data: Dict, callback: Optional[Callable] = None,
               errback: Optional[Callable] = None):
        if self._client is None:
            return self._unavailable("insert")
        return self._caller.call(
            f"[Database] insert {table}", self._client.insert, table, data,
            callback=callback, errback=errback,
        )


# ---------------------------------------------------------------------------
# timers
# ---------------------------------------------------------------------------
class TimerAPI:
    """setTimeout/setInterval on the scheduler, cancelled by cleanup()."""

    def __init__(self, scheduler: Scheduler, guard: Callable[[Callable], Callable]):
        self._scheduler = scheduler
        self._guard = guard
        self._timers: List[Timer] = []

    def set_timeout(self, callback: Callable, delay_ms: float = 0, *args) -> Timer:
        timer = self._scheduler.call_later((delay_ms or 0) / 1000.0, self._guard(callback), *args)
        self.track(timer)
        return timer

    def set_interval(self, callback: Callable, delay_ms: float = 0, *args) -> Timer:
        timer = self._scheduler.call_every((delay_ms or 0) / 1000.0, self._guard(callback), *args)
        self.track(timer)
        return timer

    def clear(self, timer: Optional[Timer]):
        if timer is not None:
            timer.cancel()

    def track(self, timer: Timer):
        self._timers = [t for t in self._timers if t.active]
        self._timers.append(timer)

    def cancel_all(self) -> int:
        count = 0
        for timer in self._timers:
            if timer.active:
                timer.cancel()
                count += 1
        self._timers = []
        return count


# ---------------------------------------------------------------------------
# ws
# ---------------------------------------------------------------------------
class WebSocketAPI:
    """ws.send / onMessage over the device transport, plus script-owned sockets.

    send() goes out on the shared transport as {targetId, payload}.
    connect/sendTo/disconnect/isConnected manage extra URL-keyed sockets
    that belong to the current script execution.
    """

    def __init__(self, transport, connections, scheduler: Scheduler,
                 guard: Callable[[Callable], Callable], report: Callable[[str, str, list], None]):
        self._transport = transport
        self._connections = connections
        self._scheduler = scheduler
        self._guard = guard
        self._report = report
        self._unsubscribers: List[Callable[[], None]] = []

    def send(self, target_id: str, payload: Any) -> bool:
        try:
            return bool(self._transport.send(target_id, payload))
        except Exception as exc:
            logger.error("ws.send to %s failed: %s", target_id, exc)
            self._report("error", f"Failed to send to {target_id}", [str(exc)])
            return False

    def on_message(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Receive inbound device messages; returns unsubscribe()."""
        deliver = self._guard(callback)

        def handler(message):
            if isinstance(message, (str, bytes)):
                try:
                    message = json.loads(message)
                except ValueError as exc:
                    logger.error("Error parsing WebSocket message: %s", exc)
                    return
            self._scheduler.post(deliver, message)

        unsubscribe = self._transport.on_message(handler)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def connect(self, url: str, on_message: Optional[Callable] = None,
                callback: Optional[Callable[[bool], None]] = None):
        self._connections.connect(
            url,
            self._guard(on_message) if on_message else None,
            self._guard(callback) if callback else None,
        )

    def disconnect(self, url: str):
        self._connections.disconnect(url)

    def send_to(self, url: str, data: Any) -> bool:
        return self._connections.send_to(url, data)

    def is_connected(self, url: str) -> bool:
        return self._connections.is_connected(url)

    def close(self) -> int:
        """Drop inbound handlers and close script-owned sockets."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        handlers = len(self._unsubscribers)
        self._unsubscribers = []
        return handlers + self._connections.close_all()

    onMessage = on_message
    sendTo = send_to
    isConnected = is_connected
