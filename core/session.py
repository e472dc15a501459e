"""Dashboard session: one dashboard's runtime, resolver and transport.

Hosts (the web app, tests, an embedding UI) talk to a DashboardSession
instead of wiring the pieces themselves. It applies the mounting rules
of the dashboard view:

* script text changed (or first sync): tear the old execution down,
  run the new script, then load/ready every widget;
* same script, widgets added: load/ready only the new widgets;
* widgets gone from the list: destroy, then forget them;
* close(): destroy every widget, then clean up.

All mutating entry points can be called from any thread; they post
their work to the scheduler, which the host drains on one thread.
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from actions.resolver import ActionResolver
from config import RuntimeConfig
from core.runtime import ScriptRuntime
from core.scheduler import Scheduler
from core.widget import Widget
from transport.base import LoggingTransport, TransportAdapter
from transport.device_link import DeviceLink

logger = logging.getLogger(__name__)

_SYNCED_FIELDS = ("title", "style", "position", "size", "rotation")


def make_transport(config: RuntimeConfig) -> TransportAdapter:
    """DeviceLink when a device URL is configured, else a logging transport."""
    if not config.device_ws_url:
        logger.info("No device_ws_url configured; sends will be logged only")
        return LoggingTransport()
    link = DeviceLink(
        config.device_ws_url,
        config.connection_id,
        reconnect_attempts=config.reconnect_attempts,
        reconnect_delay=config.reconnect_delay,
    )
    link.start()
    return link


class DashboardSession:
    """Host-facing façade over ScriptRuntime + ActionResolver."""

    def __init__(
        self,
        widgets: Iterable[Dict],
        script: str = "",
        on_widget_update: Optional[Callable[[str, Dict], None]] = None,
        on_console_log: Optional[Callable[[str, str, list], None]] = None,
        context: Optional[Dict[str, Any]] = None,
        data_client=None,
        on_transform_update: Optional[Callable[[str, Dict], None]] = None,
        config: Optional[RuntimeConfig] = None,
        scheduler: Optional[Scheduler] = None,
        transport: Optional[TransportAdapter] = None,
        **runtime_options,
    ):
        self.config = config or RuntimeConfig()
        self.scheduler = scheduler or Scheduler()
        self._owns_transport = transport is None
        self.transport = transport or make_transport(self.config)
        self._on_widget_update = on_widget_update

        self.runtime = ScriptRuntime(
            [],
            self._widget_updated,
            on_console_log,
            context,
            data_client,
            on_transform_update,
            config=self.config,
            scheduler=self.scheduler,
            transport=self.transport,
            **runtime_options,
        )
        self.resolver = ActionResolver(
            self.runtime.registry.get,
            self.transport.send,
            self.runtime.trigger_widget_event,
            default_device_id=self.config.default_device_id,
        )
        self._script = None
        self._closed = False
        self.sync(widgets, script)

    # ------------------------------------------------------------------
    # Host entry points (thread-safe: they post to the scheduler)
    # ------------------------------------------------------------------

    def interact(self, widget_id: str, action_id: str, parameters: Optional[Dict[str, Any]] = None):
        """Queue a UI interaction for the resolver."""
        self.scheduler.post(self.handle_interaction, widget_id, action_id, copy.deepcopy(parameters or {}))

    def telemetry(self, widget_id: str, event: str, value: Any = None):
        """Queue an external event (device telemetry) for script listeners."""
        self.scheduler.post(self.runtime.trigger_widget_event, widget_id, event, value)

    def replace_script(self, script: str):
        self.scheduler.post(self._resync_script, script)

    def update_widgets(self, widgets: Iterable[Dict]):
        widgets = copy.deepcopy(list(widgets))
        self.scheduler.post(self.sync, widgets, self._script)

    # ------------------------------------------------------------------
    # Logical-thread operations
    # ------------------------------------------------------------------

    def handle_interaction(self, widget_id: str, action_id: str,
                           parameters: Optional[Dict[str, Any]] = None):
        return self.resolver.handle(widget_id, action_id, parameters)

    def _resync_script(self, script: str):
        self.sync([w.to_dict() for w in self.runtime.registry], script)

    def sync(self, widgets: Iterable[Dict], script: Optional[str] = None):
        """Bring the runtime in line with a widget list and script text."""
        script = script or ""
        incoming = [w if isinstance(w, Widget) else Widget.from_dict(w) for w in widgets]
        added, removed = self.runtime.registry.diff(incoming)

        for widget_id in removed:
            self.runtime.remove_widget(widget_id)
        self._refresh_existing(incoming)

        if script != self._script:
            for widget in added:
                self.runtime.registry.add(widget)
            self._script = script
            # Resets lifecycle state and pending ready timers even when nothing is live
            self.runtime.cleanup()
            if script.strip():
                self.runtime.execute(script)
            self.runtime.start_all()
            logger.info("Dashboard synced: %d widget(s), script %s",
                        len(self.runtime.registry), "loaded" if script.strip() else "empty")
            return

        for widget in added:
            self.runtime.add_widget(widget)
        if added or removed:
            logger.info("Widgets synced: +%d -%d", len(added), len(removed))

    def _refresh_existing(self, incoming: List[Widget]):
        """Copy designer-side edits onto widgets that stay registered."""
        for fresh in incoming:
            current = self.runtime.registry.get(fresh.id)
            if current is None:
                continue
            for field in _SYNCED_FIELDS:
                setattr(current, field, getattr(fresh, field))
            current.config = fresh.config
            current.value = fresh.value
            current.type = fresh.type

    def remove_widget(self, widget_id: str):
        self.scheduler.post(self.runtime.remove_widget, widget_id)

    def run_pending(self) -> int:
        return self.scheduler.run_pending()

    def close(self):
        """Destroy every widget, tear the runtime down and drop the transport."""
        if self._closed:
            return
        self._closed = True
        for widget in self.runtime.registry:
            self.runtime.trigger_lifecycle_event(widget.id, "destroy")
        self.runtime.close()
        if self._owns_transport:
            self.transport.close()
        logger.info("Dashboard session closed")

    # ------------------------------------------------------------------

    def _widget_updated(self, widget_id: str, partial: Dict[str, Any]):
        if self._on_widget_update:
            self._on_widget_update(widget_id, partial)

    def widgets(self) -> List[Dict[str, Any]]:
        return [w.to_dict() for w in self.runtime.registry]

    def widget(self, widget_id: str) -> Optional[Dict[str, Any]]:
        widget = self.runtime.registry.get(widget_id)
        return widget.to_dict() if widget else None

    @property
    def script(self) -> Optional[str]:
        return self._script
