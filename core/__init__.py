"""Core of the dashboard automation runtime.

Architecture:
    Widget / WidgetRegistry -- live widget state and its value cache
    EventBus       -- per-widget named events, delivered synchronously in order
    Scheduler      -- the single logical thread: FIFO callback queue + timers
    PollingWatch   -- background reads posted back onto the scheduler
    ScriptRuntime  -- runs dashboard scripts against the bridging API (core.runtime)
    DashboardSession -- host-side orchestration of one dashboard (core.session)
"""

from core.event_bus import EventBus
from core.registry import DRIVER_REGISTRY, WIDGET_REGISTRY, register_driver, register_widget
from core.scheduler import Scheduler, Timer
from core.watch import PollingWatch
from core.widget import LifecycleState, Widget, WidgetEvent, EventTarget
from core.widget_registry import WidgetRegistry

__all__ = [
    "EventBus",
    "Scheduler",
    "Timer",
    "PollingWatch",
    "Widget",
    "WidgetEvent",
    "EventTarget",
    "LifecycleState",
    "WidgetRegistry",
    "WIDGET_REGISTRY",
    "DRIVER_REGISTRY",
    "register_widget",
    "register_driver",
]
