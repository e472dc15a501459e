"""Live widget registry.

Owns the Widget objects of one dashboard session. The registry is the
value cache the bridging API reads from: writes land here synchronously,
the host renderer hears about them through the runtime's update callback.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from core.widget import Widget

logger = logging.getLogger(__name__)


class WidgetRegistry:
    """Ordered id -> Widget map with unique ids."""

    def __init__(self, widgets: Iterable[Widget] = ()):
        self._widgets: Dict[str, Widget] = {}
        for widget in widgets:
            self.add(widget)

    def add(self, widget: Widget) -> Widget:
        if widget.id in self._widgets:
            raise ValueError(f"duplicate widget id: {widget.id}")
        self._widgets[widget.id] = widget
        logger.debug("Registered widget %s (%s)", widget.id, widget.type)
        return widget

    def remove(self, widget_id: str) -> Optional[Widget]:
        widget = self._widgets.pop(widget_id, None)
        if widget is not None:
            logger.debug("Removed widget %s", widget_id)
        return widget

    def get(self, widget_id: str) -> Optional[Widget]:
        return self._widgets.get(widget_id)

    def ids(self) -> List[str]:
        return list(self._widgets)

    def diff(self, widgets: Iterable[Widget]) -> Tuple[List[Widget], List[str]]:
        """Compare against a new widget list.

        Returns (widgets not yet registered, ids no longer present).
        """
        incoming = {}
        for widget in widgets:
            if widget.id in incoming:
                raise ValueError(f"duplicate widget id: {widget.id}")
            incoming[widget.id] = widget
        added = [w for wid, w in incoming.items() if wid not in self._widgets]
        removed = [wid for wid in self._widgets if wid not in incoming]
        return added, removed

    def clear(self) -> None:
        self._widgets.clear()

    def __contains__(self, widget_id: object) -> bool:
        return widget_id in self._widgets

    def __iter__(self) -> Iterator[Widget]:
        return iter(list(self._widgets.values()))

    def __len__(self) -> int:
        return len(self._widgets)
