"""Interaction handling: action taxonomy, payload templating and dispatch.

    ActionResolver  -- interaction -> declarative/legacy dispatches + widget event
    render          -- fill a payload template from an interaction's value bag
    ACTION_EVENT_TYPES -- which event types each action triggers
"""

from actions.legacy import Dispatch
from actions.resolver import ActionResolver, derive_event
from actions.taxonomy import ACTION_EVENT_TYPES, TAXONOMY_VERSION, event_types_for
from actions.templater import render

__all__ = [
    "ActionResolver",
    "Dispatch",
    "derive_event",
    "render",
    "ACTION_EVENT_TYPES",
    "TAXONOMY_VERSION",
    "event_types_for",
]
