"""Payload templater.

render() turns a target's payload template plus an interaction's value
bag into the payload that is actually sent. The template is deep-copied
first and never modified. Injection follows the rule table in
actions.rules; templates with no matching rule go out unchanged.
"""

import copy
import logging
from typing import Any, Dict, Iterator, Optional

from actions.rules import MISSING, InjectionRule, rule_for

logger = logging.getLogger(__name__)


def _overwrite(target: Dict, fields: Dict, values: Dict, action_id: str):
    """Set each field that already exists in target."""
    for key, getter in fields.items():
        if key not in target:
            continue
        value = getter(values, action_id)
        if value is not MISSING:
            target[key] = value


def _merge_existing(target: Dict, source: Dict):
    for key, value in source.items():
        if key in target:
            target[key] = value


def _command_params(payload: Dict) -> Iterator[Dict]:
    commands = payload.get("commands")
    if not isinstance(commands, list):
        return
    for command in commands:
        if not isinstance(command, dict) or not isinstance(command.get("actions"), list):
            continue
        for action in command["actions"]:
            if isinstance(action, dict) and isinstance(action.get("params"), dict):
                yield action["params"]


def apply_rule(rule: InjectionRule, payload: Any, values: Dict, action_id: str) -> Any:
    """Inject values into payload in place (payload must already be a copy)."""
    if not isinstance(payload, dict):
        return payload

    merged = values.get(rule.merge_fields) if rule.merge_fields else None
    if not isinstance(merged, dict):
        merged = None

    _overwrite(payload, rule.top, values, action_id)

    parameters = payload.get("parameters")
    if isinstance(parameters, dict):
        _overwrite(parameters, rule.parameters, values, action_id)
        if merged:
            _merge_existing(parameters, merged)

    for params in _command_params(payload):
        _overwrite(params, rule.params, values, action_id)
        if merged:
            _merge_existing(params, merged)

    action_parameters = payload.get("actionParameters")
    if isinstance(action_parameters, dict):
        for slot in rule.action_parameters:
            if not slot.create and slot.key not in action_parameters:
                continue
            value = slot.getter(values, action_id)
            if value is not MISSING:
                action_parameters[slot.key] = value
        if merged:
            action_parameters.update(merged)

    return payload


def render(widget_type: str, action_id: str, template: Any,
           parameters: Optional[Dict[str, Any]] = None) -> Any:
    """Return the final payload for one dispatch target.

    Identical inputs give identical output; nothing is invented beyond
    what the value bag carries.
    """
    payload = copy.deepcopy(template)
    rule = rule_for(widget_type, action_id, parameters)
    if rule is None:
        return payload
    logger.debug("Applying %s to %s.%s payload", rule.name, widget_type, action_id)
    return apply_rule(rule, payload, parameters, action_id)
