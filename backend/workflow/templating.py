"""Placeholder substitution for step configs.

Resolves ``{{ ... }}`` placeholders against the execution context:

- ``{{trigger.data}}`` / ``{{trigger.data.order.id}}``: the run's trigger payload
- ``{{step_<id>.<path>}}``: the result of step ``<id>``, walked by dot path
  (dict keys, or integer indexes into lists)

The config is walked structurally. A string that is exactly one placeholder
is replaced by the value itself, so numbers, lists and objects keep their
type. Placeholders inside a longer string are spliced in as text (strings
verbatim, anything else JSON-encoded). Anything that cannot be resolved is
left exactly as written; resolution never raises.
"""

import copy
import json
import logging
import re
from typing import Any

from workflow.models import ExecutionContext

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")

STEP_PREFIX = "step_"


class _Unresolved:
    """Sentinel for a placeholder that has no value in the context."""

    def __repr__(self) -> str:
        return "<unresolved>"


UNRESOLVED = _Unresolved()


class TemplateResolver:
    """Pure, total resolver over (config, context)."""

    @staticmethod
    def resolve(config: dict, context: ExecutionContext) -> dict:
        """Return a new config with every resolvable placeholder substituted."""
        if not isinstance(config, dict):
            return TemplateResolver.resolve_value(config, context)
        return {key: TemplateResolver.resolve_value(value, context) for key, value in config.items()}

    @staticmethod
    def resolve_value(value: Any, context: ExecutionContext) -> Any:
        """Resolve one node of the config tree. Mapping keys are never rewritten."""
        if isinstance(value, str):
            return TemplateResolver._resolve_string(value, context)
        if isinstance(value, dict):
            return {k: TemplateResolver.resolve_value(v, context) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [TemplateResolver.resolve_value(v, context) for v in value]
        return value

    @staticmethod
    def _resolve_string(text: str, context: ExecutionContext) -> Any:
        if "{{" not in text:
            return text

        whole = PLACEHOLDER_PATTERN.fullmatch(text)
        if whole:
            resolved = TemplateResolver.lookup(whole.group(1), context)
            if resolved is UNRESOLVED:
                return text
            try:
                return copy.deepcopy(resolved)
            except Exception:
                return resolved

        def _splice(match: re.Match) -> str:
            resolved = TemplateResolver.lookup(match.group(1), context)
            if resolved is UNRESOLVED:
                return match.group(0)
            if isinstance(resolved, str):
                return resolved
            try:
                return json.dumps(resolved, default=str)
            except (TypeError, ValueError):
                return match.group(0)

        return PLACEHOLDER_PATTERN.sub(_splice, text)

    @staticmethod
    def lookup(expression: str, context: ExecutionContext) -> Any:
        """Resolve a bare expression (no braces) or return ``UNRESOLVED``."""
        try:
            parts = expression.strip().split(".")
            head = parts[0]

            if head == "trigger":
                if len(parts) < 2 or parts[1] != "data" or context.trigger_data is None:
                    return UNRESOLVED
                return TemplateResolver._walk(context.trigger_data, parts[2:])

            if head.startswith(STEP_PREFIX):
                # step_s1 -> "s1"; fall back to the full segment for ids like "step_1"
                for step_id in (head[len(STEP_PREFIX):], head):
                    if step_id and step_id in context.step_results:
                        return TemplateResolver._walk(context.step_results[step_id], parts[1:])
            return UNRESOLVED
        except Exception as e:
            logger.debug("Placeholder %r left unresolved: %s", expression, e)
            return UNRESOLVED

    @staticmethod
    def get_path(value: Any, dotted: str) -> Any:
        """Walk ``dotted`` (e.g. ``"data.items.0"``) into ``value``; ``UNRESOLVED`` on a miss."""
        return TemplateResolver._walk(value, dotted.split(".")) if dotted else value

    @staticmethod
    def _walk(current: Any, path: list[str]) -> Any:
        for part in path:
            if part == "":
                return UNRESOLVED
            if isinstance(current, dict):
                if part not in current:
                    return UNRESOLVED
                current = current[part]
            elif isinstance(current, list):
                if not part.isdigit() or int(part) >= len(current):
                    return UNRESOLVED
                current = current[int(part)]
            else:
                return UNRESOLVED
        return current

