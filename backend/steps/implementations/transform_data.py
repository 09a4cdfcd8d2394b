"""Transform Data step implementation.

Applies a named operation to an input value. Operations are looked up in a
table of handlers, each a plain callable ``(data, expression) -> value``.
Expressions reuse the dot-path language of ``{{...}}`` placeholders; nothing
is evaluated as code.

Built-in operations:
    map      ``expression`` is a path projected out of every item
    filter   ``expression`` is a path kept when truthy, or
             ``path == <json literal>`` / ``path != <json literal>``;
             other comparison operators are rejected
    reduce   ``expression`` is ``count``, ``sum``, ``avg``, ``min``, ``max``,
             optionally scoped to a path as ``sum:amount``
"""

import json
from typing import Any, Callable, Dict, List, Optional

import structlog

from core.constants import StepType
from core.exceptions import UnknownOperationError
from steps.base_step import BaseStep, StepResult
from workflow.models import ExecutionContext
from workflow.templating import UNRESOLVED, TemplateResolver

logger = structlog.get_logger(__name__)

OperationHandler = Callable[[Any, Optional[str]], Any]


def _require_list(data: Any, operation: str) -> List[Any]:
    if not isinstance(data, list):
        raise ValueError(f"'{operation}' expects a list input, got {type(data).__name__}")
    return data


def _pick(item: Any, path: Optional[str]) -> Any:
    """Value at ``path`` inside ``item``; ``None`` when missing."""
    if not path:
        return item
    value = TemplateResolver.get_path(item, path.strip())
    return None if value is UNRESOLVED else value


def _literal(text: str) -> Any:
    text = text.strip()
    try:
        return json.loads(text)
    except ValueError:
        return text


def map_items(data: Any, expression: Optional[str]) -> List[Any]:
    """Project ``expression`` out of every item."""
    items = _require_list(data, "map")
    return [_pick(item, expression) for item in items]


def filter_items(data: Any, expression: Optional[str]) -> List[Any]:
    """Keep the items matching ``expression``."""
    items = _require_list(data, "filter")
    expression = (expression or "").strip()

    for op in ("==", "!="):
        if op in expression:
            path, _, raw = expression.partition(op)
            expected = _literal(raw)
            if op == "==":
                return [item for item in items if _pick(item, path) == expected]
            return [item for item in items if _pick(item, path) != expected]

    if any(ch in expression for ch in "<>="):
        raise ValueError(f"Unsupported filter comparison: {expression} (use == or !=)")
    return [item for item in items if _pick(item, expression)]


_AGGREGATES: Dict[str, Callable[[List[Any]], Any]] = {
    "sum": lambda values: sum(values),
    "avg": lambda values: sum(values) / len(values) if values else None,
    "min": lambda values: min(values) if values else None,
    "max": lambda values: max(values) if values else None,
}


def reduce_items(data: Any, expression: Optional[str]) -> Any:
    """Fold the items into a single value."""
    items = _require_list(data, "reduce")
    name, _, path = (expression or "count").strip().partition(":")
    name = name.strip()

    if name == "count":
        return len(items)
    if name not in _AGGREGATES:
        raise ValueError(f"Unknown reduce aggregate: {name}")

    values = [_pick(item, path) for item in items]
    numeric = [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]
    return _AGGREGATES[name](numeric)


DEFAULT_OPERATIONS: Dict[str, OperationHandler] = {
    "filter": filter_items,
    "map": map_items,
    "reduce": reduce_items,
}


class TransformDataStep(BaseStep):
    """Transform data from the trigger or an earlier step.

    Config:
        operation: Name of a registered operation (required)
        expression: Operation-specific expression
        input: Value to transform, usually a placeholder such as
            ``"{{step_fetch.data.items}}"``; defaults to the trigger data
    """

    step_type = StepType.TRANSFORM_DATA
    display_name = "Transform Data"
    description = "Filter, map or reduce data"

    def __init__(self, operations: Optional[Dict[str, OperationHandler]] = None):
        self.operations: Dict[str, OperationHandler] = dict(operations or DEFAULT_OPERATIONS)

    def register_operation(self, name: str, handler: OperationHandler) -> None:
        """Add or replace an operation handler."""
        self.operations[name] = handler

    async def execute(self, config: Dict[str, Any], context: ExecutionContext) -> StepResult:
        operation = config.get("operation")
        handler = self.operations.get(operation) if isinstance(operation, str) else None
        if handler is None:
            raise UnknownOperationError(str(operation))

        data = config["input"] if "input" in config else context.trigger_data

        try:
            result = handler(data, config.get("expression"))
        except (TypeError, ValueError) as e:
            return StepResult.failure(f"Transform failed: {e}")

        return StepResult(success=True, output=result, metadata={"operation": operation})

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["operation"],
            "properties": {
                "operation": {"type": "string", "enum": list(DEFAULT_OPERATIONS)},
                "expression": {"type": "string"},
                "input": {"description": "Value to transform"},
            },
        }
