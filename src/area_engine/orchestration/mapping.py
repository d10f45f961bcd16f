"""Payload mapping and condition evaluation for reaction chains.

Mapping values:
    "user.login" or "{{user.login}}"      dot path into the payload
    {"type": ..., "source": ..., ...}     typed transformation
    anything else                         literal value

Conditions:
    {"operator": "and"|"or", "conditions": [...]}
    {"operator": "not", "condition": {...}}
    {"field": "user.login", "operator": "equals", "value": "octocat"}
"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_TEMPLATE_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")
_COMPOSITE_OPERATORS = ("and", "or", "not")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def extract_value_by_path(data: Any, path: str | None) -> Any:
    """Resolve a dot path such as ``repository.owner.login`` against nested dicts."""
    if path is None or not str(path).strip():
        return None
    path = str(path).strip()
    if path.startswith("{{") and path.endswith("}}"):
        path = path[2:-2].strip()

    current = data
    for part in path.split("."):
        if current is None:
            return None
        if not isinstance(current, dict):
            logger.warning(f"Cannot navigate path '{path}': not a mapping at '{part}'")
            return None
        current = current.get(part)
    return current


def to_number(value: Any) -> int | float:
    """Convert to a number.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"Cannot convert to number: {value!r}")


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    if isinstance(value, (int, float)):
        return value != 0
    return False


class DataMappingService:
    """Applies mappings to payloads and evaluates reaction conditions."""

    def apply_mapping(
        self, payload: dict[str, Any], mapping: dict[str, Any] | None
    ) -> dict[str, Any]:
        """Build a new payload keyed by mapping targets.

        An empty mapping returns the payload unchanged.

        Raises:
            ValueError: If a number transformation gets a non-numeric value
        """
        if not mapping:
            return payload

        result: dict[str, Any] = {}
        for target, spec in mapping.items():
            if isinstance(spec, str):
                result[target] = extract_value_by_path(payload, spec)
            elif isinstance(spec, dict):
                result[target] = self._apply_transformation(payload, spec)
            else:
                result[target] = spec
        return result

    def _apply_transformation(self, payload: dict[str, Any], transform: dict[str, Any]) -> Any:
        source_value = extract_value_by_path(payload, transform.get("source"))
        if source_value is None:
            return transform.get("default")

        transform_type = str(transform.get("type") or "direct").lower()
        if transform_type == "string":
            return _stringify(source_value)
        if transform_type == "number":
            return to_number(source_value)
        if transform_type == "boolean":
            return to_boolean(source_value)
        if transform_type == "template":
            return self._apply_template(transform.get("template"), payload)
        if transform_type == "format":
            return self._apply_format(source_value, transform.get("format"))
        return source_value

    def _apply_template(self, template: str | None, payload: dict[str, Any]) -> str | None:
        if template is None:
            return None

        def replace(match: re.Match) -> str:
            value = extract_value_by_path(payload, match.group(1))
            return _stringify(value) if value is not None else ""

        return _TEMPLATE_PLACEHOLDER.sub(replace, template)

    def _apply_format(self, value: Any, fmt: str | None) -> str:
        if fmt is None:
            return _stringify(value)
        text = _stringify(value)
        try:
            name = fmt.lower()
            if name == "uppercase":
                return text.upper()
            if name == "lowercase":
                return text.lower()
            if name == "trim":
                return text.strip()
            if "{" in fmt:
                return fmt.format(value)
            return fmt % (value,)
        except (ValueError, TypeError, IndexError, KeyError) as e:
            logger.warning(f"Failed to apply format '{fmt}' to {value!r}: {e}")
            return text

    def evaluate_condition(self, payload: dict[str, Any], condition: dict[str, Any] | None) -> bool:
        """Evaluate a (possibly nested) condition against a payload.

        An empty condition passes. Unknown simple operators fail.
        """
        if not condition:
            return True

        operator = condition.get("operator")
        operator = str(operator).lower() if operator is not None else None

        if operator is None and "conditions" in condition:
            operator = "and"

        subconditions = condition.get("conditions") or []
        if operator == "and":
            return all(self.evaluate_condition(payload, c) for c in subconditions)
        if operator == "or":
            return any(self.evaluate_condition(payload, c) for c in subconditions)
        if operator == "not":
            return not self.evaluate_condition(payload, condition.get("condition"))
        return self._evaluate_simple(payload, condition, operator or "equals")

    def _evaluate_simple(
        self, payload: dict[str, Any], condition: dict[str, Any], operator: str
    ) -> bool:
        actual = extract_value_by_path(payload, condition.get("field"))
        expected = condition.get("value")

        if operator == "exists":
            return actual is not None
        if operator == "not_exists":
            return actual is None
        if operator == "equals":
            return self._equals(actual, expected)
        if operator == "not_equals":
            return not self._equals(actual, expected)

        if operator in ("greater_than", "less_than", "greater_equal", "less_equal"):
            cmp = self._compare(actual, expected)
            return {
                "greater_than": cmp > 0,
                "less_than": cmp < 0,
                "greater_equal": cmp >= 0,
                "less_equal": cmp <= 0,
            }[operator]

        if operator in ("contains", "not_contains", "starts_with", "ends_with", "regex"):
            if actual is None or expected is None:
                # not_contains on a missing value still passes
                return operator == "not_contains"
            text, needle = _stringify(actual), _stringify(expected)
            if operator == "contains":
                return needle in text
            if operator == "not_contains":
                return needle not in text
            if operator == "starts_with":
                return text.startswith(needle)
            if operator == "ends_with":
                return text.endswith(needle)
            try:
                return re.fullmatch(needle, text) is not None
            except re.error as e:
                logger.warning(f"Invalid regex pattern {needle!r}: {e}")
                return False

        logger.warning(f"Unknown condition operator: {operator}")
        return False

    @staticmethod
    def _equals(actual: Any, expected: Any) -> bool:
        if actual is None or expected is None:
            return actual is None and expected is None
        return _stringify(actual) == _stringify(expected)

    @staticmethod
    def _compare(actual: Any, expected: Any) -> int:
        if actual is None or expected is None:
            return 0
        try:
            a, b = float(to_number(actual)), float(to_number(expected))
        except ValueError:
            a, b = _stringify(actual), _stringify(expected)
        return (a > b) - (a < b)
