"""Best-effort matching of lead records against rule conditions.

Nothing in here raises on bad input: a missing field, an unknown
operator or a type mismatch simply makes the condition ``False``.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from crmflow.schemas.workflow import WorkflowCondition

_COLLECTION_TYPES = (list, tuple, set, frozenset)


def _as_number(value: Any) -> Optional[Decimal]:
    """Return *value* as a finite ``Decimal``, or ``None``.

    Numeric strings are accepted because rule values typed into forms
    arrive as text.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _is_numeric_field(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _equals(field_value: Any, value: Any) -> bool:
    if isinstance(field_value, bool) or isinstance(value, bool):
        return (
            isinstance(field_value, bool)
            and isinstance(value, bool)
            and field_value == value
        )
    if _is_numeric_field(field_value):
        other = _as_number(value)
        return other is not None and _as_number(field_value) == other
    return field_value == value


def _op_equals(field_value: Any, value: Any) -> bool:
    return _equals(field_value, value)


def _op_not_equals(field_value: Any, value: Any) -> bool:
    return not _equals(field_value, value)


def _op_contains(field_value: Any, value: Any) -> bool:
    if isinstance(field_value, str):
        return isinstance(value, str) and value in field_value
    if isinstance(field_value, _COLLECTION_TYPES):
        return any(_equals(item, value) for item in field_value)
    return False


def _compare(field_value: Any, value: Any, predicate: Callable[[Decimal, Decimal], bool]) -> bool:
    left = _as_number(field_value)
    right = _as_number(value)
    if left is None or right is None:
        return False
    return predicate(left, right)


def _op_greater_than(field_value: Any, value: Any) -> bool:
    return _compare(field_value, value, lambda a, b: a > b)


def _op_less_than(field_value: Any, value: Any) -> bool:
    return _compare(field_value, value, lambda a, b: a < b)


def _op_in(field_value: Any, value: Any) -> bool:
    if not isinstance(value, _COLLECTION_TYPES):
        return False
    return any(_equals(field_value, item) for item in value)


def _op_not_in(field_value: Any, value: Any) -> bool:
    if not isinstance(value, _COLLECTION_TYPES):
        return False
    return not any(_equals(field_value, item) for item in value)


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": _op_equals,
    "not_equals": _op_not_equals,
    "contains": _op_contains,
    "greater_than": _op_greater_than,
    "less_than": _op_less_than,
    "in": _op_in,
    "not_in": _op_not_in,
}


def evaluate_condition(condition: WorkflowCondition, record: Mapping[str, Any]) -> bool:
    """Evaluate a single condition against *record*.

    An absent (or ``None``) field is ``False`` for every operator,
    including ``not_equals`` and ``not_in``.
    """
    field_value = record.get(condition.field)
    if field_value is None:
        return False
    operator = OPERATORS.get(_plain(condition.operator))
    if operator is None:
        return False
    return operator(field_value, condition.value)


def evaluate(conditions: Sequence[WorkflowCondition], record: Mapping[str, Any]) -> bool:
    """Fold *conditions* left to right into a single match decision.

    Each condition's ``logic`` joins the running result with the *next*
    condition, so ``[A(and), B(or), C]`` reads ``(A and B) or C``.  An
    empty list always matches.
    """
    if not conditions:
        return True
    result = evaluate_condition(conditions[0], record)
    for previous, condition in zip(conditions, conditions[1:]):
        current = evaluate_condition(condition, record)
        if _plain(previous.logic) == "or":
            result = result or current
        else:
            result = result and current
    return result
