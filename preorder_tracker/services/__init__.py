"""Option constraint engine - resolver, form binding and server re-check."""

from .form_binding import FieldBinding, FormSession, bind_field, bind_form
from .recheck import apply_fixed_values, recheck_order, verify
from .resolver import (
    applicable_records,
    decision_for,
    decisions_to_wire,
    find_duplicate_rules,
    resolve,
    resolve_for,
)

__all__ = [
    "resolve",
    "resolve_for",
    "applicable_records",
    "decision_for",
    "decisions_to_wire",
    "find_duplicate_rules",
    "FieldBinding",
    "FormSession",
    "bind_field",
    "bind_form",
    "verify",
    "apply_fixed_values",
    "recheck_order",
]
