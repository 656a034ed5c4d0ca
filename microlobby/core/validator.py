"""
validator.py — Schema Validator
================================
Declarative shape checks for everything the game client sends.

Constraint tables (ranges, lengths, enums, the battle-tag regex) live
on the pydantic models in apps/lobby/schema.py. This module only runs a
model against a raw value and flattens pydantic's errors into a list of
Violation(path, message). An empty list means the value is accepted.

USAGE:
------
    from microlobby.core.validator import validate
    from microlobby.apps.lobby.schema import PlayerPayload

    violations = validate(PlayerPayload, raw_slot)
    if violations:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError


@dataclass(frozen=True)
class Violation:
    path: str
    message: str

    def to_dict(self) -> dict:
        return {"path": self.path, "message": self.message}

    def prefixed(self, prefix: str) -> "Violation":
        """Same violation, nested under `prefix` (used by snapshot checks)."""
        path = f"{prefix}.{self.path}" if self.path else prefix
        return Violation(path, self.message)


def _loc_to_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def _known_keys(schema: type[BaseModel]) -> set[str]:
    return {field.alias or name for name, field in schema.model_fields.items()}


def validate(
    schema: type[BaseModel],
    value: Any,
    *,
    strict: bool = True,
    strip: bool = True,
) -> list[Violation]:
    """
    Validate `value` against `schema`.

    Args:
        schema: pydantic model class describing the shape
        value: raw (JSON-decoded) value
        strict: no type coercion ("5" is not a number, 1 is not a bool)
        strip: tolerate unknown top-level keys; False reports them

    Returns:
        Every violation found, in pydantic's order. Never raises.
    """
    violations: list[Violation] = []

    try:
        schema.model_validate(value, strict=strict)
    except ValidationError as exc:
        for error in exc.errors():
            violations.append(Violation(_loc_to_path(error["loc"]), error["msg"]))

    if not strip and isinstance(value, dict):
        known = _known_keys(schema)
        for key in value:
            if key not in known:
                violations.append(Violation(str(key), "Unknown field"))

    return violations


def validated(schema: type[BaseModel], value: Any, *, strict: bool = True) -> BaseModel | None:
    """Parsed model, or None when `value` has any violation."""
    try:
        return schema.model_validate(value, strict=strict)
    except ValidationError:
        return None
