"""Validate tool arguments against per-tool pydantic models.

Each tool declares its input shape as a ``ToolArgs`` subclass. The model is the
single source for both the JSON Schema published in the manifest and the
runtime check performed before a handler runs, so the two can never drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Mapping, Type

from pydantic import BaseModel, ConfigDict, StringConstraints, ValidationError

# Identifiers (owners, ids, image names) are trimmed; free text is passed through untouched.
Identifier = Annotated[str, StringConstraints(strip_whitespace=True)]


class ToolArgs(BaseModel):
    """Base class for tool argument models.

    Unknown fields are dropped. Values are checked strictly, so ``"20"`` is not
    an integer and ``"yes"`` is not a boolean, matching the published schema.
    """

    model_config = ConfigDict(extra="ignore", strict=True)


class NoArgs(ToolArgs):
    """Argument model for tools that take no input."""


@dataclass(frozen=True)
class ValidationIssue:
    """One field-level constraint violation."""

    field: str
    constraint: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "constraint": self.constraint, "message": self.message}


class ArgumentValidationError(ValueError):
    """Raised when candidate arguments do not satisfy a tool's schema."""

    def __init__(self, issues: List[ValidationIssue]) -> None:
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues) or "invalid arguments"
        super().__init__(summary)
        self.issues = issues

    def to_dicts(self) -> List[Dict[str, str]]:
        return [issue.to_dict() for issue in self.issues]


def _format_location(loc: tuple) -> str:
    parts = [str(part) for part in loc]
    return ".".join(parts) if parts else "args"


def _issues_from_error(exc: ValidationError) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for error in exc.errors():
        issues.append(
            ValidationIssue(
                field=_format_location(tuple(error.get("loc") or ())),
                constraint=str(error.get("type") or "invalid"),
                message=str(error.get("msg") or "Invalid value"),
            )
        )
    return issues


class SchemaValidator:
    """Compiled validator for one tool's argument model."""

    def __init__(self, model: Type[ToolArgs]) -> None:
        if not isinstance(model, type) or not issubclass(model, BaseModel):
            raise TypeError(f"Argument model must be a pydantic model, got {model!r}")
        self._model = model
        self._input_schema: Dict[str, Any] = model.model_json_schema()

    @property
    def model(self) -> Type[ToolArgs]:
        return self._model

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self._input_schema

    def validate(self, args: Any) -> Dict[str, Any]:
        """Return the accepted arguments or raise ``ArgumentValidationError``.

        ``None`` is treated as an empty object. The returned mapping has
        defaults applied, unknown keys stripped and unset optional keys
        omitted, and contains only JSON-compatible values.
        """

        if args is None:
            args = {}
        if not isinstance(args, Mapping):
            raise ArgumentValidationError(
                [ValidationIssue(field="args", constraint="object_type", message="Arguments must be a JSON object")]
            )
        try:
            parsed = self._model.model_validate(dict(args))
        except ValidationError as exc:
            raise ArgumentValidationError(_issues_from_error(exc)) from exc
        return parsed.model_dump(mode="json", exclude_none=True)


__all__ = [
    "ArgumentValidationError",
    "Identifier",
    "NoArgs",
    "SchemaValidator",
    "ToolArgs",
    "ValidationIssue",
]
