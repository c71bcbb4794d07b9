"""JSON Schema validation for canonical Handy Dandy records."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple

from jsonschema import Draft202012Validator, ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from handy_dandy.schemas import SCHEMAS, get_schema, schema_uri


@dataclass(frozen=True)
class ValidationIssue:
    """A single field-level schema violation."""

    path: str
    message: str
    keyword: str = ""

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    def as_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message, "keyword": self.keyword}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one payload."""

    ok: bool
    errors: Tuple[ValidationIssue, ...] = field(default_factory=tuple)

    def messages(self) -> List[str]:
        return [str(issue) for issue in self.errors]


def _dotted(parts: Iterable[Any]) -> str:
    return ".".join(str(part) for part in parts)


def format_error(error: ValidationError) -> List[ValidationIssue]:
    """Translate a jsonschema error into one or more :class:`ValidationIssue`."""

    base = _dotted(error.absolute_path)
    if error.validator == "additionalProperties" and isinstance(error.instance, Mapping):
        declared = error.schema.get("properties", {}) if isinstance(error.schema, Mapping) else {}
        extras = sorted(key for key in error.instance if key not in declared)
        if extras:
            return [
                ValidationIssue(
                    path=f"{base}.{extra}" if base else str(extra),
                    message="must NOT have additional properties",
                    keyword="additionalProperties",
                )
                for extra in extras
            ]
    return [ValidationIssue(path=base or "(root)", message=error.message, keyword=str(error.validator))]


@lru_cache(maxsize=1)
def schema_registry() -> Registry:
    """Return a registry resolving every entity schema by its ``$id``."""

    resources = [
        (schema_uri(name), Resource.from_contents(schema, default_specification=DRAFT202012))
        for name, schema in SCHEMAS.items()
    ]
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def _validator_for(schema_type: str) -> Draft202012Validator:
    return Draft202012Validator(get_schema(schema_type), registry=schema_registry())


def _collect_errors(raw_errors: Iterable[ValidationError]) -> Iterator[ValidationIssue]:
    for error in raw_errors:
        yield from format_error(error)


def validate(schema_type: str, payload: Any) -> ValidationResult:
    """Validate *payload* against the schema registered for *schema_type*."""

    validator = _validator_for(schema_type)
    issues = sorted(
        _collect_errors(validator.iter_errors(payload)),
        key=lambda issue: (issue.path, issue.keyword, issue.message),
    )
    if issues:
        return ValidationResult(ok=False, errors=tuple(issues))
    return ValidationResult(ok=True)


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "format_error",
    "schema_registry",
    "validate",
]
