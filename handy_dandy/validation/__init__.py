"""Schema validation and the bounded repair loop."""

from __future__ import annotations

from handy_dandy.validation.validator import (
    ValidationIssue,
    ValidationResult,
    format_error,
    schema_registry,
    validate,
)
from handy_dandy.validation.ensure_valid import (
    DEFAULT_MAX_ATTEMPTS,
    AttemptDiagnostics,
    CorrectionContext,
    apply_schema_defaults,
    build_correction_prompt,
    ensure_valid,
    normalize_payload,
)

__all__ = [
    "AttemptDiagnostics",
    "CorrectionContext",
    "DEFAULT_MAX_ATTEMPTS",
    "ValidationIssue",
    "ValidationResult",
    "apply_schema_defaults",
    "build_correction_prompt",
    "ensure_valid",
    "format_error",
    "normalize_payload",
    "schema_registry",
    "validate",
]
