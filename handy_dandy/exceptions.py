"""Error taxonomy shared across the Handy Dandy pipeline."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

JsonDict = Dict[str, Any]


class HandyDandyError(RuntimeError):
    """Base class for every error raised by the generation pipeline."""


class CapabilityError(HandyDandyError):
    """Raised before any network call when a model cannot serve the requested mode."""

    def __init__(self, model: str, detail: str) -> None:
        super().__init__(detail)
        self.model = model
        self.detail = detail


class TransportError(HandyDandyError):
    """Raised when the remote service rejects or fails a request."""

    def __init__(
        self,
        reason: str,
        detail: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail
        self.status_code = status_code
        self.code = code


class ParseError(HandyDandyError):
    """Raised when a response carries no extractable JSON payload."""

    def __init__(self, schema_name: str) -> None:
        super().__init__(f'Unable to parse JSON response for schema "{schema_name}"')
        self.schema_name = schema_name


class ImageGenerationError(HandyDandyError):
    """Raised when no image generation attempt produced image data."""


class SchemaValidationError(HandyDandyError):
    """Raised when the generation-validation loop exhausts its attempt budget."""

    def __init__(
        self,
        entity_type: str,
        attempts: int,
        *,
        errors: Sequence[str],
        diagnostics: Sequence[JsonDict],
        original_payload: Any = None,
        last_payload: Any = None,
    ) -> None:
        summary = "; ".join(errors) if errors else "unknown validation failure"
        super().__init__(
            f"Failed to validate {entity_type} payload after {attempts} attempts: {summary}"
        )
        self.entity_type = entity_type
        self.attempts = attempts
        self.errors: List[str] = list(errors)
        self.diagnostics: List[JsonDict] = list(diagnostics)
        self.original_payload = original_payload
        self.last_payload = last_payload


class MigrationError(HandyDandyError):
    """Raised for backward migrations or a missing step in the registry."""

    def __init__(
        self,
        entity_type: str,
        from_version: int,
        to_version: int,
        detail: str,
    ) -> None:
        super().__init__(detail)
        self.entity_type = entity_type
        self.from_version = from_version
        self.to_version = to_version


__all__ = [
    "CapabilityError",
    "HandyDandyError",
    "ImageGenerationError",
    "MigrationError",
    "ParseError",
    "SchemaValidationError",
    "TransportError",
]
