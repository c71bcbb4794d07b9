"""OpenRouter request client with structured-output and tool-call modes."""

from __future__ import annotations

import base64
import hashlib
import logging
import mimetypes
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from handy_dandy.config import ClientConfig, read_client_config
from handy_dandy.exceptions import (
    CapabilityError,
    HandyDandyError,
    ImageGenerationError,
    ParseError,
    TransportError,
)
from handy_dandy.logging import log_ai_request
from handy_dandy.openrouter.catalog import CapabilityLookup, ModelCapabilities
from handy_dandy.openrouter.extractors import extract_json, extract_usage, iter_image_candidates, parse_data_url
from handy_dandy.openrouter.models import normalize_model_id, supports_temperature
from handy_dandy.schemas import SchemaDefinition

JsonDict = Dict[str, Any]
ImageFetcher = Callable[[str], Awaitable[Tuple[str, Optional[str]]]]

logger = logging.getLogger(__name__)

MAX_REFERENCE_IMAGES = 16
STRUCTURED_SYSTEM_PROMPT = "Return valid JSON that satisfies the requested schema."
TOOL_SYSTEM_PROMPT = (
    "You are a JSON serializer. Always provide valid JSON for the {name} tool that satisfies "
    "the supplied schema."
)
_DEFAULT_SCHEMA_DESCRIPTION = "Return JSON matching the provided schema."
_IMAGE_ASPECT_RATIOS = {"1536x1024": "3:2", "1024x1536": "2:3", "1024x1024": "1:1"}
_IMAGE_MODALITY_ATTEMPTS = (("image", "text"), ("image",))
_REQUEST_ONLY_KEYS = {"$schema", "$id"}


def has_loose_additional_properties(node: Any) -> bool:
    """Return True when any object node allows arbitrary extra properties."""

    if isinstance(node, list):
        return any(has_loose_additional_properties(entry) for entry in node)
    if not isinstance(node, dict):
        return False
    if _is_object_type(node.get("type")) and node.get("additionalProperties") is True:
        return True
    return any(has_loose_additional_properties(value) for value in node.values())


def _is_object_type(value: Any) -> bool:
    if isinstance(value, list):
        return "object" in value
    return value == "object"


def require_all_properties(node: Any) -> Any:
    """Return a copy of *node* whose object schemas require every declared property."""

    if isinstance(node, list):
        return [require_all_properties(entry) for entry in node]
    if not isinstance(node, dict):
        return node

    normalized: JsonDict = {}
    property_keys: List[str] = []
    for key, value in node.items():
        if key == "properties" and isinstance(value, dict):
            normalized[key] = {name: require_all_properties(child) for name, child in value.items()}
            property_keys = list(value)
            continue
        normalized[key] = require_all_properties(value)

    if property_keys:
        existing = normalized.get("required")
        required = [entry for entry in existing if isinstance(entry, str)] if isinstance(existing, list) else []
        for key in property_keys:
            if key not in required:
                required.append(key)
        normalized["required"] = required
    return normalized


def prepare_schema_definition(definition: SchemaDefinition) -> SchemaDefinition:
    """Return the request-ready variant of *definition*."""

    schema = require_all_properties(definition.schema)
    schema = {key: value for key, value in schema.items() if key not in _REQUEST_ONLY_KEYS}
    return replace(definition, schema=schema)


def prompt_fingerprint(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()


def _transport_error(error: Exception) -> TransportError:
    status = getattr(error, "status_code", None)
    if not isinstance(status, int):
        status = getattr(error, "status", None)
    if not isinstance(status, int):
        status = None
    code = getattr(error, "code", None)
    code = code if isinstance(code, str) else None
    detail = str(error) or error.__class__.__name__

    if status in {401, 403}:
        reason = "auth_error"
    elif status == 429:
        reason = "rate_limited"
    elif status is not None and 500 <= status < 600:
        reason = "server_error"
    elif status is not None and 400 <= status < 500:
        reason = "bad_request"
    else:
        reason = "network_error"
    return TransportError(reason, detail, status_code=status, code=code)


def should_fallback(error: Exception) -> bool:
    """Return True when a structured-mode failure warrants one tool-mode retry."""

    if isinstance(error, TransportError):
        status, code, message = error.status_code, error.code, error.detail
    else:
        status = getattr(error, "status_code", None)
        code = getattr(error, "code", None)
        message = str(error)
    if isinstance(code, str) and "response_format" in code.lower():
        return True
    if isinstance(status, int) and 400 <= status < 500:
        return True
    return isinstance(message, str) and "response_format" in message.lower()


@dataclass(frozen=True)
class ReferenceImage:
    """Inline image bytes attached to an image generation request."""

    data: bytes
    mime_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ReferenceImage":
        location = Path(path)
        mime_type, _ = mimetypes.guess_type(location.name)
        return cls(location.read_bytes(), mime_type or "application/octet-stream")

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class GeneratedImage:
    """Image payload returned by :meth:`OpenRouterClient.generate_image`."""

    base64: str
    mime_type: str
    revised_prompt: Optional[str] = None


async def fetch_image_as_base64(url: str) -> Tuple[str, Optional[str]]:
    """Download *url* and return its base64 body and content type."""

    async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as http:
        response = await http.get(url)
        response.raise_for_status()
    return base64.b64encode(response.content).decode("ascii"), response.headers.get("content-type")


def _no_capabilities(model_id: str) -> Optional[ModelCapabilities]:
    return None


def build_openai_client(config: ClientConfig) -> Any:
    """Return an ``AsyncOpenAI`` SDK client pointed at OpenRouter."""

    from openai import AsyncOpenAI

    return AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)


class OpenRouterClient:
    """Issue schema-bound generation and image requests through OpenRouter.

    *openai* is an ``AsyncOpenAI``-compatible SDK object. *capabilities* is a
    read-only lookup returning the advertised capabilities of a model or
    ``None`` when nothing is known; unknown models are assumed to support
    every mode.
    """

    def __init__(
        self,
        openai: Any,
        config: Optional[ClientConfig] = None,
        *,
        capabilities: Optional[CapabilityLookup] = None,
        image_fetcher: Optional[ImageFetcher] = None,
    ) -> None:
        self._openai = openai
        self._config = config or ClientConfig()
        self._capabilities = capabilities or _no_capabilities
        self._image_fetcher = image_fetcher or fetch_image_as_base64
        self._logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_environment(
        cls,
        *,
        capabilities: Optional[CapabilityLookup] = None,
        config: Optional[ClientConfig] = None,
    ) -> "OpenRouterClient":
        resolved = config or read_client_config()
        return cls(build_openai_client(resolved), resolved, capabilities=capabilities)

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def generate_with_schema(
        self,
        prompt: str,
        definition: SchemaDefinition,
        *,
        seed: Optional[int] = None,
    ) -> Any:
        """Return the JSON payload the model produced for *definition*."""

        model = self._config.model
        capabilities = self._capabilities(model)
        if capabilities is not None and not capabilities.supports_text_generation:
            raise CapabilityError(
                model,
                f'Configured text model "{model}" does not advertise structured/tool support for JSON generation.',
            )

        supports_structured = capabilities is None or capabilities.supports_structured_outputs
        supports_tools = capabilities is None or capabilities.supports_tools
        prompt_hash = prompt_fingerprint(prompt)
        prepared = prepare_schema_definition(definition)

        if has_loose_additional_properties(definition.schema):
            if not supports_tools:
                raise CapabilityError(
                    model,
                    f'Configured text model "{model}" does not advertise tool-call support, but this schema '
                    "requires tool mode (contains additionalProperties:true).",
                )
            return await self._run_with_logging("tool", prompt_hash, prepared, prompt, seed)

        if not supports_structured and not supports_tools:
            raise CapabilityError(
                model,
                f'Configured text model "{model}" does not advertise structured-output or tool-call support.',
            )
        if not supports_structured:
            return await self._run_with_logging("tool", prompt_hash, prepared, prompt, seed)

        try:
            return await self._run_with_logging("structured", prompt_hash, prepared, prompt, seed)
        except TransportError as exc:
            if not supports_tools or not should_fallback(exc):
                raise
            self._logger.warning(
                "structured request rejected model=%s status=%s; retrying in tool mode",
                model,
                exc.status_code,
            )
            return await self._run_with_logging("tool", prompt_hash, prepared, prompt, seed)

    async def _run_with_logging(
        self,
        method: str,
        prompt_hash: str,
        definition: SchemaDefinition,
        prompt: str,
        seed: Optional[int],
    ) -> Any:
        start = time.perf_counter()
        try:
            request = self._build_request(method, definition, prompt, seed)
            response = await self._create_response(request)
            payload = extract_json(response)
            if payload is None:
                raise ParseError(definition.name)
        except HandyDandyError as exc:
            self._record_interaction(
                method=method,
                prompt_hash=prompt_hash,
                schema_name=definition.name,
                duration_ms=(time.perf_counter() - start) * 1000.0,
                success=False,
                error=str(exc),
            )
            raise
        self._record_interaction(
            method=method,
            prompt_hash=prompt_hash,
            schema_name=definition.name,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            success=True,
            usage=extract_usage(response),
        )
        return payload

    def _build_request(
        self,
        method: str,
        definition: SchemaDefinition,
        prompt: str,
        seed: Optional[int],
    ) -> JsonDict:
        description = definition.description or _DEFAULT_SCHEMA_DESCRIPTION
        if method == "structured":
            request: JsonDict = {
                "model": self._config.model,
                "input": self._input_messages(prompt, STRUCTURED_SYSTEM_PROMPT),
                "text": {
                    "format": {
                        "type": "json_schema",
                        "name": definition.name,
                        "description": description,
                        "schema": definition.schema,
                        "strict": True,
                    }
                },
            }
        else:
            request = {
                "model": self._config.model,
                "input": self._input_messages(prompt, TOOL_SYSTEM_PROMPT.format(name=definition.name)),
                "tools": [
                    {
                        "type": "function",
                        "name": definition.name,
                        "description": description,
                        "parameters": definition.schema,
                        "strict": True,
                    }
                ],
                "tool_choice": {"type": "function", "name": definition.name},
            }

        resolved_seed = seed if seed is not None else self._config.seed
        if resolved_seed is not None:
            request["metadata"] = {"handy_dandy_seed": str(resolved_seed)}
        if supports_temperature(self._config.model):
            request["temperature"] = self._config.temperature
        request["top_p"] = self._config.top_p
        return request

    @staticmethod
    def _input_messages(prompt: str, instruction: str) -> List[JsonDict]:
        return [
            {"role": "system", "content": instruction},
            {"role": "user", "content": prompt},
        ]

    async def _create_response(self, request: JsonDict) -> Any:
        try:
            return await self._openai.responses.create(**request)
        except HandyDandyError:
            raise
        except Exception as exc:
            raise _transport_error(exc) from exc

    def _record_interaction(
        self,
        *,
        method: str,
        prompt_hash: str,
        schema_name: str,
        duration_ms: float,
        success: bool,
        usage: Optional[Dict[str, int]] = None,
        error: Optional[str] = None,
    ) -> None:
        if not self._config.debug:
            return

        record: JsonDict = {
            "event": "ai_request",
            "method": method,
            "prompt_sha256": prompt_hash,
            "schema_name": schema_name,
            "model": self._config.model,
            "duration_ms": round(duration_ms, 3),
            "success": success,
        }
        if usage:
            record["usage"] = usage
        if error is not None:
            record["error"] = error

        self._logger.debug("AI request %s", record)
        try:
            log_ai_request(record, path=self._config.telemetry_path)
        except OSError as exc:
            self._logger.warning("Failed to record AI request telemetry path=%s error=%s", self._config.telemetry_path, exc)

    async def generate_image(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        size: Optional[str] = None,
        image_format: str = "png",
        reference_images: Sequence[ReferenceImage] = (),
    ) -> GeneratedImage:
        """Generate one image for *prompt*, optionally guided by reference images."""

        resolved_model = normalize_model_id(model, self._config.image_model) if model else self._config.image_model
        capabilities = self._capabilities(resolved_model)
        if capabilities is not None and not capabilities.supports_image_generation:
            raise CapabilityError(
                resolved_model,
                f'Image model "{resolved_model}" does not advertise text->image support.',
            )

        references = list(reference_images)
        if len(references) > MAX_REFERENCE_IMAGES:
            raise ValueError(f"OpenRouter image edits support up to {MAX_REFERENCE_IMAGES} reference images.")

        content: Any = prompt
        if references:
            content = [{"type": "text", "text": prompt}] + [
                {"type": "image_url", "image_url": {"url": reference.to_data_url()}} for reference in references
            ]

        base_request: JsonDict = {
            "model": resolved_model,
            "stream": False,
            "messages": [{"role": "user", "content": content}],
        }
        aspect_ratio = _IMAGE_ASPECT_RATIOS.get(size or "")
        if aspect_ratio:
            base_request["extra_body"] = {"image_config": {"aspect_ratio": aspect_ratio}}

        fallback_mime_type = "image/webp" if image_format == "webp" else "image/png"
        last_error: Optional[Exception] = None
        for modalities in _IMAGE_MODALITY_ATTEMPTS:
            request = dict(base_request, modalities=list(modalities))
            try:
                response = await self._openai.chat.completions.create(**request)
                image = await self._first_image(response, fallback_mime_type)
            except HandyDandyError:
                raise
            except Exception as exc:
                self._logger.warning(
                    "image request failed model=%s modalities=%s error=%s",
                    resolved_model,
                    ",".join(modalities),
                    exc,
                )
                last_error = exc
                continue
            if image is not None:
                return image
            self._logger.debug("image response empty model=%s modalities=%s", resolved_model, ",".join(modalities))

        if last_error is not None:
            if isinstance(last_error, httpx.HTTPError):
                raise TransportError("image_fetch_failed", str(last_error)) from last_error
            raise _transport_error(last_error) from last_error
        raise ImageGenerationError("OpenRouter image generation did not return image data.")

    async def _first_image(self, response: Any, fallback_mime_type: str) -> Optional[GeneratedImage]:
        for candidate in iter_image_candidates(response):
            mime_type = candidate.mime_type or fallback_mime_type
            if candidate.base64:
                return GeneratedImage(candidate.base64, mime_type, candidate.revised_prompt)
            if not candidate.url:
                continue
            parsed = parse_data_url(candidate.url)
            if parsed is not None:
                encoded, data_mime_type = parsed
                return GeneratedImage(encoded, data_mime_type, candidate.revised_prompt)
            encoded, content_type = await self._image_fetcher(candidate.url)
            if content_type and content_type.startswith("image/"):
                mime_type = content_type
            return GeneratedImage(encoded, mime_type, candidate.revised_prompt)
        return None


__all__ = [
    "GeneratedImage",
    "MAX_REFERENCE_IMAGES",
    "OpenRouterClient",
    "ReferenceImage",
    "build_openai_client",
    "fetch_image_as_base64",
    "has_loose_additional_properties",
    "prepare_schema_definition",
    "prompt_fingerprint",
    "require_all_properties",
    "should_fallback",
]
