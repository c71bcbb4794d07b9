"""Read-only capability lookup for OpenRouter models."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

MODELS_ENDPOINT = "https://openrouter.ai/api/v1/models"
MODELS_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class ModelCapabilities:
    """Capabilities advertised by a single model listing."""

    model_id: str
    label: str
    supported_parameters: FrozenSet[str] = frozenset()
    input_modalities: FrozenSet[str] = frozenset()
    output_modalities: FrozenSet[str] = frozenset()

    @property
    def supports_structured_outputs(self) -> bool:
        return bool({"structured_outputs", "response_format"} & self.supported_parameters)

    @property
    def supports_tools(self) -> bool:
        return bool({"tools", "tool_choice"} & self.supported_parameters)

    @property
    def supports_text_generation(self) -> bool:
        if not self.output_modalities:
            return True
        return "text" in self.output_modalities

    @property
    def supports_image_generation(self) -> bool:
        return "image" in self.output_modalities


CapabilityLookup = Callable[[str], Optional[ModelCapabilities]]


def _string_set(value: Any) -> FrozenSet[str]:
    if not isinstance(value, list):
        return frozenset()
    return frozenset(entry.strip().lower() for entry in value if isinstance(entry, str) and entry.strip())


def capabilities_from_record(record: Mapping[str, Any]) -> Optional[ModelCapabilities]:
    """Build capabilities from one entry of the models listing."""

    model_id = record.get("id")
    if not isinstance(model_id, str) or not model_id.strip():
        return None
    model_id = model_id.strip()
    name = record.get("name")
    name = name.strip() if isinstance(name, str) else ""
    label = f"{name} ({model_id})" if name and name != model_id else model_id

    architecture = record.get("architecture")
    if not isinstance(architecture, Mapping):
        architecture = {}
    return ModelCapabilities(
        model_id=model_id,
        label=label,
        supported_parameters=_string_set(record.get("supported_parameters")),
        input_modalities=_string_set(architecture.get("input_modalities")),
        output_modalities=_string_set(architecture.get("output_modalities")),
    )


class CapabilityCatalog(Mapping[str, ModelCapabilities]):
    """Immutable mapping of model id to advertised capabilities.

    ``lookup`` returns ``None`` for unknown models; callers treat that as
    "assume supported" so an empty or stale catalog never blocks a request.
    """

    def __init__(self, entries: Iterable[ModelCapabilities] = ()) -> None:
        table: Dict[str, ModelCapabilities] = {}
        for entry in entries:
            table[entry.model_id] = entry
        self._entries = MappingProxyType(table)

    def __getitem__(self, key: str) -> ModelCapabilities:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, model_id: str) -> Optional[ModelCapabilities]:
        return self._entries.get(model_id)

    def text_models(self) -> Dict[str, str]:
        return self._choices(lambda entry: entry.supports_text_generation and bool(entry.output_modalities))

    def image_models(self) -> Dict[str, str]:
        return self._choices(lambda entry: entry.supports_image_generation)

    def _choices(self, predicate: Callable[[ModelCapabilities], bool]) -> Dict[str, str]:
        selected = sorted(
            (entry for entry in self._entries.values() if predicate(entry)),
            key=lambda entry: entry.label,
        )
        return {entry.model_id: entry.label for entry in selected}

    @classmethod
    def from_payload(cls, payload: Any) -> "CapabilityCatalog":
        """Parse a ``/models`` response body."""

        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, list):
            return cls()
        entries = []
        for record in data:
            if not isinstance(record, Mapping):
                continue
            capabilities = capabilities_from_record(record)
            if capabilities is not None:
                entries.append(capabilities)
        return cls(entries)


EMPTY_CATALOG = CapabilityCatalog()


def load_capability_catalog(
    *,
    endpoint: str = MODELS_ENDPOINT,
    timeout: float = MODELS_TIMEOUT_SECONDS,
    session: Optional[requests.Session] = None,
) -> CapabilityCatalog:
    """Fetch the OpenRouter models listing.

    Network or decoding failures are logged and yield an empty catalog.
    """

    http = session or requests
    try:
        response = http.get(endpoint, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Failed to load OpenRouter model catalog endpoint=%s error=%s", endpoint, exc)
        return EMPTY_CATALOG

    catalog = CapabilityCatalog.from_payload(payload)
    logger.debug("loaded OpenRouter model catalog models=%d", len(catalog))
    return catalog


__all__ = [
    "CapabilityCatalog",
    "CapabilityLookup",
    "EMPTY_CATALOG",
    "MODELS_ENDPOINT",
    "ModelCapabilities",
    "capabilities_from_record",
    "load_capability_catalog",
]
