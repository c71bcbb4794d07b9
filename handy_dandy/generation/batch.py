"""Concurrent batch generation with per-entity outcomes."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from handy_dandy.generation import GenerationResult, RequestLike, generate_entity
from handy_dandy.generation.prompts import PromptInput

JsonDict = Dict[str, Any]
Importer = Callable[[JsonDict], Union[Any, Awaitable[Any]]]

logger = logging.getLogger(__name__)

_NOUNS = {"action": "actions", "item": "items", "actor": "actors"}


@dataclass(frozen=True)
class BatchEntry:
    """Outcome of one entity in a batch."""

    name: str
    ok: bool
    result: Optional[GenerationResult] = None
    record: Any = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    entity_type: str
    entries: Tuple[BatchEntry, ...] = field(default_factory=tuple)

    @property
    def success_count(self) -> int:
        return sum(1 for entry in self.entries if entry.ok)

    @property
    def failure_count(self) -> int:
        return len(self.entries) - self.success_count

    @property
    def summary(self) -> str:
        return format_batch_summary(
            _NOUNS.get(self.entity_type, "entries"),
            len(self.entries),
            self.success_count,
            self.failure_count,
        )

    def failures(self) -> List[str]:
        return [f"{entry.name}: {entry.error or 'Unknown error'}" for entry in self.entries if not entry.ok]


def format_batch_summary(noun: str, total: int, succeeded: int, failed: int) -> str:
    if not total:
        return f"No {noun} processed."
    if not failed:
        return f"Processed {total} {noun}: all succeeded."
    if not succeeded:
        return f"Processed {total} {noun}: all failed."
    return f"Processed {total} {noun}: {succeeded} succeeded, {failed} failed."


def _input_name(request: RequestLike, index: int) -> str:
    if isinstance(request, PromptInput):
        return request.title
    if isinstance(request, Mapping):
        for key in ("title", "name", "slug"):
            value = request.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"entry {index + 1}"


async def _run_one(
    entity_type: str,
    request: RequestLike,
    index: int,
    importer: Optional[Importer],
    options: Mapping[str, Any],
) -> BatchEntry:
    label = _input_name(request, index)
    try:
        result = await generate_entity(entity_type, request, **options)
        record = None
        if importer is not None:
            record = importer(result.document)
            if inspect.isawaitable(record):
                record = await record
    except Exception as exc:  # one entity failing must not abort its siblings
        logger.warning("batch %s entry failed name=%s error=%s", entity_type, label, exc)
        return BatchEntry(name=label, ok=False, error=str(exc) or exc.__class__.__name__)
    return BatchEntry(name=result.name or label, ok=True, result=result, record=record)


async def generate_batch(
    entity_type: str,
    inputs: Iterable[RequestLike],
    *,
    importer: Optional[Importer] = None,
    **options: Any,
) -> BatchResult:
    """Generate every input concurrently and collect each outcome.

    Extra keyword arguments are forwarded to
    :func:`handy_dandy.generation.generate_entity`. Entries keep input order.
    """

    requests = list(inputs)
    entries = await asyncio.gather(
        *(_run_one(entity_type, request, index, importer, options) for index, request in enumerate(requests))
    )
    result = BatchResult(entity_type=entity_type, entries=tuple(entries))
    logger.info(result.summary)
    return result


__all__ = ["BatchEntry", "BatchResult", "Importer", "format_batch_summary", "generate_batch"]
