"""Global pytest configuration and shared fixtures."""

from __future__ import annotations

import copy
import json
import pathlib
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

FIXTURES = pathlib.Path(__file__).resolve().parent / "fixtures"


def load_fixture(name: str) -> Dict[str, Any]:
    with open(FIXTURES / name, "r", encoding="utf-8") as handle:
        return json.load(handle)


@pytest.fixture
def action_record() -> Dict[str, Any]:
    return load_fixture("action.json")


@pytest.fixture
def item_record() -> Dict[str, Any]:
    return load_fixture("item.json")


@pytest.fixture
def actor_record() -> Dict[str, Any]:
    return load_fixture("actor.json")


class ScriptedGenerator:
    """Schema generator stub that replays queued payloads and records calls."""

    def __init__(self, payloads: List[Any], *, fallback: Optional[Callable[[], Any]] = None) -> None:
        self._payloads = list(payloads)
        self._fallback = fallback
        self.calls: List[SimpleNamespace] = []

    async def generate_with_schema(self, prompt: str, definition: Any, *, seed: Optional[int] = None) -> Any:
        self.calls.append(SimpleNamespace(prompt=prompt, definition=definition, seed=seed))
        if self._payloads:
            payload = self._payloads.pop(0)
        elif self._fallback is not None:
            payload = self._fallback()
        else:
            raise AssertionError("generator called more often than scripted")
        if isinstance(payload, Exception):
            raise payload
        return copy.deepcopy(payload)


@pytest.fixture
def scripted_generator() -> Callable[..., ScriptedGenerator]:
    return ScriptedGenerator
