"""OpenRouter request client tests with a fake async SDK."""

from __future__ import annotations

import asyncio
import json
import logging
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from handy_dandy.config import ClientConfig
from handy_dandy.exceptions import CapabilityError, ImageGenerationError, ParseError, TransportError
from handy_dandy.openrouter.catalog import ModelCapabilities
from handy_dandy.openrouter.client import (
    MAX_REFERENCE_IMAGES,
    OpenRouterClient,
    ReferenceImage,
    has_loose_additional_properties,
    prepare_schema_definition,
    should_fallback,
)
from handy_dandy.schemas import SchemaDefinition, schema_definition


class _ApiError(Exception):
    def __init__(self, message: str, status_code: int = None, code: str = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class _FakeOpenAI:
    """Records every request and replays scripted responses or errors."""

    def __init__(self, responses: List[Any] = (), images: List[Any] = ()) -> None:
        self._responses = list(responses)
        self._images = list(images)
        self.requests: List[Dict[str, Any]] = []
        self.image_requests: List[Dict[str, Any]] = []
        self.responses = SimpleNamespace(create=self._create)
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat))

    async def _create(self, **request: Any) -> Any:
        self.requests.append(request)
        result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def _chat(self, **request: Any) -> Any:
        self.image_requests.append(request)
        result = self._images.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _structured_response(payload: Dict[str, Any], usage: Dict[str, int] = None) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "output": [{"type": "message", "content": [{"type": "output_text", "text": json.dumps(payload)}]}]
    }
    if usage:
        response["usage"] = usage
    return response


def _tool_response(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"output": [{"type": "function_call", "name": "Action", "arguments": json.dumps(payload)}]}


def _capabilities(parameters, outputs=("text",)) -> ModelCapabilities:
    return ModelCapabilities(
        model_id="openai/gpt-5-mini",
        label="GPT-5 Mini",
        supported_parameters=frozenset(parameters),
        output_modalities=frozenset(outputs),
    )


def _client(openai: _FakeOpenAI, capabilities=None, **config: Any) -> OpenRouterClient:
    lookup = (lambda model: capabilities) if capabilities is not None else None
    return OpenRouterClient(openai, ClientConfig(**config), capabilities=lookup)


def test_structured_request_shape() -> None:
    openai = _FakeOpenAI([_structured_response({"name": "Power Attack"})])
    client = _client(openai)

    payload = asyncio.run(client.generate_with_schema("make it", schema_definition("action"), seed=7))

    assert payload == {"name": "Power Attack"}
    request = openai.requests[0]
    schema_format = request["text"]["format"]
    assert schema_format["type"] == "json_schema"
    assert schema_format["name"] == "Action"
    assert schema_format["strict"] is True
    assert "$schema" not in schema_format["schema"]
    assert "$id" not in schema_format["schema"]
    assert set(schema_format["schema"]["required"]) == set(schema_format["schema"]["properties"])
    assert request["metadata"] == {"handy_dandy_seed": "7"}
    assert "temperature" not in request
    assert request["top_p"] == 1.0
    assert request["input"][1] == {"role": "user", "content": "make it"}


def test_temperature_and_configured_seed_for_other_models() -> None:
    openai = _FakeOpenAI([_structured_response({"ok": True})])
    client = _client(openai, model="openai/gpt-4o", temperature=0.3, seed=99)

    asyncio.run(client.generate_with_schema("prompt", schema_definition("item")))

    assert openai.requests[0]["temperature"] == 0.3
    assert openai.requests[0]["metadata"] == {"handy_dandy_seed": "99"}


def test_tool_mode_when_structured_outputs_unsupported() -> None:
    openai = _FakeOpenAI([_tool_response({"slug": "x"})])
    client = _client(openai, _capabilities({"tools"}))

    payload = asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    assert payload == {"slug": "x"}
    request = openai.requests[0]
    assert "text" not in request
    assert request["tools"][0]["name"] == "Action"
    assert request["tool_choice"] == {"type": "function", "name": "Action"}


def test_client_error_falls_back_to_tool_mode_once(caplog) -> None:
    openai = _FakeOpenAI(
        [
            _ApiError("response_format json_schema is not supported", status_code=400),
            _tool_response({"slug": "fallback"}),
        ]
    )
    client = _client(openai, _capabilities({"structured_outputs", "tools"}))

    with caplog.at_level(logging.WARNING):
        payload = asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    assert payload == {"slug": "fallback"}
    assert len(openai.requests) == 2
    assert "text" in openai.requests[0]
    assert "tools" in openai.requests[1]
    assert any("retrying in tool mode" in message for message in caplog.messages)


def test_server_error_is_not_retried() -> None:
    openai = _FakeOpenAI([_ApiError("upstream exploded", status_code=502)])
    client = _client(openai)

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    assert excinfo.value.reason == "server_error"
    assert excinfo.value.status_code == 502
    assert isinstance(excinfo.value.__cause__, _ApiError)
    assert len(openai.requests) == 1


def test_fallback_is_skipped_without_tool_support() -> None:
    openai = _FakeOpenAI([_ApiError("bad request", status_code=400)])
    client = _client(openai, _capabilities({"response_format"}))

    with pytest.raises(TransportError):
        asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    assert len(openai.requests) == 1


def test_capability_errors_fail_before_any_request() -> None:
    openai = _FakeOpenAI()

    with pytest.raises(CapabilityError):
        asyncio.run(_client(openai, _capabilities({"seed"})).generate_with_schema("p", schema_definition("action")))
    with pytest.raises(CapabilityError):
        asyncio.run(
            _client(openai, _capabilities({"tools"}, outputs=("image",))).generate_with_schema(
                "p", schema_definition("action")
            )
        )

    assert openai.requests == []


def test_loose_schema_requires_tool_mode() -> None:
    loose = SchemaDefinition(
        name="Loose",
        schema={"type": "object", "additionalProperties": True, "properties": {"a": {"type": "string"}}},
    )
    assert has_loose_additional_properties(loose.schema) is True

    openai = _FakeOpenAI([_tool_response({"a": "b"})])
    assert asyncio.run(_client(openai).generate_with_schema("p", loose)) == {"a": "b"}
    assert "tools" in openai.requests[0]

    with pytest.raises(CapabilityError):
        asyncio.run(_client(_FakeOpenAI(), _capabilities({"structured_outputs"})).generate_with_schema("p", loose))


def test_unparseable_response_raises_parse_error() -> None:
    openai = _FakeOpenAI([{"output": [{"type": "message", "content": [{"type": "output_text", "text": "sorry"}]}]}])

    with pytest.raises(ParseError) as excinfo:
        asyncio.run(_client(openai).generate_with_schema("p", schema_definition("item")))

    assert 'schema "Item"' in str(excinfo.value)


def test_debug_mode_records_request_telemetry(tmp_path) -> None:
    path = tmp_path / "telemetry" / "requests.jsonl"
    openai = _FakeOpenAI([_structured_response({"ok": True}, usage={"input_tokens": 12, "output_tokens": 3})])
    client = _client(openai, debug=True, telemetry_path=str(path))

    asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    record = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
    assert record["method"] == "structured"
    assert record["schema_name"] == "Action"
    assert record["success"] is True
    assert record["usage"] == {"input_tokens": 12, "output_tokens": 3}
    assert len(record["prompt_sha256"]) == 64


def test_telemetry_is_skipped_without_debug(tmp_path) -> None:
    path = tmp_path / "requests.jsonl"
    openai = _FakeOpenAI([_structured_response({"ok": True})])

    asyncio.run(_client(openai, telemetry_path=str(path)).generate_with_schema("p", schema_definition("action")))

    assert not path.exists()


def test_failed_request_is_recorded_with_error(tmp_path) -> None:
    path = tmp_path / "requests.jsonl"
    openai = _FakeOpenAI([_ApiError("upstream exploded", status_code=500)])
    client = _client(openai, debug=True, telemetry_path=str(path))

    with pytest.raises(TransportError):
        asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert len(records) == 1
    assert records[0]["success"] is False
    assert "upstream exploded" in records[0]["error"]
    assert "usage" not in records[0]


def test_unwritable_telemetry_sink_is_logged_not_raised(monkeypatch, caplog) -> None:
    def failing_sink(record, *, path=None):
        raise OSError("disk full")

    monkeypatch.setattr("handy_dandy.openrouter.client.log_ai_request", failing_sink)
    caplog.set_level(logging.WARNING)
    openai = _FakeOpenAI([_structured_response({"ok": True})])
    client = _client(openai, debug=True)

    payload = asyncio.run(client.generate_with_schema("prompt", schema_definition("action")))

    assert payload == {"ok": True}
    assert "Failed to record AI request telemetry" in caplog.text
    assert "disk full" in caplog.text


def test_prepare_schema_definition_does_not_mutate_source() -> None:
    definition = schema_definition("action")
    prepared = prepare_schema_definition(definition)

    assert "$id" in definition.schema
    assert "img" not in definition.schema["required"]
    assert "img" in prepared.schema["required"]


def test_should_fallback_rules() -> None:
    assert should_fallback(TransportError("bad_request", "nope", status_code=422)) is True
    assert should_fallback(TransportError("network_error", "response_format unsupported")) is True
    assert should_fallback(TransportError("server_error", "boom", status_code=500)) is False


def test_generate_image_retries_with_image_only_modality() -> None:
    openai = _FakeOpenAI(
        images=[
            {"choices": [{"message": {"content": "no image this time"}}]},
            {"choices": [{"message": {"images": [{"image_url": {"url": "data:image/png;base64,QUJD"}}]}}]},
        ]
    )
    client = _client(openai)

    image = asyncio.run(client.generate_image("a sword", size="1536x1024"))

    assert image.base64 == "QUJD"
    assert image.mime_type == "image/png"
    assert [request["modalities"] for request in openai.image_requests] == [["image", "text"], ["image"]]
    assert openai.image_requests[0]["extra_body"] == {"image_config": {"aspect_ratio": "3:2"}}
    assert openai.image_requests[0]["model"] == "openai/gpt-5-image-mini"


def test_generate_image_fetches_remote_urls() -> None:
    fetched = []

    async def fetcher(url: str):
        fetched.append(url)
        return "UkVNT1RF", "image/jpeg"

    openai = _FakeOpenAI(
        images=[{"choices": [{"message": {"images": [{"url": "https://cdn.example/a.jpg"}]}}]}]
    )
    client = OpenRouterClient(openai, ClientConfig(), image_fetcher=fetcher)

    image = asyncio.run(client.generate_image("a shield"))

    assert fetched == ["https://cdn.example/a.jpg"]
    assert image.base64 == "UkVNT1RF"
    assert image.mime_type == "image/jpeg"


def test_generate_image_attaches_reference_images() -> None:
    openai = _FakeOpenAI(images=[{"choices": [{"message": {"images": [{"b64_json": "QUJD"}]}}]}])
    reference = ReferenceImage(b"png-bytes", "image/png")

    asyncio.run(_client(openai).generate_image("restyle", reference_images=[reference]))

    content = openai.image_requests[0]["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "restyle"}
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")


def test_generate_image_rejects_too_many_references() -> None:
    openai = _FakeOpenAI()
    references = [ReferenceImage(b"x")] * (MAX_REFERENCE_IMAGES + 1)

    with pytest.raises(ValueError):
        asyncio.run(_client(openai).generate_image("p", reference_images=references))

    assert openai.image_requests == []


def test_generate_image_capability_error() -> None:
    openai = _FakeOpenAI()

    with pytest.raises(CapabilityError):
        asyncio.run(_client(openai, _capabilities(set(), outputs=("text",))).generate_image("p"))


def test_generate_image_error_paths() -> None:
    empty = _FakeOpenAI(images=[{"choices": []}, {"choices": []}])
    with pytest.raises(ImageGenerationError):
        asyncio.run(_client(empty).generate_image("p"))

    failing = _FakeOpenAI(images=[_ApiError("rate limited", status_code=429), _ApiError("still", status_code=429)])
    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_client(failing).generate_image("p"))
    assert excinfo.value.reason == "rate_limited"
