from __future__ import annotations

import base64
import json
import logging
from types import SimpleNamespace

import pytest

from handy_dandy import cli
from handy_dandy.mappers import to_foundry_action_data
from handy_dandy.openrouter.client import GeneratedImage


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")


def _output(capsys):
    return json.loads(capsys.readouterr().out)


def test_validate_accepts_json_string(capsys, action_record) -> None:
    exit_code = cli.main(["validate", "action", json.dumps(action_record)])

    assert exit_code == 0
    assert _output(capsys) == {"ok": True, "errors": []}


def test_validate_reports_errors(capsys, action_record) -> None:
    del action_record["actionType"]

    exit_code = cli.main(["validate", "action", json.dumps(action_record)])

    assert exit_code == 1
    assert _output(capsys)["errors"] == ["(root): 'actionType' is a required property"]


def test_validate_with_normalize(capsys) -> None:
    payload = {"name": "Jab", "slug": "jab", "actionType": "1", "description": "Strike."}

    exit_code = cli.main(["validate", "action", json.dumps(payload), "--normalize"])

    assert exit_code == 0
    assert _output(capsys)["ok"] is True


def test_migrate_uses_recorded_version(capsys, action_record) -> None:
    stale = dict(action_record, schema_version=1, traits=["Flourish"])

    exit_code = cli.main(["migrate", "action", json.dumps(stale)])

    migrated = _output(capsys)
    assert exit_code == 0
    assert migrated["schema_version"] == 3
    assert migrated["traits"] == ["flourish"]


def test_map_reads_payload_file(capsys, tmp_path, item_record) -> None:
    path = tmp_path / "item.json"
    path.write_text(json.dumps(item_record), encoding="utf-8")

    exit_code = cli.main(["map", "item", str(path)])

    document = _output(capsys)
    assert exit_code == 0
    assert document["type"] == "weapon"
    assert document["system"]["traits"]["otherTags"] == ["glimmering"]


def test_missing_payload_file_fails_cleanly(capsys, caplog) -> None:
    exit_code = cli.main(["map", "item", "does-not-exist.json"])

    assert exit_code == 1
    assert capsys.readouterr().out == ""
    assert "map failed" in caplog.text


def test_import_reads_host_document(capsys, tmp_path, action_record) -> None:
    path = tmp_path / "action-document.json"
    path.write_text(json.dumps(to_foundry_action_data(action_record)), encoding="utf-8")

    exit_code = cli.main(["import", "action", str(path)])

    assert exit_code == 0
    assert _output(capsys) == action_record


def test_import_rejects_non_object_document(capsys, caplog) -> None:
    exit_code = cli.main(["import", "item", "[1, 2]"])

    assert exit_code == 1
    assert capsys.readouterr().out == ""
    assert "host document must be a JSON object" in caplog.text


def test_image_command_writes_token(capsys, monkeypatch, tmp_path) -> None:
    prompts = []

    async def generate_image(prompt, **options):
        prompts.append(prompt)
        return GeneratedImage(base64.b64encode(b"art").decode("ascii"), "image/png")

    monkeypatch.setattr(cli, "_build_client", lambda: SimpleNamespace(generate_image=generate_image))

    exit_code = cli.main(["image", "token", "Cinder Wolf", "--prompt", "snarling", "--output-dir", str(tmp_path)])

    output = _output(capsys)
    assert exit_code == 0
    assert output["img"].startswith("handy-dandy/generated-images/actors/cinder-wolf-token-")
    assert (tmp_path / output["img"]).read_bytes() == b"art"
    assert prompts[0].endswith("Additional direction: snarling")


def test_generate_uses_built_client(capsys, monkeypatch, scripted_generator, action_record) -> None:
    generator = scripted_generator([action_record])
    monkeypatch.setattr(cli, "_build_client", lambda: generator)

    exit_code = cli.main(["generate", "action", json.dumps({"title": "Power Attack"}), "--seed", "42"])

    output = _output(capsys)
    assert exit_code == 0
    assert output["canonical"]["slug"] == "power-attack"
    assert output["document"]["type"] == "action"
    assert generator.calls[0].seed == 42


def test_batch_reports_failures(capsys, monkeypatch, scripted_generator, action_record) -> None:
    broken = dict(action_record)
    del broken["actionType"]
    generator = scripted_generator([], fallback=lambda: broken)
    monkeypatch.setattr(cli, "_build_client", lambda: generator)

    exit_code = cli.main(["batch", "action", json.dumps([{"title": "Power Attack"}]), "--max-attempts", "1"])

    output = _output(capsys)
    assert exit_code == 1
    assert output["summary"] == "Processed 1 actions: all failed."
    assert output["failures"][0].startswith("Power Attack: ")
    assert output["documents"] == []


def test_missing_api_key_is_logged(monkeypatch, caplog, capsys, action_record) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY")

    cli.main(["validate", "action", json.dumps(action_record)])

    assert "OPENROUTER_API_KEY not set" in caplog.text


def test_log_level_from_env_file(monkeypatch, tmp_path, action_record) -> None:
    monkeypatch.setenv("HANDY_DANDY_LOG_LEVEL", "placeholder")
    monkeypatch.delenv("HANDY_DANDY_LOG_LEVEL")
    (tmp_path / ".env").write_text("HANDY_DANDY_LOG_LEVEL=DEBUG\n", encoding="utf-8")
    levels = []
    monkeypatch.setattr(cli.logging, "basicConfig", lambda **kwargs: levels.append(kwargs["level"]))

    exit_code = cli.main(["validate", "action", json.dumps(action_record)])

    assert exit_code == 0
    assert levels == [logging.DEBUG]
