"""Command line entry point for Handy Dandy."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from handy_dandy.config import read_client_config
from handy_dandy.exceptions import HandyDandyError
from handy_dandy.generation import DEFAULT_GENERATION_SEED, generate_entity
from handy_dandy.generation.batch import generate_batch
from handy_dandy.generation.images import generate_item_image, generate_transparent_token_image
from handy_dandy.mappers.export import from_foundry_action, from_foundry_actor, from_foundry_item
from handy_dandy.mappers.foundry import to_foundry_action_data, to_foundry_actor_data, to_foundry_item_data
from handy_dandy.migrations import migrate
from handy_dandy.openrouter.catalog import load_capability_catalog
from handy_dandy.openrouter.client import OpenRouterClient
from handy_dandy.pf2e.config import load_system_config
from handy_dandy.schemas import ENTITY_TYPES, LATEST_SCHEMA_VERSION, SCHEMA_TYPES
from handy_dandy.validation import DEFAULT_MAX_ATTEMPTS, normalize_payload, validate

_LOGGER = logging.getLogger("handy_dandy.cli")

_MAPPERS = {
    "action": to_foundry_action_data,
    "item": to_foundry_item_data,
    "actor": to_foundry_actor_data,
}

_IMPORTERS = {
    "action": from_foundry_action,
    "item": from_foundry_item,
    "actor": from_foundry_actor,
}


def _load_env_file(path: str | None = None) -> None:
    """Load environment variables using python-dotenv and warn about missing keys."""

    env_path = path or os.path.join(os.getcwd(), ".env")
    load_dotenv(dotenv_path=env_path)

    if not os.getenv("OPENROUTER_API_KEY"):
        _LOGGER.warning("OPENROUTER_API_KEY not set; generation requests will be rejected")


def _configure_logging() -> None:
    log_level = os.getenv("HANDY_DANDY_LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _load_json(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        with open(value, "r", encoding="utf-8") as handle:
            return json.load(handle)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _build_client() -> OpenRouterClient:
    catalog = load_capability_catalog()
    return OpenRouterClient.from_environment(capabilities=catalog.lookup, config=read_client_config())


def _generation_options(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "client": _build_client(),
        "max_attempts": args.max_attempts,
        "seed": args.seed,
        "config": load_system_config(args.system_config),
    }


def _add_generation_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--seed", type=int, default=DEFAULT_GENERATION_SEED, help="Sampling seed")
    parser.add_argument(
        "--max-attempts",
        dest="max_attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Generation budget including the first draft (default: {DEFAULT_MAX_ATTEMPTS})",
    )
    parser.add_argument("--system-config", dest="system_config", help="JSON file overriding PF2e lookup tables")


def _cmd_generate(args: argparse.Namespace) -> int:
    request = _load_json(args.input)
    if not isinstance(request, dict):
        _LOGGER.error("generation input must be a JSON object")
        return 1
    result = asyncio.run(generate_entity(args.entity_type, request, **_generation_options(args)))
    _emit({"canonical": result.canonical, "document": result.document})
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    payload = _load_json(args.payload)
    if args.normalize and args.schema_type in ENTITY_TYPES:
        payload = normalize_payload(args.schema_type, payload)
    result = validate(args.schema_type, payload)
    _emit({"ok": result.ok, "errors": result.messages()})
    return 0 if result.ok else 1


def _cmd_migrate(args: argparse.Namespace) -> int:
    payload = _load_json(args.payload)
    from_version = args.from_version
    if from_version is None:
        recorded = payload.get("schema_version") if isinstance(payload, dict) else None
        from_version = recorded if isinstance(recorded, int) and not isinstance(recorded, bool) else 1
    _emit(migrate(args.schema_type, from_version, args.to_version, payload))
    return 0


def _cmd_map(args: argparse.Namespace) -> int:
    record = _load_json(args.payload)
    if not isinstance(record, dict):
        _LOGGER.error("canonical record must be a JSON object")
        return 1
    _emit(_MAPPERS[args.entity_type](record, load_system_config(args.system_config)))
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    document = _load_json(args.payload)
    if not isinstance(document, dict):
        _LOGGER.error("host document must be a JSON object")
        return 1
    record = _IMPORTERS[args.entity_type](document)
    result = validate(args.entity_type, record)
    if not result.ok:
        _LOGGER.warning("imported %s does not validate: %s", args.entity_type, "; ".join(result.messages()))
    _emit(record)
    return 0


def _cmd_image(args: argparse.Namespace) -> int:
    client = _build_client()
    if args.kind == "token":
        path = asyncio.run(
            generate_transparent_token_image(
                client,
                args.name,
                slug=args.slug,
                description=args.description,
                custom_prompt=args.prompt,
                reference_image=args.reference,
                output_dir=args.output_dir,
            )
        )
    else:
        path = asyncio.run(
            generate_item_image(
                client,
                args.name,
                slug=args.slug,
                description=args.description,
                custom_prompt=args.prompt,
                output_dir=args.output_dir,
            )
        )
    _emit({"img": path})
    return 0


def _cmd_batch(args: argparse.Namespace) -> int:
    inputs = _load_json(args.input)
    if not isinstance(inputs, list):
        _LOGGER.error("batch input must be a JSON array")
        return 1
    result = asyncio.run(generate_batch(args.entity_type, inputs, **_generation_options(args)))
    _emit(
        {
            "summary": result.summary,
            "failures": result.failures(),
            "documents": [entry.result.document for entry in result.entries if entry.ok and entry.result],
        }
    )
    return 0 if result.failure_count == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Handy Dandy content generation CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser("generate", help="Generate, validate and map one entity")
    generate_parser.add_argument("entity_type", choices=ENTITY_TYPES)
    generate_parser.add_argument("input", help="JSON string or file path with the prompt input")
    _add_generation_arguments(generate_parser)
    generate_parser.set_defaults(handler=_cmd_generate)

    validate_parser = subparsers.add_parser("validate", help="Validate a canonical record")
    validate_parser.add_argument("schema_type", choices=SCHEMA_TYPES)
    validate_parser.add_argument("payload", help="JSON string or file path pointing to the record")
    validate_parser.add_argument("--normalize", action="store_true", help="Normalise the payload before validating")
    validate_parser.set_defaults(handler=_cmd_validate)

    migrate_parser = subparsers.add_parser("migrate", help="Migrate a record between schema versions")
    migrate_parser.add_argument("schema_type", choices=SCHEMA_TYPES)
    migrate_parser.add_argument("payload", help="JSON string or file path pointing to the record")
    migrate_parser.add_argument("--from", dest="from_version", type=int, help="Source version (default: recorded)")
    migrate_parser.add_argument(
        "--to",
        dest="to_version",
        type=int,
        default=LATEST_SCHEMA_VERSION,
        help=f"Target version (default: {LATEST_SCHEMA_VERSION})",
    )
    migrate_parser.set_defaults(handler=_cmd_migrate)

    map_parser = subparsers.add_parser("map", help="Map a canonical record to a host document")
    map_parser.add_argument("entity_type", choices=ENTITY_TYPES)
    map_parser.add_argument("payload", help="JSON string or file path pointing to the record")
    map_parser.add_argument("--system-config", dest="system_config", help="JSON file overriding PF2e lookup tables")
    map_parser.set_defaults(handler=_cmd_map)

    import_parser = subparsers.add_parser("import", help="Read a host document back into a canonical record")
    import_parser.add_argument("entity_type", choices=ENTITY_TYPES)
    import_parser.add_argument("payload", help="JSON string or file path pointing to the host document")
    import_parser.set_defaults(handler=_cmd_import)

    image_parser = subparsers.add_parser("image", help="Generate transparent token or item art")
    image_parser.add_argument("kind", choices=("token", "item"))
    image_parser.add_argument("name", help="Creature or item name")
    image_parser.add_argument("--slug", help="File name stem (default: the name)")
    image_parser.add_argument("--description", help="Details folded into the prompt")
    image_parser.add_argument("--prompt", help="Additional art direction")
    image_parser.add_argument("--reference", help="Reference image file for token art")
    image_parser.add_argument(
        "--output-dir",
        dest="output_dir",
        default=".",
        help="Directory that receives handy-dandy/generated-images (default: current directory)",
    )
    image_parser.set_defaults(handler=_cmd_image)

    batch_parser = subparsers.add_parser("batch", help="Generate a list of entities concurrently")
    batch_parser.add_argument("entity_type", choices=ENTITY_TYPES)
    batch_parser.add_argument("input", help="JSON string or file path with an array of prompt inputs")
    _add_generation_arguments(batch_parser)
    batch_parser.set_defaults(handler=_cmd_batch)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the Handy Dandy CLI."""

    _load_env_file()
    _configure_logging()

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.handler(args)
    except (HandyDandyError, ValueError, OSError) as exc:
        _LOGGER.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
