"""Environment-driven configuration for the OpenRouter client."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from handy_dandy.openrouter.models import DEFAULT_IMAGE_MODEL, DEFAULT_MODEL, normalize_model_id

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TELEMETRY_PATH = "meta/output/handy_dandy/requests.jsonl"


@dataclass(frozen=True)
class ClientConfig:
    """Resolved settings for one OpenRouter client instance."""

    model: str = DEFAULT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    temperature: float = 0.0
    top_p: float = 1.0
    seed: Optional[int] = None
    debug: bool = False
    telemetry_path: str = DEFAULT_TELEMETRY_PATH
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL


def _flag_enabled(raw: Optional[str]) -> bool:
    if raw is None:
        return False
    lowered = raw.strip().lower()
    return lowered not in {"", "0", "false", "no", "off"}


def _finite_float(raw: Optional[str], default: float, *, name: str) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default
    if not math.isfinite(value):
        logger.warning("Ignoring non-finite %s=%r", name, raw)
        return default
    return value


def _optional_int(raw: Optional[str], *, name: str) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return None
    if not math.isfinite(value):
        return None
    return int(value)


def read_client_config(environ: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """Build a :class:`ClientConfig` from ``HANDY_DANDY_*`` environment variables."""

    env = os.environ if environ is None else environ
    api_key = (env.get("OPENROUTER_API_KEY") or "").strip() or None
    base_url = (env.get("OPENROUTER_BASE_URL") or "").strip() or DEFAULT_BASE_URL
    return ClientConfig(
        model=normalize_model_id(env.get("HANDY_DANDY_MODEL"), DEFAULT_MODEL),
        image_model=normalize_model_id(env.get("HANDY_DANDY_IMAGE_MODEL"), DEFAULT_IMAGE_MODEL),
        temperature=_finite_float(env.get("HANDY_DANDY_TEMPERATURE"), 0.0, name="HANDY_DANDY_TEMPERATURE"),
        top_p=_finite_float(env.get("HANDY_DANDY_TOP_P"), 1.0, name="HANDY_DANDY_TOP_P"),
        seed=_optional_int(env.get("HANDY_DANDY_SEED"), name="HANDY_DANDY_SEED"),
        debug=_flag_enabled(env.get("HANDY_DANDY_DEBUG")),
        telemetry_path=(env.get("HANDY_DANDY_TELEMETRY_PATH") or "").strip() or DEFAULT_TELEMETRY_PATH,
        api_key=api_key,
        base_url=base_url,
    )


__all__ = ["ClientConfig", "DEFAULT_BASE_URL", "DEFAULT_TELEMETRY_PATH", "read_client_config"]
