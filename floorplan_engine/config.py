from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings

from .errors import ConfigError
from .utils import load_json


class Settings(BaseSettings):
    """Process settings from the environment (and .env)."""

    openai_api_key: str = ""
    gemini_api_key: str = ""
    floorplan_log_level: str = "info"
    floorplan_workspace: str = "./workspace"
    max_upload_mb: int = 100
    host: str = "0.0.0.0"
    port: int = 3000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@dataclass(frozen=True)
class EngineConfig:
    detect: dict[str, Any] = field(default_factory=dict)
    describe: dict[str, Any] = field(default_factory=dict)
    generate: dict[str, Any] = field(default_factory=dict)
    title: dict[str, Any] = field(default_factory=dict)
    merge: dict[str, Any] = field(default_factory=dict)


def load_config(config_path: str | Path | None) -> EngineConfig:
    if config_path is None:
        return EngineConfig()
    p = Path(config_path)
    if not p.exists():
        raise ConfigError(f"config file not found: {p}")
    data = load_json(p)
    return EngineConfig(
        detect=data.get("detect", {}),
        describe=data.get("describe", {}),
        generate=data.get("generate", {}),
        title=data.get("title", {}),
        merge=data.get("merge", {}),
    )


def resolve_api_key(
    explicit: str | None,
    *,
    key_file: str | Path | None,
    fallback_files: tuple[str, ...],
    env_var: str,
    settings_value: str = "",
) -> str:
    """Explicit value, then key files, then settings/environment."""
    if explicit:
        return explicit.strip()

    candidates = [Path(key_file)] if key_file else []
    candidates += [Path.cwd() / name for name in fallback_files]
    for path in candidates:
        try:
            key = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            continue
        if key:
            return key

    key = (settings_value or os.environ.get(env_var, "")).strip()
    if key:
        return key

    names = "/".join(fallback_files)
    raise ConfigError(f"{env_var} not found. Provide an explicit key, {env_var}, or {names}.")
