from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from ..contracts.v1 import PaddleConfig
from ..errors import ConfigError

DEFAULT_CONFIG_PATH = Path("/etc/paddle/config.yaml")


def config_path(explicit: Optional[str] = None) -> Path:
    raw = str(explicit or os.environ.get("PADDLE_CONFIG") or "").strip()
    return Path(raw).expanduser() if raw else DEFAULT_CONFIG_PATH


def build_config(doc: Any) -> PaddleConfig:
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError("config root must be a mapping")
    try:
        return PaddleConfig.model_validate(doc)
    except ValidationError as e:
        raise ConfigError(f"invalid config: {e}") from e


def load_config(path: Path) -> PaddleConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"config not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml in {path}: {e}") from e
    return build_config(doc)
