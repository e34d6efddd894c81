# -*- coding: utf-8 -*-
"""Impostazioni di runtime (cartella dati, file di stato, mapping extra)."""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

ENV_HOME = "XCODELINK_HOME"
ENV_MAPPINGS = "XCODELINK_MAPPINGS"

DEFAULT_DATA_DIR = "~/.xcodelink"
STATE_FILE_NAME = ".xcodelink-state.json"
MAPPINGS_FILE_NAME = "mappings.json"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    mappings_file: Path
    state_file_name: str = STATE_FILE_NAME
    log_path: Optional[Path] = None

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "backups"


def load_settings(env: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    """Costruisce le Settings da variabili d'ambiente + override espliciti (CLI)."""
    env = os.environ if env is None else env
    overrides = {k: v for k, v in overrides.items() if v is not None}
    for key in ("data_dir", "mappings_file", "log_path"):
        if key in overrides:
            overrides[key] = Path(overrides[key]).expanduser()

    data_dir = overrides.pop("data_dir", None) or Path(env.get(ENV_HOME) or DEFAULT_DATA_DIR).expanduser()
    mappings_file = overrides.pop("mappings_file", None)
    if mappings_file is None:
        from_env = env.get(ENV_MAPPINGS)
        mappings_file = Path(from_env).expanduser() if from_env else data_dir / MAPPINGS_FILE_NAME

    settings = Settings(data_dir=data_dir, mappings_file=mappings_file)
    return replace(settings, **overrides) if overrides else settings
