"""
Viewer settings: defaults < ~/.mdglide.json < MDGLIDE_* environment < CLI.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from crt import DisplayModes, MonoMode
from logger import get_logger
from toc import EXTRACTORS

log = get_logger(__name__)

CONFIG_FILE_NAME = ".mdglide.json"

ENV_PREFIX = "MDGLIDE_"
ENV_KEYS = (
    "style", "wrap", "extractor", "log_file", "log_level",
    "scanlines", "mono", "canvas_80x25", "bbs", "baudrate",
)

INT_KEYS = ("wrap", "baudrate")
BOOL_KEYS = ("scanlines", "canvas_80x25", "bbs")

TRUE_WORDS = ("1", "true", "yes", "on")
FALSE_WORDS = ("0", "false", "no", "off")


class ConfigError(ValueError):
    """A setting has a value the viewer cannot start with."""


@dataclass(frozen=True)
class ViewerConfig:
    style: str = "auto"
    wrap: int = 0
    extractor: str = "regex"
    log_file: Optional[str] = None
    log_level: str = "WARNING"
    scanlines: bool = False
    mono: str = "off"
    canvas_80x25: bool = False
    bbs: bool = False
    baudrate: int = 0

    def validate(self) -> "ViewerConfig":
        if self.wrap < 0:
            raise ConfigError(f"wrap must be a non-negative integer, got {self.wrap}")
        if self.extractor not in EXTRACTORS:
            raise ConfigError(
                f"unknown extractor {self.extractor!r} (use {', '.join(EXTRACTORS)})"
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"unknown log level {self.log_level!r}")
        if self.baudrate < 0:
            raise ConfigError(f"baudrate must be a non-negative integer, got {self.baudrate}")
        try:
            MonoMode.parse(self.mono)
        except ValueError as e:
            raise ConfigError(str(e)) from None
        return self

    def display_modes(self) -> DisplayModes:
        return DisplayModes(
            scanlines=self.scanlines,
            mono=MonoMode.parse(self.mono),
            canvas_80x25=self.canvas_80x25,
            bbs=self.bbs,
            baudrate=self.baudrate,
        )

    def merged(self, values: Mapping[str, Any]) -> "ViewerConfig":
        """Copy with the known, non-None keys of values applied."""
        known = {f.name for f in fields(self)}
        changes = {}
        for key, value in values.items():
            if key not in known or value is None:
                continue
            if key in INT_KEYS:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ConfigError(f"{key} must be an integer, got {value!r}") from None
            elif key in BOOL_KEYS:
                value = parse_bool(key, value)
            else:
                value = str(value)
            changes[key] = value
        return replace(self, **changes)


def parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in TRUE_WORDS:
        return True
    if word in FALSE_WORDS:
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def config_file_path() -> Path:
    return Path.home() / CONFIG_FILE_NAME


def read_config_file(path: Optional[Path] = None) -> dict:
    """Settings from the JSON config file; any read/parse problem yields {}."""
    path = path or config_file_path()
    try:
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("ignoring config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        log.warning("ignoring config file %s: top level is not an object", path)
        return {}
    return data


def read_environment(environ: Optional[Mapping[str, str]] = None) -> dict:
    environ = os.environ if environ is None else environ
    values = {}
    for key in ENV_KEYS:
        value = environ.get(ENV_PREFIX + key.upper())
        if value:
            values[key] = value
    return values


def load_config(
    cli_values: Optional[Mapping[str, Any]] = None,
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ViewerConfig:
    config = ViewerConfig()
    config = config.merged(read_config_file(config_path))
    config = config.merged(read_environment(environ))
    config = config.merged(cli_values or {})
    return config.validate()
