# ============================================================================
# mailfilter -- Configuration (mailfilter/core/config.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The single place where every tunable setting lives: where extracted
#   messages are written, how they are named, how much gets logged, and
#   which headers the decoder keeps.
#
# HOW IT WORKS:
#   1. Python dataclasses define every setting with a sensible default
#   2. A YAML file (config/default_config.yaml) can override those defaults
#   3. Environment variables can override YAML (for machine-specific paths)
#
#   Priority: env vars > YAML file > hardcoded defaults
#
# USAGE:
#   from mailfilter.core.config import load_config
#   config = load_config(".")                      # load from project dir
#   config = load_config(".", "custom.yaml")       # load specific file
#   print(config.output.directory)                 # typed access
# ============================================================================

from __future__ import annotations

import os
import sys
import yaml
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .naming import MAX_NAME_LENGTH

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# -------------------------------------------------------------------
# Sub-configs: each one maps to a section in the YAML file
# -------------------------------------------------------------------

@dataclass
class OutputConfig:
    """
    Where and how `mailfilter extract` writes matched messages.

    MAILFILTER_OUTPUT_DIR wins over the YAML value so the same config
    file can be shared between machines.
    """
    directory: str = "."
    extension: str = ".txt"
    max_name_length: int = MAX_NAME_LENGTH   # 251 + ".txt" fits in 255

    def __post_init__(self) -> None:
        env_dir = os.getenv("MAILFILTER_OUTPUT_DIR")
        if env_dir:
            self.directory = env_dir
        self.directory = os.path.normpath(os.path.expandvars(self.directory))


@dataclass
class LoggingConfig:
    """
    Log verbosity and destination.

    Logs always go to stderr. With log_to_file enabled they are also
    written to dated files in log_dir.
    """
    log_dir: str = "logs"
    level: str = "WARNING"
    log_to_file: bool = False

    def __post_init__(self) -> None:
        env_dir = os.getenv("MAILFILTER_LOG_DIR")
        if env_dir:
            self.log_dir = env_dir
        env_level = os.getenv("MAILFILTER_LOG_LEVEL")
        if env_level:
            self.level = env_level
        self.level = str(self.level).upper()


@dataclass
class DecoderConfig:
    """
    retain_all_headers=False keeps only the headers the filter refers to
    (plus Subject and Date, which extract needs for file names). Saves
    memory on archives with very long header blocks.
    """
    retain_all_headers: bool = True


@dataclass
class Config:
    """Top-level configuration."""
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)


# -------------------------------------------------------------------
# Helper: YAML dict -> dataclass (with safety net)
# -------------------------------------------------------------------

def _dict_to_dataclass(cls, data: dict):
    """
    Build a dataclass from a dictionary, ignoring unknown keys.

    Unknown keys get a loud [WARN] on stderr (with a suggestion when a
    field name is a substring match) instead of being silently dropped,
    so a typo like "extention" does not quietly fall back to the default.
    """
    if not isinstance(data, dict):
        data = {}
    known_fields = {f.name for f in dataclasses.fields(cls)}

    filtered = {}
    for k, v in data.items():
        if k in known_fields:
            filtered[k] = v
        else:
            suggestion = ""
            for field_name in known_fields:
                if k in field_name or field_name in k:
                    suggestion = " Did you mean '" + field_name + "'?"
                    break
            print(
                "  [WARN] config/" + cls.__name__ + ": YAML key '"
                + str(k) + "' is not a recognized setting"
                + " -- IGNORED (using default)." + suggestion,
                file=sys.stderr,
            )

    return cls(**filtered)


# -------------------------------------------------------------------
# Main entry point: load_config()
# -------------------------------------------------------------------

def load_config(
    project_dir: str = ".",
    config_filename: str = "default_config.yaml",
) -> Config:
    """
    Load configuration from YAML file, with defaults and env var overrides.

    Parameters
    ----------
    project_dir : str
        Folder containing the config/ subfolder.

    config_filename : str
        Name of the YAML config file inside config/.

    Returns
    -------
    Config
        Fully resolved configuration object. A missing file means all
        defaults.
    """
    config_path = Path(project_dir) / "config" / config_filename

    yaml_data: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                yaml_data = raw

    return Config(
        output=_dict_to_dataclass(OutputConfig, yaml_data.get("output", {})),
        logging=_dict_to_dataclass(LoggingConfig, yaml_data.get("logging", {})),
        decoder=_dict_to_dataclass(DecoderConfig, yaml_data.get("decoder", {})),
    )


def validate_config(config: Config) -> List[str]:
    """
    Check a Config object for problems. Returns a list of error messages.
    Empty list = everything is valid.
    """
    errors: List[str] = []

    if config.logging.level not in _LOG_LEVELS:
        errors.append(
            "Invalid logging.level: '" + config.logging.level
            + "'. Must be one of " + ", ".join(_LOG_LEVELS) + "."
        )

    if not isinstance(config.output.max_name_length, int) or config.output.max_name_length <= 0:
        errors.append(
            "output.max_name_length must be a positive integer, got "
            + repr(config.output.max_name_length) + "."
        )

    ext = config.output.extension
    if ext and not ext.startswith("."):
        errors.append(
            "output.extension must start with '.', got '" + str(ext) + "'."
        )

    return errors
