# TN-Fedora-Tools/tn_tools/config_loader.py

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tn_tools import config
from tn_tools import console_output as con
from tn_tools.logger_utils import app_logger


@dataclass
class Settings:
    """Effective run settings: defaults, then the JSON file, then the environment."""
    enable_rpmfusion: bool = True
    install_nvidia_stack: bool = True
    install_optional_managers: bool = True
    nvidia_packages: List[str] = field(default_factory=lambda: list(config.NVIDIA_INSTALL_PACKAGES))
    base_packages: List[str] = field(default_factory=lambda: list(config.BASE_TOOL_PACKAGES))


# JSON key / environment variable -> Settings attribute
_TOGGLE_FIELDS = {
    "ENABLE_RPMFUSION": "enable_rpmfusion",
    "INSTALL_NVIDIA_STACK": "install_nvidia_stack",
    "INSTALL_OPTIONAL_MANAGERS": "install_optional_managers",
}
_LIST_FIELDS = ("nvidia_packages", "base_packages")


def parse_toggle(value: Optional[str], default: bool) -> bool:
    """
    Interprets an environment toggle. Unset or empty keeps the default;
    otherwise only the literal "true" (any case, surrounding blanks ignored)
    turns it on.
    """
    if value is None or value == "":
        return default
    return value.strip().lower() == "true"


def load_configuration(config_file: Path) -> Dict[str, Any]:
    """Loads the configuration from the given JSON file. Returns {} if missing or invalid."""
    if not config_file.is_file():
        app_logger.debug(f"No configuration file at '{config_file}', using defaults.")
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        con.print_error(f"Error loading configuration file '{config_file}': {e}")
        app_logger.error(f"Error loading configuration file '{config_file}': {e}")
        return {}

    if not isinstance(data, dict):
        con.print_error(f"Configuration file '{config_file}' must contain a JSON object.")
        app_logger.error(f"Configuration file '{config_file}' top level is {type(data).__name__}, not an object.")
        return {}
    return data


def _apply_file_values(settings: Settings, data: Mapping[str, Any]) -> None:
    for attr in _TOGGLE_FIELDS.values():
        if attr in data:
            if isinstance(data[attr], bool):
                setattr(settings, attr, data[attr])
            else:
                con.print_warning(f"Ignoring '{attr}' in configuration: expected true/false.")
                app_logger.warning(f"Non-boolean value for '{attr}' in configuration: {data[attr]!r}")
    for attr in _LIST_FIELDS:
        if attr in data:
            value = data[attr]
            if isinstance(value, list) and all(isinstance(item, str) for item in value):
                setattr(settings, attr, list(value))
            else:
                con.print_warning(f"Ignoring '{attr}' in configuration: expected a list of package names.")
                app_logger.warning(f"Invalid list for '{attr}' in configuration: {value!r}")


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None
) -> Settings:
    """
    Builds the Settings for a run.

    Args:
        environ: Environment to read toggles from (defaults to os.environ).
        config_file: JSON file with overrides. Defaults to $TN_TOOLS_CONFIG,
                     then config.CONFIG_FILE_PATH.
    """
    env = os.environ if environ is None else environ
    if config_file is None:
        override = env.get(config.CONFIG_FILE_ENV)
        config_file = Path(override).expanduser() if override else config.CONFIG_FILE_PATH

    settings = Settings()
    _apply_file_values(settings, load_configuration(config_file))

    for env_name, attr in _TOGGLE_FIELDS.items():
        setattr(settings, attr, parse_toggle(env.get(env_name), getattr(settings, attr)))

    app_logger.info(
        f"Settings: rpmfusion={settings.enable_rpmfusion}, nvidia_stack={settings.install_nvidia_stack}, "
        f"optional_managers={settings.install_optional_managers}"
    )
    return settings
