import collections.abc
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config.loader import load_config
from config.models import Config
from utils.errors import ConfigError
from utils.logger import logger

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"
USER_CONFIG_DIR = Path.home() / ".devagent"
USER_CONFIG_PATH = USER_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_FILENAME = ".devagent.yaml"


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges two dictionaries.
    Arrays are replaced, not merged, so a later `providers` list wins outright.
    """
    for key, value in source.items():
        if isinstance(value, collections.abc.Mapping) and key in target and isinstance(target[key], collections.abc.Mapping):
            target[key] = deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def find_project_root(start_dir: Path = Path(".")) -> Optional[Path]:
    """
    Finds the project root by searching upwards for a .git directory or pyproject.toml.
    """
    d = start_dir.resolve()
    while d != d.parent:
        if (d / ".git").exists() or (d / "pyproject.toml").is_file():
            return d
        d = d.parent
    return None


def config_sources(custom_config_path: Optional[str] = None, start_dir: Path = Path(".")) -> List[Path]:
    """
    Lists the configuration files to merge, lowest precedence first.

    Built-in defaults, then the user file, then the project file. A custom
    path replaces the user and project files but still sits on the defaults.

    Raises:
        ConfigError: If the built-in defaults or the custom file are missing.
    """
    if not DEFAULT_CONFIG_PATH.is_file():
        raise ConfigError("Default configuration file not found.")
    sources = [DEFAULT_CONFIG_PATH]

    if custom_config_path:
        path = Path(custom_config_path).expanduser()
        if not path.is_file():
            raise ConfigError(f"Custom config file not found at: {custom_config_path}")
        logger.info(f"Using custom configuration from: {custom_config_path}")
        return sources + [path]

    if USER_CONFIG_PATH.is_file():
        sources.append(USER_CONFIG_PATH)

    project_root = find_project_root(start_dir)
    if project_root and (project_root / PROJECT_CONFIG_FILENAME).is_file():
        sources.append(project_root / PROJECT_CONFIG_FILENAME)
    return sources


def load_and_merge_configs(custom_config_path: Optional[str] = None, start_dir: Path = Path(".")) -> Config:
    """
    Loads all configurations (default, user, project) and merges them.

    Raises:
        ConfigError: If the built-in defaults or the explicit file cannot be
            read, or the merged result fails validation.
    """
    merged_config: Dict[str, Any] = {}
    for path in config_sources(custom_config_path, start_dir):
        logger.debug(f"Loading configuration from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                merged_config = deep_merge(merged_config, load_config(f))
        except (OSError, ConfigError) as e:
            if path == DEFAULT_CONFIG_PATH or custom_config_path:
                raise ConfigError(f"Could not load config at {path}: {e}") from e
            logger.warning(f"Could not load or parse config at {path}: {e}")

    try:
        final_config = Config.model_validate(merged_config)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e
    logger.debug(f"Final merged config: {final_config.model_dump_json(indent=2, exclude={'github': {'token'}})}")
    return final_config
