import os
import re
import yaml
from typing import Any, Dict, IO, Union

from utils.errors import ConfigError

# ${VAR} or ${VAR:-default}
ENV_VAR_MATCHER = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


class EnvSafeLoader(yaml.SafeLoader):
    """SafeLoader that expands ${VAR} references in plain scalars."""


def _substitute(match: "re.Match[str]") -> str:
    env_var, default = match.group(1), match.group(2)
    replacement = os.getenv(env_var)
    if replacement is not None:
        return replacement
    if default is not None:
        return default
    raise ConfigError(f"Environment variable '{env_var}' not found for substitution in config.")


def _env_var_constructor(loader: EnvSafeLoader, node: yaml.ScalarNode) -> str:
    """
    Custom YAML constructor to substitute environment variables.
    e.g., ${VAR_NAME} will be replaced by the value of the VAR_NAME environment variable,
    and ${VAR_NAME:-fallback} by "fallback" when it is unset.
    """
    value = loader.construct_scalar(node)
    return ENV_VAR_MATCHER.sub(_substitute, value)


EnvSafeLoader.add_constructor("!env", _env_var_constructor)
EnvSafeLoader.add_implicit_resolver("!env", ENV_VAR_MATCHER, None)


def load_config(config_file: Union[IO[str], str]) -> Dict[str, Any]:
    """
    Loads a YAML configuration document.

    Args:
        config_file: A file-like object or the YAML text itself.

    Returns:
        A dictionary containing the configuration.

    Raises:
        ConfigError: If the document cannot be parsed or is not a mapping.
    """
    try:
        config = yaml.load(config_file, Loader=EnvSafeLoader)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}") from e
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(config).__name__}")
    return config
