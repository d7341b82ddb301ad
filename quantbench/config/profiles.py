"""
Strategy profile loading.

A profile is a YAML document under config/strategies/ holding one
strategy's parameters. Profiles are parsed through the registry entry's
config type so validation happens in one place.
"""

from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..core.errors import ConfigurationError
from ..observability.logger import get_logger
from ..strategy.registry import get_strategy_definition

logger = get_logger(__name__)

DEFAULT_PROFILE_DIR = Path(__file__).parent.parent.parent / "config" / "strategies"


def resolve_profile_name(strategy_id, profile: Optional[str] = None) -> str:
    """Explicit profile if given, else the strategy's default profile."""
    if profile:
        return profile
    definition = get_strategy_definition(strategy_id)
    if not definition.default_profile:
        raise ConfigurationError(
            f"Strategy {definition.id.value} does not define a default profile. "
            "Set override explicitly."
        )
    return definition.default_profile


def profile_path(profile: str, config_dir: Optional[Union[str, Path]] = None) -> Path:
    base = Path(config_dir) if config_dir else DEFAULT_PROFILE_DIR
    return base / f"{profile}.yaml"


def load_profile_document(path: Path) -> dict:
    if not path.exists():
        raise ConfigurationError(f"Strategy profile not found: {path}")

    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in strategy profile {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Strategy profile {path} must be a mapping")
    return data


def load_strategy_profile(
    strategy_id,
    profile: Optional[str] = None,
    config_dir: Optional[Union[str, Path]] = None
) -> Any:
    """
    Load and parse a strategy profile.

    Args:
        strategy_id: Registered strategy id.
        profile: Profile name (file stem). Defaults to the strategy's default profile.
        config_dir: Directory holding profile files.

    Returns:
        The strategy's parsed config object.

    Raises:
        ConfigurationError: Unknown strategy, missing file or invalid fields.
    """
    definition = get_strategy_definition(strategy_id)
    name = resolve_profile_name(definition.id, profile)
    path = profile_path(name, config_dir)

    config = definition.parse_config(load_profile_document(path))
    logger.debug("strategy_profile_loaded", strategy=definition.id.value, profile=name, path=str(path))
    return config
