import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError

from panecrew.config.schema import PanecrewConfig
from panecrew.constants import CONFIG_DIRNAME, CONFIG_FILENAME
from panecrew.core.errors import ConfigError
from panecrew.utils import expand_env_vars

logger = logging.getLogger(__name__)


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Warn about unknown keys in a model and its nested models."""
    if hasattr(model, "model_extra") and model.model_extra:
        logger.warning("Unknown keys in %s at %s: %s", path, config_path, list(model.model_extra.keys()))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def config_path_for(repo_root: Path) -> Path:
    """Resolve the config file for a repo, honoring PANECREW_CONFIG_PATH."""
    override = os.getenv("PANECREW_CONFIG_PATH")
    if override:
        return Path(override).expanduser()
    return repo_root / CONFIG_DIRNAME / CONFIG_FILENAME


def load_config(repo_root: Path, path: Optional[Path] = None) -> PanecrewConfig:
    """Load and validate configuration for a repository.

    Args:
        repo_root: Top-level directory of the repository.
        path: Explicit config file, bypassing the default lookup.

    Returns:
        The validated configuration; defaults when no file exists.

    Raises:
        ConfigError: the file parses but holds invalid values.
    """
    if path is None:
        path = config_path_for(repo_root)
    if not path.exists():
        return PanecrewConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to read config file %s: %s", path, e)
        return PanecrewConfig()

    if not isinstance(raw, dict):
        logger.warning("Ignoring config file %s: expected a mapping, got %s", path, type(raw).__name__)
        return PanecrewConfig()

    expanded = expand_env_vars(raw)
    try:
        model = PanecrewConfig.model_validate(expanded)
    except ValidationError as e:
        raise ConfigError(path, str(e)) from e
    _warn_unknown_keys(model, "root", path)
    return model


def init_config(repo_root: Path) -> Path:
    """Scaffold .panecrew/config.yml with default values.

    Existing files are overwritten.

    Returns:
        Path of the written config file.
    """
    config_dir = repo_root / CONFIG_DIRNAME
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / CONFIG_FILENAME
    data = PanecrewConfig().model_dump()
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    logger.info("Wrote default config to %s", path)
    return path
