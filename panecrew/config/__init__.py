"""Per-repository configuration.

Loaded explicitly from the repository root:
    from panecrew.config import load_config
"""

from panecrew.config.loader import config_path_for, init_config, load_config
from panecrew.config.schema import PanecrewConfig

__all__ = ["PanecrewConfig", "config_path_for", "init_config", "load_config"]
