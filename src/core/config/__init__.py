"""
Configuration subsystem for Apex (2025).

Architecture
------------
- **config.py**: Static configuration from environment variables (.env support)
- **manager.py**: YAML-backed balance configuration with dot-notation reads
- **errors.py**: Configuration exception hierarchy

Static vs Balance Configuration
-------------------------------
**Static (Config):**
- Loaded from environment variables at startup
- Includes: database URL, pool sizes, retry bounds, log settings
- Changes require application restart

**Balance (ConfigManager):**
- Coded defaults overlaid by YAML files in `config/`
- Includes: per-tier reward table, per-rank sublevel cost table
- Read once at startup; changing a table is a deployment
"""

from src.core.config.config import Config, Environment
from src.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
)
from src.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigError",
    "ConfigInitializationError",
]
