"""
Errors raised while loading configuration.

    ConfigError
    └── ConfigInitializationError  a source could not be read or parsed

Raised at startup; a running service never sees them. Invalid table values
surface as `src.core.exceptions.ConfigurationError` from their consumer.
"""


class ConfigError(Exception):
    pass


class ConfigInitializationError(ConfigError):
    pass


__all__ = ["ConfigError", "ConfigInitializationError"]
