"""
Core infrastructure layer for Apex (2025).

Subsystems
----------
- ``src.core.config``: static Config and YAML-backed ConfigManager
- ``src.core.logging``: structured logging and LogContext
- ``src.core.database``: declarative base, DatabaseService, retry policy
- ``src.core.event``: async EventBus with tiered listener priorities
- ``src.core.exceptions``: infrastructure exception hierarchy

This package holds no logic of its own.
Import from the subsystem modules directly.
"""
