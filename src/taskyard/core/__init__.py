"""taskyard core module.

Shared components used across the queue, worker and admin surface:
- Configuration management
- Settings accessor
"""

from taskyard.core.config import (
    DEFAULT_QUEUE_NAME,
    ConfigValidationError,
    Environment,
    QueueSettings,
    Settings,
    SMTPSettings,
    StoreSettings,
    WorkerSettings,
)
from taskyard.core.settings import (
    clear_settings_cache,
    get_settings,
    get_settings_safe,
)

__all__ = [
    "DEFAULT_QUEUE_NAME",
    "ConfigValidationError",
    "Environment",
    "QueueSettings",
    "SMTPSettings",
    "Settings",
    "StoreSettings",
    "WorkerSettings",
    "clear_settings_cache",
    "get_settings",
    "get_settings_safe",
]
