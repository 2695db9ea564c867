from .core import (
    ENV_PREFIX,
    ChainSettings,
    DatabaseSettings,
    ProviderSettings,
    TimerSettings,
    RuntimeSettings,
    Settings,
    load_settings,
    sanitize_dict,
    _project_root,
    _data_dir,
)

__all__ = [
    "ENV_PREFIX",
    "ChainSettings",
    "DatabaseSettings",
    "ProviderSettings",
    "TimerSettings",
    "RuntimeSettings",
    "Settings",
    "load_settings",
    "sanitize_dict",
    "_project_root",
    "_data_dir",
]
