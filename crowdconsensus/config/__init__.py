"""Configuration for the consensus engine."""

from .settings import Settings, get_settings, load_stage_configs, settings

__all__ = [
    "Settings",
    "get_settings",
    "load_stage_configs",
    "settings",
]
