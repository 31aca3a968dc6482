"""Configuration loading and validation."""

from approval_gate.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
