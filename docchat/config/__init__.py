"""Configuration module -- exports Settings and load_config."""

from docchat.config.loader import load_config
from docchat.config.settings import Settings

__all__ = ["Settings", "load_config"]
