"""Configuration package for the AAA core."""

from .config import AAAConfig, load_config

__all__ = ["AAAConfig", "load_config"]
