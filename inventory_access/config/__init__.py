"""Configuration module for the inventory access application."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
