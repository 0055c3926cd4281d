"""Configuration module for the analytics client."""

from .logger_config import setup_logging
from .settings import AnalyticsConfig, ErrorHandler

__all__ = ["AnalyticsConfig", "ErrorHandler", "setup_logging"]
