"""Monitoring module: structured JSON logging and session metrics."""

from .logger import Logger, LogLevel
from .metrics import MetricsCollector

__all__ = ["Logger", "LogLevel", "MetricsCollector"]
