"""Intervention Log - 介入記録の追記専用ストレージ"""

from .log import (
    InterventionLog,
    InterventionSink,
    InterventionSource,
    SinkUnavailableError,
)

__all__ = [
    "InterventionLog",
    "InterventionSink",
    "InterventionSource",
    "SinkUnavailableError",
]
