"""
Monitoring module for read-only run visibility.

Provides HTTP endpoints for observing converters, files, progress and the
run-time log while a conversion run is in progress.
Does NOT control, mutate, or trigger conversions.
"""

from .server import router

__all__ = ["router"]
