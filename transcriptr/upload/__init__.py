"""Payload transmission strategy selection."""

from .strategy import UploadStrategy, UploadStrategySelector

__all__ = [
    "UploadStrategy",
    "UploadStrategySelector",
]
