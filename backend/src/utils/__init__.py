"""
Utility modules for the locum matching backend.

This package contains shared utility functions and helpers used across
the application: datetime and timezone handling and id generation.
"""

from utils.id_utils import new_id

__all__ = ['new_id']
