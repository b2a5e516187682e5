"""
Domain event publishing.
"""

from .notifier import EventNotifier, USER_REGISTERED_TOPIC

__all__ = ["EventNotifier", "USER_REGISTERED_TOPIC"]
