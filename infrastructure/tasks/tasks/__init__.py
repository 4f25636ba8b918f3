"""Task modules grouped by domain.

Import side effects register Celery tasks once this package is imported.
"""
from . import checkout, notifications, orders, payments  # noqa: F401 to register tasks

__all__ = ["checkout", "notifications", "orders", "payments"]
