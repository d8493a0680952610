"""HTTP surface for the scheduler process."""

from .app import create_app

__all__ = ["create_app"]
