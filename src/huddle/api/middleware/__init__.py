"""API middleware package."""

from src.huddle.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
