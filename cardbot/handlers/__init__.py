"""Handlers package."""

from .analytics import router as analytics_router
from .commands import router as commands_router
from .errors import router as errors_router
from .registration import router as registration_router

__all__ = ["analytics_router", "commands_router", "errors_router", "registration_router"]
