"""Admin-only API endpoints."""

from tally.app.api.admin.router import router

__all__ = ["router"]
