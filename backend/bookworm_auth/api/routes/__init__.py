"""Route modules for the Bookworm identity API."""
from . import admin, auth, users

__all__ = ["auth", "users", "admin"]
