"""FastAPI routers acting as controllers in the MVC architecture."""

from . import auth, history, transcriptions, user_settings

__all__ = ["auth", "history", "transcriptions", "user_settings"]
