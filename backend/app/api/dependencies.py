from ..database import get_db
from .auth import get_current_user

__all__ = ["get_db", "get_current_user"]
