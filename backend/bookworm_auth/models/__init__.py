"""SQLAlchemy models; importing this package registers every table on Base.metadata."""
from .session import Session
from .token import VerificationToken, VerificationType
from .user import Role, User

__all__ = ["User", "Role", "Session", "VerificationToken", "VerificationType"]
