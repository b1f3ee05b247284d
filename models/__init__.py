from .base import Base
from .error_log import ErrorLog
from .user_profile import UserProfile
from .magic_link import MagicLinkToken

__all__ = ["Base", "ErrorLog", "UserProfile", "MagicLinkToken"]
