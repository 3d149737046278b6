from session_tokens.models.refresh_token import RefreshTokenRecord
from session_tokens.models.user import User

__all__ = [
    "RefreshTokenRecord",
    "User",
]
