"""
Authentication for RelayChat.

This package contains:
- Session token issuing and verification
- The live-session store and user accounts
- Argon2 password hashing
- The register/login/logout endpoints (relaychat.auth.endpoints)
"""

from .session_store import SessionStore, SessionStoreProtocol
from .tokens import TokenValidator, VerificationFailure, VerificationReason, VerificationResult, create_access_token
from .user_store import UserStore, UserStoreProtocol

__all__ = [
    "SessionStore",
    "SessionStoreProtocol",
    "TokenValidator",
    "UserStore",
    "UserStoreProtocol",
    "VerificationFailure",
    "VerificationReason",
    "VerificationResult",
    "create_access_token",
]
