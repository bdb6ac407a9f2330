"""
Session token issuing and verification.

Tokens are HS256 JWTs whose ``sub`` claim is the username. A token is only
accepted when its signature and expiry verify AND it is still present in the
live-session store: a logged-out token keeps a valid signature until it
expires, so the cryptographic check alone is never enough.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from jose import ExpiredSignatureError, JWTError, jwt

from ..exceptions import ConfigurationError
from ..structured_logging.enhanced_logging_config import get_logger
from .session_store import SessionStoreProtocol

logger = get_logger(__name__)

DEFAULT_ALGORITHM = "HS256"
DEFAULT_EXPIRE_MINUTES = 60


class VerificationReason(StrEnum):
    """Why a credential was refused."""

    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid-signature"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class VerificationFailure:
    reason: VerificationReason

    def __bool__(self) -> bool:
        return False


# An identity string on success
VerificationResult = str | VerificationFailure


def create_access_token(
    username: str,
    secret_key: str | None,
    expires_delta: timedelta | None = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """
    Create a signed session token for ``username``.

    Raises:
        ConfigurationError: If no signing secret is configured
    """
    if not secret_key:
        raise ConfigurationError("JWT secret is not configured", config_key="RELAYCHAT_JWT_SECRET")

    issued_at = datetime.now(UTC)
    expire = issued_at + (expires_delta or timedelta(minutes=DEFAULT_EXPIRE_MINUTES))
    claims = {"sub": username, "iat": int(issued_at.timestamp()), "exp": int(expire.timestamp())}
    token = jwt.encode(claims, secret_key, algorithm=algorithm)
    logger.debug("Access token created", username=username, expires_at=expire.isoformat())
    return token


class TokenValidator:
    """Verifies bearer credentials against the signing secret and the live-session store."""

    def __init__(
        self,
        session_store: SessionStoreProtocol,
        secret_key: str | None,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> None:
        self.session_store = session_store
        self.secret_key = secret_key
        self.algorithm = algorithm

    def decode(self, credential: str) -> VerificationResult:
        """
        Cryptographic half of verification: structure, signature, expiry, subject.

        Raises:
            ConfigurationError: If no signing secret is configured
        """
        if not self.secret_key:
            raise ConfigurationError("JWT secret is not configured", config_key="RELAYCHAT_JWT_SECRET")

        try:
            jwt.get_unverified_header(credential)
        except JWTError:
            return VerificationFailure(VerificationReason.MALFORMED)

        try:
            claims = jwt.decode(credential, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            return VerificationFailure(VerificationReason.EXPIRED)
        except JWTError as e:
            logger.debug("JWT verification failed", error=str(e), error_type=type(e).__name__)
            return VerificationFailure(VerificationReason.INVALID_SIGNATURE)

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            return VerificationFailure(VerificationReason.MALFORMED)
        return subject.strip()

    async def verify(self, credential: str) -> VerificationResult:
        """
        Resolve a credential to an identity.

        Returns:
            The identity (username) or a VerificationFailure

        Raises:
            ConfigurationError: If no signing secret is configured
            StoreUnavailableError: If the live-session store could not be queried
        """
        decoded = self.decode(credential)
        if isinstance(decoded, VerificationFailure):
            return decoded

        if not await self.session_store.exists(credential):
            return VerificationFailure(VerificationReason.REVOKED)

        return decoded
