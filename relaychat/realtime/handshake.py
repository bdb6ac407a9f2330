"""
Admission control for WebSocket upgrades.

HandshakeGate decides, before the upgrade is accepted, whether a connection
may join. Checks run in a fixed order and stop at the first failure:

1. the gate is closed because the server is shutting down
2. the Origin header is missing or not allow-listed
3. no ``token`` query parameter
4. the token fails verification (signature, expiry, revocation)

A rejected connection is closed before accept, which the client sees as an
HTTP 403, and never reaches the registry.
"""

from enum import StrEnum

from fastapi import WebSocket

from ..auth.tokens import TokenValidator, VerificationFailure
from ..exceptions import ConfigurationError, StoreUnavailableError
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

ADMISSION_REJECTED_CLOSE_CODE = 1008


class AdmissionReason(StrEnum):
    SHUTTING_DOWN = "shutting-down"
    BAD_ORIGIN = "bad-origin"
    MISSING_CREDENTIAL = "missing-credential"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid-signature"
    EXPIRED = "expired"
    REVOKED = "revoked"
    SERVER_MISCONFIGURED = "server-misconfigured"
    STORE_UNAVAILABLE = "store-unavailable"


class AdmissionError(Exception):
    """A WebSocket upgrade was refused."""

    def __init__(self, reason: AdmissionReason) -> None:
        super().__init__(f"Admission rejected: {reason.value}")
        self.reason = reason


def normalize_origin(origin: str) -> str:
    return origin.rstrip("/")


class HandshakeGate:
    """Validates origin and credential for each upgrade request."""

    def __init__(self, allowed_origins: list[str], token_validator: TokenValidator) -> None:
        self.allowed_origins = frozenset(normalize_origin(origin) for origin in allowed_origins)
        self.token_validator = token_validator
        self._accepting = True

    @property
    def is_accepting(self) -> bool:
        return self._accepting

    def close(self) -> None:
        """Refuse every later upgrade with ``shutting-down``."""
        if self._accepting:
            logger.info("Handshake gate closed")
        self._accepting = False

    def _reject(self, reason: AdmissionReason, websocket: WebSocket, **fields) -> AdmissionError:
        client = websocket.client
        logger.warning(
            "admission_rejected",
            reason=reason.value,
            client_host=client.host if client else None,
            path=websocket.url.path,
            **fields,
        )
        return AdmissionError(reason)

    async def admit(self, websocket: WebSocket) -> str:
        """
        Run the admission checks for an upgrade request.

        Returns:
            The admitted identity

        Raises:
            AdmissionError: With the first failing reason
        """
        if not self._accepting:
            raise self._reject(AdmissionReason.SHUTTING_DOWN, websocket)

        origin = websocket.headers.get("origin")
        if not origin or normalize_origin(origin) not in self.allowed_origins:
            raise self._reject(AdmissionReason.BAD_ORIGIN, websocket, origin=origin)

        credential = websocket.query_params.get("token")
        if not credential:
            raise self._reject(AdmissionReason.MISSING_CREDENTIAL, websocket)

        try:
            result = await self.token_validator.verify(credential)
        except ConfigurationError as e:
            raise self._reject(AdmissionReason.SERVER_MISCONFIGURED, websocket) from e
        except StoreUnavailableError as e:
            raise self._reject(AdmissionReason.STORE_UNAVAILABLE, websocket) from e

        if isinstance(result, VerificationFailure):
            raise self._reject(AdmissionReason(result.reason.value), websocket)

        # Shutdown may have started while the store lookup was in flight
        if not self._accepting:
            raise self._reject(AdmissionReason.SHUTTING_DOWN, websocket, identity=result)

        logger.info("Connection admitted", identity=result, path=websocket.url.path)
        return result

    async def reject(self, websocket: WebSocket, error: AdmissionError) -> None:
        """Close an unaccepted upgrade; the client sees HTTP 403."""
        await websocket.close(code=ADMISSION_REJECTED_CLOSE_CODE, reason=error.reason.value)
