"""
Authentication endpoints for RelayChat.

Registration, login and logout. Login issues a session token and records it
in the live-session store; logout deletes it, which revokes the token for
every later WebSocket handshake.
"""

import asyncio
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from ..container import ApplicationContainer
from ..exceptions import ConfigurationError, DatabaseError, LoggedHTTPException, create_error_context
from ..structured_logging.enhanced_logging_config import get_logger
from .argon2_utils import hash_password, verify_password
from .tokens import create_access_token
from .validation import is_valid_password, is_valid_username

logger = get_logger("auth.endpoints")

auth_router = APIRouter(prefix="/api", tags=["auth"])


class CredentialsRequest(BaseModel):
    """Username and password, as sent to register and login."""

    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    username: str


class MessageResponse(BaseModel):
    message: str


def get_container(request: Request) -> ApplicationContainer:
    return request.app.state.container


def _context(request: Request, operation: str, username: str | None = None):
    context = create_error_context(user_id=username, request_id=request.headers.get("x-request-id"))
    context.metadata["operation"] = operation
    context.metadata["path"] = request.url.path
    return context


def _reject_if_shutting_down(request: Request, container: ApplicationContainer, operation: str) -> None:
    if not container.handshake_gate.is_accepting:
        raise LoggedHTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server is shutting down",
            context=_context(request, operation),
        )


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, credential = header.partition(" ")
    if scheme.lower() != "bearer" or not credential.strip():
        return None
    return credential.strip()


@auth_router.post("/register", status_code=status.HTTP_201_CREATED, response_model=MessageResponse)
async def register_user(
    credentials: CredentialsRequest,
    request: Request,
    container: ApplicationContainer = Depends(get_container),
) -> MessageResponse:
    """Create an account. 400 on invalid input, 409 if the username is taken."""
    _reject_if_shutting_down(request, container, "register_user")

    if not is_valid_username(credentials.username) or not is_valid_password(credentials.password):
        raise LoggedHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid username or password format",
            context=_context(request, "register_user", credentials.username),
        )

    logger.info("Registration attempt", username=credentials.username)
    # Argon2 blocks; run it off the event loop
    password_hashed = await asyncio.to_thread(hash_password, credentials.password)
    try:
        created = await container.user_store.create(credentials.username, password_hashed)
    except DatabaseError as e:
        raise LoggedHTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Registration is temporarily unavailable",
            context=_context(request, "register_user", credentials.username),
        ) from e

    if not created:
        raise LoggedHTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already exists",
            context=_context(request, "register_user", credentials.username),
        )

    return MessageResponse(message="User registered successfully")


@auth_router.post("/login", response_model=LoginResponse)
async def login_user(
    credentials: CredentialsRequest,
    request: Request,
    container: ApplicationContainer = Depends(get_container),
) -> LoginResponse:
    """Verify credentials and issue a session token."""
    _reject_if_shutting_down(request, container, "login_user")

    security = container.config.security
    try:
        password_hashed = await container.user_store.get_password_hash(credentials.username)
    except DatabaseError as e:
        raise LoggedHTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Login is temporarily unavailable",
            context=_context(request, "login_user", credentials.username),
        ) from e

    if password_hashed is None or not await asyncio.to_thread(verify_password, credentials.password, password_hashed):
        raise LoggedHTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            context=_context(request, "login_user", credentials.username),
        )

    try:
        token = create_access_token(
            credentials.username,
            security.jwt_secret,
            expires_delta=timedelta(minutes=security.access_token_expire_minutes),
            algorithm=security.jwt_algorithm,
        )
    except ConfigurationError as e:
        raise LoggedHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server is not configured to issue tokens",
            context=_context(request, "login_user", credentials.username),
        ) from e

    try:
        await container.session_store.store(credentials.username, token)
    except DatabaseError as e:
        raise LoggedHTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Login is temporarily unavailable",
            context=_context(request, "login_user", credentials.username),
        ) from e

    logger.info("Login successful", username=credentials.username)
    return LoginResponse(token=token, username=credentials.username)


@auth_router.post("/logout", response_model=MessageResponse)
async def logout_user(
    request: Request,
    container: ApplicationContainer = Depends(get_container),
) -> MessageResponse:
    """Revoke the bearer token. Takes effect on the next handshake that presents it."""
    token = _bearer_token(request)
    if token is None:
        raise LoggedHTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            context=_context(request, "logout_user"),
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        removed = await container.session_store.revoke(token)
    except DatabaseError as e:
        raise LoggedHTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Logout is temporarily unavailable",
            context=_context(request, "logout_user"),
        ) from e

    logger.info("Logout processed", token_was_live=removed)
    return MessageResponse(message="Logged out successfully")
