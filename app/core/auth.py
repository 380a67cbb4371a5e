# core/auth.py
"""
HTTP basic authentication for the platform calling the broker.

The Open Service Broker API authenticates the platform with a single
username/password pair configured on both sides.
"""

import base64
import binascii
import secrets

from fastapi import HTTPException, Request, status

from core.config import settings
from core.logger import logger


class AuthenticatedPrincipal:
    """
    The platform that called the broker.

    Carries the request id so handlers can correlate their logs.
    """

    def __init__(self, username: str, request_id: str, broker_api_version: str):
        self.username = username
        self.request_id = request_id
        self.broker_api_version = broker_api_version


def _unauthorized(detail: str, request_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic", "x-request-id": request_id}
    )


async def verify_basic_auth(request: Request) -> AuthenticatedPrincipal:
    """
    Verify the Authorization header against the configured broker credentials.

    Args:
        request: FastAPI request object

    Returns:
        AuthenticatedPrincipal: Validated caller information

    Raises:
        HTTPException: 401 if credentials are missing or wrong
    """
    request_id = request.headers.get("x-request-id", "unknown")
    authorization = request.headers.get("Authorization")

    if not authorization:
        raise _unauthorized("Not authenticated", request_id)

    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        raise _unauthorized("Invalid authentication scheme", request_id)

    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.warning(
            "Malformed basic auth header",
            extra={"request_id": request_id, "auth_result": "malformed"}
        )
        raise _unauthorized("Invalid authentication credentials", request_id)

    username, separator, password = decoded.partition(":")
    if not separator:
        raise _unauthorized("Invalid authentication credentials", request_id)

    """
    Compare both fields in constant time, and always both, so a wrong
    username takes as long as a wrong password
    """
    username_ok = secrets.compare_digest(username.encode(), settings.BROKER_USERNAME.encode())
    password_ok = secrets.compare_digest(password.encode(), settings.BROKER_PASSWORD.encode())

    if not settings.BROKER_PASSWORD or not (username_ok and password_ok):
        logger.warning(
            "Authentication failed",
            extra={"request_id": request_id, "auth_result": "invalid"}
        )
        raise _unauthorized("Invalid authentication credentials", request_id)

    principal = AuthenticatedPrincipal(
        username=username,
        request_id=request_id,
        broker_api_version=request.headers.get("X-Broker-API-Version", ""),
    )

    logger.debug(
        "Authentication successful",
        extra={"request_id": request_id, "auth_result": "success"}
    )
    return principal
