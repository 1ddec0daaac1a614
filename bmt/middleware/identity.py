"""
Caller identity middleware: sets g.azure_unique_id for every API request.

Priority order:
  1. JWT (Authorization: Bearer <token>)   →  "oid" claim, then "sub"
  2. X-Azure-Unique-Id header              →  only when TRUST_IDENTITY_HEADER is on

Requests without an identity are not rejected here; services raise
ForbiddenError for any mutation that needs a caller.
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

logger = logging.getLogger(__name__)

IDENTITY_HEADER = "X-Azure-Unique-Id"

# Paths that skip identity resolution entirely
SKIP_PREFIXES = ("/api/v1/health",)


def decode_identity_token(token: str) -> str | None:
    """Verify an HS256 bearer token and return the caller's object id."""
    key = current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]
    payload = pyjwt.decode(token, key, algorithms=["HS256"], options={"verify_aud": False})
    return payload.get("oid") or payload.get("sub")


def init_identity_middleware(app):
    """Register identity resolution as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.azure_unique_id = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            try:
                g.azure_unique_id = decode_identity_token(auth_header[7:])
            except pyjwt.ExpiredSignatureError:
                logger.info("Expired bearer token", extra={"path": path})
            except pyjwt.InvalidTokenError as exc:
                logger.warning("Invalid bearer token: %s", exc, extra={"path": path})
            if g.azure_unique_id:
                return

        if app.config.get("TRUST_IDENTITY_HEADER"):
            header_id = (request.headers.get(IDENTITY_HEADER) or "").strip()
            g.azure_unique_id = header_id or None
