"""Request security helpers for the viewer server."""

import secrets

from starlette.requests import Request

# Applied to every HTML response
HTML_SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline'; img-src 'self' data:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}

LOOPBACK_IDENTITY = "127.0.0.1"


def verify_bearer_token(request: Request, expected: str | None) -> bool:
    """Check ``Authorization: Bearer <token>`` against the configured token.

    Args:
        request: Incoming request.
        expected: Pre-provisioned token. None or empty rejects every request.

    Returns:
        True if the header carries exactly the expected token.
    """
    if not expected:
        return False
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return False
    provided = auth_header[7:]
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def client_identity(request: Request) -> str:
    """Rate-limit key for a request: first X-Forwarded-For hop, else loopback."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    return first or LOOPBACK_IDENTITY
