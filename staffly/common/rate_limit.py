"""Rate limiting configuration using slowapi.

Check-in and check-out are limited per employee: the key is the bearer
token's subject, so colleagues behind one office NAT do not share a
budget. Requests without a readable token fall back to the client IP.
"""

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address


def employee_or_ip(request: Request) -> str:
    """Rate-limit key: ``employee:<sub>`` for bearer requests, else the remote address."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            # Signature is verified by the auth dependency, not here
            subject = jwt.get_unverified_claims(auth_header[7:]).get("sub")
        except JWTError:
            subject = None
        if subject:
            return f"employee:{subject}"
    return get_remote_address(request)


limiter = Limiter(key_func=employee_or_ip)
