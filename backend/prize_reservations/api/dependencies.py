"""
Request-scoped dependencies: caller identity, client IP and services.

Authentication happens upstream; the gateway forwards the verified user id in
the X-User-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from prize_reservations.services.checkout_service import CheckoutService


def get_checkout_service(request: Request) -> CheckoutService:
    return request.app.state.checkout


def get_optional_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None


def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "unknown"


def get_identifier(
    user_id: Optional[str] = Depends(get_optional_user_id),
    ip: str = Depends(get_client_ip),
) -> str:
    """User id when authenticated, otherwise the client IP."""
    return user_id or f"ip:{ip}"
