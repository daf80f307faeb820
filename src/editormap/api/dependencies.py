"""
Request principal dependencies.

Authentication happens upstream (API gateway / auth service). By the time a request
reaches this service the gateway has verified the caller and forwarded:
- `X-User-Id`: the authenticated user id
- `X-User-Role`: `client` or `editor`

Editor-owned operations take the editor id from here, never from the request body.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str | None


async def get_current_principal(request: Request) -> Principal:
    """Build the principal from gateway headers (401 when the user id is missing)."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHENTICATED", "message": "Missing X-User-Id header"},
        )
    role = (request.headers.get("X-User-Role") or "").strip().lower() or None
    return Principal(user_id=user_id, role=role)


def require_role(*roles: str):
    """Dependency factory: 403 unless the principal has one of `roles`."""

    async def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "FORBIDDEN",
                    "message": f"This action requires role: {' or '.join(roles)}",
                },
            )
        return principal

    return _dependency
