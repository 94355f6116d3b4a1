# backend/bookrail/api/dependencies/auth.py
"""
Actor identity.

Authentication happens upstream (API gateway / session service); it forwards
the verified user id in the ``X-Actor-Id`` header.
"""

from typing import Optional

from fastapi import Header, HTTPException, status


def get_actor_id(x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id")) -> str:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "code": "UNAUTHENTICATED"},
        )
    return x_actor_id.strip()
