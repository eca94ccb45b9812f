"""
Acting user for ledger entries.

Authentication is handled upstream; the gateway forwards the user either as a
JSON ``X-User-Info`` header (``{"id": ..., "username": ..., "role": ...}``) or
as separate ``X-User-ID`` / ``X-User-Name`` headers.
"""
import json
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from pydantic import ValidationError

from retailpos.common.schemas import Actor


def get_actor(
    x_user_info: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    if x_user_info:
        try:
            return Actor(**json.loads(x_user_info))
        except (ValueError, TypeError, ValidationError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-User-Info header"
            )

    if x_user_id and x_user_name:
        return Actor(id=x_user_id, username=x_user_name)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="User information required"
    )


actor_dependency = Annotated[Actor, Depends(get_actor)]
