# rma_tracker/identity.py
"""
Actor identity handed to the core by the upstream auth layer.

Credentials are validated before a request reaches this service; the auth
proxy forwards the resolved user as ``X-User-Id`` / ``X-User-Name``.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException


@dataclass(frozen=True)
class Actor:
    user_id: int
    username: Optional[str] = None

    @property
    def label(self) -> str:
        """Value stored in user_* audit columns."""
        return self.username or str(self.user_id)


def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Actor:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="No user identity provided")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user identity")
    return Actor(user_id=user_id, username=x_user_name or None)
