"""
Supabase client configuration and request authentication.
"""

import base64
import json
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException
from supabase import Client, create_client


def decode_jwt_payload(token: str) -> dict:
    """Decode JWT payload without verification (Supabase verifies signatures upstream)."""
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Invalid JWT format")

    payload = parts[1]
    padding = 4 - len(payload) % 4
    if padding != 4:
        payload += "=" * padding

    try:
        decoded = base64.urlsafe_b64decode(payload)
        return json.loads(decoded)
    except (ValueError, UnicodeDecodeError) as e:
        raise ValueError(f"Failed to decode JWT: {e}")


@dataclass
class AuthenticatedOwner:
    """The authenticated caller; the JWT subject is the owner id."""
    owner_id: str
    token: str


@lru_cache()
def get_supabase_url() -> str:
    url = os.environ.get("SUPABASE_URL")
    if not url:
        raise ValueError("SUPABASE_URL must be set")
    return url


@lru_cache()
def get_service_client() -> Client:
    """Get Supabase client with service key (bypasses RLS)."""
    url = get_supabase_url()
    key = os.environ.get("SUPABASE_SERVICE_KEY")
    if not key:
        raise ValueError("SUPABASE_SERVICE_KEY must be set")
    return create_client(url, key)


def get_authenticated_owner(authorization: Optional[str] = Header(None)) -> AuthenticatedOwner:
    """
    Resolve the owner from the bearer token.
    Use as FastAPI dependency.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = authorization.replace("Bearer ", "", 1)

    try:
        payload = decode_jwt_payload(token)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))

    owner_id = payload.get("sub") if isinstance(payload, dict) else None
    if not owner_id:
        raise HTTPException(status_code=401, detail="Invalid token: no user ID")

    return AuthenticatedOwner(owner_id=owner_id, token=token)


# Type aliases for dependency injection
CurrentOwner = Annotated[AuthenticatedOwner, Depends(get_authenticated_owner)]
