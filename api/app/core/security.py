from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from app.core.auth import ADMIN_ROLE, DEFAULT_ROLE, Principal, parse_bearer_token
from app.core.config import Settings, get_settings

KNOWN_ROLES = (ADMIN_ROLE, DEFAULT_ROLE)


async def get_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="human auth requires bearer token",
        )

    token = parse_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    return await resolve_token_principal(token, settings)


async def resolve_token_principal(token: str, settings: Settings) -> Principal:
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    return Principal(
        subject=user_id,
        role=_resolve_human_role(user),
        name=_resolve_display_name(user),
        email=user.get("email") if isinstance(user.get("email"), str) else None,
    )


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification failed",
        )

    return response.json()


def _resolve_human_role(user: dict[str, Any]) -> str:
    # Only app_metadata is writable by the service role; user_metadata is user-editable
    # and must never grant admin.
    app_metadata = user.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return DEFAULT_ROLE

    role = app_metadata.get("role")
    if isinstance(role, str) and role in KNOWN_ROLES:
        return role

    roles = app_metadata.get("roles")
    if isinstance(roles, list):
        if ADMIN_ROLE in roles:
            return ADMIN_ROLE
        if DEFAULT_ROLE in roles:
            return DEFAULT_ROLE

    return DEFAULT_ROLE


def _resolve_display_name(user: dict[str, Any]) -> str | None:
    user_metadata = user.get("user_metadata")
    if isinstance(user_metadata, dict):
        for key in ("name", "full_name"):
            value = user_metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None
