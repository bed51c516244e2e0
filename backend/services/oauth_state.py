"""Signed OAuth `state` tokens.

The state round-trips through the provider, so it carries everything the
callback needs (flow, platform, onboarding token or admin id, requested
scopes) and is signed with the app secret. No server-side state map.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Literal

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from config import Settings
from services.exceptions import InvalidStateError

STATE_AUDIENCE = "oauth-state"


class OAuthState(BaseModel):
    flow: Literal["admin", "client"]
    platform: str
    token: str | None = None
    admin_id: str | None = None
    scopes: list[str] = []
    shop: str | None = None


def encode_oauth_state(state: OAuthState, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **state.model_dump(exclude_none=True),
        "aud": STATE_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.oauth_state_ttl_minutes),
        "nonce": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_oauth_state(raw: str | None, platform: str, settings: Settings) -> OAuthState:
    """Verify signature, expiry and platform of a returned state.

    Raises InvalidStateError on any mismatch.
    """
    if not raw:
        raise InvalidStateError(platform, "Missing state parameter")

    try:
        payload = jwt.decode(
            raw,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=STATE_AUDIENCE,
        )
        state = OAuthState.model_validate(payload)
    except (JWTError, ValidationError) as e:
        raise InvalidStateError(platform, "Invalid or expired state parameter") from e

    if state.platform != platform:
        raise InvalidStateError(platform, "State was issued for a different platform")
    return state
