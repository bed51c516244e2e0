"""Normalized OAuth payloads and the request helpers every provider shares."""

import logging
from datetime import datetime, timedelta, timezone

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from services.exceptions import IdentityFetchError, TokenExchangeError

logger = logging.getLogger(__name__)


class OAuthTokenResponse(BaseModel):
    """Token endpoint result in one shape for every provider."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    token_type: str | None = None
    id_token: str | None = None

    def expires_at(self) -> datetime | None:
        if not self.expires_in:
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)


class PlatformUserInfo(BaseModel):
    """Identity of whoever authorized the connection."""

    id: str
    username: str | None = None
    name: str | None = None
    email: str | None = None
    picture: str | None = None

    @property
    def display_name(self) -> str | None:
        return self.name or self.username


async def post_token_request(
    client: httpx.AsyncClient,
    platform: str,
    url: str,
    data: dict,
) -> dict:
    """POST a form-encoded token exchange and return the JSON body.

    Raises TokenExchangeError on network errors, non-2xx responses and
    bodies that are not a JSON object.
    """
    try:
        response = await client.post(
            url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as e:
        raise TokenExchangeError(platform, None, repr(e)) from e

    if not response.is_success:
        logger.error(f"{platform} token exchange failed: {response.status_code} - {response.text}")
        raise TokenExchangeError(platform, response.status_code, response.text)

    try:
        body = response.json()
    except ValueError as e:
        raise TokenExchangeError(platform, response.status_code, response.text) from e

    if not isinstance(body, dict):
        raise TokenExchangeError(platform, response.status_code, "Response body is not a JSON object")
    return body


async def get_identity(
    client: httpx.AsyncClient,
    platform: str,
    url: str,
    *,
    params: dict | None = None,
    headers: dict | None = None,
) -> dict:
    """GET an identity endpoint and return the JSON body.

    Raises IdentityFetchError on any failure, including a body that is not
    a JSON object.
    """
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        raise IdentityFetchError(platform, None, repr(e)) from e

    if not response.is_success:
        logger.error(f"{platform} user info fetch failed: {response.status_code} - {response.text}")
        raise IdentityFetchError(platform, response.status_code, response.text)

    try:
        body = response.json()
    except ValueError as e:
        raise IdentityFetchError(platform, response.status_code, response.text) from e

    if not isinstance(body, dict):
        raise IdentityFetchError(platform, response.status_code, "Response body is not a JSON object")
    return body


def decode_jwt_claims(token: str | None) -> dict | None:
    """Read a JWT payload without verifying its signature.

    Only used on ID tokens received directly from the provider's token
    endpoint over TLS.
    """
    if not token:
        return None
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        logger.warning("Could not decode ID token payload")
        return None


def parse_scope_string(scope: str | None) -> list[str]:
    """Split a provider scope string on spaces or commas."""
    if not scope:
        return []
    return [s for s in scope.replace(",", " ").split() if s]
