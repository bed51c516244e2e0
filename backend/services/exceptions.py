"""OAuth flow errors.

Raised by token exchange and identity fetch. Asset discovery never raises;
a failed probe only contributes zero assets.
"""


class OAuthError(Exception):
    """Base class for errors that abort an OAuth callback."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        self.message = message
        super().__init__(message)


class UnsupportedPlatformError(OAuthError):
    def __init__(self, platform: str):
        super().__init__(platform, f"Unsupported platform: {platform}")


class OAuthNotConfiguredError(OAuthError):
    def __init__(self, platform: str):
        super().__init__(platform, f"{platform.capitalize()} OAuth credentials not configured")


class InvalidStateError(OAuthError):
    """OAuth state token is missing, tampered with, or expired."""

    def __init__(self, platform: str, reason: str = "Invalid state parameter"):
        super().__init__(platform, reason)


class ProviderResponseError(OAuthError):
    """A provider endpoint answered with an error status or unusable body."""

    action = "request"

    def __init__(self, platform: str, status_code: int | None, body: str):
        self.status_code = status_code
        self.body = body
        status = f" ({status_code})" if status_code is not None else ""
        super().__init__(
            platform,
            f"{platform.capitalize()} {self.action} failed{status}: {body}",
        )


class TokenExchangeError(ProviderResponseError):
    action = "token exchange"


class IdentityFetchError(ProviderResponseError):
    action = "user info fetch"
