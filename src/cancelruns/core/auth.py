"""Authentication helpers for the GitHub REST API.

This module centralizes creation of the HTTP client used to talk to GitHub
and applies small normalization rules to the API URL so adapters can build
endpoint paths without worrying about stray query strings or slashes.
"""

import httpx

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
DEFAULT_TIMEOUT_SECONDS = 30.0


class AuthError(RuntimeError):
    """Raised when no usable GitHub credentials are available."""


def _sanitize_api_url(api_url: str | None) -> str:
    """
    Normalize a GitHub API base URL.

    - Falls back to the public API when empty
    - Removes query strings
    - Removes trailing slashes
    """
    if not api_url:
        return DEFAULT_API_URL
    api_url = api_url.split("?", 1)[0]
    return api_url.rstrip("/")


def require_token(token: str | None) -> str:
    """Return the stripped token, or raise AuthError when it is missing or blank."""
    if not token or not token.strip():
        raise AuthError(
            "GitHub authentication failed: no token provided.\n"
            "Pass --token or set GITHUB_TOKEN."
        )
    return token.strip()


def get_client(
    token: str | None,
    api_url: str | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> httpx.AsyncClient:
    """
    Create an async HTTP client authenticated against the GitHub API.

    The token is sent as a bearer token on every request. The caller owns
    the returned client and must close it (`await client.aclose()` or
    `async with`).

    Raises:
        AuthError: If the token is missing or blank.
    """
    headers = {
        "Authorization": f"Bearer {require_token(token)}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
        "User-Agent": "cancel-workflow-runs",
    }
    return httpx.AsyncClient(
        base_url=_sanitize_api_url(api_url),
        headers=headers,
        timeout=timeout,
    )
