"""Per-request authentication details carried alongside a request."""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class AuthContext:
    """Immutable set of credentials attached to a request."""

    basic_user: str | None = None
    basic_password: str | None = None
    bearer_token: str | None = None
    api_token_auth: bool = False


def _context(ctx: AuthContext | None) -> AuthContext:
    return ctx if ctx is not None else AuthContext()


def with_basic_auth(ctx: AuthContext | None, user: str, password: str) -> AuthContext:
    """Return a context carrying basic auth credentials."""
    return replace(_context(ctx), basic_user=user, basic_password=password)


def get_basic_auth_credentials(ctx: AuthContext | None) -> tuple[str, str] | None:
    """Return (user, password) when both are present, else None."""
    ctx = _context(ctx)
    if ctx.basic_user is None or ctx.basic_password is None:
        return None
    return ctx.basic_user, ctx.basic_password


def with_bearer_token(ctx: AuthContext | None, token: str) -> AuthContext:
    """Return a context carrying a bearer token."""
    return replace(_context(ctx), bearer_token=token)


def get_bearer_token(ctx: AuthContext | None) -> str | None:
    """Return the bearer token, or None when none was set."""
    return _context(ctx).bearer_token


def with_api_token_auth(ctx: AuthContext | None) -> AuthContext:
    """Mark the context as authenticated with the server's API token."""
    return replace(_context(ctx), api_token_auth=True)


def is_api_token_auth(ctx: AuthContext | None) -> bool:
    """Tell whether the request was authenticated with the API token."""
    return _context(ctx).api_token_auth


def has_auth(ctx: AuthContext | None) -> bool:
    """Tell whether basic auth, a bearer token or API token auth is present."""
    return (
        get_basic_auth_credentials(ctx) is not None
        or get_bearer_token(ctx) is not None
        or is_api_token_auth(ctx)
    )