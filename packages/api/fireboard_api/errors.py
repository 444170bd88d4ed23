"""Error taxonomy shared by the API client, token cache and collector."""

from __future__ import annotations


class FireboardError(Exception):
    """Base error. ``func`` and ``resource`` identify the failing call."""

    def __init__(self, message: str = "", func: str | None = None, resource: str | None = None) -> None:
        super().__init__(message)
        self.func = func
        self.resource = resource

    def with_context(self, func: str | None = None, resource: str | None = None) -> "FireboardError":
        if func is not None:
            self.func = func
        if resource is not None:
            self.resource = resource
        return self

    def __str__(self) -> str:
        msg = super().__str__()
        ctx = [p for p in (self.func, self.resource) if p]
        if ctx:
            return f"{msg} [{' '.join(ctx)}]"
        return msg


class TokenError(FireboardError):
    pass


class NoValidToken(TokenError):
    def __init__(self, message: str = "no valid token", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ExpiredToken(TokenError):
    def __init__(self, message: str = "token is expired, please renew", **kwargs) -> None:
        super().__init__(message, **kwargs)


class AuthError(FireboardError):
    pass


class CollectionError(FireboardError):
    pass


class RateLimited(CollectionError):
    def __init__(self, message: str = "rate limited response, please back off", **kwargs) -> None:
        super().__init__(message, **kwargs)


class RemoteError(CollectionError):
    def __init__(self, message: str, status: int | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status = status


class DecodeError(CollectionError):
    pass


class Cancelled(FireboardError):
    def __init__(self, message: str = "collection pass cancelled", **kwargs) -> None:
        super().__init__(message, **kwargs)
