"""Fireboard cloud API models, token cache, and REST client."""

from .auth import TOKEN_VALIDITY, Credential, TokenCache
from .client import FireboardClient
from .errors import (
    AuthError,
    Cancelled,
    CollectionError,
    DecodeError,
    ExpiredToken,
    FireboardError,
    NoValidToken,
    RateLimited,
    RemoteError,
    TokenError,
)
from .models import ChannelSeries, Device, DeviceLog, DriveLog, SessionDetail, SessionSummary
from .source import RemoteDataSource

__all__ = [
    "AuthError",
    "Cancelled",
    "ChannelSeries",
    "CollectionError",
    "Credential",
    "DecodeError",
    "Device",
    "DeviceLog",
    "DriveLog",
    "ExpiredToken",
    "FireboardClient",
    "FireboardError",
    "NoValidToken",
    "RateLimited",
    "RemoteDataSource",
    "RemoteError",
    "SessionDetail",
    "SessionSummary",
    "TOKEN_VALIDITY",
    "TokenCache",
    "TokenError",
]
