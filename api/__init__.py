"""
Photo backend transport.

- client: async HTTP client with one method per backend operation
- schemas: pydantic wire models (API 0-1 coordinates)
- errors: typed failures (ApiError, NotFoundError, TransportError)
"""

from .client import PhotoApiClient
from .errors import ApiError, NotFoundError, TransportError

__all__ = [
    "PhotoApiClient",
    "ApiError",
    "NotFoundError",
    "TransportError",
]
