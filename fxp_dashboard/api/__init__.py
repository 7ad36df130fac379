"""Backend REST collaborators."""

from .backend import BackendClient
from .errors import ApiError

__all__ = [
    "BackendClient",
    "ApiError",
]
