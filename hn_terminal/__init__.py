from .client import (
    Comment,
    DecodeError,
    HackerNewsClient,
    HnError,
    Item,
    TransportError,
)
from .sanitize import sanitize
from .session import FetchResult, FetchResultChannel, SessionController, Status

__all__ = [
    "Comment",
    "DecodeError",
    "FetchResult",
    "FetchResultChannel",
    "HackerNewsClient",
    "HnError",
    "Item",
    "SessionController",
    "Status",
    "TransportError",
    "sanitize",
]

__version__ = "0.1.0"
