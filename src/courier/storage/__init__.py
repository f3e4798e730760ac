"""Registration storage for Courier.

Backends:
    - InMemoryRegistrationStore: process-local dictionary
    - QdrantRegistrationStore: payload-only points in Qdrant
"""

from .base import RegistrationStore
from .memory import InMemoryRegistrationStore
from .qdrant import QdrantRegistrationStore
from .retry import qdrant_retry

__all__ = [
    "InMemoryRegistrationStore",
    "QdrantRegistrationStore",
    "RegistrationStore",
    "qdrant_retry",
]
