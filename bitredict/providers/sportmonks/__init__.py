"""SportMonks football provider.

Pydantic v2 models and an async client that turn SportMonks v3 fixture
payloads into normalized fixture results and catalogue snapshots.
"""

from .client import SportMonksClient
from .config import SportMonksConfig
from .types import Fixture, Odd, Participant, Score, State

__all__ = [
    "SportMonksClient",
    "SportMonksConfig",
    "Fixture",
    "Odd",
    "Participant",
    "Score",
    "State",
]
