from .decoder import DecodedEvent, EventDecoder, build_decoder
from .mirror import EventMirror
from .worker import ChainEventSync, SyncReport

__all__ = [
    "DecodedEvent",
    "EventDecoder",
    "build_decoder",
    "EventMirror",
    "ChainEventSync",
    "SyncReport",
]
