"""Real-time layer - scheduler, push transport, channel manager and message router."""

from .channel import (
    ChannelClosed,
    ChannelError,
    ChannelManager,
    ChannelOpened,
    FrameReceived,
)
from .router import Envelope, FrameError, MessageRouter, parse_envelope
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from .transport import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    ChannelListener,
    Connection,
    Transport,
    WebSocketTransport,
)

__all__ = [
    "ChannelClosed",
    "ChannelError",
    "ChannelManager",
    "ChannelOpened",
    "FrameReceived",
    "Envelope",
    "FrameError",
    "MessageRouter",
    "parse_envelope",
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "ABNORMAL_CLOSURE",
    "NORMAL_CLOSURE",
    "ChannelListener",
    "Connection",
    "Transport",
    "WebSocketTransport",
]
