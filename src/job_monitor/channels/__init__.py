from .base import PushChannelBase
from .mqtt import MQTTPushChannel
from .poll import POLL_TIMEOUT_MESSAGE, HTTPPollChannel
from .sse import SSEPushChannel, iter_sse_data

__all__ = [
    "HTTPPollChannel",
    "MQTTPushChannel",
    "POLL_TIMEOUT_MESSAGE",
    "PushChannelBase",
    "SSEPushChannel",
    "iter_sse_data",
]
