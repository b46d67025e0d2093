"""Frame handling shared by the push transports."""

from loguru import logger

from ..common.channel import ChannelState, EventCallback, FailureCallback
from ..common.schema_events import TERMINAL_EVENTS, JobEvent, SystemEvent, parse_frame


class PushChannelBase:
    """Bookkeeping for one push connection: delivery, failure and close.

    Subclasses open the transport and feed raw frames to ``handle_payload``
    on the event loop thread. ``release`` tears the transport down.
    """

    def __init__(self):
        self.state: ChannelState = ChannelState.idle
        self.job_id: str | None = None
        self.finished: bool = False
        self._on_event: EventCallback | None = None
        self._on_failure: FailureCallback | None = None

    def _begin(
        self, job_id: str, on_event: EventCallback, on_failure: FailureCallback
    ) -> None:
        if self.state is not ChannelState.idle:
            raise RuntimeError(f"{type(self).__name__} can only be opened once")
        self.job_id = job_id
        self._on_event = on_event
        self._on_failure = on_failure
        self.state = ChannelState.open

    def handle_payload(self, payload: str | bytes) -> None:
        """Parse one frame and deliver it unless it is a keep-alive."""
        if self.state is not ChannelState.open:
            return
        try:
            event = parse_frame(payload)
        except ValueError as e:
            text = payload.decode("utf-8", "replace") if isinstance(payload, bytes) else payload
            logger.warning(f"Dropping malformed frame for job {self.job_id}: {e}")
            self.deliver(SystemEvent(message=f"Dropped malformed event frame: {text[:200]}"))
            return

        if event is None:
            return
        if isinstance(event, TERMINAL_EVENTS):
            self.finished = True
        self.deliver(event)

    def deliver(self, event: JobEvent) -> None:
        if self.state is not ChannelState.open or self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception as callback_error:
            logger.error(f"Error in event callback for job {self.job_id}: {callback_error}")

    def fail(self, reason: str) -> None:
        """Report a transport break. Only the first call has any effect."""
        if self.state is not ChannelState.open:
            return
        self.state = ChannelState.failed
        logger.warning(f"Push channel for job {self.job_id} failed: {reason}")
        callback = self._on_failure
        self._on_failure = None
        if callback is not None:
            try:
                callback()
            except Exception as callback_error:
                logger.error(
                    f"Error in failure callback for job {self.job_id}: {callback_error}"
                )

    def close(self) -> None:
        if self.state is ChannelState.closed:
            return
        self.state = ChannelState.closed
        self._on_event = None
        self._on_failure = None
        self.release()

    def release(self) -> None:
        pass
