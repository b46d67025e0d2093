"""Push channel over an MQTT broker topic."""

import asyncio
from collections.abc import Callable
from typing_extensions import override
from uuid import uuid4

import paho.mqtt.client as mqtt
from loguru import logger
from paho.mqtt.client import ConnectFlags, DisconnectFlags, MQTTMessage
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.properties import Properties
from paho.mqtt.reasoncodes import ReasonCode

from ..common.channel import ChannelState, EventCallback, FailureCallback
from ..common.config import MonitorConfig, parse_mqtt_url
from .base import PushChannelBase


class MQTTPushChannel(PushChannelBase):
    """Subscribes to the job's event topic using MQTT v5.

    paho runs its network loop on its own thread; every callback is handed
    to the asyncio loop that opened the channel before it touches any state.
    A failed connect, a connect that does not complete within
    ``connect_timeout`` seconds or an unexpected disconnect is a failure.
    """

    def __init__(self, config: MonitorConfig, connect_timeout: float = 5.0):
        super().__init__()
        if not config.mqtt_url:
            raise ValueError("MQTT push channel must be configured with mqtt_url")
        self.broker: str
        self.port: int
        self.broker, self.port = parse_mqtt_url(config.mqtt_url)
        self.config: MonitorConfig = config
        self.connect_timeout: float = connect_timeout
        self.topic: str | None = None
        self.client: mqtt.Client | None = None
        self.connected: bool = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connect_timer: asyncio.TimerHandle | None = None

    def open(
        self,
        job_id: str,
        on_event: EventCallback,
        on_failure: FailureCallback,
    ) -> None:
        self._begin(job_id, on_event, on_failure)
        self._loop = asyncio.get_running_loop()
        self.topic = self.config.topic(job_id)

        logger.info(f"Subscribing to {self.topic} on broker {self.broker}:{self.port}")
        try:
            self.client = mqtt.Client(
                callback_api_version=CallbackAPIVersion.VERSION2,
                client_id=f"job-monitor-{uuid4()}",
                protocol=mqtt.MQTTv5,
            )
            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect
            self.client.on_message = self._on_message

            _ = self.client.connect_async(
                self.broker, self.port, keepalive=60, clean_start=True
            )
            _ = self.client.loop_start()
        except Exception as e:
            logger.warning(f"Failed to start MQTT client for {self.broker}:{self.port}: {e}")
            _ = self._loop.call_soon(self.fail, f"MQTT client error: {e}")
            return

        self._connect_timer = self._loop.call_later(
            self.connect_timeout, self._check_connected
        )

    def _check_connected(self) -> None:
        self._connect_timer = None
        if not self.connected:
            self.fail(f"no MQTT connection after {self.connect_timeout}s")

    def _mark_connected(self) -> None:
        self.connected = True
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None

    def _call_in_loop(self, callback: Callable[..., None], *args: object) -> None:
        """Hand a paho-thread callback over to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            _ = loop.call_soon_threadsafe(callback, *args)
        except RuntimeError as e:
            logger.debug(f"Event loop gone, dropping MQTT callback: {e}")

    @override
    def release(self) -> None:
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None

        client = self.client
        self.client = None
        self.connected = False
        if client is None:
            return
        try:
            if self.topic:
                _ = client.unsubscribe(self.topic)
            _ = client.disconnect()
            _ = client.loop_stop()
        except Exception as e:
            logger.warning(f"Error shutting down MQTT client: {e}")

    #
    # MQTT v5 Callback APIs (paho network thread)
    #
    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: object,
        _flags: ConnectFlags,
        reason_code: ReasonCode,
        properties: Properties | None,
    ) -> None:
        if reason_code == 0:
            result, _mid = client.subscribe(self.topic or "", qos=1)
            if result != mqtt.MQTT_ERR_SUCCESS:
                self._call_in_loop(self.fail, f"subscribe to {self.topic} failed: {result}")
                return
            logger.info(f"MQTT connected, subscribed to {self.topic}")
            self._call_in_loop(self._mark_connected)
        else:
            logger.warning(
                f"MQTT connection failed: reason={reason_code}, props={properties}"
            )
            self._call_in_loop(self.fail, f"MQTT connect refused: {reason_code}")

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: object,
        _disconnect_flags: DisconnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None,
    ) -> None:
        if self.state is ChannelState.open:
            self._call_in_loop(self.fail, f"MQTT disconnected: {reason_code}")

    def _on_message(
        self, _client: mqtt.Client, _userdata: object, message: MQTTMessage
    ) -> None:
        self._call_in_loop(self.handle_payload, bytes(message.payload))
