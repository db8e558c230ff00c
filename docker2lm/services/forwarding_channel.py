"""
Forwarding Channel

Owns the single TLS connection to the log intake. Writes are fire-and-forget
lines of "<api-key> <json>" and are dropped while the connection is not
authorized. A connection that ends is re-established immediately.
"""

import asyncio
import socket
import ssl
from enum import Enum
from typing import Callable, Optional

from docker2lm.core.logging import logger


class ConnectionState(str, Enum):
    """Forwarding connection states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHORIZED = "authorized"
    FAILED = "failed"


class ForwardingChannel:
    """
    Persistent, self-reconnecting connection to the intake endpoint

    States:
    - DISCONNECTED: no connection (initial, or after the peer ended it)
    - CONNECTING: TLS handshake in progress
    - AUTHORIZED: handshake verified, ready for writes
    - FAILED: connect or handshake failed; retried after retry_interval
    """

    def __init__(
        self,
        host: str,
        port: int,
        on_authorized: Optional[Callable[[], None]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        reconnect_delay: float = 0.0,
        retry_interval: float = 5.0
    ):
        self.host = host
        self.port = port
        self.on_authorized = on_authorized
        self.ssl_context = ssl_context or ssl.create_default_context()
        self.reconnect_delay = reconnect_delay
        self.retry_interval = retry_interval
        self.state = ConnectionState.DISCONNECTED
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def ready(self) -> bool:
        return self.state == ConnectionState.AUTHORIZED

    async def connect(self) -> bool:
        """
        Open the TLS connection

        Returns:
            True once the connection is authorized
        """
        if self.ready or self.state == ConnectionState.CONNECTING or self._closed:
            return self.ready

        logger.info(f"Connecting {self.host}:{self.port}...")
        self.state = ConnectionState.CONNECTING

        try:
            reader, writer = await asyncio.open_connection(
                self.host,
                self.port,
                ssl=self.ssl_context,
                server_hostname=self.host
            )
        except ssl.SSLError as e:
            logger.error(f"{self.host} failed! Certificate not authorized: {e}")
            self._fail()
            return False
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"{self.host} connection error! {e}")
            self._fail()
            return False

        sock = writer.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        self._reader = reader
        self._writer = writer
        self.state = ConnectionState.AUTHORIZED
        logger.info(f"{self.host} authorized!")

        self._watch_task = asyncio.create_task(self._watch_connection(reader))

        if self.on_authorized:
            try:
                self.on_authorized()
            except Exception as e:
                logger.error(f"Error in authorization callback: {e}")

        return True

    def write(self, token: str, payload: str) -> bool:
        """Queue one line for the intake; dropped when not ready"""
        if not self.ready or self._writer is None:
            logger.debug("Write skipped, intake connection not ready")
            return False

        try:
            self._writer.write(f"{token} {payload}\n".encode("utf-8"))
        except Exception as e:
            logger.error(f"Write to {self.host} failed: {e}")
            return False
        return True

    async def _watch_connection(self, reader: asyncio.StreamReader) -> None:
        """Wait for the peer to end the connection, then reconnect"""
        try:
            while True:
                data = await reader.read(1024)
                if not data:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.host} connection error! {e}")

        logger.info(f"{self.host} connection ended! reconnect...")
        self._drop_connection()
        self._watch_task = None

        if self._closed:
            return
        if self.reconnect_delay:
            await asyncio.sleep(self.reconnect_delay)
        await self.connect()

    def _drop_connection(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is not None:
            try:
                writer.close()
            except Exception as e:
                logger.debug(f"Error closing intake connection: {e}")

    def _fail(self) -> None:
        self._drop_connection()
        self.state = ConnectionState.FAILED
        if not self._closed and self.retry_interval:
            self._retry_task = asyncio.create_task(self._retry_later())

    async def _retry_later(self) -> None:
        await asyncio.sleep(self.retry_interval)
        self._retry_task = None
        if self.state == ConnectionState.FAILED:
            await self.connect()

    async def close(self) -> None:
        """Close the connection and stop reconnecting"""
        self._closed = True
        for task in (self._watch_task, self._retry_task):
            if task and not task.done() and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._watch_task = None
        self._retry_task = None
        self._drop_connection()
