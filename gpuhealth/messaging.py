"""NATS publisher for snapshots and alert transitions."""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

import nats
from nats.aio.client import Client as NATSClient
import structlog

from .config import MonitorConfig
from .models import AlertTransition, HealthSnapshot

logger = structlog.get_logger(__name__)

SNAPSHOT_SUBJECT = "gpu.health.snapshot"
ALERT_SUBJECT = "gpu.health.alert"
SUMMARY_SUBJECT = "gpu.health.summary"


class MessageBusClient:
    """Thin wrapper around a NATS connection."""

    def __init__(self, config: Optional[MonitorConfig] = None):
        self.config = config or MonitorConfig()
        self.nc: Optional[NATSClient] = None
        self._subscriptions: Dict[str, Any] = {}

    @property
    def connected(self) -> bool:
        return self.nc is not None and self.nc.is_connected

    async def connect(self) -> None:
        """Connect to the NATS server."""
        try:
            self.nc = await nats.connect(
                servers=[self.config.nats_url],
                max_reconnect_attempts=self.config.nats_max_reconnect_attempts,
                reconnect_time_wait=2,
                error_cb=self._error_callback,
                disconnected_cb=self._disconnected_callback,
                reconnected_cb=self._reconnected_callback,
            )
            logger.info("Connected to NATS", url=self.config.nats_url)
        except Exception as e:
            logger.error("Failed to connect to NATS", error=str(e))
            raise

    async def disconnect(self) -> None:
        if self.nc:
            await self.nc.drain()
            await self.nc.close()
            self.nc = None
            logger.info("Disconnected from NATS")

    async def publish(self, subject: str, message: Dict[str, Any]) -> None:
        if not self.nc:
            raise RuntimeError("Not connected to NATS")
        payload = json.dumps(message).encode()
        await self.nc.publish(subject, payload)
        logger.debug("Published message", subject=subject, size=len(payload))

    async def publish_snapshot(self, snapshot: HealthSnapshot) -> None:
        await self.publish(
            f"{SNAPSHOT_SUBJECT}.{snapshot.device}",
            snapshot.model_dump(mode="json"),
        )

    async def publish_transition(self, transition: AlertTransition) -> None:
        await self.publish(ALERT_SUBJECT, transition.model_dump(mode="json"))

    async def reply_handler(
        self,
        subject: str,
        handler: Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]],
    ) -> None:
        """Register a request/reply handler."""
        if not self.nc:
            raise RuntimeError("Not connected to NATS")

        async def reply_callback(msg):
            try:
                request_data = json.loads(msg.data.decode()) if msg.data else {}
                response_data = await handler(request_data)
            except Exception as e:
                logger.error("Error handling request", subject=subject, error=str(e))
                response_data = {"error": str(e)}
            await msg.respond(json.dumps(response_data).encode())

        sub = await self.nc.subscribe(subject, cb=reply_callback)
        self._subscriptions[subject] = sub
        logger.info("Registered reply handler", subject=subject)

    async def _error_callback(self, e: Exception) -> None:
        logger.error("NATS error", error=str(e))

    async def _disconnected_callback(self) -> None:
        logger.warning("Disconnected from NATS")

    async def _reconnected_callback(self) -> None:
        logger.info("Reconnected to NATS")
