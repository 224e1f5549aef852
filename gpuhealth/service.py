"""GPU health monitor service: sampling loop plus HTTP surface."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Body, FastAPI, HTTPException

from .collector import SampleSource, create_source
from .config import MonitorConfig, ThresholdStore
from .errors import InvalidThresholds, UnknownDevice
from .logger import setup_logging
from .messaging import SUMMARY_SUBJECT, MessageBusClient
from .models import AlertTransition, DeviceId, HealthSnapshot
from .notifier import AlertNotifier
from .registry import DeviceRegistry

logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


class HealthService:
    """Drives the sampling cadence and exposes the latest snapshots."""

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        source: Optional[SampleSource] = None,
        registry: Optional[DeviceRegistry] = None,
        notifier: Optional[AlertNotifier] = None,
        bus: Optional[MessageBusClient] = None,
    ):
        self.config = config or MonitorConfig()
        self.thresholds = registry.thresholds if registry else ThresholdStore()
        self.registry = registry or DeviceRegistry(
            thresholds=self.thresholds,
            capacity=self.config.history_capacity,
            interval=self.config.collection_interval,
            stale_after_intervals=self.config.stale_after_intervals,
        )
        self._source = source
        self.notifier = notifier or AlertNotifier(
            min_interval=self.config.notification_min_interval,
            desktop=self.config.desktop_notifications,
        )
        self.bus = bus
        if self.bus is None and self.config.publish_to_bus:
            self.bus = MessageBusClient(self.config)

        self.collection_task: Optional[asyncio.Task] = None
        self.app = FastAPI(
            title="GPU Health Monitor",
            version=VERSION,
            description="Accelerator telemetry history, health scores and alerts",
            lifespan=self._lifespan,
        )
        self._setup_routes()

    @property
    def source(self) -> SampleSource:
        if self._source is None:
            self._source = create_source(self.config.source, self.config.mock_device_count)
        return self._source

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.start()
        try:
            yield
        finally:
            await self.stop()

    def _snapshot_or_404(self, device: DeviceId) -> HealthSnapshot:
        try:
            return self.registry.snapshot(device)
        except UnknownDevice as e:
            raise HTTPException(status_code=404, detail=str(e))

    def _setup_routes(self):
        """Setup FastAPI routes."""

        @self.app.get("/")
        async def read_root():
            return {"service": self.config.service_name, "version": VERSION, "status": "running"}

        @self.app.get("/devices")
        async def list_devices():
            return self.summary()

        @self.app.get("/devices/{device}")
        async def get_device(device: int):
            return self._snapshot_or_404(device).model_dump(mode="json")

        @self.app.get("/devices/{device}/history")
        async def get_history(device: int):
            try:
                samples = self.registry.history(device)
            except UnknownDevice as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {
                "device": device,
                "count": len(samples),
                "samples": [s.model_dump(mode="json") for s in samples],
            }

        @self.app.get("/devices/{device}/alerts")
        async def get_recent_alerts(device: int, limit: int = 20):
            try:
                recent = self.registry.recent_alerts(device, limit)
            except UnknownDevice as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"device": device, "alerts": [t.model_dump(mode="json") for t in recent]}

        @self.app.post("/devices/{device}/select")
        async def select_device(device: int):
            try:
                self.registry.select(device)
            except UnknownDevice as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"selected": device}

        @self.app.get("/thresholds")
        async def get_thresholds():
            return self.thresholds.current().model_dump()

        @self.app.put("/thresholds")
        async def update_thresholds(changes: Dict[str, Any] = Body(...)):
            try:
                updated = self.thresholds.update(**changes)
            except InvalidThresholds as e:
                raise HTTPException(status_code=422, detail=str(e))
            return updated.model_dump()

    def summary(self) -> Dict[str, Any]:
        devices = []
        for device in self.registry.devices():
            snapshot = self.registry.snapshot(device)
            score = snapshot.health_score
            devices.append({
                "device": device,
                "has_data": snapshot.has_data,
                "stale": snapshot.stale,
                "score": score.overall if score else None,
                "status": score.status.value if score else None,
                "status_label": f"{score.status.emoji} {score.status.label}" if score else None,
                "active_alerts": len(snapshot.active_alerts),
            })
        return {"selected": self.registry.selected, "devices": devices}

    async def run_tick(self) -> List[AlertTransition]:
        """Sample every device once and feed the registry."""
        loop = asyncio.get_running_loop()
        samples = await loop.run_in_executor(None, self.source.sample_all)

        transitions: List[AlertTransition] = []
        snapshots: List[HealthSnapshot] = []
        for device, sample in sorted(samples.items()):
            try:
                result = self.registry.tick(device, sample)
            except Exception as e:
                logger.error("Tick failed", device=device, error=str(e), exc_info=True)
                continue
            transitions.extend(result.transitions)
            snapshots.append(result.snapshot)

        if self.config.notifications_enabled and transitions:
            await self.notifier.notify(transitions)
        if self.bus is not None and self.bus.connected:
            await self._publish(snapshots, transitions)
        return transitions

    async def _publish(self, snapshots: List[HealthSnapshot], transitions: List[AlertTransition]):
        try:
            for snapshot in snapshots:
                await self.bus.publish_snapshot(snapshot)
            for transition in transitions:
                await self.bus.publish_transition(transition)
        except Exception as e:
            logger.error("Failed to publish to message bus", error=str(e))

    async def start_collection(self):
        """Sample on a fixed cadence until cancelled."""
        logger.info("Starting metrics collection", interval=self.config.collection_interval)
        while True:
            try:
                await self.run_tick()
            except Exception as e:
                logger.error("Error in collection loop", error=str(e))
            await asyncio.sleep(self.config.collection_interval)

    async def _handle_summary_request(self, data: dict) -> dict:
        device = data.get("device", self.registry.selected)
        if device is None:
            return self.summary()
        try:
            return self.registry.snapshot(int(device)).model_dump(mode="json")
        except UnknownDevice as e:
            return {"error": str(e)}

    async def start(self):
        if self.bus is not None:
            try:
                await self.bus.connect()
                await self.bus.reply_handler(SUMMARY_SUBJECT, self._handle_summary_request)
            except Exception as e:
                logger.error("Message bus unavailable, continuing without it", error=str(e))
        self.collection_task = asyncio.create_task(self.start_collection())
        logger.info("Health service started")

    async def stop(self):
        logger.info("Stopping health service")
        if self.collection_task:
            self.collection_task.cancel()
            try:
                await self.collection_task
            except asyncio.CancelledError:
                pass
            self.collection_task = None
        if self.bus is not None and self.bus.connected:
            await self.bus.disconnect()
        if self._source is not None:
            self._source.close()


def main():
    import uvicorn

    config = MonitorConfig()
    setup_logging(config.service_name, config.log_level, json_logs=config.json_logs)
    service = HealthService(config)
    uvicorn.run(
        service.app,
        host=config.host,
        port=config.service_port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
