"""Delivery of alert transitions to the user."""

import asyncio
import shutil
import subprocess
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from .models import AlertCategory, AlertSeverity, AlertTransition, DeviceId, TransitionKind

logger = structlog.get_logger(__name__)

_TITLES = {
    TransitionKind.OPENED: "GPU Health Alert",
    TransitionKind.UPGRADED: "GPU Health Alert Escalated",
    TransitionKind.CLEARED: "GPU Health Alert Cleared",
}


class AlertNotifier:
    """Rate-limits alert transitions and mirrors them to the desktop.

    Transitions for the same (device, category) closer together than
    ``min_interval`` seconds are suppressed, except clears and escalations
    to critical.
    Info alerts are only logged.
    """

    def __init__(
        self,
        min_interval: float = 10.0,
        desktop: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval
        self.desktop = desktop and shutil.which("notify-send") is not None
        self._clock = clock
        self._last_sent: Dict[Tuple[DeviceId, AlertCategory], float] = {}
        self.suppressed = 0

    def should_send(self, transition: AlertTransition) -> bool:
        alert = transition.alert
        key = (alert.device, alert.category)
        now = self._clock()
        last: Optional[float] = self._last_sent.get(key)
        # Clears and escalations to critical always go out
        always = transition.kind is TransitionKind.CLEARED or (
            transition.kind is TransitionKind.UPGRADED
            and alert.severity is AlertSeverity.CRITICAL
        )
        if last is not None and now - last < self.min_interval and not always:
            self.suppressed += 1
            return False
        self._last_sent[key] = now
        return True

    async def notify(self, transitions: Sequence[AlertTransition]) -> List[AlertTransition]:
        """Deliver what passes the rate limit; returns the delivered transitions."""
        delivered = []
        for transition in transitions:
            if not self.should_send(transition):
                logger.debug(
                    "Notification suppressed",
                    alert_id=transition.alert.id,
                    kind=transition.kind.value,
                )
                continue
            delivered.append(transition)
            await self._deliver(transition)
        return delivered

    async def _deliver(self, transition: AlertTransition) -> None:
        alert = transition.alert
        title = _TITLES[transition.kind]
        if transition.kind is TransitionKind.CLEARED:
            logger.info(title, device=alert.device, category=alert.category.value, message=alert.message)
            return
        if alert.severity is AlertSeverity.INFO:
            logger.info(title, device=alert.device, category=alert.category.value, message=alert.message)
            return

        logger.warning(
            title,
            device=alert.device,
            category=alert.category.value,
            severity=alert.severity.value,
            message=alert.message,
        )
        if not self.desktop:
            return

        urgency = "critical" if alert.severity is AlertSeverity.CRITICAL else "normal"
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: subprocess.run(
                    [
                        "notify-send",
                        "--app-name=gpuhealth",
                        f"--urgency={urgency}",
                        "--",
                        f"{title} - {alert.severity.value.capitalize()}",
                        alert.message,
                    ],
                    check=False,
                ),
            )
        except OSError as exc:
            logger.debug("Desktop notification failed", exc_info=exc)
