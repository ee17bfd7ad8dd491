"""Alert Management Engine - Notification Dispatching."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .clock import Clock, SystemClock
from .config import ChannelType, NotificationStatus
from .models import Alert, EscalationLevel

logger = logging.getLogger(__name__)

# A sender delivers one alert on one channel and raises on failure
ChannelSender = Callable[[Alert, EscalationLevel], None]


@dataclass
class DeliveryResult:
    """Result of a channel delivery attempt."""

    alert_id: str
    channel: ChannelType
    status: NotificationStatus
    delivered_at: datetime
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == NotificationStatus.SENT


class NotificationDispatcher:
    """Default notification-delivery collaborator for escalations.

    Delivers an escalated alert to every channel of the level through
    per-channel sender callables. Channels without a registered sender
    are simulated as sent. A sender that raises yields a failed result
    for its channel only. Maintains a delivery log for audit and stats.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()
        self._senders: Dict[ChannelType, ChannelSender] = {}
        self._delivery_log: List[DeliveryResult] = []
        self._alert_channel_map: Dict[str, List[DeliveryResult]] = {}
        self._lock = threading.Lock()

    def register_sender(self, channel: ChannelType, sender: ChannelSender) -> None:
        """Attach a transport for a channel class."""
        with self._lock:
            self._senders[channel] = sender
        logger.info("Registered sender for channel %s", channel.value)

    def unregister_sender(self, channel: ChannelType) -> bool:
        with self._lock:
            return self._senders.pop(channel, None) is not None

    def dispatch(self, alert: Alert, channel: ChannelType, level: EscalationLevel) -> DeliveryResult:
        """Dispatch an alert to a single channel.

        Args:
            alert: The Alert to deliver.
            channel: The target channel.
            level: The escalation level being notified.

        Returns:
            DeliveryResult with the delivery status.
        """
        with self._lock:
            sender = self._senders.get(channel)

        status, error = NotificationStatus.SENT, None
        if sender is not None:
            try:
                sender(alert, level)
            except Exception as exc:
                status, error = NotificationStatus.FAILED, str(exc) or type(exc).__name__
                logger.error(
                    "Delivery of alert %s to %s failed: %s",
                    alert.alert_id,
                    channel.value,
                    error,
                )

        result = DeliveryResult(
            alert_id=alert.alert_id,
            channel=channel,
            status=status,
            delivered_at=self._clock.now(),
            error=error,
        )
        with self._lock:
            self._delivery_log.append(result)
            self._alert_channel_map.setdefault(alert.alert_id, []).append(result)

        logger.info(
            "Dispatched alert %s to %s (status=%s)",
            alert.alert_id,
            channel.value,
            status.value,
        )
        return result

    def dispatch_level(self, alert: Alert, level: EscalationLevel) -> List[DeliveryResult]:
        """Dispatch an alert to every channel of an escalation level."""
        return [self.dispatch(alert, channel, level) for channel in level.channels]

    __call__ = dispatch_level

    def get_delivery_log(self, alert_id: Optional[str] = None) -> List[DeliveryResult]:
        """Get the delivery log, optionally filtered by alert ID."""
        with self._lock:
            if alert_id is not None:
                return list(self._alert_channel_map.get(alert_id, []))
            return list(self._delivery_log)

    def get_channel_stats(self) -> Dict[str, Dict[str, int]]:
        """Get sent/failed counts per channel."""
        stats: Dict[str, Dict[str, int]] = {}
        with self._lock:
            for result in self._delivery_log:
                counts = stats.setdefault(result.channel.value, {"sent": 0, "failed": 0})
                key = "sent" if result.success else "failed"
                counts[key] += 1
        return stats
