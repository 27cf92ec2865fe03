"""
Daily usage quotas per capability class.

State is in-process only and resets logically when the calendar date
changes. The tracker is owned by the application (app.state) and injected
into the pipeline, so tests build isolated instances.

Concurrent requests may both pass can_use() near a limit and both
increment, overshooting the limit slightly. That is an accepted soft limit,
not a hard guarantee.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Mapping, Optional

from katazuke_api.core.config import Settings
from katazuke_api.schemas.cleanup import QuotaCapability

logger = logging.getLogger(__name__)


@dataclass
class UsageCounter:
    """Counter for one capability"""

    count: int
    last_reset: date
    daily_limit: int


class UsageTracker:
    """Service for tracking daily per-capability usage"""

    def __init__(self, limits: Mapping[QuotaCapability, int], today: Callable[[], date] = date.today):
        missing = [capability.value for capability in QuotaCapability if capability not in limits]
        if missing:
            raise ValueError(f"Missing daily limits for: {', '.join(missing)}")

        self._today = today
        current = today()
        self.counters: Dict[QuotaCapability, UsageCounter] = {
            capability: UsageCounter(count=0, last_reset=current, daily_limit=limits[capability])
            for capability in QuotaCapability
        }

    @classmethod
    def from_settings(cls, settings: Settings, today: Optional[Callable[[], date]] = None) -> "UsageTracker":
        limits = {
            QuotaCapability.standard_generation: settings.limit_standard,
            QuotaCapability.high_quality_generation: settings.limit_high_quality,
            QuotaCapability.inspection: settings.limit_inspection,
            QuotaCapability.retry: settings.limit_retry,
        }
        return cls(limits, today=today or date.today)

    def _check_and_reset(self, capability: QuotaCapability) -> UsageCounter:
        """Zero the counter the first time it is observed on a new date"""
        counter = self.counters[capability]
        current = self._today()
        if counter.last_reset != current:
            counter.count = 0
            counter.last_reset = current
            logger.info(f"📊 Usage counter reset for {capability.value}")
        return counter

    def can_use(self, capability: QuotaCapability) -> bool:
        counter = self._check_and_reset(capability)
        return counter.count < counter.daily_limit

    def increment(self, capability: QuotaCapability) -> None:
        counter = self._check_and_reset(capability)
        counter.count += 1
        logger.info(f"📊 {capability.value.upper()} usage: {counter.count}/{counter.daily_limit}")

    def status(self) -> Dict[str, Dict[str, int]]:
        """Snapshot of used/limit per capability"""
        snapshot = {}
        for capability in QuotaCapability:
            counter = self._check_and_reset(capability)
            snapshot[capability.value] = {"used": counter.count, "limit": counter.daily_limit}
        return snapshot
