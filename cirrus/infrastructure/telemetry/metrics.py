"""
Cloud Client Metrics

Architectural Intent:
- Counts provisioning outcomes and agent matching through the
  OpenTelemetry metrics API
- Without a configured MeterProvider the API hands out no-op instruments,
  so recording is always safe
- The local counters mirror what was recorded, for the CLI and tests
"""

from __future__ import annotations
from collections import Counter
from typing import Optional
import logging

from opentelemetry import metrics

logger = logging.getLogger(__name__)

INSTANCES_STARTED = "cirrus.instances.started"
INSTANCES_FAILED = "cirrus.instances.failed"
AGENTS_MATCHED = "cirrus.agents.matched"
AGENTS_UNMATCHED = "cirrus.agents.unmatched"


class CloudMetrics:
    def __init__(self, enabled: bool = True, meter_name: str = "cirrus") -> None:
        self._enabled = enabled
        self._totals: Counter[str] = Counter()
        self._counters = {}
        if enabled:
            meter = metrics.get_meter(meter_name)
            for name, description in (
                (INSTANCES_STARTED, "Instances started"),
                (INSTANCES_FAILED, "Instances that failed to start"),
                (AGENTS_MATCHED, "Agents linked to their instance"),
                (AGENTS_UNMATCHED, "Cloud agents with no matching instance"),
            ):
                self._counters[name] = meter.create_counter(name, unit="1", description=description)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _add(self, name: str, attributes: Optional[dict[str, str]] = None) -> None:
        self._totals[name] += 1
        counter = self._counters.get(name)
        if counter is not None:
            counter.add(1, attributes=attributes or {})

    def record_instance_started(self, profile_id: str, image_id: str) -> None:
        self._add(INSTANCES_STARTED, {"profile_id": profile_id, "image_id": image_id})

    def record_instance_failed(self, profile_id: str, error_type: str) -> None:
        self._add(INSTANCES_FAILED, {"profile_id": profile_id, "error_type": error_type})

    def record_agent_matched(self, profile_id: str) -> None:
        self._add(AGENTS_MATCHED, {"profile_id": profile_id})

    def record_agent_unmatched(self) -> None:
        self._add(AGENTS_UNMATCHED)

    def total(self, name: str) -> int:
        return self._totals[name]
