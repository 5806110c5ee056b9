"""
Cirrus Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry metrics for provisioning and agent matching
"""

from cirrus.infrastructure.telemetry.metrics import CloudMetrics

__all__ = ["CloudMetrics"]
