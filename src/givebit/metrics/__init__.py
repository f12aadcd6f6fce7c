"""Metrics — Prometheus instrumentation for event delivery."""

from __future__ import annotations

from givebit.metrics.collector import DeliveryMetrics

__all__ = ["DeliveryMetrics"]
