"""Metrics for embedcache."""

from embedcache.monitoring.metrics import MetricsService, MetricsSummary, PerformanceGrade

__all__ = ["MetricsService", "MetricsSummary", "PerformanceGrade"]
