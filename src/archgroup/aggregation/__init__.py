"""Aggregations: custom views over existing members."""

from archgroup.aggregation.engine import AggregationEngine

__all__ = ["AggregationEngine"]
