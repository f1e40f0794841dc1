"""
Observability module for the guardian engine.

This module provides:
- Metrics collection with Prometheus
"""

__all__ = ["metrics"]
