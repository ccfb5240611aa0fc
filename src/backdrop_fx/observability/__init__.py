"""
Observability Module
====================

Counters and latency histograms for BackdropFX.

DESIGN RULES:
    - Injected as a dependency, never a global
    - Does NOT influence pipeline or lifecycle decisions
"""

from backdrop_fx.observability.metrics import (
    DEFAULT_LATENCY_BUCKETS_MS,
    EffectObserver,
    LatencyHistogram,
)


__all__ = [
    "DEFAULT_LATENCY_BUCKETS_MS",
    "EffectObserver",
    "LatencyHistogram",
]
