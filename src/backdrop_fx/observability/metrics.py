"""
Effect Observer
===============

Level-based observability hook injected into the frame pipeline and the
lifecycle manager.

Tracks:
    - frame counters (processed, passed through, segmentation reused)
    - inference latency histogram
    - per-frame inference failures
    - lifecycle counters (attaches, detaches, generation aborts, swallowed
      track-ended races, resource errors)

Observability ONLY: nothing here influences pipeline or lifecycle decisions.
"""

import bisect
import logging
from typing import Sequence


logger = logging.getLogger(__name__)


DEFAULT_LATENCY_BUCKETS_MS = (5.0, 10.0, 20.0, 33.0, 50.0, 100.0, 200.0, 500.0)


class LatencyHistogram:
    """
    Fixed-bucket latency histogram (milliseconds).

    counts[i] is the number of samples <= bounds[i]; the final count is the
    overflow bucket.
    """

    def __init__(self, bounds: Sequence[float] = DEFAULT_LATENCY_BUCKETS_MS) -> None:
        if list(bounds) != sorted(bounds) or not bounds:
            raise ValueError("Histogram bounds must be non-empty and ascending")
        self.bounds = tuple(float(b) for b in bounds)
        self.counts = [0] * (len(self.bounds) + 1)
        self.total = 0
        self.sum_ms = 0.0
        self.max_ms = 0.0

    def observe(self, value_ms: float) -> None:
        self.counts[bisect.bisect_left(self.bounds, value_ms)] += 1
        self.total += 1
        self.sum_ms += value_ms
        self.max_ms = max(self.max_ms, value_ms)

    @property
    def mean_ms(self) -> float:
        return self.sum_ms / self.total if self.total else 0.0

    def to_dict(self) -> dict:
        buckets = {f"le_{b:g}": c for b, c in zip(self.bounds, self.counts)}
        buckets["overflow"] = self.counts[-1]
        return {
            "count": self.total,
            "mean_ms": round(self.mean_ms, 2),
            "max_ms": round(self.max_ms, 2),
            "buckets": buckets,
        }


class EffectObserver:
    """
    Counters for the effect pipeline and lifecycle.

    One observer is shared by the lifecycle manager and every pipeline it
    builds, so counters survive effect swaps.

    Attributes:
        log_every_n_frames: Emit a summary info line every N processed frames
    """

    def __init__(
        self,
        log_every_n_frames: int = 300,
        latency_buckets_ms: Sequence[float] = DEFAULT_LATENCY_BUCKETS_MS,
    ) -> None:
        self.log_every_n_frames = max(1, log_every_n_frames)
        self.inference_latency = LatencyHistogram(latency_buckets_ms)

        self.frames_processed: int = 0
        self.frames_passed_through: int = 0
        self.segmentation_reused: int = 0
        self.inference_failures: int = 0

        self.attaches: int = 0
        self.detaches: int = 0
        self.generation_aborts: int = 0
        self.races_swallowed: int = 0
        self.resource_errors: int = 0

    # Frame pipeline -----------------------------------------------------------

    def record_frame(self, processed: bool) -> None:
        if processed:
            self.frames_processed += 1
        else:
            self.frames_passed_through += 1

        total = self.frames_processed + self.frames_passed_through
        if total % self.log_every_n_frames == 0:
            logger.info(
                f"Effect frames [total {total}]: processed={self.frames_processed}, "
                f"passthrough={self.frames_passed_through}, "
                f"reused={self.segmentation_reused}, "
                f"inference_mean={self.inference_latency.mean_ms:.1f}ms"
            )

    def record_inference(self, latency_ms: float) -> None:
        self.inference_latency.observe(latency_ms)

    def record_reuse(self) -> None:
        self.segmentation_reused += 1

    def record_inference_failure(self) -> None:
        self.inference_failures += 1

    # Lifecycle ----------------------------------------------------------------

    def record_attach(self) -> None:
        self.attaches += 1

    def record_detach(self) -> None:
        self.detaches += 1

    def record_generation_abort(self) -> None:
        self.generation_aborts += 1

    def record_race_swallowed(self) -> None:
        self.races_swallowed += 1

    def record_resource_error(self) -> None:
        self.resource_errors += 1

    def to_dict(self) -> dict:
        """Export counters for /metrics."""
        return {
            "frames_processed": self.frames_processed,
            "frames_passed_through": self.frames_passed_through,
            "segmentation_reused": self.segmentation_reused,
            "inference_failures": self.inference_failures,
            "inference_latency": self.inference_latency.to_dict(),
            "attaches": self.attaches,
            "detaches": self.detaches,
            "generation_aborts": self.generation_aborts,
            "races_swallowed": self.races_swallowed,
            "resource_errors": self.resource_errors,
        }
