#!/usr/bin/env python3
"""
Offline Effect Runner
=====================

Runs the frame pipeline over a video file (or webcam) and writes the result.

This script:
    1. Builds the requested effect (blur, replace or none)
    2. Reads frames with OpenCV and feeds them through the pipeline
    3. Writes the processed video
    4. Reports pipeline counters every N frames and a final summary

Usage:
    python scripts/process_video.py --input talk.mp4 --output blurred.mp4
    python scripts/process_video.py --input talk.mp4 --effect replace --background office.jpg
    python scripts/process_video.py --input 0 --max-frames 300 --quality high
"""

import argparse
import asyncio
import logging
import os
import sys
import time

import cv2

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from backdrop_fx.errors import BackdropError
from backdrop_fx.lifecycle import BackgroundAsset
from backdrop_fx.models.effect import Delegate, SegmentationTuning
from backdrop_fx.observability import EffectObserver
from backdrop_fx.pipeline import FramePipeline
from backdrop_fx.segmentation import MockSegmentationEngine, TorchSegmentationEngine, _TORCH_AVAILABLE
from backdrop_fx.store import EffectSettingsStore
from backdrop_fx.stream import Frame


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def open_capture(source: str) -> cv2.VideoCapture:
    capture = cv2.VideoCapture(int(source) if source.isdigit() else source)
    if not capture.isOpened():
        raise SystemExit(f"Cannot open video source: {source}")
    return capture


def create_engine(backend: str, delegate: Delegate):
    if backend == "deeplab":
        if not _TORCH_AVAILABLE:
            raise SystemExit("deeplab backend needs: pip install 'backdrop-fx[deeplab]'")
        return TorchSegmentationEngine(delegate=delegate)
    return MockSegmentationEngine(delegate=delegate)


async def run(args: argparse.Namespace) -> dict:
    store = EffectSettingsStore()
    tuning = SegmentationTuning(
        delegate=Delegate(args.delegate),
        temporal_smoothing=not args.no_smoothing,
        edge_refinement=not args.no_refinement,
    )
    background = {}
    if args.background:
        background["background_path"] = args.background
    if args.gradient:
        background["background_gradient"] = tuple(args.gradient)

    config = store.request(
        kind=args.effect,
        blur_radius=args.radius,
        quality=args.quality,
        tuning=tuning.model_dump(),
        **background,
    )

    observer = EffectObserver(log_every_n_frames=args.report_every)
    asset = await BackgroundAsset.prepare(config)
    pipeline = FramePipeline(
        config,
        engine=create_engine(args.backend, tuning.delegate) if not config.is_passthrough else None,
        background=asset.pixels if asset is not None else None,
        observer=observer,
        frame_skip_interval=args.frame_skip,
    )
    await pipeline.initialize()

    capture = open_capture(args.input)
    fps = capture.get(cv2.CAP_PROP_FPS) or 30.0
    width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
    writer = cv2.VideoWriter(args.output, cv2.VideoWriter_fourcc(*"mp4v"), fps, (width, height))

    logger.info(f"Processing {args.input} ({width}x{height} @ {fps:.1f}fps): {config.describe()}")
    start_time = time.time()
    frame_id = 0

    try:
        while args.max_frames <= 0 or frame_id < args.max_frames:
            ok, bgr = capture.read()
            if not ok:
                break

            frame = Frame(
                frame_id=frame_id,
                timestamp=frame_id / fps,
                duration=1.0 / fps,
                pixels=cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA),
            )
            output = await pipeline.process(frame)
            writer.write(cv2.cvtColor(output.pixels, cv2.COLOR_RGBA2BGR))
            frame_id += 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        capture.release()
        writer.release()
        pipeline.close()
        if asset is not None:
            asset.release()

    total_time = time.time() - start_time
    summary = observer.to_dict()

    logger.info("=" * 60)
    logger.info("SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Frames written: {frame_id} -> {args.output}")
    logger.info(f"Average FPS: {frame_id / total_time if total_time > 0 else 0:.1f}")
    logger.info(f"Processed: {summary['frames_processed']}, passed through: {summary['frames_passed_through']}")
    logger.info(f"Segmentation reused: {summary['segmentation_reused']}")
    logger.info(f"Inference failures: {summary['inference_failures']}")
    logger.info(f"Inference mean: {summary['inference_latency']['mean_ms']}ms")
    logger.info("=" * 60)

    return summary


def main():
    parser = argparse.ArgumentParser(description="Apply a background effect to a video")
    parser.add_argument("--input", required=True, help="Video file or webcam index")
    parser.add_argument("--output", default="output.mp4", help="Output video path")
    parser.add_argument("--effect", choices=["none", "blur", "replace"], default="blur")
    parser.add_argument("--radius", type=float, default=None, help="Blur radius in pixels")
    parser.add_argument(
        "--quality",
        choices=["low", "medium", "high", "ultra"],
        default=None,
        help="Blur preset (ignored when --radius is given)",
    )
    parser.add_argument("--background", default=None, help="Replacement image path")
    parser.add_argument(
        "--gradient",
        nargs=2,
        metavar=("START", "END"),
        default=None,
        help="Replacement gradient colours, e.g. '#667eea' '#764ba2'",
    )
    parser.add_argument("--backend", choices=["mock", "deeplab"], default="mock")
    parser.add_argument("--delegate", choices=["GPU", "CPU"], default="GPU")
    parser.add_argument("--frame-skip", type=int, default=1, help="Run inference every N frames")
    parser.add_argument("--no-smoothing", action="store_true", help="Disable temporal smoothing")
    parser.add_argument("--no-refinement", action="store_true", help="Disable edge refinement")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = all)")
    parser.add_argument("--report-every", type=int, default=300, help="Log counters every N frames")

    args = parser.parse_args()

    try:
        summary = asyncio.run(run(args))
    except BackdropError as e:
        logger.error(f"Effect failed: {e}")
        sys.exit(2)

    sys.exit(0 if summary["frames_processed"] + summary["frames_passed_through"] > 0 else 1)


if __name__ == "__main__":
    main()
