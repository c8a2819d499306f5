"""
Command line entry point.

Runs object detection on still images or streams it over a video file.

Usage:
    spotter image photo1.jpg photo2.jpg --config config/config.yaml
    spotter video clip.mp4 --fps 5 --json

Arguments:
    --config: Path to configuration file
    --model: Override the model name from the config
    --json: Print results as JSON lines instead of text
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
import yaml

from spotter.detection.service import DetectionService
from spotter.errors import CancelledOperation, SpotterError
from spotter.inference.cpu_backend import ultralytics_factory
from spotter.inference.model_cache import ModelCache
from spotter.inference.model_loader import ModelLoader
from spotter.models.config import Config
from spotter.models.detection import DetectionResult
from spotter.ops.logging import setup_logging
from spotter.pipeline.video import VideoDetectionService


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)

    Raises:
        yaml.YAMLError: A config file is not valid YAML.
        OSError: A config file exists but cannot be read.
    """
    base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
    base_cfg: Dict[str, Any] = {}
    if os.path.exists(base_path):
        with open(base_path, "r") as f:
            base_cfg = yaml.safe_load(f) or {}

    local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
    local_cfg: Dict[str, Any] = {}
    if os.path.exists(local_overrides_path):
        with open(local_overrides_path, "r") as f:
            local_cfg = yaml.safe_load(f) or {}

    merged = _deep_merge(base_cfg, local_cfg)

    # Finally apply explicit config_path if it's not the local override file itself
    if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
        with open(config_path, "r") as f:
            explicit_cfg = yaml.safe_load(f) or {}
        merged = _deep_merge(merged, explicit_cfg)

    return merged


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration structure and value types.

    Thresholds are not range-checked here; DetectionConfiguration clamps them.

    Returns:
        Tuple of (is_valid, error_message)
    """
    model = config.get("model", {}) or {}
    if not isinstance(model, dict):
        return False, "model must be a mapping"
    if "name" in model and (not isinstance(model["name"], str) or not model["name"]):
        return False, "model.name must be a non-empty string"
    if "compute_units" in model and model["compute_units"] not in ("all", "cpu_and_gpu", "cpu_only"):
        return False, "model.compute_units must be one of: all, cpu_and_gpu, cpu_only"
    if "backend" in model and model["backend"] not in ("onnx", "ultralytics"):
        return False, "model.backend must be one of: onnx, ultralytics"

    detection = config.get("detection", {}) or {}
    if not isinstance(detection, dict):
        return False, "detection must be a mapping"
    for key in ("confidence_threshold", "iou_threshold"):
        if key in detection and not isinstance(detection[key], (int, float)):
            return False, f"detection.{key} must be a number"
    if "max_detections" in detection and not isinstance(detection["max_detections"], int):
        return False, "detection.max_detections must be an integer"
    if "input_size" in detection:
        size = detection["input_size"]
        if not isinstance(size, list) or len(size) != 2:
            return False, "detection.input_size must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in size):
            return False, "detection.input_size values must be positive integers"

    video = config.get("video", {}) or {}
    if not isinstance(video, dict):
        return False, "video must be a mapping"
    if "fps" in video and (not isinstance(video["fps"], int) or video["fps"] <= 0):
        return False, "video.fps must be a positive integer"
    if "on_frame_error" in video and video["on_frame_error"] not in ("abort", "skip"):
        return False, "video.on_frame_error must be one of: abort, skip"
    if "buffer_size" in video and (not isinstance(video["buffer_size"], int) or video["buffer_size"] <= 0):
        return False, "video.buffer_size must be a positive integer"
    max_res = video.get("max_resolution")
    if max_res is not None:
        if not isinstance(max_res, list) or len(max_res) != 2:
            return False, "video.max_resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in max_res):
            return False, "video.max_resolution values must be positive integers"

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.get("log_level", "INFO") not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def create_loader(cfg: Config, cache: Optional[ModelCache] = None) -> ModelLoader:
    """Build a ModelLoader for the configured backend."""
    if cfg.model.backend == "ultralytics":
        # Ultralytics runs .pt checkpoints as they are, no ONNX export
        return ModelLoader(
            model_dir=cfg.model.directory,
            cache=cache or ModelCache(),
            compute_units=cfg.model.compute_units,
            input_size=cfg.detection.input_size,
            backend_factory=ultralytics_factory(cfg.model.compute_units),
            compiler=lambda path: path,
        )

    return ModelLoader(
        model_dir=cfg.model.directory,
        cache=cache or ModelCache(),
        compute_units=cfg.model.compute_units,
        input_size=cfg.detection.input_size,
    )


def format_result(path: str, result: DetectionResult) -> str:
    lines = [f"{path}: {result.object_count} objects in {result.formatted_processing_time}"]
    for obj in result.objects:
        x1, y1, x2, y2 = obj.bounding_box.as_int_xyxy()
        lines.append(f"  {obj.label:<16} {obj.formatted_confidence:>6}  [{x1}, {y1}, {x2}, {y2}]")
    return "\n".join(lines)


def read_image(path: str) -> np.ndarray:
    image = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise FileNotFoundError(f"Could not read image: {path}")
    return image


async def run_images(cfg: Config, model_name: str, paths: List[str], as_json: bool) -> None:
    service = await DetectionService.create(cfg.detection, create_loader(cfg), model_name)
    images = [read_image(p) for p in paths]

    def on_progress(fraction: float) -> None:
        logging.info(f"Batch progress: {fraction:.0%}")

    results = await service.detect_batch(images, on_progress=on_progress)
    for path, result in zip(paths, results):
        if as_json:
            print(json.dumps({"path": path, **result.to_dict()}))
        else:
            print(format_result(path, result))


async def run_video(cfg: Config, model_name: str, path: str, fps: int, as_json: bool) -> None:
    service = await VideoDetectionService.create(
        cfg.detection, create_loader(cfg), model_name, video=cfg.video
    )
    async with service.detect(path, fps=fps) as stream:
        async for progress in stream:
            meta = progress.frame_metadata
            if as_json:
                print(json.dumps({
                    "frame": progress.current_frame,
                    "total_frames": progress.total_frames,
                    "metadata": meta.to_dict(),
                    **progress.result.to_dict(),
                }))
            else:
                print(
                    f"[{progress.percentage:6.1%}] frame {meta.index} @ {meta.timestamp:.2f}s: "
                    f"{progress.result.object_count} objects {progress.result.unique_labels}"
                )


def main(argv: Optional[List[str]] = None) -> int:
    """Main application function."""
    parser = argparse.ArgumentParser(description="On-device object detection for images and videos")
    parser.add_argument("--config", type=str, default="config/config.yaml",
                        help="Path to configuration file")
    parser.add_argument("--model", type=str, default=None,
                        help="Model name or path (overrides model.name)")
    parser.add_argument("--json", action="store_true",
                        help="Print results as JSON lines")
    sub = parser.add_subparsers(dest="command", required=True)

    image_parser = sub.add_parser("image", help="Detect objects in still images")
    image_parser.add_argument("paths", nargs="+", help="Image files")

    video_parser = sub.add_parser("video", help="Stream detection over a video file")
    video_parser.add_argument("path", help="Video file")
    video_parser.add_argument("--fps", type=int, default=None,
                              help="Sampling rate (overrides video.fps)")

    args = parser.parse_args(argv)

    try:
        raw = load_config(args.config)
    except (OSError, yaml.YAMLError) as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1

    is_valid, error = validate_config(raw)
    if not is_valid:
        print(f"Invalid configuration: {error}", file=sys.stderr)
        return 1

    cfg = Config.from_dict(raw)
    setup_logging(cfg.log_path, cfg.log_level)
    model_name = args.model or cfg.model.name

    try:
        if args.command == "image":
            asyncio.run(run_images(cfg, model_name, args.paths, args.json))
        else:
            asyncio.run(run_video(cfg, model_name, args.path, args.fps or cfg.video.fps, args.json))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except CancelledOperation as e:
        logging.info(str(e))
        return 130
    except (SpotterError, FileNotFoundError) as e:
        logging.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
