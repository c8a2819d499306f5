"""
Ultralytics inference backend (development path).

Uses Ultralytics if installed. Handy for running `.pt` checkpoints directly
on machines where exporting to ONNX is not wanted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..models.config import ComputeUnits
from ..models.geometry import BoundingBox
from ..preprocess.image import PixelFormat
from .backend import ClassLabel, InferenceBackend, Observation


@dataclass(frozen=True)
class CpuYoloConfig:
    model: str
    compute_units: ComputeUnits = ComputeUnits.CPU_ONLY
    pixel_format: PixelFormat = PixelFormat.BGRA
    score_floor: float = 0.05
    classes: Optional[Sequence[int]] = None
    class_name_overrides: Optional[Dict[int, str]] = None


class UltralyticsBackend(InferenceBackend):
    def __init__(self, cfg: CpuYoloConfig, model: Any = None):
        self.cfg = cfg
        self.compute_units = cfg.compute_units

        if model is None:
            try:
                from ultralytics import YOLO  # type: ignore
            except ImportError as e:  # pragma: no cover
                raise ImportError(
                    "Ultralytics is not installed. Install with `pip install ultralytics` "
                    "or provide a precompiled .onnx model."
                ) from e
            model = YOLO(cfg.model)

        self._model = model

    def _device(self) -> Optional[str]:
        if self.compute_units == ComputeUnits.CPU_ONLY:
            return "cpu"
        return None

    def predict(self, pixel_buffer: np.ndarray) -> List[Observation]:
        order = self.cfg.pixel_format.value
        bgr = np.ascontiguousarray(
            pixel_buffer[..., [order.index("b"), order.index("g"), order.index("r")]]
        )
        in_h, in_w = bgr.shape[:2]

        results = self._model.predict(
            source=bgr,
            conf=self.cfg.score_floor,
            classes=list(self.cfg.classes) if self.cfg.classes is not None else None,
            device=self._device(),
            verbose=False,
        )
        if not results:
            return []

        r0 = results[0]
        names = getattr(r0, "names", None) or {}
        boxes = getattr(r0, "boxes", None)
        if boxes is None:
            return []

        xyxy = boxes.xyxy.cpu().numpy() if hasattr(boxes.xyxy, "cpu") else np.asarray(boxes.xyxy)
        conf = boxes.conf.cpu().numpy() if hasattr(boxes.conf, "cpu") else np.asarray(boxes.conf)
        cls = boxes.cls.cpu().numpy() if hasattr(boxes.cls, "cpu") else np.asarray(boxes.cls)

        out: List[Observation] = []
        for (x1, y1, x2, y2), c, k in zip(xyxy, conf, cls):
            class_id = int(k)
            class_name = (
                (self.cfg.class_name_overrides or {}).get(class_id)
                or names.get(class_id)
                or str(class_id)
            )
            nw = (float(x2) - float(x1)) / in_w
            nh = (float(y2) - float(y1)) / in_h
            out.append(
                Observation(
                    bounding_box=BoundingBox(
                        x=float(x1) / in_w,
                        y=1.0 - float(y1) / in_h - nh,
                        width=nw,
                        height=nh,
                    ),
                    confidence=float(c),
                    labels=[ClassLabel(identifier=class_name, confidence=float(c))],
                )
            )

        return out


def ultralytics_factory(
    compute_units: ComputeUnits = ComputeUnits.CPU_ONLY,
    pixel_format: PixelFormat = PixelFormat.BGRA,
) -> Callable[[str], UltralyticsBackend]:
    """Backend factory for ModelLoader that runs checkpoints through Ultralytics."""

    def create(path: str) -> UltralyticsBackend:
        return UltralyticsBackend(
            CpuYoloConfig(model=path, compute_units=compute_units, pixel_format=pixel_format)
        )

    return create
