"""
ONNX Runtime backend for YOLOv8/YOLO11 detection heads.

The exported head produces a (1, 4 + num_classes, num_anchors) tensor where
the first four rows are (cx, cy, w, h) in input-pixel units and the remaining
rows are per-class scores. Every anchor above `score_floor` becomes one
Observation, normalized with a bottom-left origin.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..models.config import ComputeUnits
from ..models.geometry import BoundingBox
from ..preprocess.image import PixelFormat, to_nchw_float
from .backend import ClassLabel, InferenceBackend, Observation

_PROVIDERS = {
    ComputeUnits.ALL: [
        "TensorrtExecutionProvider",
        "CUDAExecutionProvider",
        "CoreMLExecutionProvider",
        "CPUExecutionProvider",
    ],
    ComputeUnits.CPU_AND_GPU: ["CUDAExecutionProvider", "CPUExecutionProvider"],
    ComputeUnits.CPU_ONLY: ["CPUExecutionProvider"],
}


def select_providers(compute_units: ComputeUnits, available: Sequence[str]) -> List[str]:
    """Preferred providers for the compute units, limited to what is installed."""
    wanted = [p for p in _PROVIDERS[compute_units] if p in available]
    return wanted or ["CPUExecutionProvider"]


def parse_class_names(metadata: Dict[str, str]) -> Dict[int, str]:
    """Read the `names` entry Ultralytics embeds in exported ONNX metadata."""
    raw = metadata.get("names")
    if not raw:
        return {}
    try:
        names = ast.literal_eval(raw)
    except (ValueError, SyntaxError):
        logging.warning("Could not parse class names from model metadata")
        return {}
    if isinstance(names, dict):
        return {int(k): str(v) for k, v in names.items()}
    return {i: str(v) for i, v in enumerate(names)}


@dataclass(frozen=True)
class OnnxYoloConfig:
    model_path: str
    compute_units: ComputeUnits = ComputeUnits.ALL
    pixel_format: PixelFormat = PixelFormat.BGRA
    score_floor: float = 0.05
    top_labels: int = 3
    class_names: Optional[Dict[int, str]] = None


class OnnxYoloBackend(InferenceBackend):
    def __init__(self, cfg: OnnxYoloConfig, session: Any = None):
        self.cfg = cfg
        self.compute_units = cfg.compute_units

        if session is None:
            import onnxruntime as ort

            providers = select_providers(cfg.compute_units, ort.get_available_providers())
            session = ort.InferenceSession(cfg.model_path, providers=providers)
            logging.info(f"ONNX session created for {cfg.model_path} with {providers}")

        self._session = session
        self._input_name = session.get_inputs()[0].name

        names = cfg.class_names
        if names is None:
            names = parse_class_names(session.get_modelmeta().custom_metadata_map or {})
        self.class_names: Dict[int, str] = names

    def _label(self, class_id: int) -> str:
        return self.class_names.get(class_id, str(class_id))

    def predict(self, pixel_buffer: np.ndarray) -> List[Observation]:
        in_h, in_w = pixel_buffer.shape[:2]
        tensor = to_nchw_float(pixel_buffer, self.cfg.pixel_format)
        raw = self._session.run(None, {self._input_name: tensor})[0]
        return self.decode(np.asarray(raw), in_w, in_h)

    def decode(self, raw: np.ndarray, in_w: int, in_h: int) -> List[Observation]:
        preds = raw[0] if raw.ndim == 3 else raw
        # (4 + nc, N) -> (N, 4 + nc)
        if self.class_names:
            transpose = preds.shape[0] == len(self.class_names) + 4
        else:
            transpose = preds.shape[0] < preds.shape[1]
        if transpose:
            preds = preds.T

        boxes = preds[:, :4]
        scores = preds[:, 4:]
        if scores.size == 0:
            return []

        best = scores.max(axis=1)
        keep = np.nonzero(best >= self.cfg.score_floor)[0]

        out: List[Observation] = []
        for i in keep:
            cx, cy, w, h = (float(v) for v in boxes[i])
            nw = w / in_w
            nh = h / in_h
            top = (cy - h / 2) / in_h
            ranked = np.argsort(-scores[i])[: self.cfg.top_labels]
            out.append(
                Observation(
                    bounding_box=BoundingBox(
                        x=(cx - w / 2) / in_w,
                        y=1.0 - top - nh,
                        width=nw,
                        height=nh,
                    ),
                    confidence=float(best[i]),
                    labels=[
                        ClassLabel(identifier=self._label(int(k)), confidence=float(scores[i, k]))
                        for k in ranked
                    ],
                )
            )

        return out
