"""
Model discovery, compilation and loading.

Lookup order for a model name inside the model directory:
1. `<name>.onnx` - precompiled, loaded directly
2. `<name>.pt`   - source checkpoint, exported to ONNX first (slow)

A name that already is a path to an existing file is used as-is.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Optional

from ..errors import (
    ModelCompilationError,
    ModelLoadError,
    ModelLoadingError,
    ModelNotFoundError,
    UnsupportedModelFormatError,
)
from ..models.config import ComputeUnits
from ..models.geometry import ImageSize
from ..preprocess.image import PixelFormat
from .backend import InferenceBackend
from .model_cache import ModelCache

PRECOMPILED_EXT = ".onnx"
SOURCE_EXT = ".pt"

BackendFactory = Callable[[str], InferenceBackend]
Compiler = Callable[[str], str]


class ModelLoader:
    """
    Finds, compiles and loads models, sharing results through a ModelCache.

    Example:
        cache = ModelCache()
        loader = ModelLoader("models", cache)
        backend = await loader.load_async("yolo11n")
    """

    def __init__(
        self,
        model_dir: str = "models",
        cache: Optional[ModelCache] = None,
        compute_units: ComputeUnits = ComputeUnits.ALL,
        pixel_format: PixelFormat = PixelFormat.BGRA,
        input_size: ImageSize = ImageSize(640, 640),
        backend_factory: Optional[BackendFactory] = None,
        compiler: Optional[Compiler] = None,
    ):
        self.model_dir = model_dir
        self.cache = cache if cache is not None else ModelCache()
        self.compute_units = compute_units
        self.pixel_format = pixel_format
        self.input_size = input_size
        self._backend_factory = backend_factory or self._create_onnx_backend
        self._compiler = compiler or self._export_to_onnx

    def find_model_path(self, name: str) -> str:
        """
        Locate the model artifact for `name`.

        Raises:
            ModelNotFoundError: No artifact exists.
            UnsupportedModelFormatError: `name` points at a file of unknown type.
        """
        if os.path.isfile(name):
            ext = os.path.splitext(name)[1].lower()
            if ext not in (PRECOMPILED_EXT, SOURCE_EXT):
                raise UnsupportedModelFormatError(name)
            return name

        for ext in (PRECOMPILED_EXT, SOURCE_EXT):
            candidate = os.path.join(self.model_dir, name + ext)
            if os.path.isfile(candidate):
                return candidate

        raise ModelNotFoundError(name)

    def load(self, name: str) -> InferenceBackend:
        """Load (or fetch from cache) the backend for `name`. Blocking."""
        return self.cache.get_or_load(name, lambda: self._load_uncached(name))

    async def load_async(self, name: str) -> InferenceBackend:
        return await asyncio.to_thread(self.load, name)

    def _load_uncached(self, name: str) -> InferenceBackend:
        path = self.find_model_path(name)

        if path.lower().endswith(SOURCE_EXT):
            logging.warning(f"Compiling model {os.path.basename(path)}, this may take a while...")
            try:
                path = self._compiler(path)
            except Exception as e:
                raise ModelCompilationError(e) from e

        try:
            backend = self._backend_factory(path)
        except ModelLoadingError:
            raise
        except Exception as e:
            raise ModelLoadError(e) from e

        logging.info(f"Model loaded: {name} ({path}, compute_units={self.compute_units.value})")
        return backend

    def _create_onnx_backend(self, path: str) -> InferenceBackend:
        from .onnx_backend import OnnxYoloBackend, OnnxYoloConfig

        return OnnxYoloBackend(
            OnnxYoloConfig(
                model_path=path,
                compute_units=self.compute_units,
                pixel_format=self.pixel_format,
            )
        )

    def _export_to_onnx(self, source_path: str) -> str:
        from ultralytics import YOLO  # type: ignore

        width, height = self.input_size.as_int_tuple()
        exported = YOLO(source_path).export(format="onnx", imgsz=[height, width])
        if not exported or not os.path.isfile(str(exported)):
            raise RuntimeError(f"export produced no ONNX file for {source_path}")
        return str(exported)
