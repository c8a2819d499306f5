"""
Detection service: preprocess -> inference -> postprocess for one image.

The service owns exactly one inference backend, one ImagePreprocessor and
one DetectionPostProcessor, all fixed at construction. Calls against one
instance are serialised by an asyncio.Lock; concurrent callers queue.
Blocking work (resampling, inference) runs in the default thread pool and is
always waited for, even when the caller is cancelled, so the lock is only
released once the backend is idle.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import time
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from ..errors import (
    DetectionCancelledError,
    InferenceFailedError,
    PostprocessingFailedError,
    PreprocessError,
    PreprocessingFailedError,
)
from ..inference.backend import InferenceBackend, Observation
from ..inference.model_loader import ModelLoader
from ..models.config import DetectionConfiguration
from ..models.detection import DetectionResult
from ..models.geometry import ImageSize
from ..postprocess.processor import DetectionPostProcessor
from ..preprocess.image import ImagePreprocessor, PixelFormat
from ..runtime.cancellation import CancellationToken, check_cancelled, to_thread_settled

DEFAULT_MODEL_NAME = "yolo11n"

Completion = Callable[[Optional[DetectionResult], Optional[BaseException]], None]
ProgressCallback = Callable[[float], None]


class DetectionService:
    """
    Runs the detection pipeline on single images or batches.

    Example:
        loader = ModelLoader("models", ModelCache())
        service = await DetectionService.create(DetectionConfiguration.DEFAULT, loader)
        result = await service.detect(cv2.imread("street.jpg"))
    """

    def __init__(
        self,
        backend: InferenceBackend,
        configuration: DetectionConfiguration = DetectionConfiguration.DEFAULT,
        pixel_format: PixelFormat = PixelFormat.BGRA,
    ):
        self.configuration = configuration
        self._backend = backend
        self._preprocessor = ImagePreprocessor(
            target_size=configuration.input_size, pixel_format=pixel_format
        )
        self._postprocessor = DetectionPostProcessor(configuration)
        self._lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        configuration: DetectionConfiguration = DetectionConfiguration.DEFAULT,
        loader: Optional[ModelLoader] = None,
        model_name: str = DEFAULT_MODEL_NAME,
    ) -> "DetectionService":
        """
        Load the model and build a service.

        Raises:
            ModelLoadingError: The model could not be found, compiled or loaded.
        """
        loader = loader or ModelLoader(input_size=configuration.input_size)
        backend = await loader.load_async(model_name)
        logging.info(
            f"DetectionService ready: model={model_name}, "
            f"conf={configuration.confidence_threshold}, iou={configuration.iou_threshold}"
        )
        return cls(backend, configuration, pixel_format=loader.pixel_format)

    @property
    def backend(self) -> InferenceBackend:
        return self._backend

    async def detect(
        self,
        image: np.ndarray,
        token: Optional[CancellationToken] = None,
        timestamp: float = 0.0,
    ) -> DetectionResult:
        """
        Detect objects in one image.

        Args:
            image: uint8 image, grayscale, BGR or BGRA.
            token: Optional cancellation token, checked between stages.
            timestamp: Video timestamp stored on the result (0 for stills).

        Raises:
            PreprocessingFailedError, InferenceFailedError,
            PostprocessingFailedError, DetectionCancelledError
        """
        async with self._lock:
            check_cancelled(token, DetectionCancelledError)
            start = time.perf_counter()

            try:
                buffer = await to_thread_settled(self._preprocessor.process, image)
            except PreprocessError as e:
                raise PreprocessingFailedError(e) from e
            image_size = ImageSize.from_image(image)

            check_cancelled(token, DetectionCancelledError)

            try:
                observations: List[Observation] = await to_thread_settled(
                    self._backend.predict, buffer
                )
            except Exception as e:
                raise InferenceFailedError(e) from e

            check_cancelled(token, DetectionCancelledError)

            try:
                objects = self._postprocessor.process(observations, image_size)
            except Exception as e:
                raise PostprocessingFailedError(e) from e

            elapsed = time.perf_counter() - start

        logging.debug(f"Detected {len(objects)} objects in {elapsed * 1000:.1f} ms")
        return DetectionResult(
            objects=objects,
            image_size=image_size,
            processing_time=elapsed,
            timestamp=timestamp,
        )

    def detect_with_callback(
        self,
        image: np.ndarray,
        completion: Completion,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Union[asyncio.Task, concurrent.futures.Future]:
        """
        Callback-style detect() for callers that cannot await.

        `completion(result, error)` receives exactly one non-None argument.
        With `loop` given the call may come from any thread and the work is
        scheduled on that loop; otherwise it must come from the thread
        running the current event loop.
        """

        def deliver(fut) -> None:
            if fut.cancelled():
                completion(None, DetectionCancelledError())
                return
            error = fut.exception()
            if error is not None:
                completion(None, error)
            else:
                completion(fut.result(), None)

        if loop is None:
            task = asyncio.get_running_loop().create_task(self.detect(image))
            task.add_done_callback(deliver)
            return task

        future = asyncio.run_coroutine_threadsafe(self.detect(image), loop)
        future.add_done_callback(deliver)
        return future

    async def detect_batch(
        self,
        images: Sequence[np.ndarray],
        on_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> List[DetectionResult]:
        """
        Detect sequentially; stops at the first failure.

        on_progress receives (index + 1) / total after each image.
        """
        results: List[DetectionResult] = []
        total = len(images)

        for index, image in enumerate(images):
            check_cancelled(token, DetectionCancelledError)
            results.append(await self.detect(image, token=token))
            if on_progress is not None:
                on_progress((index + 1) / total)

        return results
