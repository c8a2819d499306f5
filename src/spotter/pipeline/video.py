"""
Streaming object detection over a video file.

Frames are extracted and detected strictly in timestamp order, one at a
time. Each detected frame becomes one VideoDetectionProgress on the stream.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from ..detection.service import DEFAULT_MODEL_NAME, DetectionService
from ..errors import DetectionCancelledError
from ..inference.model_loader import ModelLoader
from ..models.config import DetectionConfiguration, VideoConfig
from ..models.frame import VideoDetectionProgress
from ..observation.extractor import VideoFrameExtractor
from ..runtime.cancellation import CancellationToken
from ..runtime.stream import Emit, TaskStream

DEFAULT_FPS = 5


class VideoDetectionService:
    """
    Composes a VideoFrameExtractor and a DetectionService.

    Example:
        service = await VideoDetectionService.create(loader=loader)
        async with service.detect("clip.mp4", fps=5) as stream:
            async for progress in stream:
                print(f"{progress.percentage:.0%}", progress.result.unique_labels)
    """

    def __init__(
        self,
        detection_service: DetectionService,
        frame_extractor: Optional[VideoFrameExtractor] = None,
        buffer_size: int = 1,
    ):
        self.detection_service = detection_service
        self.frame_extractor = frame_extractor or VideoFrameExtractor()
        self.buffer_size = buffer_size

    @classmethod
    async def create(
        cls,
        configuration: DetectionConfiguration = DetectionConfiguration.DEFAULT,
        loader: Optional[ModelLoader] = None,
        model_name: str = DEFAULT_MODEL_NAME,
        video: Optional[VideoConfig] = None,
    ) -> "VideoDetectionService":
        """
        Load the model and build the service.

        Raises:
            ModelLoadingError: The model could not be found, compiled or loaded.
        """
        video = video or VideoConfig()
        detection_service = await DetectionService.create(configuration, loader, model_name)
        extractor = VideoFrameExtractor(
            max_resolution=video.max_resolution,
            on_frame_error=video.on_frame_error,
            buffer_size=video.buffer_size,
        )
        return cls(detection_service, extractor, buffer_size=video.buffer_size)

    def detect(self, video_path: str, fps: int = DEFAULT_FPS) -> TaskStream[VideoDetectionProgress]:
        """
        Stream per-frame detection results.

        The stream ends when the video is exhausted, or raises the first error
        from extraction (ExtractionError) or detection (DetectionError).
        Cancelling it raises DetectionCancelledError on the next read.
        """

        async def produce(emit: Emit, token: CancellationToken) -> None:
            await self._produce(video_path, fps, emit, token)

        return TaskStream(
            produce,
            cancelled_error=DetectionCancelledError,
            buffer_size=self.buffer_size,
            name=f"video-detect:{os.path.basename(video_path)}",
        )

    async def _produce(
        self,
        video_path: str,
        fps: int,
        emit: Emit,
        token: CancellationToken,
    ) -> None:
        schedule = await self.frame_extractor.load_schedule(video_path, fps)
        total_frames = schedule.frame_count

        processed = 0
        async with self.frame_extractor.extract_frames(video_path, fps) as frames:
            async for frame in frames:
                token.raise_if_cancelled(DetectionCancelledError)

                result = await self.detection_service.detect(
                    frame.image, token=token, timestamp=frame.metadata.timestamp
                )
                await emit(
                    VideoDetectionProgress(
                        current_frame=processed,
                        total_frames=total_frames,
                        result=result,
                        frame_metadata=frame.metadata,
                    )
                )
                processed += 1

        logging.info(f"Video detection finished: {video_path}, {processed}/{total_frames} frames")
