"""
Frame extraction at a caller-chosen sampling rate.

Frames are sampled at t = 0, interval, 2 * interval, ... while t < duration.
SamplingSchedule is the single place that decides how many samples a video
has, so progress estimates and the extraction loop always agree.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import cv2
import numpy as np

from ..errors import (
    AssetLoadingFailedError,
    ExtractionCancelledError,
    FrameGenerationFailedError,
    InvalidVideoURLError,
)
from ..models.config import FrameErrorPolicy
from ..models.frame import FrameMetadata, VideoFrame
from ..models.geometry import ImageSize
from ..runtime.cancellation import CancellationToken
from ..runtime.stream import Emit, TaskStream
from .video_reader import OpenCVVideoReader, VideoReader

DEFAULT_INTERVAL = 1.0

ReaderFactory = Callable[[str], VideoReader]


@dataclass(frozen=True)
class SamplingSchedule:
    """
    Sample timestamps for one video.

    Attributes:
        duration: Media duration in seconds.
        interval: Seconds between samples.
    """
    duration: float
    interval: float = DEFAULT_INTERVAL

    @classmethod
    def for_fps(cls, duration: float, fps: Optional[float] = None) -> "SamplingSchedule":
        """Interval is 1 / fps, or DEFAULT_INTERVAL when fps is missing or not positive."""
        if fps is not None and fps > 0:
            return cls(duration=duration, interval=1.0 / fps)
        return cls(duration=duration, interval=DEFAULT_INTERVAL)

    @property
    def frame_count(self) -> int:
        """
        Number of samples, i.e. the count of k >= 0 with k * interval < duration.

        Starts from ceil(duration / interval) and corrects for floating point
        rounding at exact boundaries.
        """
        if self.duration <= 0 or self.interval <= 0:
            return 0
        n = math.ceil(self.duration / self.interval)
        while n > 0 and (n - 1) * self.interval >= self.duration:
            n -= 1
        while n * self.interval < self.duration:
            n += 1
        return n

    def timestamps(self) -> Iterator[float]:
        for index in range(self.frame_count):
            yield index * self.interval


def limit_resolution(image: np.ndarray, max_resolution: Optional[ImageSize]) -> np.ndarray:
    """Downscale to fit inside max_resolution, keeping the aspect ratio."""
    if max_resolution is None:
        return image
    h, w = image.shape[:2]
    scale = min(max_resolution.width / w, max_resolution.height / h)
    if scale >= 1.0:
        return image
    size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def _close_when_idle(reader: VideoReader, pending: Optional[asyncio.Future]) -> None:
    if pending is None or pending.done():
        reader.close()
        return

    def close(fut: asyncio.Future) -> None:
        if not fut.cancelled():
            fut.exception()
        reader.close()

    pending.add_done_callback(close)


class VideoFrameExtractor:
    """
    Pulls frames from a video file as a cancellable stream.

    Instances hold only immutable configuration, so one extractor can serve
    any number of concurrent extractions.

    Example:
        extractor = VideoFrameExtractor()
        async with extractor.extract_frames("clip.mp4", fps=5) as frames:
            async for frame in frames:
                print(frame.metadata.index, frame.metadata.timestamp)
    """

    def __init__(
        self,
        max_resolution: Optional[ImageSize] = None,
        reader_factory: ReaderFactory = OpenCVVideoReader,
        on_frame_error: FrameErrorPolicy = FrameErrorPolicy.ABORT,
        buffer_size: int = 1,
    ):
        self.max_resolution = max_resolution
        self.on_frame_error = on_frame_error
        self.buffer_size = buffer_size
        self._reader_factory = reader_factory

    def _open_reader(self, video_path: str) -> VideoReader:
        if not os.path.isfile(video_path):
            raise InvalidVideoURLError(video_path)

        reader = self._reader_factory(video_path)
        try:
            reader.open()
        except Exception as e:
            reader.close()
            raise AssetLoadingFailedError(e) from e
        return reader

    async def load_duration(self, video_path: str) -> float:
        """
        Media duration in seconds.

        Raises:
            InvalidVideoURLError, AssetLoadingFailedError
        """
        reader = await asyncio.to_thread(self._open_reader, video_path)
        try:
            return reader.duration
        finally:
            reader.close()

    async def load_schedule(self, video_path: str, fps: Optional[float] = None) -> SamplingSchedule:
        duration = await self.load_duration(video_path)
        return SamplingSchedule.for_fps(duration, fps)

    def extract_frames(self, video_path: str, fps: Optional[float] = None) -> TaskStream[VideoFrame]:
        """
        Stream frames sampled every 1 / fps seconds (1 s when fps is None).

        The stream raises InvalidVideoURLError, AssetLoadingFailedError,
        FrameGenerationFailedError or ExtractionCancelledError.
        """

        async def produce(emit: Emit, token: CancellationToken) -> None:
            await self._produce(video_path, fps, emit, token)

        return TaskStream(
            produce,
            cancelled_error=ExtractionCancelledError,
            buffer_size=self.buffer_size,
            name=f"extract:{os.path.basename(video_path)}",
        )

    async def _produce(
        self,
        video_path: str,
        fps: Optional[float],
        emit: Emit,
        token: CancellationToken,
    ) -> None:
        reader = await asyncio.to_thread(self._open_reader, video_path)
        pending: Optional[asyncio.Future] = None
        try:
            duration = reader.duration
            schedule = SamplingSchedule.for_fps(duration, fps)
            logging.info(
                f"Extracting {schedule.frame_count} frames from {video_path} "
                f"(interval={schedule.interval:.3f}s)"
            )

            index = 0
            for t in schedule.timestamps():
                token.raise_if_cancelled(ExtractionCancelledError)

                # Shielded so a cancelled stream never closes the reader under
                # a decode that is still running in the worker thread.
                pending = asyncio.ensure_future(asyncio.to_thread(reader.frame_at, t))
                try:
                    image, actual_time = await asyncio.shield(pending)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if self.on_frame_error == FrameErrorPolicy.SKIP:
                        logging.warning(f"Skipping bad frame at {t:.3f}s: {e}")
                        continue
                    raise FrameGenerationFailedError(t, e) from e

                image = limit_resolution(image, self.max_resolution)
                metadata = FrameMetadata(index, actual_time, duration)
                await emit(VideoFrame(image=image, metadata=metadata))
                index += 1
        finally:
            _close_when_idle(reader, pending)
