"""
Tests for VideoFrameExtractor and SamplingSchedule.
"""

import asyncio
import gc
import math

import numpy as np
import pytest

from conftest import reader_factory
from spotter.errors import (
    AssetLoadingFailedError,
    CancelledOperation,
    ExtractionCancelledError,
    ExtractionError,
    FrameGenerationFailedError,
    InvalidVideoURLError,
)
from spotter.models.config import FrameErrorPolicy
from spotter.models.geometry import ImageSize
from spotter.observation.extractor import (
    DEFAULT_INTERVAL,
    SamplingSchedule,
    VideoFrameExtractor,
    limit_resolution,
)


async def collect(stream):
    async with stream:
        return [frame async for frame in stream]


class TestSamplingSchedule:
    """Tests for SamplingSchedule."""

    def test_two_seconds_at_five_fps(self):
        schedule = SamplingSchedule.for_fps(2.0, 5)

        assert schedule.frame_count == 10
        assert list(schedule.timestamps()) == pytest.approx(
            [0.0, 0.2, 0.4, 0.6, 0.8, 1.0, 1.2, 1.4, 1.6, 1.8]
        )

    def test_default_interval(self):
        assert SamplingSchedule.for_fps(3.5).interval == DEFAULT_INTERVAL
        assert SamplingSchedule.for_fps(3.5, 0).interval == DEFAULT_INTERVAL
        assert SamplingSchedule.for_fps(3.5).frame_count == 4

    def test_empty_video(self):
        assert SamplingSchedule.for_fps(0.0, 5).frame_count == 0
        assert list(SamplingSchedule.for_fps(0.0, 5).timestamps()) == []

    @pytest.mark.parametrize("duration", [0.1, 0.3, 0.7, 1.0, 1.1, 2.0, 2.9, 3.0, 10.0, 59.97])
    @pytest.mark.parametrize("fps", [1, 3, 5, 7, 10, 24, 30])
    def test_count_matches_stepping(self, duration, fps):
        schedule = SamplingSchedule.for_fps(duration, fps)
        stamps = list(schedule.timestamps())

        assert len(stamps) == schedule.frame_count
        assert all(t < duration for t in stamps)
        # The next step would land at or past the end
        assert len(stamps) * schedule.interval >= duration
        # Off by at most one from the naive estimate
        assert abs(schedule.frame_count - math.ceil(duration * fps)) <= 1


class TestLimitResolution:
    """Tests for limit_resolution."""

    def test_downscales_keeping_aspect(self):
        image = np.zeros((1080, 1920, 3), dtype=np.uint8)
        assert limit_resolution(image, ImageSize(960, 960)).shape == (540, 960, 3)

    def test_never_upscales(self):
        image = np.zeros((100, 200, 3), dtype=np.uint8)
        assert limit_resolution(image, ImageSize(1920, 1080)) is image

    def test_no_limit(self):
        image = np.zeros((100, 200, 3), dtype=np.uint8)
        assert limit_resolution(image, None) is image


class TestExtractFrames:
    """Tests for extract_frames."""

    def test_scenario_two_seconds_at_five_fps(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(reader_factory=reader_factory(readers, duration=2.0))

        frames = asyncio.run(collect(extractor.extract_frames(video_path, fps=5)))

        assert len(frames) == 10
        assert [f.metadata.index for f in frames] == list(range(10))
        assert [f.metadata.timestamp for f in frames] == pytest.approx(
            [0.0, 0.2, 0.4, 0.6, 0.8, 1.0, 1.2, 1.4, 1.6, 1.8]
        )
        assert all(f.metadata.duration == 2.0 for f in frames)
        assert readers[0].closed

    def test_estimate_matches_extraction(self, video_path):
        extractor = VideoFrameExtractor(reader_factory=reader_factory([], duration=2.9))

        async def run():
            schedule = await extractor.load_schedule(video_path, 3)
            frames = await collect(extractor.extract_frames(video_path, fps=3))
            return schedule, frames

        schedule, frames = asyncio.run(run())

        assert schedule.frame_count == len(frames) == 9

    def test_default_fps_is_one_per_second(self, video_path):
        extractor = VideoFrameExtractor(reader_factory=reader_factory([], duration=3.5))

        frames = asyncio.run(collect(extractor.extract_frames(video_path)))

        assert [f.metadata.timestamp for f in frames] == [0.0, 1.0, 2.0, 3.0]

    def test_frames_are_decoded_at_their_timestamps(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(reader_factory=reader_factory(readers, duration=1.0))

        frames = asyncio.run(collect(extractor.extract_frames(video_path, fps=2)))

        assert readers[0].requested == [0.0, 0.5]
        assert frames[1].image[0, 0, 0] == 5

    def test_metadata_uses_decoded_time(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(
            reader_factory=reader_factory(readers, duration=1.0, native_fps=4)
        )

        frames = asyncio.run(collect(extractor.extract_frames(video_path, fps=5)))

        assert readers[0].requested == pytest.approx([0.0, 0.2, 0.4, 0.6, 0.8])
        assert [f.metadata.timestamp for f in frames] == pytest.approx([0.0, 0.25, 0.5, 0.5, 0.75])
        assert [f.metadata.index for f in frames] == [0, 1, 2, 3, 4]

    def test_max_resolution_applied(self, video_path):
        extractor = VideoFrameExtractor(
            max_resolution=ImageSize(32, 32),
            reader_factory=reader_factory([], duration=1.0, size=(64, 48)),
        )

        frames = asyncio.run(collect(extractor.extract_frames(video_path, fps=1)))

        assert frames[0].size == (32, 24)

    def test_load_duration(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(reader_factory=reader_factory(readers, duration=4.25))

        assert asyncio.run(extractor.load_duration(video_path)) == 4.25
        assert readers[0].closed


class TestExtractionErrors:
    """Tests for extraction failure modes."""

    def test_missing_file(self, tmp_path):
        extractor = VideoFrameExtractor(reader_factory=reader_factory([]))

        with pytest.raises(InvalidVideoURLError):
            asyncio.run(collect(extractor.extract_frames(str(tmp_path / "nope.mp4"))))

    def test_open_failure(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(
            reader_factory=reader_factory(readers, open_error=RuntimeError("no video track"))
        )

        with pytest.raises(AssetLoadingFailedError) as exc_info:
            asyncio.run(extractor.load_duration(video_path))
        assert "no video track" in str(exc_info.value)
        assert readers[0].closed

    def test_bad_frame_aborts_by_default(self, video_path):
        extractor = VideoFrameExtractor(
            reader_factory=reader_factory([], duration=2.0, fail_at=[0.6])
        )
        received = []

        async def run():
            async with extractor.extract_frames(video_path, fps=5) as frames:
                async for frame in frames:
                    received.append(frame.metadata.timestamp)

        with pytest.raises(FrameGenerationFailedError) as exc_info:
            asyncio.run(run())

        assert exc_info.value.time == pytest.approx(0.6)
        assert received == pytest.approx([0.0, 0.2, 0.4])

    def test_bad_frame_skipped_when_configured(self, video_path):
        extractor = VideoFrameExtractor(
            reader_factory=reader_factory([], duration=1.0, fail_at=[0.2, 0.6]),
            on_frame_error=FrameErrorPolicy.SKIP,
        )

        frames = asyncio.run(collect(extractor.extract_frames(video_path, fps=5)))

        assert [f.metadata.timestamp for f in frames] == pytest.approx([0.0, 0.4, 0.8])
        assert [f.metadata.index for f in frames] == [0, 1, 2]

    def test_cancel_after_n_frames(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(reader_factory=reader_factory(readers, duration=10.0))
        received = []

        async def run():
            stream = extractor.extract_frames(video_path, fps=5)
            async with stream:
                async for frame in stream:
                    received.append(frame)
                    if len(received) == 4:
                        stream.cancel()

        with pytest.raises(ExtractionCancelledError):
            asyncio.run(run())

        assert len(received) == 4
        assert len(readers[0].requested) < 50

    def test_abandoned_stream_closes_reader(self, video_path):
        readers = []
        extractor = VideoFrameExtractor(reader_factory=reader_factory(readers, duration=10.0))

        async def run():
            stream = extractor.extract_frames(video_path, fps=5)
            async for _ in stream:
                break
            del stream
            gc.collect()
            await asyncio.sleep(0.2)

        asyncio.run(run())

        assert readers[0].closed
        assert len(readers[0].requested) < 50

    def test_error_hierarchy(self):
        for error in (InvalidVideoURLError, AssetLoadingFailedError,
                      FrameGenerationFailedError, ExtractionCancelledError):
            assert issubclass(error, ExtractionError)
        assert issubclass(ExtractionCancelledError, CancelledOperation)
