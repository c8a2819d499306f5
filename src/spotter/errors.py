"""
Error taxonomy for the detection pipeline.

Errors are grouped by the stage that raises them:
- model loading (fatal to service construction)
- preprocessing (per call)
- detection (wraps the stage that failed)
- frame extraction (aborts the whole stream)

Every cancellation error also derives from CancelledOperation so callers can
separate "I stopped this" from "it broke" with a single except clause.
"""

from __future__ import annotations

from typing import Optional


class SpotterError(Exception):
    """Base class for all pipeline errors."""


class CancelledOperation(SpotterError):
    """Mixin base for cancellation, an expected termination."""


def _describe(cause: Optional[BaseException]) -> str:
    if cause is None:
        return "unknown error"
    text = str(cause)
    return text or type(cause).__name__


# ---------------------------------------------------------------------------
# Model loading
# ---------------------------------------------------------------------------


class ModelLoadingError(SpotterError):
    """Model could not be made ready for inference."""


class ModelNotFoundError(ModelLoadingError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Model file not found: {name}")


class ModelCompilationError(ModelLoadingError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Model compilation failed: {_describe(cause)}")


class ModelLoadError(ModelLoadingError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Model load failed: {_describe(cause)}")


class UnsupportedModelFormatError(ModelLoadingError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Unsupported model format: {path}")


# ---------------------------------------------------------------------------
# Preprocessing
# ---------------------------------------------------------------------------


class PreprocessError(SpotterError):
    """Image could not be turned into a pixel buffer."""


class InvalidImageDataError(PreprocessError):
    def __init__(self, reason: str = "image has no retrievable pixel data"):
        self.reason = reason
        super().__init__(f"Invalid image data: {reason}")


class PixelBufferAllocationError(PreprocessError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Failed to allocate pixel buffer: {_describe(cause)}")


class PixelBufferLockError(PreprocessError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to acquire writable pixel buffer: {reason}")


class DrawingContextError(PreprocessError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Failed to draw image into pixel buffer: {_describe(cause)}")


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class DetectionError(SpotterError):
    """A single detection call failed."""


class PreprocessingFailedError(DetectionError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Preprocessing failed: {_describe(cause)}")


class InferenceFailedError(DetectionError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Model inference failed: {_describe(cause)}")


class PostprocessingFailedError(DetectionError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Postprocessing failed: {_describe(cause)}")


class DetectionCancelledError(DetectionError, CancelledOperation):
    def __init__(self):
        super().__init__("Detection was cancelled")


# ---------------------------------------------------------------------------
# Frame extraction
# ---------------------------------------------------------------------------


class ExtractionError(SpotterError):
    """Frame extraction aborted."""


class InvalidVideoURLError(ExtractionError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Invalid video path or file does not exist: {path}")


class AssetLoadingFailedError(ExtractionError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Failed to load video asset: {_describe(cause)}")


class FrameGenerationFailedError(ExtractionError):
    def __init__(self, time: float, cause: BaseException):
        self.time = time
        self.cause = cause
        super().__init__(f"Could not generate frame at {time:.3f}s: {_describe(cause)}")


class ExtractionCancelledError(ExtractionError, CancelledOperation):
    def __init__(self):
        super().__init__("Frame extraction was cancelled")
