"""
Inference layer: backend interface, model loading and caching.

Concrete backends (onnx_backend, cpu_backend) import their runtimes lazily
and are not re-exported here.
"""

from .backend import ClassLabel, InferenceBackend, Observation
from .model_cache import ModelCache
from .model_loader import ModelLoader

__all__ = [
    "ClassLabel",
    "InferenceBackend",
    "Observation",
    "ModelCache",
    "ModelLoader",
]
