"""
Tests for ModelLoader and ModelCache.
"""

import asyncio
import threading
import time

import pytest

from conftest import FakeBackend
from spotter.errors import (
    ModelCompilationError,
    ModelLoadError,
    ModelLoadingError,
    ModelNotFoundError,
    UnsupportedModelFormatError,
)
from spotter.inference.model_cache import ModelCache
from spotter.inference.model_loader import ModelLoader


@pytest.fixture
def model_dir(tmp_path):
    directory = tmp_path / "models"
    directory.mkdir()
    return directory


class RecordingFactory:
    """Backend factory that records the paths it was asked to load."""

    def __init__(self, error=None, delay=0.0):
        self.paths = []
        self.error = error
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, path):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.paths.append(path)
        if self.error is not None:
            raise self.error
        return FakeBackend()


class TestFindModelPath:
    """Tests for model discovery."""

    def test_not_found(self, model_dir):
        loader = ModelLoader(str(model_dir), backend_factory=RecordingFactory())
        with pytest.raises(ModelNotFoundError) as exc_info:
            loader.load("missing")
        assert exc_info.value.name == "missing"

    def test_precompiled_preferred(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        (model_dir / "yolo11n.pt").write_bytes(b"pt")
        loader = ModelLoader(str(model_dir))

        assert loader.find_model_path("yolo11n").endswith("yolo11n.onnx")

    def test_source_fallback(self, model_dir):
        (model_dir / "yolo11n.pt").write_bytes(b"pt")
        loader = ModelLoader(str(model_dir))

        assert loader.find_model_path("yolo11n").endswith("yolo11n.pt")

    def test_explicit_path(self, model_dir):
        path = model_dir / "custom.onnx"
        path.write_bytes(b"onnx")
        assert ModelLoader("elsewhere").find_model_path(str(path)) == str(path)

    def test_unsupported_format(self, model_dir):
        path = model_dir / "model.tflite"
        path.write_bytes(b"tflite")
        with pytest.raises(UnsupportedModelFormatError) as exc_info:
            ModelLoader(str(model_dir)).find_model_path(str(path))
        assert exc_info.value.path == str(path)


class TestModelLoading:
    """Tests for compile and load steps."""

    def test_load_precompiled(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        factory = RecordingFactory()
        compiler_calls = []
        loader = ModelLoader(
            str(model_dir), backend_factory=factory, compiler=compiler_calls.append
        )

        backend = loader.load("yolo11n")

        assert isinstance(backend, FakeBackend)
        assert factory.paths == [str(model_dir / "yolo11n.onnx")]
        assert compiler_calls == []

    def test_source_is_compiled_first(self, model_dir):
        (model_dir / "yolo11n.pt").write_bytes(b"pt")
        factory = RecordingFactory()
        compiled = str(model_dir / "yolo11n.onnx")
        loader = ModelLoader(
            str(model_dir), backend_factory=factory, compiler=lambda path: compiled
        )

        loader.load("yolo11n")

        assert factory.paths == [compiled]

    def test_compile_failure(self, model_dir):
        (model_dir / "yolo11n.pt").write_bytes(b"pt")

        def compiler(path):
            raise RuntimeError("export crashed")

        loader = ModelLoader(str(model_dir), backend_factory=RecordingFactory(), compiler=compiler)
        with pytest.raises(ModelCompilationError) as exc_info:
            loader.load("yolo11n")
        assert "export crashed" in str(exc_info.value)
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_load_failure(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"garbage")
        loader = ModelLoader(
            str(model_dir), backend_factory=RecordingFactory(error=ValueError("bad graph"))
        )
        with pytest.raises(ModelLoadError) as exc_info:
            loader.load("yolo11n")
        assert isinstance(exc_info.value.cause, ValueError)

    def test_loading_errors_not_rewrapped(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        error = UnsupportedModelFormatError("yolo11n.onnx")
        loader = ModelLoader(str(model_dir), backend_factory=RecordingFactory(error=error))
        with pytest.raises(UnsupportedModelFormatError):
            loader.load("yolo11n")

    def test_all_errors_share_base(self):
        for error in (ModelNotFoundError, ModelCompilationError,
                      ModelLoadError, UnsupportedModelFormatError):
            assert issubclass(error, ModelLoadingError)

    def test_load_async(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        loader = ModelLoader(str(model_dir), backend_factory=RecordingFactory())

        backend = asyncio.run(loader.load_async("yolo11n"))

        assert isinstance(backend, FakeBackend)


class TestModelCache:
    """Tests for caching behaviour."""

    def test_second_load_hits_cache(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        factory = RecordingFactory()
        loader = ModelLoader(str(model_dir), cache=ModelCache(), backend_factory=factory)

        first = loader.load("yolo11n")
        second = loader.load("yolo11n")

        assert first is second
        assert len(factory.paths) == 1

    def test_loaders_share_an_injected_cache(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        cache = ModelCache()
        factory = RecordingFactory()

        a = ModelLoader(str(model_dir), cache=cache, backend_factory=factory).load("yolo11n")
        b = ModelLoader(str(model_dir), cache=cache, backend_factory=factory).load("yolo11n")

        assert a is b
        assert "yolo11n" in cache
        assert len(cache) == 1

    def test_separate_caches_do_not_share(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        factory = RecordingFactory()

        a = ModelLoader(str(model_dir), cache=ModelCache(), backend_factory=factory).load("yolo11n")
        b = ModelLoader(str(model_dir), cache=ModelCache(), backend_factory=factory).load("yolo11n")

        assert a is not b
        assert len(factory.paths) == 2

    def test_failed_load_not_cached(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        cache = ModelCache()
        failing = ModelLoader(
            str(model_dir), cache=cache, backend_factory=RecordingFactory(error=OSError("busy"))
        )
        with pytest.raises(ModelLoadError):
            failing.load("yolo11n")
        assert "yolo11n" not in cache

        working = ModelLoader(str(model_dir), cache=cache, backend_factory=RecordingFactory())
        assert isinstance(working.load("yolo11n"), FakeBackend)

    def test_concurrent_loads_run_once(self, model_dir):
        (model_dir / "yolo11n.onnx").write_bytes(b"onnx")
        factory = RecordingFactory(delay=0.05)
        loader = ModelLoader(str(model_dir), cache=ModelCache(), backend_factory=factory)
        results = []
        results_lock = threading.Lock()

        def worker():
            backend = loader.load("yolo11n")
            with results_lock:
                results.append(backend)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(factory.paths) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_evict_and_clear(self):
        cache = ModelCache()
        cache.put("a", FakeBackend())
        cache.put("b", FakeBackend())

        cache.evict("a")
        assert cache.names() == ["b"]

        cache.clear()
        assert len(cache) == 0
        assert cache.get("b") is None
