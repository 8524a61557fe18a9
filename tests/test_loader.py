import pytest

PySide6 = pytest.importorskip("PySide6")  # noqa: F401

from image_library.image_engine.loader import Loader
from tests.helpers.fake_pools import DeferredExecutor, FakePool


def _fake_decode(path: str):
    return path, f"pixels of {path}", None


def _failing_decode(path: str):
    return path, None, "bad file"


@pytest.fixture
def received():
    return []


def _loader(decode, received, executor=None):
    io = FakePool()
    loader = Loader(decode, executor=executor or DeferredExecutor(), io_pool=io)
    loader.image_decoded.connect(lambda *args: received.append(args))
    return loader, io


def test_only_latest_request_is_delivered(received) -> None:
    executor = DeferredExecutor()
    loader, io = _loader(_fake_decode, received, executor)
    try:
        first = loader.request_load("a.jpg")
        io.run_all()
        second = loader.request_load("b.jpg")
        io.run_all()
        assert loader.latest_request == second

        # The superseded decode finishes last-but-one and is dropped.
        executor.resolve("a.jpg")
        assert received == []
        executor.resolve("b.jpg")
        assert received == [(second, "b.jpg", "pixels of b.jpg", None)]
        assert not loader.is_latest(first)
        assert loader.pending_count() == 0
    finally:
        loader.shutdown()


def test_stale_request_is_not_submitted(received) -> None:
    executor = DeferredExecutor()
    loader, io = _loader(_fake_decode, received, executor)
    try:
        loader.request_load("a.jpg")
        loader.request_load("b.jpg")
        io.run_all()
        assert list(executor.jobs) == ["b.jpg"]
    finally:
        loader.shutdown()


def test_decode_error_is_delivered(received) -> None:
    executor = DeferredExecutor()
    loader, io = _loader(_failing_decode, received, executor)
    try:
        req = loader.request_load("broken.jpg")
        io.run_all()
        executor.resolve("broken.jpg")
        assert received == [(req, "broken.jpg", None, "bad file")]
    finally:
        loader.shutdown()


def test_clear_pending_drops_late_results(received) -> None:
    executor = DeferredExecutor()
    loader, io = _loader(_fake_decode, received, executor)
    try:
        loader.request_load("a.jpg")
        io.run_all()
        loader.clear_pending()
        executor.resolve("a.jpg")
        assert received == []
        assert loader.latest_request is None
    finally:
        loader.shutdown()
