"""Background image loader.

File I/O scheduling runs on a thread pool; decoding runs in a process pool.
Requests are numbered and only the most recent one is delivered: a decode
that finishes after a newer request was made is dropped on arrival. There is
no cancellation of in-flight work.
"""

import contextlib
import os
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor

from PySide6.QtCore import QObject, Signal

from image_library.logger import get_logger

_logger = get_logger("loader")


class Loader(QObject):
    """Loader that manages file I/O scheduling and multi-process decoding.

    The decode_fn must be a pickleable top-level function of the form:
    (path) -> (path, array|None, error|None)
    """

    image_decoded = Signal(int, str, object, object)  # request id, path, numpy_array, error

    def __init__(
        self,
        decode_fn: Callable[[str], tuple],
        executor: Executor | None = None,
        io_pool: Executor | None = None,
    ):
        super().__init__()
        self._decode_fn = decode_fn
        # Process pool (for general decoding)
        self.executor = executor if executor is not None else ProcessPoolExecutor()
        max_io = max(2, min(4, (os.cpu_count() or 2)))
        self.io_pool = io_pool if io_pool is not None else ThreadPoolExecutor(max_workers=max_io)
        self._next_id = 1
        self._latest_id: int | None = None
        self._pending: dict[int, str] = {}
        self._lock = threading.Lock()
        _logger.debug("Loader init: io_workers=%s", max_io)

    @property
    def latest_request(self) -> int | None:
        with self._lock:
            return self._latest_id

    def is_latest(self, req_id: int) -> bool:
        with self._lock:
            return req_id == self._latest_id

    def _submit_decode(self, file_path: str, req_id: int) -> None:
        with self._lock:
            stale = req_id != self._latest_id
        if stale:
            # Superseded before it reached the process pool; skip the work.
            _logger.debug("submit_decode skipped (stale): path=%s id=%s", file_path, req_id)
            self._finish(req_id)
            return
        try:
            _logger.debug("submit_decode: path=%s id=%s", file_path, req_id)
            future = self.executor.submit(self._decode_fn, file_path)
            with contextlib.suppress(AttributeError):
                future._req_id = req_id  # type: ignore[attr-defined]
                future._path = file_path  # type: ignore[attr-defined]
            future.add_done_callback(self.on_decode_finished)
        except Exception as e:
            _logger.exception("submit decode failed for %s", file_path)
            self._deliver(req_id, file_path, None, str(e))

    def _finish(self, req_id: int) -> None:
        with self._lock:
            self._pending.pop(req_id, None)

    def _deliver(self, req_id: int, path: str, data, error) -> None:
        with self._lock:
            self._pending.pop(req_id, None)
            latest = self._latest_id
        if req_id != latest:
            _logger.debug("decode_finished stale: path=%s id=%s latest=%s (dropped)", path, req_id, latest)
            return
        _logger.debug(
            "decode_finished emit: path=%s id=%s shape=%s err=%s", path, req_id, getattr(data, "shape", None), error
        )
        self.image_decoded.emit(req_id, path, data, error)

    def on_decode_finished(self, future: Future) -> None:
        req_id = getattr(future, "_req_id", -1)
        path = getattr(future, "_path", "<unknown>")
        try:
            path, data, error = future.result()
        except Exception as e:
            _logger.exception("decode future failed")
            self._deliver(req_id, path, None, str(e))
            return
        self._deliver(req_id, path, data, error)

    def request_load(self, path: str) -> int:
        """Queue a decode of ``path``; it supersedes every earlier request."""
        with self._lock:
            req_id = self._next_id
            self._next_id += 1
            self._latest_id = req_id
            self._pending[req_id] = path
            pending_count = len(self._pending)
        _logger.debug("request_load queued: path=%s id=%s pending=%s", path, req_id, pending_count)
        self.io_pool.submit(self._submit_decode, path, req_id)
        return req_id

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def clear_pending(self) -> None:
        """Forget every outstanding request; late results are dropped."""
        with self._lock:
            self._pending.clear()
            self._latest_id = None

    def shutdown(self) -> None:
        self.clear_pending()
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.io_pool.shutdown(wait=False, cancel_futures=True)
