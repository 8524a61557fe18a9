"""UI-facing facade of the transform & metadata pipeline.

One ImagePipeline owns at most one live ImageDocument, the description index,
and the event hub the selection UI subscribes to.
"""

from __future__ import annotations

from datetime import datetime

from PySide6.QtCore import QObject, Signal

from image_library.descriptions import DescriptionIndex
from image_library.errors import MetadataError, PersistenceError
from image_library.events import EventHub, ImageModified, ImageRenamed
from image_library.image_engine.decoder import decode_file, decode_image, encode_to_bytes, format_for_path
from image_library.image_engine.document import ImageDocument
from image_library.image_engine.loader import Loader
from image_library.image_engine.paint import PaintSession
from image_library.logger import get_logger
from image_library.metadata import MetadataPatch, read_metadata, rewrite
from image_library.ops.file_operations import read_bytes, rename_file, set_modified_time, write_atomic
from image_library.path_utils import abs_path_str
from image_library.settings_manager import SettingsManager

_logger = get_logger("pipeline")


class ImagePipeline(QObject):
    document_opened = Signal(object)  # ImageDocument
    open_failed = Signal(str, str)  # path, reason
    descriptions_failed = Signal(str, str)  # index file, reason

    def __init__(
        self,
        settings: SettingsManager | None = None,
        loader: Loader | None = None,
        descriptions: DescriptionIndex | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings or SettingsManager.from_env()
        self._loader = loader
        self._loader_connected = False
        self.events = EventHub(self)
        self.descriptions = descriptions if descriptions is not None else DescriptionIndex()
        self._document: ImageDocument | None = None
        self._container_size: tuple[int, int] | None = None
        self._requested_path: str | None = None

    # ---- configuration ----
    @property
    def settings(self) -> SettingsManager:
        return self._settings

    @property
    def description_index_path(self) -> str:
        return self._settings.description_index_path

    def set_container_size(self, size: tuple[int, int] | None) -> None:
        """Viewport size used for the initial fit zoom (None until laid out)."""
        self._container_size = size

    # ---- document lifecycle ----
    @property
    def document(self) -> ImageDocument | None:
        return self._document

    def _make_document(self, pixels, path: str | None) -> ImageDocument:
        return ImageDocument(
            pixels,
            path,
            container_size=self._container_size,
            default_container_size=self._settings.default_container_size,
            min_crop_size=self._settings.min_crop_size,
            zoom_steps=self._settings.zoom_steps,
        )

    def _install(self, document: ImageDocument) -> ImageDocument:
        previous = self._document
        self._document = document
        if previous is not None and previous is not document:
            _logger.debug("document superseded: %r -> %r", previous, document)
        return document

    def open_image(self, path: str) -> ImageDocument:
        """Decode ``path`` on the calling thread and make it the live document.

        Any background load still in flight is superseded.

        Raises:
            DecodeError: the previous document stays live
        """
        abs_p = abs_path_str(path)
        self._requested_path = abs_p
        if self._loader is not None:
            self._loader.clear_pending()
        pixels = decode_file(abs_p)
        doc = self._install(self._make_document(pixels, abs_p))
        _logger.info("opened %s (%dx%d)", abs_p, doc.width, doc.height)
        return doc

    def _ensure_loader(self) -> Loader:
        if self._loader is None:
            self._loader = Loader(decode_image)
        if not self._loader_connected:
            self._loader.image_decoded.connect(self._on_image_decoded)
            self._loader_connected = True
        return self._loader

    def open_image_async(self, path: str) -> int:
        """Decode ``path`` in the background; supersedes any earlier request."""
        abs_p = abs_path_str(path)
        self._requested_path = abs_p
        return self._ensure_loader().request_load(abs_p)

    def _on_image_decoded(self, req_id: int, path: str, data, error) -> None:
        loader = self._loader
        if loader is None or not loader.is_latest(req_id) or path != self._requested_path:
            _logger.debug("dropping stale decode: id=%s path=%s", req_id, path)
            return
        if error is not None or data is None:
            _logger.warning("open failed: %s: %s", path, error)
            self.open_failed.emit(path, str(error))
            return
        try:
            doc = self._install(self._make_document(data, path))
        except ValueError as e:
            _logger.warning("open failed: %s: %s", path, e)
            self.open_failed.emit(path, str(e))
            return
        _logger.info("opened %s (%dx%d)", path, doc.width, doc.height)
        self.document_opened.emit(doc)

    def close_image(self) -> None:
        self._document = None
        self._requested_path = None
        if self._loader is not None:
            self._loader.clear_pending()

    # ---- commits ----
    def commit_image(
        self, document: ImageDocument | None = None, destination: str | None = None, fmt: str | None = None
    ) -> str:
        """Encode the document's pixels and write them to ``destination``.

        The format comes from the destination extension unless ``fmt`` is given.

        Raises:
            EncodeError, OSError, CommitIncomplete
        """
        doc = document or self._document
        if doc is None:
            raise ValueError("no document to commit")
        dest = destination or doc.path
        if not dest:
            raise ValueError("document has no path; pass a destination")
        fmt = fmt or format_for_path(dest)
        data = encode_to_bytes(doc.pixels, fmt, quality=self._settings.jpeg_quality)
        written = write_atomic(dest, data)
        doc.path = written
        doc.mark_clean()
        _logger.info("committed %s (%s, %d bytes)", written, fmt, len(data))
        self.events.publish(ImageModified(written))
        return written

    def rewrite_metadata(self, source: str, destination: str, patch: MetadataPatch) -> str:
        """Write ``source`` with ``patch`` applied to its tag directory to ``destination``.

        Raises:
            UnsupportedContainer, CorruptDirectory, DirectoryOverflow, OSError,
            CommitIncomplete. The source is untouched on failure.
        """
        src = abs_path_str(source)
        data = read_bytes(src)
        try:
            out = rewrite(data, patch)
        except MetadataError as e:
            _logger.error("metadata rewrite failed for %s: %s", src, e)
            raise
        written = write_atomic(destination, out)
        _logger.info("metadata rewritten: %s -> %s", src, written)
        self.events.publish(ImageModified(written))
        return written

    def set_capture_date(self, path: str, when: datetime) -> str:
        """Rewrite the capture date in place and align the file's modification time."""
        written = self.rewrite_metadata(path, path, MetadataPatch(capture_date=when))
        set_modified_time(written, when)
        return written

    def read_embedded_description(self, path: str) -> str:
        """Description stored in the file, or "" when absent or unreadable."""
        try:
            record = read_metadata(path)
        except (MetadataError, OSError) as e:
            _logger.warning("cannot read embedded description of %s: %s", path, e)
            return ""
        return record.description or ""

    def write_embedded_description(self, path: str, text: str) -> str:
        return self.rewrite_metadata(path, path, MetadataPatch(description=text))

    def rename_image(self, path: str, new_name: str) -> str:
        old = abs_path_str(path)
        new = rename_file(old, new_name)
        doc = self._document
        if doc is not None and doc.path == old:
            doc.path = new
        if self._requested_path == old:
            self._requested_path = new
        _logger.info("renamed %s -> %s", old, new)
        self.events.publish(ImageRenamed(old, new))
        return new

    # ---- painting ----
    def create_paint_session(self, width: int | None = None, height: int | None = None) -> PaintSession:
        dw, dh = self._settings.paint_size
        return PaintSession(width or dw, height or dh)

    def save_painting(self, session: PaintSession, destination: str, fmt: str | None = None) -> ImageDocument:
        """Finish ``session``, write it and make it the live document."""
        doc = session.finish(abs_path_str(destination))
        self.commit_image(doc, destination, fmt)
        return self._install(doc)

    # ---- description index ----
    def description_for(self, path: str) -> str:
        return self.descriptions.get(path)

    def save_description(self, path: str, text: str) -> None:
        self.descriptions.put(path, text.strip())

    def load_descriptions(self) -> bool:
        """Startup load: replaces the in-memory index."""
        index_file = self.description_index_path
        try:
            self.descriptions.load_replacing(index_file)
        except PersistenceError as e:
            _logger.error("description index not loaded: %s", e)
            self.descriptions_failed.emit(index_file, str(e))
            return False
        return True

    def merge_descriptions(self, file: str | None = None) -> bool:
        """Mid-session load: only adds paths not already in memory."""
        index_file = file or self.description_index_path
        try:
            self.descriptions.load(index_file)
        except PersistenceError as e:
            _logger.error("description index not merged: %s", e)
            self.descriptions_failed.emit(index_file, str(e))
            return False
        return True

    def save_descriptions(self, file: str | None = None) -> bool:
        """Persist the index; failures are logged and reported, never raised."""
        index_file = file or self.description_index_path
        try:
            self.descriptions.save(index_file)
        except PersistenceError as e:
            _logger.error("description index not saved: %s", e)
            self.descriptions_failed.emit(index_file, str(e))
            return False
        return True

    def shutdown(self) -> None:
        self.save_descriptions()
        if self._loader is not None:
            self._loader.shutdown()
