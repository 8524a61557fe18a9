from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest

PySide6 = pytest.importorskip("PySide6")  # noqa: F401

from image_library.app import ImagePipeline
from image_library.descriptions import DescriptionIndex
from image_library.errors import DecodeError, UnsupportedContainer
from image_library.events import ImageModified, ImageRenamed
from image_library.image_engine.loader import Loader
from image_library.metadata import MetadataPatch, read_metadata, read_tag
from image_library.metadata.containers import scan_data_offset
from image_library.settings_manager import SettingsManager
from tests.helpers.exif_samples import TAG_MAKER_NOTE, build_jpeg, sample_tiff
from tests.helpers.fake_pools import DeferredExecutor, FakePool


@pytest.fixture
def events() -> list[object]:
    return []


@pytest.fixture
def pipeline(tmp_path: Path, events: list[object]):
    p = ImagePipeline(settings=SettingsManager(str(tmp_path / "settings.json")))
    p.events.subscribe(events.append)
    return p


@pytest.fixture
def sample_jpeg(tmp_path: Path) -> Path:
    path = tmp_path / "sample.jpg"
    path.write_bytes(build_jpeg(sample_tiff()))
    return path


def _write_real_jpeg(path: Path, w: int = 64, h: int = 48) -> Path:
    pyvips = pytest.importorskip("pyvips")
    img = pyvips.Image.black(w, h, bands=3) + [40, 120, 200]
    img.cast("uchar").write_to_file(str(path))
    return path


# ---- metadata ----
def test_embedded_description_round_trip(pipeline, events, sample_jpeg: Path) -> None:
    before = sample_jpeg.read_bytes()
    pipeline.write_embedded_description(str(sample_jpeg), "Grandma's garden")

    assert pipeline.read_embedded_description(str(sample_jpeg)) == "Grandma's garden"
    after = sample_jpeg.read_bytes()
    assert after[scan_data_offset(after) :] == before[scan_data_offset(before) :]
    assert read_tag(after, "Exif", TAG_MAKER_NOTE).value == b"MAKERNOTE\x00\x01\x02\x03"
    assert events == [ImageModified(str(sample_jpeg.resolve()))]


def test_rewrite_to_other_destination_leaves_source(pipeline, sample_jpeg: Path, tmp_path: Path) -> None:
    before = sample_jpeg.read_bytes()
    dest = tmp_path / "copy.jpg"
    pipeline.rewrite_metadata(str(sample_jpeg), str(dest), MetadataPatch(width=64, height=48))

    assert sample_jpeg.read_bytes() == before
    record = read_metadata(dest)
    assert (record.width, record.height) == (64, 48)


def test_rewrite_of_unsupported_file_raises(pipeline, events, tmp_path: Path) -> None:
    path = tmp_path / "a.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)
    with pytest.raises(UnsupportedContainer):
        pipeline.write_embedded_description(str(path), "x")
    assert pipeline.read_embedded_description(str(path)) == ""
    assert events == []


def test_set_capture_date_updates_tag_and_mtime(pipeline, sample_jpeg: Path) -> None:
    when = datetime(2011, 11, 11, 11, 11, 11)
    pipeline.set_capture_date(str(sample_jpeg), when)

    assert read_metadata(sample_jpeg).capture_date == when
    assert os.path.getmtime(sample_jpeg) == pytest.approx(when.timestamp())


def test_rename_emits_event(pipeline, events, sample_jpeg: Path) -> None:
    new = pipeline.rename_image(str(sample_jpeg), "renamed")
    assert Path(new).name == "renamed.jpg"
    assert events == [ImageRenamed(str(sample_jpeg.resolve()), new)]


# ---- description index ----
def test_description_index_lifecycle(pipeline, tmp_path: Path) -> None:
    photo = str(tmp_path / "p.jpg")
    pipeline.save_description(photo, "  Beach day  ")
    assert pipeline.description_for(photo) == "Beach day"
    assert pipeline.save_descriptions() is True
    assert Path(pipeline.description_index_path).exists()

    other = ImagePipeline(settings=pipeline.settings, descriptions=DescriptionIndex({photo: "newer"}))
    assert other.merge_descriptions() is True
    assert other.description_for(photo) == "newer"
    assert other.load_descriptions() is True
    assert other.description_for(photo) == "Beach day"


def test_save_descriptions_reports_failure(pipeline, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    pipeline.save_description(str(tmp_path / "p.jpg"), "text")
    assert pipeline.save_descriptions(str(blocker / "index.json")) is False
    assert pipeline.description_for(str(tmp_path / "p.jpg")) == "text"


def test_load_descriptions_reports_malformed_file(pipeline) -> None:
    Path(pipeline.description_index_path).write_text("not json", encoding="utf-8")
    assert pipeline.load_descriptions() is False


# ---- documents ----
def test_open_crop_commit(pipeline, events, tmp_path: Path) -> None:
    src = _write_real_jpeg(tmp_path / "real.jpg")
    doc = pipeline.open_image(str(src))
    assert doc.size == (64, 48)
    assert pipeline.document is doc

    doc.apply_crop((4, 4, 20, 10))
    out = tmp_path / "cropped.png"
    written = pipeline.commit_image(doc, str(out))

    assert written == str(out.resolve())
    assert doc.dirty is False
    assert doc.path == written
    reopened = pipeline.open_image(written)
    assert reopened.size == (20, 10)
    assert events == [ImageModified(written)]


def test_failed_open_keeps_previous_document(pipeline, tmp_path: Path) -> None:
    src = _write_real_jpeg(tmp_path / "real.jpg")
    doc = pipeline.open_image(str(src))
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"not an image")
    with pytest.raises(DecodeError):
        pipeline.open_image(str(bad))
    assert pipeline.document is doc


def test_commit_without_destination_requires_path(pipeline) -> None:
    session = pipeline.create_paint_session(8, 8)
    doc = session.finish()
    with pytest.raises(ValueError):
        pipeline.commit_image(doc)


def test_save_painting(pipeline, tmp_path: Path) -> None:
    pytest.importorskip("pyvips")
    session = pipeline.create_paint_session()
    assert session.size == (400, 400)
    session.stroke([(10, 10), (100, 100)], color=(0, 0, 255), size=8)

    doc = pipeline.save_painting(session, str(tmp_path / "drawing.jpg"))
    assert pipeline.document is doc
    assert Path(doc.path).exists()
    assert session.closed


def test_open_image_async_installs_latest_only(tmp_path: Path) -> None:
    executor = DeferredExecutor()
    io = FakePool()

    def decode(path: str):
        return path, np.full((4, 6, 3), 7, dtype=np.uint8), None

    loader = Loader(decode, executor=executor, io_pool=io)
    p = ImagePipeline(settings=SettingsManager(str(tmp_path / "s.json")), loader=loader)
    opened, failed = [], []
    p.document_opened.connect(opened.append)
    p.open_failed.connect(lambda path, reason: failed.append((path, reason)))
    try:
        p.open_image_async(str(tmp_path / "a.jpg"))
        io.run_all()
        p.open_image_async(str(tmp_path / "b.jpg"))
        io.run_all()
        executor.resolve(str((tmp_path / "a.jpg").resolve()))
        executor.resolve(str((tmp_path / "b.jpg").resolve()))

        assert len(opened) == 1
        assert opened[0] is p.document
        assert p.document.path == str((tmp_path / "b.jpg").resolve())
        assert p.document.size == (6, 4)
        assert failed == []

        p.close_image()
        assert p.document is None
    finally:
        p.shutdown()


def test_sync_open_supersedes_pending_async_load(tmp_path: Path) -> None:
    src = _write_real_jpeg(tmp_path / "real.jpg")
    executor = DeferredExecutor()
    io = FakePool()

    def decode(path: str):
        return path, np.full((4, 6, 3), 7, dtype=np.uint8), None

    loader = Loader(decode, executor=executor, io_pool=io)
    p = ImagePipeline(settings=SettingsManager(str(tmp_path / "s.json")), loader=loader)
    opened = []
    p.document_opened.connect(opened.append)
    try:
        p.open_image_async(str(src))
        io.run_all()
        edited = p.open_image(str(src))
        edited.apply_crop((0, 0, 20, 20))

        # The slower background decode of the same file finishes afterwards.
        executor.resolve(str(src.resolve()))

        assert p.document is edited
        assert edited.size == (20, 20)
        assert opened == []
    finally:
        p.shutdown()


def test_description_failures_are_signalled(pipeline, tmp_path: Path) -> None:
    failures = []
    pipeline.descriptions_failed.connect(lambda file, reason: failures.append((file, reason)))

    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    target = str(blocker / "index.json")
    pipeline.save_description(str(tmp_path / "p.jpg"), "text")
    assert pipeline.save_descriptions(target) is False

    Path(pipeline.description_index_path).write_text("not json", encoding="utf-8")
    assert pipeline.load_descriptions() is False

    assert [f for f, _ in failures] == [target, pipeline.description_index_path]
    assert all(reason for _, reason in failures)
