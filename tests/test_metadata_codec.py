from datetime import datetime

import pytest

from image_library.errors import CorruptDirectory, DirectoryOverflow, UnsupportedContainer
from image_library.metadata import MetadataPatch, read_metadata, read_record, read_tag, rewrite
from image_library.metadata.containers import extract_exif, scan_data_offset
from tests.helpers.exif_samples import (
    PNG_SIGNATURE,
    TAG_DATETIME,
    TAG_DATETIME_ORIGINAL,
    TAG_DEVICE_SETTING_DESCRIPTION,
    TAG_IMAGE_DESCRIPTION,
    TAG_MAKE,
    TAG_MAKER_NOTE,
    TAG_PRIVATE,
    ascii_entry,
    build_jpeg,
    build_tiff,
    build_webp,
    sample_tiff,
    vp8_payload,
)


def _pixel_stream(data: bytes) -> bytes:
    return data[scan_data_offset(data) :]


def test_read_record_from_jpeg():
    record = read_record(build_jpeg(sample_tiff()))
    assert record.capture_date == datetime(2020, 5, 17, 8, 30, 0)
    assert record.description is None
    assert record.width is None


def test_capture_date_falls_back_to_ifd0_datetime():
    tiff = build_tiff(ifd0=[ascii_entry(TAG_DATETIME, "2018:12:24 18:00:05")])
    assert read_record(build_jpeg(tiff)).capture_date == datetime(2018, 12, 24, 18, 0, 5)


def test_jpeg_without_directory_reads_empty():
    record = read_record(build_jpeg())
    assert record.is_empty


@pytest.mark.parametrize("text", ["A sunny afternoon", "Café au lait, naïve Zürich 日本"])
def test_description_round_trip(text):
    src = build_jpeg(sample_tiff())
    out = rewrite(src, MetadataPatch(description=text))
    assert read_record(out).description == text


def test_rewrite_keeps_unrelated_tags_and_pixels():
    src = build_jpeg(sample_tiff())
    out = rewrite(src, MetadataPatch(capture_date=datetime(2021, 2, 3, 4, 5, 6), description="x"))

    assert read_tag(out, "0th", TAG_MAKE).value == b"Canon\x00"
    assert read_tag(out, "0th", TAG_PRIVATE).value == b"\x01\x02\x03\x04\x05\x06\x07\x08\x09"
    assert read_tag(out, "Exif", TAG_MAKER_NOTE).value == b"MAKERNOTE\x00\x01\x02\x03"
    assert read_tag(out, "0th", TAG_DATETIME).value == b"2019:01:01 00:00:00\x00"
    assert _pixel_stream(out) == _pixel_stream(src)

    record = read_record(out)
    assert record.capture_date == datetime(2021, 2, 3, 4, 5, 6)
    assert record.description == "x"


def test_rewrite_replaces_not_duplicates():
    src = build_jpeg(sample_tiff())
    out = rewrite(src, MetadataPatch(capture_date=datetime(2022, 1, 1)))
    out = rewrite(out, MetadataPatch(capture_date=datetime(2023, 1, 1)))
    assert out.count(b"Exif\x00\x00") == 1
    assert read_record(out).capture_date == datetime(2023, 1, 1)


def test_rewrite_inserts_directory_after_jfif():
    src = build_jpeg()
    out = rewrite(src, MetadataPatch(description="new"))
    assert out[2:4] == b"\xff\xe0"
    # SOI (2) + APP0 segment (18)
    assert out[20:22] == b"\xff\xe1"
    assert read_record(out).description == "new"
    assert _pixel_stream(out) == _pixel_stream(src)


def test_rewrite_without_app0_inserts_after_soi():
    out = rewrite(build_jpeg(app0=False), MetadataPatch(description="d"))
    assert out[2:4] == b"\xff\xe1"


def test_empty_description_clears_without_camera_fallback():
    tiff = build_tiff(ifd0=[ascii_entry(TAG_IMAGE_DESCRIPTION, "OLYMPUS DIGITAL CAMERA")])
    src = build_jpeg(tiff)
    assert read_record(src).description == "OLYMPUS DIGITAL CAMERA"

    out = rewrite(src, MetadataPatch(description="mine"))
    assert read_record(out).description == "mine"
    out = rewrite(out, MetadataPatch(description=""))
    assert read_record(out).description == ""
    assert read_tag(out, "Exif", TAG_DEVICE_SETTING_DESCRIPTION).count == 0
    # The camera's own text is left where it was.
    assert read_tag(out, "0th", TAG_IMAGE_DESCRIPTION).value == b"OLYMPUS DIGITAL CAMERA\x00"


def test_dimensions_round_trip_short_and_long():
    out = rewrite(build_jpeg(), MetadataPatch(width=4000, height=70000))
    record = read_record(out)
    assert (record.width, record.height) == (4000, 70000)


def test_patch_rejects_bad_dimensions():
    with pytest.raises(ValueError):
        MetadataPatch(width=0)
    with pytest.raises(ValueError):
        MetadataPatch(height=-3)


def test_big_endian_directory_stays_big_endian():
    src = build_jpeg(sample_tiff(bo=">"))
    out = rewrite(src, MetadataPatch(description="big"))
    assert extract_exif(out)[:2] == b"MM"
    assert read_tag(out, "0th", TAG_MAKE).value == b"Canon\x00"
    assert read_record(out).capture_date == datetime(2020, 5, 17, 8, 30, 0)


def test_corrupt_directory_is_reported():
    src = build_jpeg(b"XX\x00\x00not a tiff header")
    with pytest.raises(CorruptDirectory):
        read_record(src)
    with pytest.raises(CorruptDirectory):
        rewrite(src, MetadataPatch(description="x"))


def test_offset_past_end_is_corrupt():
    tiff = bytearray(sample_tiff())
    # Point IFD0 past the end of the payload.
    tiff[4:8] = (len(tiff) + 100).to_bytes(4, "little")
    with pytest.raises(CorruptDirectory):
        read_record(build_jpeg(bytes(tiff)))


def test_directory_overflow():
    with pytest.raises(DirectoryOverflow):
        rewrite(build_jpeg(), MetadataPatch(description="x" * 70000))


def test_png_is_unsupported(tmp_path):
    data = PNG_SIGNATURE + b"\x00" * 32
    with pytest.raises(UnsupportedContainer):
        read_record(data)
    with pytest.raises(UnsupportedContainer):
        rewrite(data, MetadataPatch(description="x"))

    path = tmp_path / "a.png"
    path.write_bytes(data)
    assert read_metadata(path).is_empty


def test_read_from_webp_chunk():
    record = read_record(build_webp(sample_tiff()))
    assert record.capture_date == datetime(2020, 5, 17, 8, 30, 0)
    assert read_record(build_webp()).is_empty


def test_description_tag_is_read_as_utf8():
    out = rewrite(build_jpeg(), MetadataPatch(description="ünïcode"))
    entry = read_tag(out, "Exif", TAG_DEVICE_SETTING_DESCRIPTION)
    assert entry.value == "ünïcode".encode()
    assert read_tag(out, "Exif", TAG_DATETIME_ORIGINAL) is None


def _webp_chunk(data: bytes, fourcc: bytes) -> bytes | None:
    pos = 12
    while pos + 8 <= len(data):
        size = int.from_bytes(data[pos + 4 : pos + 8], "little")
        if data[pos : pos + 4] == fourcc:
            return data[pos + 8 : pos + 8 + size]
        pos += 8 + size + (size & 1)
    return None


@pytest.mark.parametrize("text", ["Café", "日本の夏"])
def test_webp_description_round_trip(text):
    out = rewrite(build_webp(sample_tiff()), MetadataPatch(description=text))
    assert out[:4] == b"RIFF" and out[8:12] == b"WEBP"
    assert read_record(out).description == text


def test_webp_rewrite_keeps_unrelated_tags_and_bitstream():
    src = build_webp(sample_tiff())
    out = rewrite(src, MetadataPatch(capture_date=datetime(2021, 2, 3, 4, 5, 6), description="x"))

    assert read_tag(out, "0th", TAG_MAKE).value == b"Canon\x00"
    assert read_tag(out, "0th", TAG_PRIVATE).value == b"\x01\x02\x03\x04\x05\x06\x07\x08\x09"
    assert read_tag(out, "Exif", TAG_MAKER_NOTE).value == b"MAKERNOTE\x00\x01\x02\x03"
    assert _webp_chunk(out, b"VP8 ") == _webp_chunk(src, b"VP8 ") == vp8_payload()
    assert out.count(b"EXIF") == 1
    assert int.from_bytes(out[4:8], "little") == len(out) - 8
    assert read_record(out).capture_date == datetime(2021, 2, 3, 4, 5, 6)


def test_webp_without_directory_gets_one():
    out = rewrite(build_webp(), MetadataPatch(description="new"))
    assert _webp_chunk(out, b"EXIF") is not None
    # VP8X flags advertise the EXIF chunk.
    assert _webp_chunk(out, b"VP8X")[0] & 0x08
    assert _webp_chunk(out, b"VP8 ") == vp8_payload()
    assert read_record(out).description == "new"
