import base64
import io

import pytest
from werkzeug.datastructures import FileStorage

from conftest import JPEG_BYTES, PNG_BYTES
from sellfast.images import ImageFile, resolve_image, sniff_mime, strip_data_uri


@pytest.mark.parametrize("data,expected", [
    (JPEG_BYTES, "image/jpeg"),
    (PNG_BYTES, "image/png"),
    (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
    (b"GIF89a" + b"\x00" * 8, "image/gif"),
])
def test_sniff_mime_from_magic_bytes(data, expected):
    assert sniff_mime(data, "whatever.bin") == expected


def test_sniff_mime_falls_back_to_extension():
    assert sniff_mime(b"\x00\x01", "photo.JPG") == "image/jpeg"


def test_sniff_mime_rejects_non_images():
    with pytest.raises(ValueError):
        sniff_mime(b"%PDF-1.7", "invoice.pdf")


def test_strip_data_uri():
    assert strip_data_uri("data:image/jpeg;base64,QUJD") == "QUJD"
    assert strip_data_uri("data:image/webp;base64,QUJD") == "QUJD"
    assert strip_data_uri("QUJD") == "QUJD"


def test_image_file_encodings(png_image):
    assert png_image.mime_type == "image/png"
    assert base64.b64decode(png_image.payload) == PNG_BYTES
    assert png_image.base64_data == "data:image/png;base64," + png_image.payload
    assert strip_data_uri(png_image.base64_data) == png_image.payload


def test_image_file_rejects_empty_bytes():
    with pytest.raises(ValueError):
        ImageFile.from_bytes(b"", "empty.jpg")


def test_image_file_from_upload():
    upload = FileStorage(stream=io.BytesIO(JPEG_BYTES), filename="shoe.jpg", content_type="image/jpeg")
    image = ImageFile.from_upload(upload)
    assert image.filename == "shoe.jpg"
    assert image.data == JPEG_BYTES


def test_image_file_from_upload_requires_a_file():
    with pytest.raises(ValueError):
        ImageFile.from_upload(FileStorage(stream=io.BytesIO(b""), filename=""))


def test_from_path_resolves_images_folder(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "lamp.png").write_bytes(PNG_BYTES)

    image = ImageFile.from_path("lamp.png")
    assert image.mime_type == "image/png"
    assert resolve_image("missing.png") is None
    with pytest.raises(ValueError):
        ImageFile.from_path("missing.png")
