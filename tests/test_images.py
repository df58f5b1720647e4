import base64

import pytest

from tutor_live.client.images import (
    load_image,
    load_images,
    load_images_from_directory,
    validate_image,
)
from tutor_live.errors import ErrorCode, ImageValidationError


def test_load_png_encodes_base64_with_mime_type(tmp_path):
    """Test a staged file becomes an inline image."""
    path = tmp_path / "question.PNG"
    path.write_bytes(b"\x89PNG-data")

    image = load_image(path)

    assert image.mime_type == "image/png"
    assert base64.b64decode(image.base64) == b"\x89PNG-data"


def test_unsupported_type_is_rejected(tmp_path):
    """Test only jpeg/png/gif/webp are accepted."""
    path = tmp_path / "scan.bmp"
    path.write_bytes(b"BM")

    with pytest.raises(ImageValidationError) as exc_info:
        load_image(path)

    assert exc_info.value.code == ErrorCode.IMAGE_TYPE_UNSUPPORTED


def test_size_limit():
    """Test images above the limit are rejected."""
    validate_image("image/webp", 10 * 1024 * 1024)
    with pytest.raises(ImageValidationError) as exc_info:
        validate_image("image/webp", 10 * 1024 * 1024 + 1)
    assert exc_info.value.code == ErrorCode.IMAGE_TOO_LARGE


def test_missing_file(tmp_path):
    """Test a missing path is reported."""
    with pytest.raises(ImageValidationError) as exc_info:
        load_image(tmp_path / "nope.jpg")
    assert exc_info.value.code == ErrorCode.IMAGE_NOT_FOUND


def test_directory_loads_jpg_jpeg_png_in_name_order(tmp_path):
    """Test directory staging picks photo formats and skips the rest."""
    (tmp_path / "b.jpeg").write_bytes(b"b")
    (tmp_path / "a.png").write_bytes(b"a")
    (tmp_path / "c.JPG").write_bytes(b"c")
    (tmp_path / "notes.txt").write_bytes(b"skip")
    (tmp_path / "anim.gif").write_bytes(b"skip")

    images = load_images_from_directory(tmp_path)

    assert [base64.b64decode(image.base64) for image in images] == [b"a", b"b", b"c"]
    assert [image.mime_type for image in images] == [
        "image/png",
        "image/jpeg",
        "image/jpeg",
    ]


def test_directory_skips_oversized_files(tmp_path):
    """Test one bad file does not block the others."""
    (tmp_path / "big.png").write_bytes(b"x" * 2048)
    (tmp_path / "small.png").write_bytes(b"x")

    images = load_images_from_directory(tmp_path, max_mb=1 / 1024)

    assert len(images) == 1


def test_missing_directory_yields_nothing(tmp_path):
    """Test a missing staging directory is not fatal."""
    assert load_images_from_directory(tmp_path / "input_images") == []


def test_load_images_mixes_files_and_directories(tmp_path):
    """Test command-line paths may be files or directories."""
    folder = tmp_path / "set"
    folder.mkdir()
    (folder / "one.jpg").write_bytes(b"1")
    single = tmp_path / "two.webp"
    single.write_bytes(b"2")

    images = load_images([str(folder), str(single)])

    assert [image.mime_type for image in images] == ["image/jpeg", "image/webp"]
