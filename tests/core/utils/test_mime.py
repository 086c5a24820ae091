import pytest

from core.utils.mime import detect_mime_type, mime_type_for_name


def test_detect_jpeg() -> None:
    assert detect_mime_type(b"\xff\xd8\xff\xe0abc") == "image/jpeg"


def test_detect_png() -> None:
    assert detect_mime_type(b"\x89PNG\r\n\x1a\nxxx") == "image/png"


def test_detect_gif() -> None:
    assert detect_mime_type(b"GIF89a...") == "image/gif"


def test_detect_webp() -> None:
    assert detect_mime_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"


def test_riff_without_webp_is_rejected() -> None:
    with pytest.raises(ValueError):
        detect_mime_type(b"RIFF\x00\x00\x00\x00WAVEfmt ")


def test_unsupported_type() -> None:
    with pytest.raises(ValueError):
        detect_mime_type(b"random-bytes")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("shoe.jpg", "image/jpeg"),
        ("shoe.JPEG", "image/jpeg"),
        ("logo.png", "image/png"),
        ("anim.gif", "image/gif"),
        ("hero.webp", "image/webp"),
        ("notes.txt", "application/octet-stream"),
        ("no-extension", "application/octet-stream"),
    ],
)
def test_mime_type_for_name(name: str, expected: str) -> None:
    assert mime_type_for_name(name) == expected
