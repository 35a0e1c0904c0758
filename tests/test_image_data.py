import base64

import pytest

from app.errors import InvalidImageError
from app.models import ImageInput
from app.utils.image_data import decoded_size, encode_data_uri, parse_data_uri


def test_encode_produces_a_data_uri():
    uri = encode_data_uri(b"abc", "image/png")
    assert uri == "data:image/png;base64," + base64.b64encode(b"abc").decode()


@pytest.mark.parametrize("size", [1, 2, 3, 4, 1000, 4 * 1024 * 1024])
def test_decoded_size_matches_the_original_bytes(size):
    assert decoded_size(encode_data_uri(b"x" * size, "image/jpeg")) == size


def test_parse_returns_lowercased_media_type():
    media_type, payload = parse_data_uri("data:IMAGE/WEBP;base64,AAAA")
    assert media_type == "image/webp"
    assert payload == "AAAA"


@pytest.mark.parametrize("bad", ["", "not a uri", "data:image/png,AAAA", "data:;base64,AAAA"])
def test_malformed_uris_are_rejected(bad):
    with pytest.raises(InvalidImageError):
        parse_data_uri(bad)


def test_empty_upload_is_rejected():
    with pytest.raises(InvalidImageError):
        encode_data_uri(b"", "image/png")


def test_image_input_reports_size_and_type():
    image = ImageInput.from_bytes(b"\x00" * 3000, "image/jpeg")
    assert image.media_type == "image/jpeg"
    assert image.size_bytes == 3000
