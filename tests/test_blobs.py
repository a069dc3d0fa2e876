"""Unit tests for blobs/store.py -- LocalBlobStore key handling."""

import pytest

from blobs.store import LocalBlobStore


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(tmp_path / "root", "https://files.test/uploads/")


def test_put_writes_bytes_and_returns_url(blobs, tmp_path):
    url = blobs.put("verifications/id.png", b"\x89PNG")
    assert url == "https://files.test/uploads/verifications/id.png"
    assert (tmp_path / "root" / "verifications" / "id.png").read_bytes() == b"\x89PNG"


def test_put_overwrites_existing_key(blobs, tmp_path):
    blobs.put("verifications/id.png", b"one")
    blobs.put("verifications/id.png", b"two")
    assert (tmp_path / "root" / "verifications" / "id.png").read_bytes() == b"two"


def test_url_is_quoted(blobs):
    assert blobs.put("verifications/my id.png", b"x").endswith("/verifications/my%20id.png")


@pytest.mark.parametrize(
    "key",
    [
        "../escape.png",
        "verifications/../../escape.png",
        "/etc/passwd",
        ".",
        "verifications/.",
        "verifications/..",
        "verifications//id.png",
        "verifications\\id.png",
    ],
)
def test_invalid_keys_rejected(blobs, key):
    with pytest.raises(ValueError):
        blobs.put(key, b"x")


def test_dot_key_cannot_block_later_uploads(blobs, tmp_path):
    with pytest.raises(ValueError):
        blobs.put("verifications/.", b"x")
    blobs.put("verifications/id.png", b"ok")
    assert (tmp_path / "root" / "verifications" / "id.png").read_bytes() == b"ok"


def test_existing_directory_is_not_a_key(blobs):
    blobs.put("verifications/a1/id.png", b"x")
    with pytest.raises(ValueError):
        blobs.put("verifications/a1", b"x")


def test_symlinked_directory_rejected(blobs, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (tmp_path / "root" / "linked").symlink_to(outside, target_is_directory=True)
    with pytest.raises(ValueError):
        blobs.put("linked/id.png", b"x")
    assert not (outside / "id.png").exists()
