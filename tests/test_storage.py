import pytest

from app.chms.storage import LocalStorage, S3Storage, StorageError, normalize_key, storage_from_config


def test_normalize_key():
    assert normalize_key("/members//12/./photo.jpg") == "members/12/photo.jpg"
    assert normalize_key("members\\12\\photo.jpg") == "members/12/photo.jpg"
    for bad in ("", "/", "../etc/passwd", "members/../../x"):
        with pytest.raises(StorageError):
            normalize_key(bad)


def test_local_storage_roundtrip(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("members/1/photo.png", b"png-bytes", content_type="image/png")
    assert storage.exists("members/1/photo.png")
    with storage.open("members/1/photo.png") as f:
        assert f.read() == b"png-bytes"
    assert [p.name for p in (tmp_path / "members" / "1").iterdir()] == ["photo.png"]

    storage.delete("members/1/photo.png")
    storage.delete("members/1/photo.png")
    assert not storage.exists("members/1/photo.png")
    with pytest.raises(StorageError):
        storage.open("members/1/photo.png")


def test_storage_from_config(tmp_path):
    assert isinstance(storage_from_config({"STORAGE_DIR": str(tmp_path)}), LocalStorage)
    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": "church-files", "S3_ENDPOINT": "fra1.example.com"})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "church-files"
    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "s3"})
