import os

from services.storage_service import StorageService, annotations_key, pending_key


def test_keys():
    assert annotations_key(3) == "annotations-page-3"
    assert pending_key(3) == "pending-annotations-page-3"


def test_save_and_load_round_trip(tmp_path):
    service = StorageService(str(tmp_path / "nested" / "data"))
    assert os.path.isdir(service.base_path)
    assert service.save_json("sample", {"text": "日本語"})
    assert service.load_json("sample") == {"text": "日本語"}


def test_missing_and_corrupt_files_load_as_none(tmp_path):
    service = StorageService(str(tmp_path))
    assert service.load_json("missing") is None
    with open(service.get_path("broken"), "w", encoding="utf-8") as f:
        f.write("{not json")
    assert service.load_json("broken") is None
    assert service.load_list("broken") == []


def test_load_list_rejects_non_list(tmp_path):
    service = StorageService(str(tmp_path))
    service.save_json("obj", {"a": 1})
    assert service.load_list("obj") == []


def test_unserializable_data_is_reported(tmp_path):
    service = StorageService(str(tmp_path))
    assert not service.save_json("bad", {"value": object()})


def test_remove(tmp_path):
    service = StorageService(str(tmp_path))
    service.save_json("gone", [])
    service.remove("gone")
    service.remove("gone")
    assert service.load_json("gone") is None


def test_undecodable_file_loads_as_empty(tmp_path):
    service = StorageService(str(tmp_path))
    with open(service.get_path(annotations_key(3)), "wb") as f:
        f.write(b"[\xff\xfe garbage")
    assert service.load_json(annotations_key(3)) is None
    assert service.load_list(annotations_key(3)) == []
