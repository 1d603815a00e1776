"""Tests for upload handling and the JSON record store."""

import json
import re
from datetime import datetime, timedelta

import pytest

from faceprint.storage import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    DuplicateEmailError,
    EmployeeNotFoundError,
    InvalidUploadError,
    RecordStore,
    RecordStoreError,
    delete_file,
    save_upload,
)


class TestUploads:
    def test_save_upload_unique_name(self, tmp_path):
        upload_dir = tmp_path / "uploads"

        first = save_upload("selfie.jpg", b"data", upload_dir)
        second = save_upload("selfie.jpg", b"data", upload_dir)

        assert first != second
        assert first.parent == upload_dir
        assert re.fullmatch(r"\d{8}_\d{6}_[0-9a-f]{8}\.jpg", first.name)
        assert first.read_bytes() == b"data"

    @pytest.mark.parametrize("filename", ["photo.PNG", "photo.Jpeg", "x.jpg"])
    def test_accepted_extensions(self, tmp_path, filename):
        path = save_upload(filename, b"data", tmp_path)
        assert path.suffix == path.suffix.lower()

    @pytest.mark.parametrize("filename", ["photo.gif", "photo", "", "archive.png.zip"])
    def test_rejected_extensions(self, tmp_path, filename):
        with pytest.raises(InvalidUploadError):
            save_upload(filename, b"data", tmp_path)

    def test_rejects_empty_upload(self, tmp_path):
        with pytest.raises(InvalidUploadError):
            save_upload("photo.png", b"", tmp_path)

    def test_delete_file(self, tmp_path):
        path = save_upload("photo.png", b"data", tmp_path)

        delete_file(path)
        delete_file(path)

        assert not path.exists()


class TestEmployees:
    def test_add_and_get(self, tmp_path):
        store = RecordStore(tmp_path)

        employee = store.add_employee("Ana", "ana@example.com", "555", "/u/a.png", "{}")

        assert employee.id == 1
        assert store.get_employee(1) == employee
        assert store.list_employees() == [employee]

    def test_ids_increment(self, tmp_path):
        store = RecordStore(tmp_path)

        store.add_employee("Ana", "ana@example.com", "", "/u/a.png", "{}")
        second = store.add_employee("Budi", "budi@example.com", "", "/u/b.png", "{}")

        assert second.id == 2

    def test_duplicate_email_case_insensitive(self, tmp_path):
        store = RecordStore(tmp_path)
        store.add_employee("Ana", "ana@example.com", "", "/u/a.png", "{}")

        with pytest.raises(DuplicateEmailError):
            store.add_employee("Ana Two", "ANA@example.com ", "", "/u/b.png", "{}")

    def test_unknown_employee(self, tmp_path):
        with pytest.raises(EmployeeNotFoundError):
            RecordStore(tmp_path).get_employee(42)

    def test_persists_across_reopen(self, tmp_path):
        store = RecordStore(tmp_path)
        employee = store.add_employee("Ana", "ana@example.com", "555", "/u/a.png", '{"x":1}')

        reopened = RecordStore(tmp_path)

        assert reopened.get_employee(employee.id) == employee

    def test_update_descriptor(self, tmp_path):
        store = RecordStore(tmp_path)
        employee = store.add_employee("Ana", "ana@example.com", "", "/u/a.png", "old")

        updated = store.update_descriptor(employee.id, "/u/new.png", "new")

        assert updated.face_descriptor == "new"
        assert updated.face_image_path == "/u/new.png"
        assert updated.created_at == employee.created_at
        assert RecordStore(tmp_path).get_employee(employee.id).face_descriptor == "new"

    def test_response_hides_descriptor(self, tmp_path):
        store = RecordStore(tmp_path)
        employee = store.add_employee("Ana", "ana@example.com", "", "/u/a.png", "secret")

        response = employee.to_response()

        assert "face_descriptor" not in response
        assert response["name"] == "Ana"

    def test_corrupt_file_raises(self, tmp_path):
        (tmp_path / "employees.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(RecordStoreError):
            RecordStore(tmp_path)


class TestAttendance:
    @pytest.fixture
    def store(self, tmp_path):
        store = RecordStore(tmp_path)
        store.add_employee("Ana", "ana@example.com", "", "/u/a.png", "{}")
        store.add_employee("Budi", "budi@example.com", "", "/u/b.png", "{}")
        return store

    def test_add_attendance(self, store):
        record = store.add_attendance(1, "/u/s.png", 0.97, STATUS_SUCCESS)

        assert record.id == 1
        assert record.user_id == 1
        assert record.status == STATUS_SUCCESS
        assert record.check_in_time.tzinfo is not None

    def test_unknown_user(self, store):
        with pytest.raises(EmployeeNotFoundError):
            store.add_attendance(99, "/u/s.png", 0.5, STATUS_FAILED)

    def test_unknown_status(self, store):
        with pytest.raises(ValueError):
            store.add_attendance(1, "/u/s.png", 0.5, "maybe")

    def test_list_newest_first_with_filter_and_limit(self, store):
        base = datetime.now().astimezone()
        store.add_attendance(1, "a", 0.9, STATUS_SUCCESS, check_in_time=base - timedelta(hours=2))
        store.add_attendance(2, "b", 0.2, STATUS_FAILED, check_in_time=base - timedelta(hours=1))
        store.add_attendance(1, "c", 0.8, STATUS_SUCCESS, check_in_time=base)

        assert [r.face_image_path for r in store.list_attendance()] == ["c", "b", "a"]
        assert [r.face_image_path for r in store.list_attendance(user_id=1)] == ["c", "a"]
        assert [r.face_image_path for r in store.list_attendance(limit=1)] == ["c"]

    def test_latest_successful_since(self, store):
        base = datetime.now().astimezone()
        store.add_attendance(1, "old", 0.9, STATUS_SUCCESS, check_in_time=base - timedelta(days=1))
        store.add_attendance(1, "fail", 0.1, STATUS_FAILED, check_in_time=base)

        since = base - timedelta(hours=1)
        assert store.latest_successful_since(1, since) is None

        store.add_attendance(1, "new", 0.9, STATUS_SUCCESS, check_in_time=base)
        assert store.latest_successful_since(1, since).face_image_path == "new"

    def test_attendance_log_is_jsonl(self, store, tmp_path):
        store.add_attendance(1, "a", 0.9, STATUS_SUCCESS)
        store.add_attendance(2, "b", 0.1, STATUS_FAILED)

        lines = (tmp_path / "attendance.jsonl").read_text(encoding="utf-8").splitlines()

        assert [json.loads(line)["face_image_path"] for line in lines] == ["a", "b"]
        assert len(RecordStore(tmp_path).list_attendance()) == 2
