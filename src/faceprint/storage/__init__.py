"""Persistence for employee records, attendance events and uploaded photos."""

from .records import (
    RecordStore,
    Employee,
    AttendanceRecord,
    RecordStoreError,
    EmployeeNotFoundError,
    AttendanceNotFoundError,
    DuplicateEmailError,
    STATUS_SUCCESS,
    STATUS_FAILED,
)
from .uploads import InvalidUploadError, save_upload, delete_file

__all__ = [
    "RecordStore",
    "Employee",
    "AttendanceRecord",
    "RecordStoreError",
    "EmployeeNotFoundError",
    "AttendanceNotFoundError",
    "DuplicateEmailError",
    "STATUS_SUCCESS",
    "STATUS_FAILED",
    "InvalidUploadError",
    "save_upload",
    "delete_file",
]
