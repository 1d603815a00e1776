"""
JSON-backed persistence for employees and attendance events.

Employees live in ``employees.json``; attendance events are appended one
JSON object per line to ``attendance.jsonl``. Both are loaded into memory
when the store opens and every write goes through a single lock.
"""

import json
import os
import threading
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..logging import get_logger

logger = get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class RecordStoreError(Exception):
    """Raised when the store files cannot be read or written."""


class EmployeeNotFoundError(LookupError):
    """Raised when no employee has the requested id."""


class AttendanceNotFoundError(LookupError):
    """Raised when no attendance record matches a query."""


class DuplicateEmailError(ValueError):
    """Raised when registering an email that already belongs to an employee."""


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class Employee:
    """Registered employee with the encoded reference descriptor."""
    id: int
    name: str
    email: str
    phone: str
    face_image_path: str
    face_descriptor: str                    # encoded FaceDescriptor text
    created_at: datetime
    updated_at: datetime

    def to_response(self) -> Dict[str, Any]:
        """Public view; the descriptor is never exposed."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "face_image_path": self.face_image_path,
            "created_at": self.created_at.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Employee":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            email=data["email"],
            phone=data.get("phone", ""),
            face_image_path=data["face_image_path"],
            face_descriptor=data.get("face_descriptor", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass(frozen=True)
class AttendanceRecord:
    """One check-in attempt that was evaluated."""
    id: int
    user_id: int
    check_in_time: datetime
    face_image_path: str
    similarity_score: float                 # 0.0 - 1.0
    status: str                             # success / failed
    created_at: datetime

    def to_response(self, user_name: str = "") -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": user_name,
            "check_in_time": self.check_in_time.isoformat(),
            "face_image_path": self.face_image_path,
            "similarity_score": self.similarity_score,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["check_in_time"] = self.check_in_time.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttendanceRecord":
        return cls(
            id=int(data["id"]),
            user_id=int(data["user_id"]),
            check_in_time=datetime.fromisoformat(data["check_in_time"]),
            face_image_path=data.get("face_image_path", ""),
            similarity_score=float(data["similarity_score"]),
            status=data["status"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )


class RecordStore:
    """In-memory view of the employee and attendance files."""

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)
        self._employees_path = self._data_dir / "employees.json"
        self._attendance_path = self._data_dir / "attendance.jsonl"
        self._lock = threading.Lock()
        self._employees: Dict[int, Employee] = {}
        self._attendance: List[AttendanceRecord] = []

        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def is_available(self) -> bool:
        """True when the data directory exists and is writable."""
        return self._data_dir.is_dir() and os.access(self._data_dir, os.W_OK)

    # Employees

    def add_employee(
        self,
        name: str,
        email: str,
        phone: str,
        face_image_path: str,
        face_descriptor: str,
    ) -> Employee:
        with self._lock:
            normalized = email.strip().lower()
            if any(e.email.lower() == normalized for e in self._employees.values()):
                raise DuplicateEmailError(f"Email already registered: {email}")

            now = _now()
            employee = Employee(
                id=max(self._employees, default=0) + 1,
                name=name,
                email=email.strip(),
                phone=phone,
                face_image_path=face_image_path,
                face_descriptor=face_descriptor,
                created_at=now,
                updated_at=now,
            )
            self._employees[employee.id] = employee
            self._write_employees()

        logger.info(f"Stored employee {employee.id} ({employee.email})")
        return employee

    def update_descriptor(self, employee_id: int, face_image_path: str, face_descriptor: str) -> Employee:
        """Replace an employee's reference photo and descriptor."""
        with self._lock:
            employee = self._get(employee_id)
            updated = replace(
                employee,
                face_image_path=face_image_path,
                face_descriptor=face_descriptor,
                updated_at=_now(),
            )
            self._employees[employee_id] = updated
            self._write_employees()
        return updated

    def get_employee(self, employee_id: int) -> Employee:
        with self._lock:
            return self._get(employee_id)

    def list_employees(self) -> List[Employee]:
        with self._lock:
            return [self._employees[k] for k in sorted(self._employees)]

    # Attendance

    def add_attendance(
        self,
        user_id: int,
        face_image_path: str,
        similarity_score: float,
        status: str,
        check_in_time: Optional[datetime] = None,
    ) -> AttendanceRecord:
        if status not in (STATUS_SUCCESS, STATUS_FAILED):
            raise ValueError(f"Unknown attendance status: {status}")

        with self._lock:
            self._get(user_id)
            now = _now()
            record = AttendanceRecord(
                id=len(self._attendance) + 1,
                user_id=user_id,
                check_in_time=check_in_time or now,
                face_image_path=face_image_path,
                similarity_score=similarity_score,
                status=status,
                created_at=now,
            )
            try:
                with open(self._attendance_path, 'a', encoding='utf-8') as f:
                    f.write(json.dumps(record.to_dict(), ensure_ascii=False) + '\n')
            except OSError as exc:
                raise RecordStoreError(f"Failed to append to {self._attendance_path}: {exc}") from exc
            self._attendance.append(record)

        return record

    def list_attendance(self, user_id: Optional[int] = None, limit: int = 50) -> List[AttendanceRecord]:
        """Attendance records, newest check-in first."""
        with self._lock:
            records = [r for r in self._attendance if user_id is None or r.user_id == user_id]
        records.sort(key=lambda r: (r.check_in_time, r.id), reverse=True)
        return records[:max(limit, 0)]

    def latest_successful_since(self, user_id: int, since: datetime) -> Optional[AttendanceRecord]:
        with self._lock:
            matches = [
                r for r in self._attendance
                if r.user_id == user_id and r.status == STATUS_SUCCESS and r.check_in_time >= since
            ]
        if not matches:
            return None
        return max(matches, key=lambda r: (r.check_in_time, r.id))

    # Internals

    def _get(self, employee_id: int) -> Employee:
        try:
            return self._employees[employee_id]
        except KeyError:
            raise EmployeeNotFoundError(f"Employee not found: {employee_id}") from None

    def _load(self) -> None:
        try:
            if self._employees_path.exists():
                with open(self._employees_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                for item in data.get("employees", []):
                    employee = Employee.from_dict(item)
                    self._employees[employee.id] = employee

            if self._attendance_path.exists():
                with open(self._attendance_path, 'r', encoding='utf-8') as f:
                    for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        self._attendance.append(AttendanceRecord.from_dict(json.loads(line)))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise RecordStoreError(f"Failed to load records from {self._data_dir}: {exc}") from exc

        logger.debug(f"Loaded {len(self._employees)} employees and {len(self._attendance)} attendance records")

    def _write_employees(self) -> None:
        payload = {"employees": [self._employees[k].to_dict() for k in sorted(self._employees)]}
        tmp_path = self._employees_path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._employees_path)
        except OSError as exc:
            raise RecordStoreError(f"Failed to write {self._employees_path}: {exc}") from exc
