"""
Employee registration and photo check-in on top of the fingerprint engine.

Image work runs on a thread pool sized to the machine. A verification that
does not finish within ``Settings.verify_timeout`` is reported as an
extraction failure, never as a rejected check-in.
"""

import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .config import Settings
from .fingerprint import ExtractionError, VerificationResult, register, verify
from .logging import get_logger
from .storage import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    AttendanceNotFoundError,
    AttendanceRecord,
    Employee,
    RecordStore,
    delete_file,
    save_upload,
)

logger = get_logger(__name__)

T = TypeVar("T")


class ValidationError(ValueError):
    """Raised when required registration fields are missing."""


class VerificationTimeoutError(ExtractionError):
    """Raised when image evaluation exceeds the configured deadline."""


@dataclass(frozen=True)
class CheckInOutcome:
    """Result of an evaluated check-in, recorded as success or failed."""
    attendance: AttendanceRecord
    user_name: str
    verification: bool
    similarity_score: float
    threshold: float

    @property
    def message(self) -> str:
        if self.verification:
            return "Photo verified successfully. Check-in recorded."
        return "Photo verification failed. Similarity score too low."

    def to_response(self) -> Dict[str, Any]:
        return {
            "attendance": self.attendance.to_response(self.user_name),
            "verification": self.verification,
            "similarity_score": round(self.similarity_score, 4),
            "threshold": self.threshold,
            "message": self.message,
        }


class AttendanceService:
    def __init__(self, store: RecordStore, settings: Settings, max_workers: Optional[int] = None) -> None:
        self._store = store
        self._settings = settings
        self._config = settings.verification_config()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or os.cpu_count() or 1,
            thread_name_prefix="faceprint-verify",
        )

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def threshold(self) -> float:
        return self._config.threshold

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # Employees

    def register_employee(self, name: str, email: str, phone: str, filename: str, data: bytes) -> Employee:
        """
        Store a reference photo and create the employee with its descriptor.

        Raises:
            ValidationError: If name or email is blank
            InvalidUploadError: If the photo is not an accepted upload
            ExtractionError: If the photo cannot be decoded or hashed
            DuplicateEmailError: If the email is already registered
        """
        name, email = (name or "").strip(), (email or "").strip()
        if not name or not email:
            raise ValidationError("Name and email are required")

        image_path = save_upload(filename, data, self._settings.upload_dir)
        try:
            descriptor = self._run(register, image_path)
            employee = self._store.add_employee(
                name=name,
                email=email,
                phone=(phone or "").strip(),
                face_image_path=str(image_path),
                face_descriptor=descriptor,
            )
        except Exception:
            delete_file(image_path)
            raise

        logger.info(f"Employee registered: {employee.name} (ID: {employee.id})")
        return employee

    def replace_reference(self, employee_id: int, filename: str, data: bytes) -> Employee:
        """Re-register an employee's reference photo, e.g. after descriptor corruption."""
        employee = self._store.get_employee(employee_id)

        image_path = save_upload(filename, data, self._settings.upload_dir)
        try:
            descriptor = self._run(register, image_path)
            updated = self._store.update_descriptor(employee.id, str(image_path), descriptor)
        except Exception:
            delete_file(image_path)
            raise

        logger.info(f"Reference photo replaced for employee {employee.id}")
        return updated

    def get_employee(self, employee_id: int) -> Employee:
        return self._store.get_employee(employee_id)

    def list_employees(self) -> List[Employee]:
        return self._store.list_employees()

    # Attendance

    def check_in(self, user_id: int, filename: str, data: bytes) -> CheckInOutcome:
        """
        Verify a selfie against the employee's reference and record the attempt.

        Failed matches are recorded with status "failed". Errors that prevent
        evaluation (bad upload, undecodable image, corrupt stored descriptor,
        timeout) propagate and leave no attendance record.

        Raises:
            EmployeeNotFoundError: If user_id is unknown
            InvalidUploadError: If the selfie is not an accepted upload
            ExtractionError: If the selfie cannot be evaluated in time
            MalformedDescriptorError: If the stored descriptor is corrupt
        """
        employee = self._store.get_employee(user_id)

        selfie_path = save_upload(filename, data, self._settings.upload_dir)
        try:
            result: VerificationResult = self._run(verify, selfie_path, employee.face_descriptor, self._config)
        except Exception:
            delete_file(selfie_path)
            raise

        status = STATUS_SUCCESS if result.is_match else STATUS_FAILED
        record = self._store.add_attendance(
            user_id=employee.id,
            face_image_path=str(selfie_path),
            similarity_score=result.score,
            status=status,
        )

        logger.info(
            f"Check-in: {employee.name} (ID: {employee.id}) - Status: {status}, "
            f"Similarity: {result.score * 100:.2f}%"
        )
        return CheckInOutcome(
            attendance=record,
            user_name=employee.name,
            verification=result.is_match,
            similarity_score=result.score,
            threshold=self._config.threshold,
        )

    def attendance_history(self, user_id: Optional[int] = None, limit: int = 50) -> List[Dict[str, Any]]:
        records = self._store.list_attendance(user_id=user_id, limit=limit)
        names = {e.id: e.name for e in self._store.list_employees()}
        return [record.to_response(names.get(record.user_id, "")) for record in records]

    def today_attendance(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Latest successful check-in since local midnight."""
        employee = self._store.get_employee(user_id)

        now = (now or datetime.now()).astimezone()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        record = self._store.latest_successful_since(employee.id, start_of_day)
        if record is None:
            raise AttendanceNotFoundError("No attendance record found for today")
        return record.to_response(employee.name)

    # Internals

    def _run(self, fn: Callable[..., T], *args: Any) -> T:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self._settings.verify_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise VerificationTimeoutError(
                f"Image evaluation exceeded {self._settings.verify_timeout}s"
            ) from None
