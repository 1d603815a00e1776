"""HTTP API for employee registration and photo check-in."""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .fingerprint import ExtractionError, MalformedDescriptorError
from .logging import get_logger
from .service import AttendanceService, ValidationError
from .storage import (
    AttendanceNotFoundError,
    DuplicateEmailError,
    EmployeeNotFoundError,
    InvalidUploadError,
    RecordStore,
    RecordStoreError,
)

logger = get_logger(__name__)


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = {"status": "success", "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def create_app(settings: Optional[Settings] = None, service: Optional[AttendanceService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime settings, loaded from the environment when omitted
        service: Prebuilt service, created over a RecordStore in settings.data_dir when omitted

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()
    if service is None:
        service = AttendanceService(RecordStore(settings.data_dir), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Serving with similarity threshold {service.threshold}")
        yield
        service.close()
        logger.info("Server stopped")

    app = FastAPI(title="FACEPRINT Attendance API", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms")
        return response

    _register_error_handlers(app)
    app.include_router(_build_router(service))

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    return app


def _build_router(service: AttendanceService) -> APIRouter:
    router = APIRouter(prefix="/api")

    @router.get("/health")
    def health_check():
        timestamp = datetime.now().astimezone().isoformat()
        if not service.store.is_available():
            return JSONResponse(status_code=503, content={
                "status": "error",
                "message": "Record store unavailable",
                "timestamp": timestamp,
            })
        return {
            "status": "healthy",
            "message": "Server is running",
            "storage": "available",
            "timestamp": timestamp,
        }

    # Employees

    @router.post("/employees/register")
    async def register_employee(
        name: str = Form(""),
        email: str = Form(""),
        phone: str = Form(""),
        face_image: Optional[UploadFile] = File(None),
    ):
        if not name.strip() or not email.strip():
            return error_response(400, "Name and email are required")
        if face_image is None:
            return error_response(400, "Face image is required")

        data = await face_image.read()
        employee = await run_in_threadpool(
            service.register_employee, name, email, phone, face_image.filename or "", data
        )
        return success_response("Employee registered successfully", employee.to_response(), 201)

    @router.get("/employees")
    def list_employees():
        employees = [e.to_response() for e in service.list_employees()]
        return success_response("Employees fetched successfully", employees)

    @router.get("/employees/{employee_id}")
    def get_employee(employee_id: int):
        employee = service.get_employee(employee_id)
        return success_response("Employee fetched successfully", employee.to_response())

    @router.put("/employees/{employee_id}/face")
    async def replace_face(employee_id: int, face_image: Optional[UploadFile] = File(None)):
        if face_image is None:
            return error_response(400, "Face image is required")

        data = await face_image.read()
        employee = await run_in_threadpool(
            service.replace_reference, employee_id, face_image.filename or "", data
        )
        return success_response("Reference photo updated successfully", employee.to_response())

    # Attendance

    @router.post("/attendance/checkin")
    async def check_in(
        user_id: str = Form(""),
        selfie_image: Optional[UploadFile] = File(None),
    ):
        if not user_id.strip():
            return error_response(400, "User ID is required")
        try:
            parsed_id = int(user_id)
        except ValueError:
            return error_response(400, "User ID must be an integer")
        if selfie_image is None:
            return error_response(400, "Selfie image is required")

        data = await selfie_image.read()
        outcome = await run_in_threadpool(
            service.check_in, parsed_id, selfie_image.filename or "", data
        )
        return success_response("Check-in processed", outcome.to_response(), 201)

    @router.get("/attendance")
    def list_attendance(user_id: Optional[int] = None, limit: int = 50):
        records = service.attendance_history(user_id=user_id, limit=limit)
        return success_response("Attendance records fetched successfully", records)

    @router.get("/attendance/today/{user_id}")
    def today_attendance(user_id: int):
        record = service.today_attendance(user_id)
        return success_response("Today's attendance fetched successfully", record)

    return router


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    @app.exception_handler(InvalidUploadError)
    async def bad_request(request: Request, exc: Exception):
        return error_response(400, str(exc))

    @app.exception_handler(EmployeeNotFoundError)
    async def employee_not_found(request: Request, exc: Exception):
        return error_response(404, "Employee not found")

    @app.exception_handler(AttendanceNotFoundError)
    async def attendance_not_found(request: Request, exc: Exception):
        return error_response(404, str(exc))

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email(request: Request, exc: Exception):
        return error_response(409, "Email is already registered")

    @app.exception_handler(MalformedDescriptorError)
    async def malformed_descriptor(request: Request, exc: Exception):
        logger.error(f"Corrupt stored descriptor on {request.url.path}: {exc}")
        return error_response(409, "Stored reference photo data is corrupt; the employee must be re-registered")

    @app.exception_handler(ExtractionError)
    async def extraction_failed(request: Request, exc: Exception):
        logger.warning(f"Image could not be evaluated on {request.url.path}: {exc}")
        return error_response(422, "Failed to process image")

    @app.exception_handler(RecordStoreError)
    async def store_failed(request: Request, exc: Exception):
        logger.error(f"Record store failure on {request.url.path}: {exc}")
        return error_response(500, "Failed to access attendance records")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return error_response(exc.status_code, message)
