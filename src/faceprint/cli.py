from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

from .config import Settings, load_settings
from .fingerprint import (
    ExtractionError,
    MalformedDescriptorError,
    VerificationConfig,
    compare,
    describe,
    encode,
    verify,
)
from .fingerprint.similarity import field_distances
from .logging import get_logger
from .service import AttendanceService, ValidationError
from .storage import (
    AttendanceNotFoundError,
    DuplicateEmailError,
    EmployeeNotFoundError,
    InvalidUploadError,
    RecordStore,
)

app = typer.Typer(help="FACEPRINT - photo check-in attendance", no_args_is_help=True)

logger = get_logger(__name__)


def safe_echo(message: str) -> None:
    """Echo message with an ASCII fallback for consoles without Unicode."""
    try:
        typer.echo(message)
    except UnicodeEncodeError:
        fallback_message = (
            message.replace("✅", "[OK]")
            .replace("❌", "[FAIL]")
            .replace("🔑", "[KEY]")
            .replace("📊", "[SCORE]")
            .replace("👤", "[USER]")
        )
        typer.echo(fallback_message.encode("ascii", "replace").decode("ascii"))


def _settings(data_dir: Optional[Path], upload_dir: Optional[Path], threshold: Optional[float] = None) -> Settings:
    settings = load_settings()
    overrides = {}
    if data_dir is not None:
        overrides["data_dir"] = data_dir
    if upload_dir is not None:
        overrides["upload_dir"] = upload_dir
    if threshold is not None:
        overrides["similarity_threshold"] = threshold
    return replace(settings, **overrides)


def _service(settings: Settings) -> AttendanceService:
    return AttendanceService(RecordStore(settings.data_dir), settings, max_workers=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default SERVER_HOST or 0.0.0.0)"),
    port: Optional[int] = typer.Option(None, help="Port (default SERVER_PORT or 8080)"),
    data_dir: Optional[Path] = typer.Option(None, help="Directory for employee and attendance records"),
    upload_dir: Optional[Path] = typer.Option(None, help="Directory for uploaded photos"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from .api import create_app

    settings = _settings(data_dir, upload_dir)
    host = host or settings.host
    port = port or settings.port

    logger.info(f"Server starting on http://{host}:{port}")
    logger.info(f"Health check: http://{host}:{port}/api/health")
    uvicorn.run(create_app(settings), host=host, port=port)


@app.command("hash")
def hash_image(
    image: Path = typer.Argument(..., exists=True, readable=True, help="Image file to fingerprint"),
) -> None:
    """Print the encoded descriptor of an image."""
    try:
        descriptor = describe(image)
    except ExtractionError as exc:
        logger.error(f"Failed to fingerprint {image}: {exc}")
        raise typer.Exit(code=1) from exc

    safe_echo(encode(descriptor))
    for name, value in descriptor.to_hex().items():
        safe_echo(f"🔑 {name}: {value}")


@app.command("compare")
def compare_images(
    first: Path = typer.Argument(..., exists=True, readable=True, help="First image"),
    second: Path = typer.Argument(..., exists=True, readable=True, help="Second image"),
) -> None:
    """Print the similarity score of two images."""
    try:
        d1, d2 = describe(first), describe(second)
    except ExtractionError as exc:
        logger.error(f"Failed to fingerprint images: {exc}")
        raise typer.Exit(code=1) from exc

    p, a, d = field_distances(d1, d2)
    safe_echo(f"📊 Similarity: {compare(d1, d2):.4f}")
    safe_echo(f"   distances: phash={p} ahash={a} dhash={d}")


@app.command("verify")
def verify_image(
    image: Path = typer.Argument(..., exists=True, readable=True, help="Candidate image"),
    descriptor: str = typer.Option(..., "--descriptor", "-d", help="Encoded reference descriptor"),
    threshold: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="Acceptance threshold (default from FACE_SIMILARITY_THRESHOLD)"),
) -> None:
    """Verify an image against an encoded reference descriptor."""
    if threshold is None:
        threshold = load_settings().similarity_threshold

    try:
        result = verify(image, descriptor, VerificationConfig(threshold=threshold))
    except ExtractionError as exc:
        logger.error(f"Failed to fingerprint {image}: {exc}")
        raise typer.Exit(code=1) from exc
    except MalformedDescriptorError as exc:
        logger.error(f"Reference descriptor is malformed: {exc}")
        raise typer.Exit(code=2) from exc

    mark = "✅ Match" if result.is_match else "❌ No match"
    safe_echo(f"{mark} (score {result.score:.4f}, threshold {threshold})")


@app.command()
def register(
    name: str = typer.Argument(..., help="Employee name"),
    email: str = typer.Argument(..., help="Employee email"),
    image: Path = typer.Argument(..., exists=True, readable=True, help="Reference photo (JPG or PNG)"),
    phone: str = typer.Option("", help="Phone number"),
    data_dir: Optional[Path] = typer.Option(None, help="Directory for employee and attendance records"),
    upload_dir: Optional[Path] = typer.Option(None, help="Directory for uploaded photos"),
) -> None:
    """Register an employee with a reference photo."""
    service = _service(_settings(data_dir, upload_dir))
    try:
        employee = service.register_employee(name, email, phone, image.name, image.read_bytes())
    except (ValidationError, InvalidUploadError, DuplicateEmailError) as exc:
        logger.error(f"Registration rejected: {exc}")
        raise typer.Exit(code=2) from exc
    except ExtractionError as exc:
        logger.error(f"Failed to process reference photo: {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    safe_echo(f"✅ Registered {employee.name} <{employee.email}> as employee {employee.id}")


@app.command()
def checkin(
    user_id: int = typer.Argument(..., help="Employee id"),
    image: Path = typer.Argument(..., exists=True, readable=True, help="Check-in selfie (JPG or PNG)"),
    data_dir: Optional[Path] = typer.Option(None, help="Directory for employee and attendance records"),
    upload_dir: Optional[Path] = typer.Option(None, help="Directory for uploaded photos"),
    threshold: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="Acceptance threshold override"),
) -> None:
    """Check an employee in with a selfie."""
    service = _service(_settings(data_dir, upload_dir, threshold))
    try:
        outcome = service.check_in(user_id, image.name, image.read_bytes())
    except EmployeeNotFoundError as exc:
        logger.error(f"Employee not found: {user_id}")
        raise typer.Exit(code=2) from exc
    except InvalidUploadError as exc:
        logger.error(f"Check-in rejected: {exc}")
        raise typer.Exit(code=2) from exc
    except MalformedDescriptorError as exc:
        logger.error(f"Stored descriptor for employee {user_id} is corrupt; re-register the reference photo")
        raise typer.Exit(code=3) from exc
    except ExtractionError as exc:
        logger.error(f"Failed to process selfie: {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    mark = "✅" if outcome.verification else "❌"
    safe_echo(f"{mark} {outcome.message}")
    safe_echo(f"📊 Similarity: {outcome.similarity_score:.4f} (threshold {outcome.threshold})")


@app.command()
def history(
    user_id: Optional[int] = typer.Option(None, help="Only show this employee"),
    limit: int = typer.Option(50, min=1, help="Maximum number of records"),
    today: bool = typer.Option(False, "--today", help="Show only today's latest successful check-in for --user-id"),
    data_dir: Optional[Path] = typer.Option(None, help="Directory for employee and attendance records"),
) -> None:
    """List attendance records, newest first."""
    service = _service(_settings(data_dir, None))
    try:
        if today:
            if user_id is None:
                logger.error("--today requires --user-id")
                raise typer.Exit(code=2)
            records = [service.today_attendance(user_id)]
        else:
            records = service.attendance_history(user_id=user_id, limit=limit)
    except (EmployeeNotFoundError, AttendanceNotFoundError) as exc:
        logger.error(str(exc))
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    if not records:
        safe_echo("No attendance records")
        return

    for record in records:
        safe_echo(
            f"👤 {record['check_in_time']}  #{record['user_id']} {record['user_name']}  "
            f"{record['status']}  {record['similarity_score']:.4f}"
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
