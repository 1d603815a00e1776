import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .fingerprint.verify import DEFAULT_THRESHOLD, VerificationConfig
from .logging import get_logger

logger = get_logger(__name__)

# Upper bound on seconds to wait for one image evaluation
MAX_VERIFY_TIMEOUT = 3600.0


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path("data")
    upload_dir: Path = Path("uploads")
    similarity_threshold: float = DEFAULT_THRESHOLD
    verify_timeout: float = 10.0
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    def verification_config(self) -> VerificationConfig:
        return VerificationConfig(threshold=self.similarity_threshold)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    When env is None the process environment is used, after loading a
    .env file from the working directory if one exists. Unparsable or
    out-of-range values fall back to their defaults.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    defaults = Settings()

    threshold = _parse_float(env, "FACE_SIMILARITY_THRESHOLD", defaults.similarity_threshold)
    if not 0.0 <= threshold <= 1.0:
        logger.warning(f"FACE_SIMILARITY_THRESHOLD={threshold} is outside [0, 1], using {defaults.similarity_threshold}")
        threshold = defaults.similarity_threshold

    timeout = _parse_float(env, "FACEPRINT_VERIFY_TIMEOUT", defaults.verify_timeout)
    if not 0 < timeout <= MAX_VERIFY_TIMEOUT:
        logger.warning(f"FACEPRINT_VERIFY_TIMEOUT={timeout} is outside (0, {MAX_VERIFY_TIMEOUT}], using {defaults.verify_timeout}")
        timeout = defaults.verify_timeout

    origins = [o.strip() for o in env.get("CORS_ORIGINS", "").split(",") if o.strip()]

    return Settings(
        data_dir=Path(env.get("FACEPRINT_DATA_DIR") or defaults.data_dir),
        upload_dir=Path(env.get("UPLOAD_PATH") or defaults.upload_dir),
        similarity_threshold=threshold,
        verify_timeout=timeout,
        host=env.get("SERVER_HOST") or defaults.host,
        port=_parse_int(env, "SERVER_PORT", defaults.port),
        cors_origins=origins or defaults.cors_origins,
    )


def _parse_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Could not parse {key}={raw!r}, using {default}")
        return default
    if value != value:  # NaN
        logger.warning(f"{key} is NaN, using {default}")
        return default
    return value


def _parse_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Could not parse {key}={raw!r}, using {default}")
        return default
