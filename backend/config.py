from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class AppConfig:
    db_path: str
    pivot_language: str = "en"
    default_language: str = "en"
    call_timeout_seconds: float = 25.0
    external_enabled: bool = True
    allow_anon: bool = False
    max_audio_bytes: int = 20 * 1024 * 1024
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])

    @classmethod
    def from_env(cls) -> "AppConfig":
        db_path = os.getenv(
            "CAREASSIST_DB_PATH",
            str(Path(__file__).resolve().parent / "careassist.sqlite"),
        )
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:8080").split(",")
        return cls(
            db_path=db_path,
            pivot_language=os.getenv("CAREASSIST_PIVOT_LANGUAGE", "en").strip().lower() or "en",
            default_language=os.getenv("CAREASSIST_DEFAULT_LANGUAGE", "en").strip().lower() or "en",
            call_timeout_seconds=float(os.getenv("CAREASSIST_CALL_TIMEOUT_SECONDS", "25")),
            external_enabled=not _env_flag("CAREASSIST_DISABLE_EXTERNAL"),
            allow_anon=_env_flag("ALLOW_ANON"),
            max_audio_bytes=int(os.getenv("CAREASSIST_MAX_AUDIO_BYTES", str(20 * 1024 * 1024))),
            allowed_origins=[origin.strip() for origin in origins if origin.strip()],
        )
