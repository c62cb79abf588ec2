from __future__ import annotations

import base64
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_LABEL = "Vacation Reply"
DEFAULT_REPLY_BODY = (
    "Thanks for your email. I'm away at the moment and will get back to you as soon as I can."
)
DEFAULT_POLL_MIN_MS = 45_000
DEFAULT_POLL_MAX_MS = 120_000


@dataclass(slots=True)
class AccountConfig:
    credentials_file: Path
    token_file: Path
    user_id: str


@dataclass(slots=True)
class ReplySettings:
    label_name: str = DEFAULT_LABEL
    body: str = DEFAULT_REPLY_BODY
    owner_query: str = "me"


@dataclass(slots=True)
class AppConfig:
    account: AccountConfig
    reply: ReplySettings
    poll_min_ms: int
    poll_max_ms: int
    log_dir: Path
    log_level: str
    stats_file: Path


def _resolve_path(value: str | None, fallback: str) -> Path:
    candidate = Path(value or fallback)
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def _maybe_write_secret_file(target: Path, inline_value: str | None, b64_value: str | None) -> None:
    if not inline_value and not b64_value:
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    if inline_value:
        target.write_text(inline_value, encoding="utf-8")
        return
    try:
        decoded = base64.b64decode(b64_value or "", validate=True)
    except ValueError as exc:
        raise ValueError("Failed to decode base64 secret payload") from exc
    target.write_bytes(decoded)


def _read_interval(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer number of milliseconds, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def load_config(env_file: str | os.PathLike[str] | None = None) -> AppConfig:
    """Load configuration values from a .env file and environment variables."""

    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    credentials_file = _resolve_path(os.getenv("GOOGLE_CLIENT_SECRETS"), "client_secret.json")
    token_file = _resolve_path(os.getenv("GOOGLE_TOKEN_PATH"), "token.json")
    log_dir = _resolve_path(os.getenv("LOG_DIR"), "logs")
    stats_file = _resolve_path(os.getenv("STATS_FILE"), "data/stats.json")

    log_dir.mkdir(parents=True, exist_ok=True)
    stats_file.parent.mkdir(parents=True, exist_ok=True)

    _maybe_write_secret_file(
        credentials_file,
        os.getenv("GOOGLE_CLIENT_SECRETS_JSON"),
        os.getenv("GOOGLE_CLIENT_SECRETS_B64"),
    )
    _maybe_write_secret_file(
        token_file,
        os.getenv("GOOGLE_TOKEN_JSON"),
        os.getenv("GOOGLE_TOKEN_B64"),
    )

    poll_min_ms = _read_interval("POLL_MIN_MS", DEFAULT_POLL_MIN_MS)
    poll_max_ms = _read_interval("POLL_MAX_MS", DEFAULT_POLL_MAX_MS)
    if poll_min_ms > poll_max_ms:
        raise ValueError(f"POLL_MIN_MS ({poll_min_ms}) is greater than POLL_MAX_MS ({poll_max_ms})")

    account = AccountConfig(
        credentials_file=credentials_file,
        token_file=token_file,
        user_id=os.getenv("GMAIL_USER_ID", "me"),
    )
    reply = ReplySettings(
        label_name=os.getenv("REPLY_LABEL", DEFAULT_LABEL),
        body=os.getenv("REPLY_BODY", DEFAULT_REPLY_BODY),
        owner_query=os.getenv("OWNER_QUERY", "me"),
    )

    return AppConfig(
        account=account,
        reply=reply,
        poll_min_ms=poll_min_ms,
        poll_max_ms=poll_max_ms,
        log_dir=log_dir,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        stats_file=stats_file,
    )
