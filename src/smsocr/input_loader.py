from __future__ import annotations

from pathlib import Path

from .errors import ValidationError

ACCEPTED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".heic", ".heif")
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


def _check_size(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise ValidationError(
            f"File is too large ({size / (1024 * 1024):.2f} MB). Max allowed: {max_bytes / (1024 * 1024):.0f} MB."
        )


def validate_file(
    file_path: str | Path,
    max_bytes: int = MAX_FILE_SIZE_BYTES,
    accepted_extensions: tuple[str, ...] = ACCEPTED_EXTENSIONS,
) -> Path:
    path = Path(file_path)
    if not path.exists():
        raise ValidationError(f"File not found: {path}")
    if not path.is_file():
        raise ValidationError(f"Not a regular file: {path}")

    ext = path.suffix.lower()
    if ext not in accepted_extensions:
        raise ValidationError(f"Unsupported file extension: {ext or '<none>'}. Accepted: {', '.join(accepted_extensions)}")

    _check_size(path.stat().st_size, max_bytes)
    return path


def validate_bytes(data: bytes, max_bytes: int = MAX_FILE_SIZE_BYTES) -> None:
    if not data:
        raise ValidationError("Input is empty.")
    _check_size(len(data), max_bytes)

