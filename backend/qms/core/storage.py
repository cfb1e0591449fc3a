"""
Локальное хранилище загруженных учебных материалов (видео, pdf, ppt ...).
"""

from __future__ import annotations

import hashlib
import mimetypes
import re
from pathlib import Path
from uuid import UUID

from fastapi import UploadFile
from pydantic import BaseModel

from qms.core.config import settings

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_MAX_FILENAME = 255


def sanitize_filename(filename: str) -> str:
    """
    Очищает имя файла: убирает путь, заменяет всё кроме ASCII-букв, цифр,
    точек, дефисов и подчёркиваний на "_", обрезает до 255 символов.
    """
    filename = Path(filename.replace("\\", "/")).name
    if "." in filename:
        name_part, ext_part = filename.rsplit(".", 1)
    else:
        name_part, ext_part = filename, ""

    name_part = _UNSAFE_CHARS.sub("_", name_part).strip("._")
    ext_part = _UNSAFE_CHARS.sub("_", ext_part)
    if not name_part.strip("_"):
        name_part = "file"

    result = f"{name_part}.{ext_part}" if ext_part else name_part
    if len(result) > _MAX_FILENAME:
        keep = _MAX_FILENAME - (len(ext_part) + 1 if ext_part else 0)
        result = f"{name_part[:keep]}.{ext_part}" if ext_part else name_part[:_MAX_FILENAME]
    return result


class StoredFile(BaseModel):
    """Сохранённый файл."""

    path: str
    sha256: str
    size_bytes: int
    original_filename: str
    mime_type: str | None = None


async def save_upload(file: UploadFile, training_id: UUID, content_id: UUID) -> StoredFile:
    """
    Сохраняет загруженный файл в <storage_base_path>/<training_id>/<content_id>/
    потоково, считая SHA256 по ходу записи.
    """
    original_filename = file.filename or "file"
    safe_filename = sanitize_filename(original_filename)

    target_dir = Path(settings.storage_base_path) / str(training_id) / str(content_id)
    target_dir.mkdir(parents=True, exist_ok=True)
    file_path = target_dir / safe_filename

    sha256_hash = hashlib.sha256()
    size_bytes = 0
    chunk_size = 8192
    with open(file_path, "wb") as f:
        while True:
            chunk = await file.read(chunk_size)
            if not chunk:
                break
            f.write(chunk)
            sha256_hash.update(chunk)
            size_bytes += len(chunk)

    return StoredFile(
        path=str(file_path),
        sha256=sha256_hash.hexdigest(),
        size_bytes=size_bytes,
        original_filename=original_filename,
        mime_type=file.content_type or mimetypes.guess_type(safe_filename)[0],
    )


def resolve_stored_path(path: str) -> Path:
    """
    Путь к сохранённому файлу. Файлы вне storage_base_path не отдаются.

    Raises:
        FileNotFoundError: если файла нет или он вне хранилища
    """
    base = Path(settings.storage_base_path).resolve()
    candidate = Path(path).resolve()
    if base not in candidate.parents or not candidate.is_file():
        raise FileNotFoundError(path)
    return candidate


def stored_path(training_id: UUID, content_id: UUID, file_name: str) -> Path:
    """Путь, по которому save_upload сохранил файл материала."""
    return Path(settings.storage_base_path) / str(training_id) / str(content_id) / sanitize_filename(file_name)
