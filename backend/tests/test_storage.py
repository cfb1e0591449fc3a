"""
Unit-тесты для модуля storage.py
"""
from __future__ import annotations

import hashlib
from io import BytesIO
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi import UploadFile

from qms.core.config import settings
from qms.core.storage import (
    StoredFile,
    resolve_stored_path,
    sanitize_filename,
    save_upload,
    stored_path,
)


class TestSanitizeFilename:
    """Тесты для функции sanitize_filename."""

    def test_simple_filename(self):
        """Тест простого имени файла."""
        assert sanitize_filename("induction.pdf") == "induction.pdf"

    def test_filename_with_spaces(self):
        """Тест имени файла с пробелами."""
        assert sanitize_filename("my document.pdf") == "my_document.pdf"

    def test_filename_with_special_chars(self):
        """Тест имени файла со специальными символами."""
        assert sanitize_filename("cold chain & storage.pptx") == "cold_chain___storage.pptx"
        # Подчёркивания по краям имени отбрасываются
        assert sanitize_filename("file<>:\"|?*.pdf") == "file.pdf"

    def test_filename_with_path(self):
        """Тест имени файла с путем."""
        assert sanitize_filename("/path/to/file.pdf") == "file.pdf"
        assert sanitize_filename("C:\\Users\\qa\\file.pdf") == "file.pdf"
        assert sanitize_filename("../../etc/passwd") == "passwd"

    def test_filename_with_leading_trailing_dots(self):
        """Тест имени файла с ведущими/завершающими точками."""
        assert sanitize_filename("...file...") == "file"
        assert sanitize_filename(".hidden.pdf") == "hidden.pdf"

    def test_empty_filename(self):
        """Тест пустого имени файла."""
        assert sanitize_filename("") == "file"
        assert sanitize_filename("...") == "file"

    def test_very_long_filename(self):
        """Тест очень длинного имени файла."""
        result = sanitize_filename("a" * 300 + ".mp4")
        assert len(result) == 255
        assert result.endswith(".mp4")

    def test_unicode_filename(self):
        """Тест имени файла с unicode символами."""
        assert sanitize_filename("файл.pdf") == "file.pdf"
        assert sanitize_filename("sop-中文-v2.pdf") == "sop-__-v2.pdf"


class TestSaveUpload:
    """Тесты для функции save_upload."""

    @pytest.fixture
    def storage_dir(self) -> Path:
        return Path(settings.storage_base_path)

    async def test_save_upload_basic(self, storage_dir):
        """Тест базового сохранения файла."""
        training_id, content_id = uuid4(), uuid4()
        payload = b"%PDF-1.4 hand hygiene"

        result = await save_upload(UploadFile(filename="hygiene.pdf", file=BytesIO(payload)), training_id, content_id)

        assert isinstance(result, StoredFile)
        assert result.original_filename == "hygiene.pdf"
        assert result.size_bytes == len(payload)
        assert result.sha256 == hashlib.sha256(payload).hexdigest()
        assert result.mime_type == "application/pdf"

        expected_path = storage_dir / str(training_id) / str(content_id) / "hygiene.pdf"
        assert Path(result.path) == expected_path
        assert expected_path.read_bytes() == payload

    async def test_save_upload_with_sanitized_filename(self, storage_dir):
        """Тест сохранения файла с небезопасным именем."""
        training_id, content_id = uuid4(), uuid4()
        unsafe = "fridge log & checks.docx"

        result = await save_upload(UploadFile(filename=unsafe, file=BytesIO(b"x")), training_id, content_id)

        assert result.original_filename == unsafe
        assert Path(result.path).name == "fridge_log___checks.docx"
        assert Path(result.path) == stored_path(training_id, content_id, unsafe)

    async def test_save_upload_large_file(self):
        """Тест сохранения большого файла (стриминг)."""
        payload = b"x" * (1024 * 1024 + 17)

        result = await save_upload(UploadFile(filename="webinar.mp4", file=BytesIO(payload)), uuid4(), uuid4())

        assert result.size_bytes == len(payload)
        assert result.sha256 == hashlib.sha256(payload).hexdigest()
        assert Path(result.path).stat().st_size == len(payload)

    async def test_save_upload_no_filename(self):
        """Тест сохранения файла без имени."""
        result = await save_upload(UploadFile(filename=None, file=BytesIO(b"data")), uuid4(), uuid4())

        assert result.original_filename == "file"
        assert Path(result.path).name == "file"
        assert result.mime_type is None


class TestResolveStoredPath:
    """Тесты для resolve_stored_path."""

    async def test_resolves_saved_file(self):
        result = await save_upload(UploadFile(filename="sop.pdf", file=BytesIO(b"sop")), uuid4(), uuid4())
        assert resolve_stored_path(result.path) == Path(result.path).resolve()

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            resolve_stored_path(str(Path(settings.storage_base_path) / "missing.pdf"))

    def test_outside_storage(self, tmp_path):
        outside = tmp_path / "secret.txt"
        outside.write_text("not for download")
        with pytest.raises(FileNotFoundError):
            resolve_stored_path(str(outside))
