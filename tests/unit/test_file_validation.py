"""Unit tests for upload validation."""

import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from faxocr.api.file_validation import read_upload_file
from faxocr.core.settings import pipeline_settings
from faxocr.pipeline.core.exceptions import PayloadTooLargeError, ValidationError
from tests.fakes import make_jpeg


def _upload(data: bytes, content_type: str, filename="fax.jpg") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class TestReadUploadFile:
    """Tests for read_upload_file."""

    @pytest.mark.asyncio
    async def test_valid_jpeg(self):
        """Test a JPEG upload becomes a source document."""
        data = make_jpeg()
        doc = await read_upload_file(_upload(data, "image/jpeg"))
        assert doc.file_name == "fax.jpg"
        assert doc.content_type == "image/jpeg"
        assert doc.data == data

    @pytest.mark.asyncio
    async def test_detected_type_overrides_header(self):
        """Test magic bytes decide the stored content type."""
        doc = await read_upload_file(_upload(b"%PDF-1.7 body", "image/png", "scan.pdf"))
        assert doc.content_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_disallowed_content_type(self):
        """Test unsupported declared types are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await read_upload_file(_upload(b"hello", "text/plain"))
        assert exc_info.value.details["field"] == "files"

    @pytest.mark.asyncio
    async def test_empty_file(self):
        """Test zero-byte uploads are rejected."""
        with pytest.raises(ValidationError):
            await read_upload_file(_upload(b"", "image/jpeg"))

    @pytest.mark.asyncio
    async def test_too_large(self, monkeypatch):
        """Test uploads over the size limit raise 413."""
        monkeypatch.setattr(pipeline_settings, "MAX_FILE_SIZE_MB", 0)
        with pytest.raises(PayloadTooLargeError):
            await read_upload_file(_upload(make_jpeg(), "image/jpeg"))

    @pytest.mark.asyncio
    async def test_unknown_magic_bytes(self):
        """Test content not matching any document signature."""
        with pytest.raises(ValidationError) as exc_info:
            await read_upload_file(_upload(b"GIF89a....", "image/jpeg"))
        assert "magic bytes" in exc_info.value.message
