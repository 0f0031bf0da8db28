"""Tests for payment-proof upload validation and storage."""

import re

import pytest

from app.exceptions import CobranzaError
from app.services.storage import ProofStorage, build_key, validate_upload

from conftest import FakeS3


def test_validate_upload_accepts_images_and_pdf():
    assert validate_upload("image/png", 10, 100) == "png"
    assert validate_upload("IMAGE/JPEG", 10, 100) == "jpg"
    assert validate_upload("application/pdf", 10, 100) == "pdf"


@pytest.mark.parametrize("content_type,size", [
    ("text/plain", 10),
    (None, 10),
    ("image/png", 0),
    ("image/png", 5 * 1024 * 1024 + 1),
])
def test_validate_upload_rejects(content_type, size):
    with pytest.raises(CobranzaError):
        validate_upload(content_type, size, 5 * 1024 * 1024)


def test_build_key_format():
    key = build_key("/comprobantes/", "pdf")
    assert re.fullmatch(r"comprobantes/\d+-[0-9a-f]{8}\.pdf", key)


@pytest.mark.asyncio
async def test_upload_puts_object_and_returns_public_url(settings):
    s3 = FakeS3()
    storage = ProofStorage(settings, client=s3)

    result = await storage.upload(b"%PDF-1.4", "voucher.pdf", "application/pdf")

    bucket, body, content_type = s3.objects[result["file_name"]]
    assert bucket == settings.aws_s3_bucket_name
    assert body == b"%PDF-1.4"
    assert content_type == "application/pdf"
    assert result["url"] == (
        f"https://{settings.aws_s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{result['file_name']}"
    )
    assert result["original_name"] == "voucher.pdf"
    assert result["size"] == 8


@pytest.mark.asyncio
async def test_upload_without_credentials_fails(settings):
    storage = ProofStorage(settings)

    with pytest.raises(CobranzaError):
        await storage.upload(b"img", "foto.png", "image/png")
