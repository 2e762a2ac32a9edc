"""Tests for the compression pipeline."""

from unittest.mock import AsyncMock, Mock

import pytest

from errors import (
    DecodeError,
    EmptyInputError,
    FileTooLargeError,
    InvalidFormatError,
    UnsupportedTypeError,
    UploadError,
)
from metadata_store import MetadataRecorder
from services.compression_service import CompressionRequest, CompressionService


@pytest.fixture
def recorder(store):
    return MetadataRecorder(store)


@pytest.fixture
def service(s3_handler, recorder):
    return CompressionService(s3_handler, recorder)


class TestCompressionService:

    @pytest.mark.asyncio
    async def test_png_to_jpeg(self, service, recorder, fake_s3, png_bytes):
        recorder.start()
        outcome = await service.process(CompressionRequest(
            data=png_bytes, content_type="image/png", filename="photo.png",
            output_format="jpeg", compress=True,
        ))
        await recorder.flush()

        assert outcome.original_size == len(png_bytes)
        expected = (len(png_bytes) - outcome.compressed_size) / len(png_bytes) * 100
        assert outcome.compression_ratio.lstrip("-") == f"{abs(expected):.2f}"
        assert outcome.output_format == "jpeg"
        assert fake_s3.keys() == [f"compressor/image/{outcome.key}"]

        history = await recorder.history()
        assert len(history) == 1
        record = history[0]
        assert record.storage_key == outcome.key
        assert record.download_url == outcome.download_url
        assert record.filename == "photo.png"
        assert record.format == "jpeg"
        assert record.resource_kind == "image"
        assert record.compression_ratio == outcome.compression_ratio + "%"
        await recorder.stop()

    @pytest.mark.asyncio
    async def test_download_name_uses_output_extension(self, service, fake_s3, png_bytes):
        outcome = await service.process(CompressionRequest(
            data=png_bytes, content_type="image/png", filename="holiday.photo.png",
            output_format="jpg",
        ))
        stored = fake_s3.objects[("test-bucket", f"compressor/image/{outcome.key}")]
        assert stored["extra"]["ContentDisposition"] == 'attachment; filename="holiday.photo.jpeg"'

    @pytest.mark.asyncio
    async def test_pdf_passthrough(self, service, fake_s3, pdf_bytes):
        outcome = await service.process(CompressionRequest(
            data=pdf_bytes, content_type="application/pdf", filename="report.pdf",
            output_format="png", compress=True,
        ))
        assert outcome.output_format == "pdf"
        assert outcome.compressed_size == len(pdf_bytes)
        assert outcome.compression_ratio == "0.00"
        stored = fake_s3.objects[("test-bucket", f"compressor/raw/{outcome.key}")]
        assert stored["body"] == pdf_bytes

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_kwargs,error", [
        ({"content_type": "text/plain", "filename": "notes.txt"}, UnsupportedTypeError),
        ({"content_type": "image/png", "filename": "a.png", "output_format": "heif"}, InvalidFormatError),
        ({"content_type": "image/png", "filename": "a.png", "output_format": "gif"}, InvalidFormatError),
    ])
    async def test_rejections_have_no_side_effects(self, service, recorder, fake_s3, png_bytes,
                                                   request_kwargs, error):
        recorder.record = Mock()
        with pytest.raises(error):
            await service.process(CompressionRequest(data=png_bytes, **request_kwargs))
        assert fake_s3.objects == {}
        recorder.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_too_large_rejected_before_encoding(self, s3_handler, recorder, fake_s3):
        compressor = Mock()
        compressor.supports_format.return_value = True
        compressor.compress_async = AsyncMock()
        service = CompressionService(s3_handler, recorder, compressors=[compressor])

        with pytest.raises(FileTooLargeError):
            await service.process(CompressionRequest(
                data=b"\0" * (11 * 1024 * 1024), content_type="image/png", filename="big.png",
            ))
        compressor.compress_async.assert_not_called()
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_decode_error(self, service, fake_s3):
        with pytest.raises(DecodeError):
            await service.process(CompressionRequest(
                data=b"not an image", content_type="image/png", filename="broken.png",
            ))
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_empty_pdf(self, service, fake_s3):
        with pytest.raises(EmptyInputError):
            await service.process(CompressionRequest(
                data=b"", content_type="application/pdf", filename="empty.pdf",
            ))
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type,filename", [
        ("image/png", "empty.png"),
        ("image/jpeg", "empty.jpg"),
    ])
    async def test_empty_image_rejected_before_encoding(self, service, fake_s3, content_type, filename):
        service.compressors[0].compress = Mock(side_effect=AssertionError("encoder called"))
        with pytest.raises(EmptyInputError):
            await service.process(CompressionRequest(
                data=b"", content_type=content_type, filename=filename, compress=True,
            ))
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_upload_failure_records_nothing(self, service, recorder, fake_s3, png_bytes):
        fake_s3.fail_uploads = True
        recorder.record = Mock()
        with pytest.raises(UploadError):
            await service.process(CompressionRequest(
                data=png_bytes, content_type="image/png", filename="a.png",
            ))
        recorder.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_after_upload_removes_blob(self, service, recorder, fake_s3, png_bytes):
        recorder.record = Mock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await service.process(CompressionRequest(
                data=png_bytes, content_type="image/png", filename="a.png",
            ))
        assert fake_s3.objects == {}
        assert len(fake_s3.deleted) == 1

    @pytest.mark.asyncio
    async def test_metadata_write_failure_still_succeeds(self, service, recorder, store, png_bytes):
        store.insert = AsyncMock(side_effect=Exception("database down"))
        recorder.start()
        outcome = await service.process(CompressionRequest(
            data=png_bytes, content_type="image/png", filename="a.png", output_format="png",
        ))
        await recorder.flush()
        assert outcome.download_url
        assert recorder.failed_writes == 1
        await recorder.stop()
