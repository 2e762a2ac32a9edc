#main compression service

import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import List, Optional

from compressors.Image_compressor import ImageCompressor
from compressors.base_compressor import BaseCompressor, compression_ratio
from compressors.compressor_config import EncodingPlan, select_plan
from compressors.passthrough_compressor import PassthroughCompressor
from compressors.validator import MAX_FILE_SIZE, validate
from errors import EmptyInputError, ProcessingError
from metadata_store import ArtifactRecord, MetadataRecorder, utcnow
from s3_handler import S3Handler, UploadedArtifact

logger = logging.getLogger(__name__)


@dataclass
class CompressionRequest:
    data: bytes
    content_type: Optional[str]
    filename: str
    output_format: Optional[str] = "jpeg"
    compress: bool = False


@dataclass
class CompressionOutcome:
    original_size: int
    compressed_size: int
    compression_ratio: str  # signed, no % sign
    output_format: str
    key: str
    url: str
    download_url: str


def output_filename(filename: str, plan: EncodingPlan) -> str:
    stem = PurePath(filename or "file").stem or "file"
    return f"{stem}{plan.extension}"


class CompressionService:
    #validate -> select codec -> encode -> ratio -> upload -> record

    def __init__(self, s3_handler: S3Handler, recorder: MetadataRecorder,
                 compressors: Optional[List[BaseCompressor]] = None,
                 max_file_size: int = MAX_FILE_SIZE):
        self.s3_handler = s3_handler
        self.recorder = recorder
        self.max_file_size = max_file_size
        self.compressors = compressors or [
            ImageCompressor(),
            PassthroughCompressor(),
        ]

    def get_compressor(self, plan: EncodingPlan) -> BaseCompressor:
        for compressor in self.compressors:
            if compressor.supports_format(plan.output_format):
                return compressor
        raise ProcessingError(f"No compressor for format: {plan.output_format.value}")

    async def process(self, request: CompressionRequest) -> CompressionOutcome:
        """
        Run one upload through the pipeline

        Validation and format errors are raised before any encoding or
        upload. Once the blob is uploaded, any later failure deletes it
        before the error propagates. The metadata write is queued and
        cannot fail the request.
        """
        original_size = len(request.data)
        validation = validate(request.content_type, request.filename, original_size, self.max_file_size)

        plan = select_plan(request.output_format, validation.is_pdf, request.compress)
        logger.info(f"Uploaded: {request.filename} ({original_size:,} bytes)")
        logger.info(f"Output format: {plan.output_format.value.upper()}, compression: {'ON' if request.compress else 'OFF'}")

        if original_size == 0:
            raise EmptyInputError("Uploaded file is empty")

        compressor = self.get_compressor(plan)
        output = await compressor.compress_async(request.data, plan)
        compressed_size = len(output)
        ratio = compression_ratio(original_size, compressed_size)

        key = self.s3_handler.generate_key()
        artifact = await self.s3_handler.upload_async(
            output,
            plan.resource_kind,
            key,
            content_type=plan.content_type,
            filename=output_filename(request.filename, plan),
        )

        try:
            self.recorder.record(self._build_record(request, plan, artifact, original_size, compressed_size, ratio))
        except Exception:
            logger.error(f"Post-upload step failed, removing {artifact.key}")
            await self.s3_handler.delete_async(artifact.key, artifact.resource_kind)
            raise

        logger.info(f"Complete - Ratio: {ratio}%")
        return CompressionOutcome(
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=ratio,
            output_format=plan.output_format.value,
            key=artifact.key,
            url=artifact.url,
            download_url=artifact.download_url,
        )

    def _build_record(self, request: CompressionRequest, plan: EncodingPlan, artifact: UploadedArtifact,
                      original_size: int, compressed_size: int, ratio: str) -> ArtifactRecord:
        return ArtifactRecord(
            storage_key=artifact.key,
            resource_kind=artifact.resource_kind,
            url=artifact.url,
            download_url=artifact.download_url,
            filename=request.filename,
            original_size=original_size,
            processed_size=compressed_size,
            compression_ratio=f"{ratio}%",
            format=plan.output_format.value,
            timestamp=utcnow(),
        )
