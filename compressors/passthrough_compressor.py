#Pass-through for documents that are stored as uploaded

import logging

from compressors.base_compressor import BaseCompressor
from compressors.compressor_config import EncodingPlan, OutputFormat
from errors import ProcessingError

logger = logging.getLogger(__name__)


class PassthroughCompressor(BaseCompressor):
    #PDFs are not re-encoded; the output is the input

    def supports_format(self, output_format: OutputFormat) -> bool:
        return output_format is OutputFormat.PDF_PASSTHROUGH

    def compress(self, data: bytes, plan: EncodingPlan) -> bytes:
        if not self.supports_format(plan.output_format):
            raise ProcessingError(f"PassthroughCompressor cannot encode {plan.output_format.value}")
        logger.info(f"Passing through {len(data):,} bytes without re-encoding")
        return data

    async def compress_async(self, data: bytes, plan: EncodingPlan) -> bytes:
        return self.compress(data, plan)
