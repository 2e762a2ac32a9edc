#Abstract base class for all compressors

import asyncio
import logging
from abc import ABC, abstractmethod

from compressors.compressor_config import EncodingPlan, OutputFormat
from errors import EmptyInputError

logger = logging.getLogger(__name__)


def compression_ratio(original_size: int, compressed_size: int) -> str:
    """
    Percentage saved by compression, two decimals, without the % sign

    Growth is reported as a negative saving: "-12.50" means the output is
    12.5% larger than the input.
    """
    if original_size == 0:
        raise EmptyInputError("Cannot compute a compression ratio for an empty file")

    percentage = (original_size - compressed_size) / original_size * 100
    ratio = f"{abs(percentage):.2f}"
    if compressed_size > original_size:
        return "-" + ratio
    return ratio


def format_kb(size: int) -> str:
    return f"{size / 1024:.2f} KB"


class BaseCompressor(ABC):
    #Abstract base class for in-memory compressors

    #Encode data according to plan and return the output bytes
    @abstractmethod
    def compress(self, data: bytes, plan: EncodingPlan) -> bytes:
        pass
    #check format
    @abstractmethod
    def supports_format(self, output_format: OutputFormat) -> bool:
        pass

    async def compress_async(self, data: bytes, plan: EncodingPlan) -> bytes:
        #Encoding is CPU bound, keep it off the event loop
        return await asyncio.to_thread(self.compress, data, plan)

    def calculate_compression_ratio(self, original_size: int, compressed_size: int) -> str:
        return compression_ratio(original_size, compressed_size)

    #Log compression statistics
    def log_compression_stats(self, original_size: int, compressed_size: int, method: str = ""):
        ratio = self.calculate_compression_ratio(original_size, compressed_size)
        logger.info(f"{method} compression: {original_size:,} -> {compressed_size:,} bytes ({ratio}%)")
