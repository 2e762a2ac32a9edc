#Image re-encoding using PIL
import io
import logging
from typing import Any, Dict

import pillow_heif
from PIL import Image, UnidentifiedImageError

from compressors.base_compressor import BaseCompressor
from compressors.compressor_config import EncodingPlan, OutputFormat
from errors import DecodeError, ProcessingError

logger = logging.getLogger(__name__)

# HEIF/HEIC input is decoded through the pillow-heif plugin
pillow_heif.register_heif_opener()

# Modes each encoder writes without conversion
JPEG_MODES = {'RGB', 'L', 'CMYK'}
PNG_MODES = {'RGB', 'RGBA', 'L', 'LA', 'P', '1', 'I', 'I;16'}


class ImageCompressor(BaseCompressor):
    #Handles re-encoding of raster images to JPEG or PNG

    def supports_format(self, output_format: OutputFormat) -> bool:
        return output_format in (OutputFormat.JPEG, OutputFormat.PNG)

    def compress(self, data: bytes, plan: EncodingPlan) -> bytes:
        #Decode, then encode with the plan's parameters
        if not self.supports_format(plan.output_format):
            raise ProcessingError(f"ImageCompressor cannot encode {plan.output_format.value}")

        img = self._decode(data)
        try:
            if plan.output_format is OutputFormat.JPEG:
                output = self._encode_jpeg(img, plan)
            else:
                output = self._encode_png(img, plan)
        except (OSError, ValueError) as e:
            raise ProcessingError(f"{plan.output_format.value.upper()} encoding failed: {e}") from e
        finally:
            img.close()

        self.log_compression_stats(len(data), len(output), plan.output_format.value.upper())
        return output

    def _decode(self, data: bytes) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeError(f"Input is not a supported image: {e}") from e
        return img

    def _encode_jpeg(self, img: Image.Image, plan: EncodingPlan) -> bytes:
        # Flatten transparency onto white
        if img.mode in ('RGBA', 'LA', 'P'):
            rgba = img.convert('RGBA')
            rgb_img = Image.new('RGB', rgba.size, (255, 255, 255))
            rgb_img.paste(rgba, mask=rgba.split()[-1])
            img = rgb_img
        elif img.mode not in JPEG_MODES:
            img = img.convert('RGB')

        options: Dict[str, Any] = {'quality': plan.quality}
        if plan.progressive:
            options['progressive'] = True
        return self._save(img, 'JPEG', options)

    def _encode_png(self, img: Image.Image, plan: EncodingPlan) -> bytes:
        if img.mode not in PNG_MODES:
            img = img.convert('RGBA' if 'A' in img.getbands() else 'RGB')

        options: Dict[str, Any] = {}
        if plan.compression_level is not None:
            options['compress_level'] = plan.compression_level
            # effort 1 is the cheapest setting, so skip the optimizer pass
            options['optimize'] = (plan.effort or 1) > 1
        return self._save(img, 'PNG', options)

    def _save(self, img: Image.Image, pil_format: str, options: Dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        img.save(buffer, pil_format, **options)
        return buffer.getvalue()
