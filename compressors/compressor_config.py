#Codec selection: output format normalization and encoder parameter table

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from errors import InvalidFormatError


class OutputFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    PDF_PASSTHROUGH = "pdf"


DEFAULT_OUTPUT_FORMAT = "jpeg"

FORMAT_ALIASES = {
    "jpg": "jpeg",
    "heic": "heif",
}

# Content type and file extension of each stored artifact
CONTENT_TYPES = {
    OutputFormat.JPEG: "image/jpeg",
    OutputFormat.PNG: "image/png",
    OutputFormat.PDF_PASSTHROUGH: "application/pdf",
}

EXTENSIONS = {
    OutputFormat.JPEG: ".jpeg",
    OutputFormat.PNG: ".png",
    OutputFormat.PDF_PASSTHROUGH: ".pdf",
}


@dataclass(frozen=True)
class EncodingPlan:
    output_format: OutputFormat
    quality: Optional[int] = None
    compression_level: Optional[int] = None
    effort: Optional[int] = None
    progressive: bool = False

    @property
    def is_passthrough(self) -> bool:
        return self.output_format is OutputFormat.PDF_PASSTHROUGH

    @property
    def resource_kind(self) -> str:
        return "raw" if self.is_passthrough else "image"

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.output_format]

    @property
    def extension(self) -> str:
        return EXTENSIONS[self.output_format]

    def describe(self) -> Dict[str, object]:
        settings = {
            "quality": self.quality,
            "compression_level": self.compression_level,
            "effort": self.effort,
            "progressive": self.progressive,
        }
        return {k: v for k, v in settings.items() if v not in (None, False)}


# One plan per (format, compress flag); the pass-through plan ignores the flag
CODEC_PRESETS: Dict[Tuple[OutputFormat, bool], EncodingPlan] = {
    (OutputFormat.JPEG, False): EncodingPlan(OutputFormat.JPEG, quality=95),
    (OutputFormat.JPEG, True): EncodingPlan(OutputFormat.JPEG, quality=80, progressive=True),
    (OutputFormat.PNG, False): EncodingPlan(OutputFormat.PNG),
    (OutputFormat.PNG, True): EncodingPlan(OutputFormat.PNG, compression_level=6, effort=1),
    (OutputFormat.PDF_PASSTHROUGH, False): EncodingPlan(OutputFormat.PDF_PASSTHROUGH),
    (OutputFormat.PDF_PASSTHROUGH, True): EncodingPlan(OutputFormat.PDF_PASSTHROUGH),
}

# Formats a caller may request for image input
IMAGE_OUTPUT_FORMATS = (OutputFormat.JPEG, OutputFormat.PNG)


def normalize_format(requested: Optional[str]) -> str:
    name = (requested or DEFAULT_OUTPUT_FORMAT).strip().lower() or DEFAULT_OUTPUT_FORMAT
    return FORMAT_ALIASES.get(name, name)


def select_plan(requested_format: Optional[str], is_pdf: bool, compress: bool) -> EncodingPlan:
    """
    Map a requested output format and compression flag to encoder parameters

    PDF input is always passed through, whatever format was requested.
    HEIF is a recognised name but has no encoder, so it is rejected here
    along with any other unknown format.

    Raises:
        InvalidFormatError: the normalized format is not jpeg or png
    """
    if is_pdf:
        return CODEC_PRESETS[(OutputFormat.PDF_PASSTHROUGH, bool(compress))]

    name = normalize_format(requested_format)
    try:
        output_format = OutputFormat(name)
    except ValueError:
        raise InvalidFormatError("Invalid format. Use jpeg or png.") from None

    if output_format not in IMAGE_OUTPUT_FORMATS:
        raise InvalidFormatError("Invalid format. Use jpeg or png.")

    return CODEC_PRESETS[(output_format, bool(compress))]
