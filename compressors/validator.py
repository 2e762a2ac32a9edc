#Upload validation: media type / extension allow-list and size ceiling

from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from errors import FileTooLargeError, UnsupportedTypeError

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

IMAGE_MIME_TYPES = {'image/jpeg', 'image/jpg', 'image/png', 'image/heif', 'image/heic'}
DOCUMENT_MIME_TYPES = {'application/pdf'}

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.heif', '.heic'}
DOCUMENT_EXTENSIONS = {'.pdf'}


@dataclass(frozen=True)
class ValidationResult:
    media_family: str  # "image" or "document"
    extension: str
    byte_length: int

    @property
    def is_pdf(self) -> bool:
        return self.media_family == "document"


def get_extension(filename: Optional[str]) -> str:
    return PurePath(filename or "").suffix.lower()


def validate(declared_media_type: Optional[str], filename: Optional[str], byte_length: int,
             max_file_size: int = MAX_FILE_SIZE) -> ValidationResult:
    """
    Classify an uploaded file

    The declared type and the extension do not need to agree; a file is
    accepted when at least one of them is allow-listed. A PDF match on
    either side makes the file a document.

    Raises:
        UnsupportedTypeError: neither the media type nor the extension is allowed
        FileTooLargeError: byte_length is above max_file_size
    """
    media_type = (declared_media_type or "").lower().strip()
    extension = get_extension(filename)

    if media_type in DOCUMENT_MIME_TYPES or extension in DOCUMENT_EXTENSIONS:
        media_family = "document"
    elif media_type in IMAGE_MIME_TYPES or extension in IMAGE_EXTENSIONS:
        media_family = "image"
    else:
        raise UnsupportedTypeError("Only JPEG, PNG, HEIF, and PDF files are allowed!")

    if byte_length > max_file_size:
        limit_mb = max_file_size / (1024 * 1024)
        raise FileTooLargeError(f"File too large: {byte_length:,} bytes (limit {limit_mb:g}MB)")

    return ValidationResult(media_family=media_family, extension=extension, byte_length=byte_length)
