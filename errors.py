#Error taxonomy for the compression pipeline
#Each error carries the HTTP status the API layer renders it with


class CompressorError(Exception):
    """Base class for all pipeline errors"""
    status_code = 500


class MissingFileError(CompressorError):
    status_code = 400

    def __init__(self, message: str = "No file uploaded"):
        super().__init__(message)


class UnsupportedTypeError(CompressorError):
    """Neither the declared media type nor the extension is allowed"""
    status_code = 400


class FileTooLargeError(CompressorError):
    status_code = 400


class InvalidFormatError(CompressorError):
    """Requested output format has no encoder"""
    status_code = 400


class EmptyInputError(CompressorError):
    status_code = 400


class NotFoundError(CompressorError):
    status_code = 404


class DecodeError(CompressorError):
    """Input bytes are not a readable image"""
    status_code = 500


class ProcessingError(CompressorError):
    """Encoder failed after the input decoded successfully"""
    status_code = 500


class UploadError(CompressorError):
    status_code = 500


class StorageWriteError(CompressorError):
    """Metadata record could not be written"""
    status_code = 500
