"""
Shared fixtures.

Provides an in-memory stand-in for the boto3 S3 client, a metadata store
on a temporary SQLite file, and small generated images.
"""

import io
from pathlib import Path

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
import pillow_heif
from PIL import Image

from config import Config
from metadata_store import MetadataStore
from s3_handler import S3Handler

pillow_heif.register_heif_opener()


class FakeS3Client:
    """Implements the subset of the boto3 S3 client the handler uses."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_uploads = False
        self.fail_deletes = False

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.fail_uploads:
            raise ClientError({"Error": {"Code": "500", "Message": "Internal Error"}}, "PutObject")
        self.objects[(bucket, key)] = {"body": fileobj.read(), "extra": dict(ExtraArgs or {})}

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.objects[(Bucket, Key)]["body"])}

    def delete_object(self, Bucket, Key):
        if self.fail_deletes:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "DeleteObject")
        self.objects.pop((Bucket, Key), None)
        self.deleted.append(Key)
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return (
            f"https://{Params['Bucket']}.s3.test/{Params['Key']}"
            f"?response-content-disposition=attachment&X-Amz-Expires={ExpiresIn}"
        )

    def keys(self):
        return [key for (_, key) in self.objects]


@pytest.fixture
def config(tmp_path: Path):
    """Config pointing at a temporary database."""
    cfg = Config()
    cfg.S3_BUCKET = "test-bucket"
    cfg.S3_FOLDER = "compressor"
    cfg.AWS_REGION = "eu-west-1"
    cfg.PUBLIC_BASE_URL = None
    cfg.S3_ENDPOINT_URL = None
    cfg.DATABASE_URL = f"sqlite+aiosqlite:///{tmp_path / 'compressions.db'}"
    cfg.UPLOAD_TIMEOUT_SECONDS = 60
    cfg.MAX_FILE_SIZE = 10 * 1024 * 1024
    cfg.RETENTION_HOURS = 24
    cfg.SWEEP_INTERVAL_HOURS = 24
    cfg.HISTORY_LIMIT = 10
    return cfg


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def s3_handler(config, fake_s3):
    return S3Handler(config, s3_client=fake_s3)


@pytest_asyncio.fixture
async def store(config):
    metadata_store = MetadataStore(config.DATABASE_URL)
    await metadata_store.initialize()
    yield metadata_store
    await metadata_store.close()


def make_image_bytes(fmt: str = "PNG", size=(64, 48), mode: str = "RGB") -> bytes:
    """Gradient image so encoders have real content to work with."""
    img = Image.new(mode, size)
    width, height = size
    for x in range(width):
        for y in range(height):
            value = (x * 255 // max(width - 1, 1), y * 255 // max(height - 1, 1), 128)
            if mode == "RGBA":
                img.putpixel((x, y), value + (200,))
            elif mode == "L":
                img.putpixel((x, y), value[0])
            else:
                img.putpixel((x, y), value)
    buffer = io.BytesIO()
    img.save(buffer, fmt)
    return buffer.getvalue()


@pytest.fixture
def image_factory():
    return make_image_bytes


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


@pytest.fixture
def pdf_bytes():
    return b"%PDF-1.4\n1 0 obj<</Type/Catalog>>endobj\ntrailer<</Root 1 0 R>>\n%%EOF\n"


@pytest.fixture
def heic_bytes():
    return make_image_bytes("HEIF")
