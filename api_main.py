from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional
import asyncio
import logging

from config import Config
from s3_handler import S3Handler
from metadata_store import MetadataRecorder, MetadataStore
from compressors.base_compressor import format_kb
from compressors.compressor_config import CODEC_PRESETS, FORMAT_ALIASES, IMAGE_OUTPUT_FORMATS
from compressors.validator import DOCUMENT_EXTENSIONS, IMAGE_EXTENSIONS
from errors import CompressorError, MissingFileError
from services.compression_service import CompressionRequest, CompressionService
from services.retention_sweeper import RetentionSweeper

#logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Collaborators built once at startup and shared by all requests"""
    config: Config
    s3_handler: S3Handler
    store: MetadataStore
    recorder: MetadataRecorder
    compression_service: CompressionService
    sweeper: RetentionSweeper


def build_components(config: Config, s3_handler: S3Handler, store: MetadataStore) -> AppContext:
    """Wire the pipeline around an S3 handler and an initialized store"""
    recorder = MetadataRecorder(store)
    return AppContext(
        config=config,
        s3_handler=s3_handler,
        store=store,
        recorder=recorder,
        compression_service=CompressionService(s3_handler, recorder, max_file_size=config.MAX_FILE_SIZE),
        sweeper=RetentionSweeper(
            store,
            s3_handler,
            retention=timedelta(hours=config.RETENTION_HOURS),
            interval=timedelta(hours=config.SWEEP_INTERVAL_HOURS),
        ),
    )


async def build_context(config: Optional[Config] = None) -> AppContext:
    """Connect to S3 and the database using environment configuration"""
    config = config or Config()
    s3_handler = await asyncio.to_thread(S3Handler, config)
    store = MetadataStore(config.DATABASE_URL)
    await store.initialize()
    logger.info("Connected to metadata store")
    return build_components(config, s3_handler, store)


ContextFactory = Callable[[], Awaitable[AppContext]]


def create_app(context_factory: Optional[ContextFactory] = None, config: Optional[Config] = None) -> FastAPI:
    config = config or Config()
    context_factory = context_factory or (lambda: build_context(config))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = await context_factory()
        app.state.context = context
        context.recorder.start()
        context.sweeper.start()
        logger.info(f"Image Compressor started (bucket: {context.config.S3_BUCKET})")
        try:
            yield
        finally:
            await context.sweeper.stop()
            await context.s3_handler.wait_for_cleanups()
            await context.recorder.stop()
            await context.store.close()
            logger.info("Image Compressor stopped")

    app = FastAPI(
        title="Image Compressor API",
        description="Compress JPEG/PNG/HEIF images or store PDFs, with 24 hour download links",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(CompressorError)
    async def compressor_error_handler(request: Request, exc: CompressorError):
        if exc.status_code < 500:
            logger.warning(f"Rejected request: {exc}")
            return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc)})
        logger.error(f"Processing failed: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": "Server failed to process file", "details": str(exc)},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Server failed to process file", "details": str(exc)},
        )

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "message": "Image Compressor API",
            "status": "running",
            "version": "1.0.0",
            "endpoints": {
                "health": "/api/health",
                "compress": "/api/compress",
                "history": "/api/history",
                "compression_stats": "/api/compression/stats",
            },
        }

    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        context: AppContext = request.app.state.context
        database_ok = await context.store.health_check()
        return {
            "status": "OK",
            "message": "Server is running",
            "database": "ok" if database_ok else "unavailable",
        }

    @app.post("/api/compress")
    async def compress_file(
        request: Request,
        image: Optional[UploadFile] = File(None),
        format: str = Form("jpeg"),
        compress: str = Form("false"),
    ):
        """
        Compress an uploaded image (or store a PDF as-is) and return a download link

        Args:
            image: JPEG, PNG, HEIF or PDF file, at most 10MB
            format: Output format for images: jpeg, jpg, png (heif/heic are rejected)
            compress: "true" for the smaller-output preset

        Returns:
            Sizes, compression ratio and a forced-download URL
        """
        if image is None or not image.filename:
            raise MissingFileError()

        context: AppContext = request.app.state.context
        data = await image.read()

        outcome = await context.compression_service.process(CompressionRequest(
            data=data,
            content_type=image.content_type,
            filename=image.filename,
            output_format=format,
            compress=compress.strip().lower() == "true",
        ))

        return {
            "success": True,
            "message": "File processed successfully",
            "originalSize": format_kb(outcome.original_size),
            "compressedSize": format_kb(outcome.compressed_size),
            "compressionRatio": f"{outcome.compression_ratio}%",
            "downloadUrl": outcome.download_url,
        }

    @app.get("/api/history")
    async def get_history(request: Request):
        """Most recent compressions, newest first"""
        context: AppContext = request.app.state.context
        try:
            records = await context.recorder.history(context.config.HISTORY_LIMIT)
        except Exception as e:
            logger.error(f"Error loading history: {e}")
            return JSONResponse(status_code=500, content={"success": False, "error": "Failed to load history"})
        return {"success": True, "history": [record.to_dict() for record in records]}

    @app.get("/api/compression/stats")
    async def get_compression_stats(request: Request):
        """
        Get supported formats and the codec parameter table

        Returns:
            Information about compression capabilities
        """
        context: AppContext = request.app.state.context
        sweeper = context.sweeper
        return {
            "success": True,
            "compression_service": {
                "supported_input_extensions": sorted(IMAGE_EXTENSIONS | DOCUMENT_EXTENSIONS),
                "supported_output_formats": [fmt.value for fmt in IMAGE_OUTPUT_FORMATS],
                "format_aliases": FORMAT_ALIASES,
                "max_file_size": context.config.MAX_FILE_SIZE,
            },
            "current_settings": {
                f"{fmt.value}{'_compressed' if flag else ''}": plan.describe()
                for (fmt, flag), plan in CODEC_PRESETS.items()
                if fmt in IMAGE_OUTPUT_FORMATS
            },
            "retention": {
                "hours": context.config.RETENTION_HOURS,
                "sweeper_state": sweeper.state.value,
                "last_sweep_cutoff": (
                    sweeper.last_report.cutoff.isoformat() if sweeper.last_report else None
                ),
            },
            "timestamp": datetime.now().isoformat(),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
