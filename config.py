import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

class Config:
    # AWS Settings
    AWS_ACCESS_KEY_ID = os.getenv('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY = os.getenv('AWS_SECRET_ACCESS_KEY')
    AWS_REGION = os.getenv('AWS_REGION', 'eu-west-1')

    # Artifact bucket
    S3_BUCKET = os.getenv('S3_BUCKET', 'image-compressor-artifacts')
    S3_ENDPOINT_URL = os.getenv('S3_ENDPOINT_URL')
    S3_FOLDER = os.getenv('S3_FOLDER', 'compressor')
    PUBLIC_BASE_URL = os.getenv('PUBLIC_BASE_URL')
    UPLOAD_TIMEOUT_SECONDS = float(os.getenv('UPLOAD_TIMEOUT_SECONDS', '60'))

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./compressions.db')

    # Uploads
    MAX_FILE_SIZE = int(os.getenv('MAX_FILE_SIZE', str(10 * 1024 * 1024)))  # 10MB
    HISTORY_LIMIT = int(os.getenv('HISTORY_LIMIT', '10'))

    # Retention
    RETENTION_HOURS = float(os.getenv('RETENTION_HOURS', '24'))
    SWEEP_INTERVAL_HOURS = float(os.getenv('SWEEP_INTERVAL_HOURS', '24'))

    # Server
    PORT = int(os.getenv('PORT', '3000'))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            'CORS_ORIGINS',
            'http://localhost:3000,http://localhost:5500,http://127.0.0.1:3000,http://localhost:5173'
        ).split(',')
        if origin.strip()
    ]
