#!/usr/bin/env python

"""
    Configurations for STORA

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import os


# Determine environment
TESTING = os.getenv("TESTING", "false").lower() == "true"

# API server configuration
HOST = os.environ.get('STORA_HOST', 'localhost')
PORT = int(os.environ.get('STORA_PORT', 8080))
WORKERS = int(os.environ.get('STORA_WORKERS', 1))
DEBUG = bool(int(os.environ.get('STORA_DEBUG', 0)))
LOG_LEVEL = os.environ.get('STORA_LOG_LEVEL', 'info')
SSL_CRT = os.environ.get('STORA_SSL_CRT')
SSL_KEY = os.environ.get('STORA_SSL_KEY')
CORS_ORIGINS = [
    origin.strip() for origin in
    os.environ.get('STORA_CORS_ORIGINS', 'http://localhost:3000').split(',')
    if origin.strip()
]
STORA_HTTP_HEADERS = {"User-Agent": "StoraSyncClient/1.0"}

# Signing seed for bearer tokens issued by the session provider
STORA_SEED = os.environ.get('STORA_SEED', 'stora-dev-seed')
TOKEN_TTL = int(os.environ.get('STORA_TOKEN_TTL', 7 * 24 * 3600))

# Listing defaults (page size mirrors the mobile client)
DEFAULT_LIMIT = int(os.environ.get('STORA_DEFAULT_LIMIT', 10))
MAX_LIMIT = int(os.environ.get('STORA_MAX_LIMIT', 1000))

OPTIONS = {
    'host': HOST,
    'port': PORT,
    'log_level': LOG_LEVEL,
    'reload': DEBUG,
    'workers': WORKERS,
}
if SSL_CRT and SSL_KEY:
    OPTIONS['ssl_keyfile'] = SSL_KEY
    OPTIONS['ssl_certfile'] = SSL_CRT

DB_CONFIG = {
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASSWORD'),
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', '5432')),
    'dbname': os.environ.get('DB_NAME', 'stora'),
}

# Database configuration
DB_URI = (
    "sqlite:///:memory:" if TESTING else
    os.environ.get('STORA_DB_URI') or
    'postgresql+psycopg2://{user}:{password}@{host}:{port}/{dbname}'.format(**DB_CONFIG)
)

# Evidence photo storage: "s3" (MinIO or AWS) or "local" (directory on disk)
BLOB_BACKEND = os.environ.get('STORA_BLOB_BACKEND', 'local' if TESTING else 's3').lower()
UPLOAD_DIR = os.environ.get('STORA_UPLOAD_DIR', os.path.join(os.getcwd(), 'uploads'))
MAX_PHOTO_SIZE = int(os.environ.get('STORA_MAX_PHOTO_SIZE', 10 * 1024 * 1024))
ALLOWED_PHOTO_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}
MAX_PHOTOS_PER_REQUEST = 10

S3_CONFIG = {
    'endpoint': os.environ.get('S3_ENDPOINT'),
    'access_key': os.environ.get('S3_ACCESS_KEY'),
    'secret_key': os.environ.get('S3_SECRET_KEY'),
    'secure': os.environ.get('S3_SECURE', 'false').lower() == 'true',
    'bucket': os.environ.get('S3_BUCKET', 'stora-evidence'),
}

__all__ = [
    'HOST', 'PORT', 'DEBUG', 'LOG_LEVEL', 'OPTIONS', 'DB_URI', 'DB_CONFIG',
    'S3_CONFIG', 'TESTING', 'BLOB_BACKEND', 'UPLOAD_DIR', 'STORA_SEED', 'TOKEN_TTL',
]
