"""
    Evidence photo storage.

    Photos are opaque blobs addressed by the path returned from `put`.
    Removal is best-effort: callers log failures and carry on.
"""

import logging
import os
import secrets
import time
from pathlib import Path

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from stora.configs import S3_CONFIG, BLOB_BACKEND, UPLOAD_DIR
from stora.core.exceptions import BlobStoreError

logger = logging.getLogger(__name__)


def unique_name(prefix: str, filename: str = None, default_ext: str = ".jpg") -> str:
    ext = Path(filename or "").suffix.lower() or default_ext
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"


def owner_prefix(owner_id: int) -> str:
    return f"owner-{int(owner_id)}/"


def blob_key(path: str) -> str:
    """The store-relative key of a path returned by either backend's `put`."""
    if path.startswith("s3://"):
        return path[len("s3://"):].partition("/")[2]
    if path.startswith(LocalBlobStore.URL_PREFIX):
        return path[len(LocalBlobStore.URL_PREFIX):]
    return path


def is_owned(path: str, owner_id: int) -> bool:
    """Only keys under the owner's prefix, with no `..` segment, qualify."""
    key = blob_key(path)
    return key.startswith(owner_prefix(owner_id)) and ".." not in key.split("/")


class StoraS3:

    def __init__(self, bucket=None, client=None):
        self.bucket = bucket or S3_CONFIG['bucket']
        self.s3 = client or boto3.session.Session().client(
            service_name='s3',
            aws_access_key_id=S3_CONFIG['access_key'],
            aws_secret_access_key=S3_CONFIG['secret_key'],
            endpoint_url=f"{'https' if S3_CONFIG['secure'] else 'http'}://{S3_CONFIG['endpoint']}",
            use_ssl=S3_CONFIG['secure']
        )
        self._initialize()

    def __getattr__(self, name):
        # Delegate any unknown attribute or method to the boto3 s3 client
        return getattr(self.s3, name)

    def _initialize(self):
        try:
            self.s3.head_bucket(Bucket=self.bucket)
            logger.info(f"Bucket '{self.bucket}' already exists.")
        except (ClientError, BotoCoreError):
            try:
                self.s3.create_bucket(Bucket=self.bucket)
                logger.info(f"Bucket '{self.bucket}' created successfully.")
            except (ClientError, BotoCoreError) as create_error:
                logger.error(f"Error creating bucket '{self.bucket}': {create_error}")

    def _key(self, path: str) -> str:
        prefix = f"s3://{self.bucket}/"
        return path[len(prefix):] if path.startswith(prefix) else path.lstrip("/")

    def put(self, fileobj, name: str, content_type: str = None) -> str:
        extra = {'ContentType': content_type} if content_type else {}
        try:
            self.s3.upload_fileobj(fileobj, self.bucket, name, ExtraArgs=extra)
        except (ClientError, BotoCoreError) as e:
            raise BlobStoreError(f"Failed to upload '{name}' to S3: {e}")
        return f"s3://{self.bucket}/{name}"

    def remove(self, path: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=self._key(path))
        except (ClientError, BotoCoreError) as e:
            raise BlobStoreError(f"Failed to remove '{path}' from S3: {e}")


class LocalBlobStore:
    """Stores photos under `root`, exposing them as `/uploads/<name>`."""

    URL_PREFIX = "/uploads/"

    def __init__(self, root=UPLOAD_DIR):
        self.root = Path(root)

    def _file(self, path: str) -> Path:
        name = path[len(self.URL_PREFIX):] if path.startswith(self.URL_PREFIX) else path
        target = (self.root / name).resolve()
        if self.root.resolve() not in target.parents:
            raise BlobStoreError(f"Refusing to touch '{path}' outside the upload root.")
        return target

    def put(self, fileobj, name: str, content_type: str = None) -> str:
        target = self._file(name)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as out:
                while chunk := fileobj.read(64 * 1024):
                    out.write(chunk)
        except OSError as e:
            raise BlobStoreError(f"Failed to store '{name}': {e}")
        return f"{self.URL_PREFIX}{name}"

    def remove(self, path: str) -> None:
        try:
            os.remove(self._file(path))
        except OSError as e:
            raise BlobStoreError(f"Failed to remove '{path}': {e}")


def remove_quietly(blobs, paths) -> int:
    """Best-effort removal; returns how many blobs were actually removed."""
    removed = 0
    for path in paths:
        try:
            blobs.remove(path)
            removed += 1
        except BlobStoreError as e:
            logger.warning(f"Blob cleanup failed, metadata already gone: {e}")
    return removed


BLOBS = None  # Will be initialized lazily


def get_blob_store():
    global BLOBS
    if BLOBS is None:
        BLOBS = LocalBlobStore() if BLOB_BACKEND == 'local' else StoraS3()
    return BLOBS
