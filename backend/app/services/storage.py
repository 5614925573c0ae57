from __future__ import annotations
import io
from functools import lru_cache
from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error
from app.config import settings

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure

@lru_cache(maxsize=1)
def _client() -> Minio:
    host, secure = _parse_endpoint(settings.s3_endpoint)
    client = Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)
    try:
        if not client.bucket_exists(settings.s3_bucket_uploads):
            client.make_bucket(settings.s3_bucket_uploads)
    except S3Error as e:
        # concurrent workers may race on bucket creation
        if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
            raise
    return client

def put_bytes(key: str, data: bytes, content_type: str) -> None:
    _client().put_object(
        settings.s3_bucket_uploads, key, io.BytesIO(data), length=len(data), content_type=content_type
    )

def get_bytes(key: str) -> tuple[bytes, str]:
    """
    Retrieve object from storage.
    Returns (data, content_type).
    """
    try:
        response = _client().get_object(settings.s3_bucket_uploads, key)
        try:
            data = response.read()
            content_type = response.headers.get('Content-Type', 'application/octet-stream')
        finally:
            response.close()
            response.release_conn()
        return data, content_type
    except S3Error as e:
        if e.code == 'NoSuchKey':
            raise FileNotFoundError(f"Object not found: {key}")
        raise

def move_object(src_key: str, dst_key: str) -> None:
    """S3 has no rename: copy then delete the source."""
    client = _client()
    try:
        client.copy_object(settings.s3_bucket_uploads, dst_key, CopySource(settings.s3_bucket_uploads, src_key))
    except S3Error as e:
        if e.code == 'NoSuchKey':
            raise FileNotFoundError(f"Object not found: {src_key}")
        raise
    client.remove_object(settings.s3_bucket_uploads, src_key)

def remove_object(key: str) -> None:
    _client().remove_object(settings.s3_bucket_uploads, key)
