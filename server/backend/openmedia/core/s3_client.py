# MinIO client initialization and S3-compatible result storage

from minio import Minio
from minio.error import S3Error
from typing import BinaryIO, Optional, Protocol
import io
import os
import threading

import urllib3

from .config import Settings, get_settings


class ObjectStorage(Protocol):
    """Blob store the pipeline writes artifacts to"""

    def put_bytes(self, object_name: str, data: bytes, content_type: str) -> str:
        ...


class MinIOClient:
    """MinIO S3-compatible storage client wrapper"""

    def __init__(self, settings: Settings):
        # Remove protocol prefix for endpoint
        endpoint = settings.s3_endpoint.replace("http://", "").replace("https://", "")
        secure = settings.s3_secure or settings.s3_endpoint.startswith("https://")

        # Tune underlying HTTP connection pool for concurrent jobs uploading segments
        pool_maxsize = int(os.getenv("S3_HTTP_POOL_MAXSIZE", "32"))
        connect_timeout = float(os.getenv("S3_HTTP_CONNECT_TIMEOUT", "5"))
        read_timeout = float(os.getenv("S3_HTTP_READ_TIMEOUT", "60"))
        total_retries = int(os.getenv("S3_HTTP_TOTAL_RETRIES", "3"))
        backoff = float(os.getenv("S3_HTTP_BACKOFF_FACTOR", "0.2"))

        http_client = urllib3.PoolManager(
            maxsize=pool_maxsize,
            timeout=urllib3.Timeout(connect=connect_timeout, read=read_timeout),
            retries=urllib3.Retry(
                total=total_retries,
                backoff_factor=backoff,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods={"GET", "PUT", "POST", "HEAD"},
            ),
        )

        self.client = Minio(
            endpoint=endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            secure=secure,
            http_client=http_client,
        )
        self.bucket_name = settings.s3_bucket
        self._bucket_checked = False
        self._bucket_lock = threading.Lock()

    def _ensure_bucket_exists(self) -> None:
        """Create bucket if it doesn't exist (checked once, on first write)"""
        with self._bucket_lock:
            if self._bucket_checked:
                return
            try:
                if not self.client.bucket_exists(self.bucket_name):
                    self.client.make_bucket(self.bucket_name)
            except S3Error as e:
                raise Exception(f"Failed to create/access bucket '{self.bucket_name}': {e}")
            self._bucket_checked = True

    def upload_file(
        self,
        file_obj: BinaryIO,
        object_name: str,
        file_size: int,
        content_type: str = "application/octet-stream"
    ) -> str:
        """
        Upload file to MinIO

        Args:
            file_obj: File-like object to upload
            object_name: S3 object key/path
            file_size: Size of file in bytes
            content_type: MIME type

        Returns:
            str: Object name/key
        """
        self._ensure_bucket_exists()
        try:
            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=object_name,
                data=file_obj,
                length=file_size,
                content_type=content_type
            )
            return object_name
        except S3Error as e:
            raise Exception(f"Failed to upload file '{object_name}': {e}")

    def put_bytes(self, object_name: str, data: bytes, content_type: str) -> str:
        return self.upload_file(io.BytesIO(data), object_name, len(data), content_type)


_client: Optional[MinIOClient] = None
_client_lock = threading.Lock()


def get_storage() -> MinIOClient:
    """Process-wide MinIO client, created on first use"""
    global _client
    with _client_lock:
        if _client is None:
            _client = MinIOClient(get_settings())
        return _client
