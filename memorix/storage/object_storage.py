import logging
from typing import BinaryIO, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .. import config
from ..exceptions import StorageConfigError, StorageError
from ..models import StorageConfig
from .base import StorageBackend, check_filename


def normalize_prefix(prefix: Optional[str]) -> str:
    """'/photos/2024' -> 'photos/2024/'; empty stays empty."""
    trimmed = (prefix or '').strip().replace('\\', '/').lstrip('/')
    if not trimmed:
        return ''
    return trimmed if trimmed.endswith('/') else trimmed + '/'


def normalize_endpoint(endpoint: Optional[str], bucket: Optional[str]) -> Tuple[Optional[str], bool, Optional[str]]:
    """
    Resolves a configured endpoint to (endpoint_url, force_path_style, host).

    An endpoint whose host starts with "<bucket>." is a virtual-hosted
    address; the bucket is stripped and virtual addressing kept. Anything
    else is used with path-style addressing.
    """
    value = (endpoint or '').strip()
    if not value:
        return None, False, None

    url = urlsplit(value if '://' in value else f'https://{value}')
    host = url.hostname
    if not host:
        return value, True, None

    bucket_name = (bucket or '').strip().lower()
    netloc = url.netloc
    if bucket_name and host.lower().startswith(bucket_name + '.'):
        base_host = host[len(bucket_name) + 1:]
        netloc = base_host if url.port is None else f'{base_host}:{url.port}'
        return urlunsplit((url.scheme, netloc, '/', '', '')), False, base_host

    return urlunsplit((url.scheme, netloc, '/', '', '')), True, host


def normalize_region(region: Optional[str], endpoint_host: Optional[str]) -> str:
    raw = (region or '').strip()
    if not raw:
        return config.DEFAULT_OBJECT_STORAGE_REGION
    host = (endpoint_host or '').lower()
    if 'qiniu' in host:
        return config.QINIU_REGIONS.get(raw.lower(), raw)
    return raw


class ObjectStorageBackend(StorageBackend):
    """Uploads to an S3-compatible bucket (AWS, Qiniu, R2, MinIO...)."""

    def upload(self, stream: BinaryIO, filename: str, storage_config: StorageConfig) -> str:
        check_filename(filename)
        bucket = storage_config.bucket
        if not bucket:
            raise StorageConfigError("object storage has no bucket", operation="upload")

        key = normalize_prefix(storage_config.remote_dir) + filename
        location = f"{bucket}/{key}"
        client = self.client(storage_config)
        try:
            client.upload_fileobj(stream, bucket, key)
        except (S3UploadFailedError, ClientError, BotoCoreError) as e:
            raise StorageError(str(e), operation="put_object", path=location) from e

        logging.info(f"Uploaded {filename} to s3://{location}")
        return f"s3://{location}"

    def client(self, storage_config: StorageConfig):
        endpoint_url, path_style, endpoint_host = normalize_endpoint(storage_config.endpoint,
                                                                     storage_config.bucket)
        # No endpoint means AWS itself, where boto3 resolves the region on its own
        region = None
        if endpoint_url or storage_config.region:
            region = normalize_region(storage_config.region, endpoint_host)

        if path_style:
            addressing = 'path'
        else:
            addressing = 'virtual' if endpoint_url else 'auto'
        client_config = Config(
            retries={'mode': 'standard', 'total_max_attempts': 1},
            s3={'addressing_style': addressing},
            connect_timeout=storage_config.timeout or 60,
        )
        kwargs = {
            'region_name': region,
            'endpoint_url': endpoint_url,
            'config': client_config,
        }
        if storage_config.access_key and storage_config.secret_key:
            kwargs['aws_access_key_id'] = storage_config.access_key
            kwargs['aws_secret_access_key'] = storage_config.secret_key
        try:
            return boto3.client('s3', **kwargs)
        except (BotoCoreError, ValueError) as e:
            raise StorageConfigError(str(e), operation="connect", path=endpoint_url or storage_config.bucket) from e
