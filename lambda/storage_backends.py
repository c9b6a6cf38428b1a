"""
Storage backends for verification records.

Two interchangeable implementations of one small key/JSON-object interface:
- LocalBackend: JSON files under a base directory
- S3Backend: JSON objects in an S3 bucket

Keys are '/'-separated relative paths (e.g. 'used_codes/a@school.edu/x.json').
Read failures raise StorageUnavailable, write failures raise PersistenceError.
"""
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from errors import PersistenceError, StorageUnavailable
from logging_utils import log_storage_error


def key_part(value: str) -> str:
    """Make a user-supplied value safe to embed in a storage key."""
    return quote(value, safe='@.+-_')


class StorageBackend(ABC):
    """Key/JSON-object store shared by the domain registry and code store."""

    name = 'Unknown'

    @abstractmethod
    def read_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the object at key, or None if it does not exist."""

    @abstractmethod
    def write_json(self, key: str, data: Dict[str, Any]) -> None:
        """Replace the object at key. The write is all-or-nothing."""

    @abstractmethod
    def list_keys(self, prefix: str) -> List[str]:
        """Return every key under prefix, sorted."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the object at key. Missing keys are ignored."""

    @abstractmethod
    def location(self) -> str:
        """Human-readable location for diagnostics."""

    def describe(self) -> Dict[str, str]:
        return {'backend': self.name, 'location': self.location()}


class LocalBackend(StorageBackend):
    """JSON files on the local filesystem."""

    name = 'Local'

    def __init__(self, base_dir):
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        return self.base_dir.joinpath(*key.split('/'))

    def read_json(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log_storage_error('read', self.name, e)
            raise StorageUnavailable(
                "Storage is temporarily unavailable.",
                details={'key': key, 'error': str(e)}
            ) from e

    def write_json(self, key: str, data: Dict[str, Any]) -> None:
        path = self._path(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file in the same directory, then rename over the target
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix='.tmp-', suffix='.json')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            log_storage_error('write', self.name, e)
            raise PersistenceError(
                "Failed to save data. Please try again.",
                details={'key': key, 'error': str(e)}
            ) from e

    def list_keys(self, prefix: str) -> List[str]:
        root = self._path(prefix.rstrip('/'))
        if not root.exists():
            return []

        try:
            return sorted(
                path.relative_to(self.base_dir).as_posix()
                for path in root.rglob('*.json')
                if path.is_file() and not path.name.startswith('.tmp-')
            )
        except OSError as e:
            log_storage_error('list', self.name, e)
            raise StorageUnavailable(
                "Storage is temporarily unavailable.",
                details={'prefix': prefix, 'error': str(e)}
            ) from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            log_storage_error('delete', self.name, e)
            raise PersistenceError(
                "Failed to delete data. Please try again.",
                details={'key': key, 'error': str(e)}
            ) from e

    def location(self) -> str:
        return str(self.base_dir.resolve())


class S3Backend(StorageBackend):
    """JSON objects in an S3 bucket. S3 gives read-after-write consistency."""

    name = 'S3'

    def __init__(self, bucket: str, client=None, region: str = 'us-east-1'):
        if not bucket:
            raise ValueError("S3 bucket name is required for the S3 backend")
        self.bucket = bucket
        self.client = client or boto3.client('s3', region_name=region)

    def read_json(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return json.loads(response['Body'].read())
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                return None
            log_storage_error('read', self.name, e)
            raise StorageUnavailable(
                "Storage is temporarily unavailable.",
                details={'key': key, 'error': str(e)}
            ) from e
        except (BotoCoreError, ValueError) as e:
            log_storage_error('read', self.name, e)
            raise StorageUnavailable(
                "Storage is temporarily unavailable.",
                details={'key': key, 'error': str(e)}
            ) from e

    def write_json(self, key: str, data: Dict[str, Any]) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=json.dumps(data, indent=2, sort_keys=True).encode('utf-8'),
                ContentType='application/json'
            )
        except (ClientError, BotoCoreError) as e:
            log_storage_error('write', self.name, e)
            raise PersistenceError(
                "Failed to save data. Please try again.",
                details={'key': key, 'error': str(e)}
            ) from e

    def list_keys(self, prefix: str) -> List[str]:
        keys = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except (ClientError, BotoCoreError) as e:
            log_storage_error('list', self.name, e)
            raise StorageUnavailable(
                "Storage is temporarily unavailable.",
                details={'prefix': prefix, 'error': str(e)}
            ) from e
        return sorted(keys)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            log_storage_error('delete', self.name, e)
            raise PersistenceError(
                "Failed to delete data. Please try again.",
                details={'key': key, 'error': str(e)}
            ) from e

    def location(self) -> str:
        return f"s3://{self.bucket}"


def build_backend(use_local: bool, local_dir, bucket: Optional[str] = None,
                  region: str = 'us-east-1', s3_client=None) -> StorageBackend:
    """
    Pick a backend once, from configuration.

    Args:
        use_local: True for the local filesystem, False for S3
        local_dir: Base directory for the local backend
        bucket: S3 bucket name for the S3 backend
        region: AWS region for the S3 client
        s3_client: Optional pre-built boto3 S3 client

    Returns:
        StorageBackend instance
    """
    if use_local:
        return LocalBackend(local_dir)
    return S3Backend(bucket, client=s3_client, region=region)
