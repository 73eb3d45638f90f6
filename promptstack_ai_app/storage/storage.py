# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# storage/storage.py
"""
Blob storage backends used for trace snapshots.

Keys are plain '/'-separated strings; no transactional semantics are assumed
across several writes. Every write replaces the whole object.
"""
import asyncio
import logging
import mimetypes
import os
import shutil
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse

logger = logging.getLogger("Storage")

mimetypes.add_type("application/json", ".json")


def _content_type_from_meta(path: str, meta: Optional[dict]) -> Optional[str]:
    if meta:
        ct = (meta.get("ContentType")
              or meta.get("content_type")
              or meta.get("mime")
              or meta.get("mime_type"))
        if ct:
            return ct
    guessed, _ = mimetypes.guess_type(path)
    return guessed


class IStorageBackend(ABC):
    """Interface for storage backends."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a path exists in storage."""
        pass

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """Read raw bytes from storage."""
        pass

    @abstractmethod
    def write_bytes(self, path: str, data: bytes, meta: Optional[dict] = None) -> None:
        """Write raw bytes to storage (full overwrite)."""
        pass

    def read_text(self, path: str, encoding: str = 'utf-8') -> str:
        return self.read_bytes(path).decode(encoding)

    def write_text(self, path: str, content: str, encoding: str = 'utf-8') -> None:
        self.write_bytes(path, content.encode(encoding))

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a file."""
        pass

    # ---------- Async convenience wrappers (default: run sync in a thread) ----------
    async def exists_a(self, path: str) -> bool:
        return await asyncio.to_thread(self.exists, path)

    async def read_bytes_a(self, path: str) -> bytes:
        return await asyncio.to_thread(self.read_bytes, path)

    async def write_bytes_a(self, path: str, data: bytes, meta: Optional[dict] = None) -> None:
        return await asyncio.to_thread(self.write_bytes, path, data, meta)

    async def read_text_a(self, path: str, encoding: str = "utf-8") -> str:
        return await asyncio.to_thread(self.read_text, path, encoding)

    async def delete_a(self, path: str) -> None:
        return await asyncio.to_thread(self.delete, path)


class LocalFileSystemBackend(IStorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve_path(self, path: str) -> Path:
        """Resolve a path relative to the base path."""
        resolved = (self.base_path / path).resolve()
        # must stay within base directory
        if not resolved.is_relative_to(self.base_path):
            raise ValueError(f"Path {path} is outside base directory")
        return resolved

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def read_bytes(self, path: str) -> bytes:
        return self._resolve_path(path).read_bytes()

    def write_bytes(self, path: str, data: bytes, meta: Optional[dict] = None) -> None:
        resolved = self._resolve_path(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so readers never observe a half-written object;
        # one temp file per write, concurrent writers of a key must not share it
        tmp = resolved.with_name(f"{resolved.name}.tmp.{os.getpid()}.{uuid.uuid4().hex}")
        try:
            tmp.write_bytes(data)
            tmp.replace(resolved)
        finally:
            tmp.unlink(missing_ok=True)

    def delete(self, path: str) -> None:
        resolved = self._resolve_path(path)
        if resolved.is_file():
            resolved.unlink()
        elif resolved.is_dir():
            shutil.rmtree(resolved)


class S3StorageBackend(IStorageBackend):
    """Amazon S3 storage backend."""

    def __init__(self, bucket_name: str, prefix: str = "",
                 aws_access_key_id: Optional[str] = None,
                 aws_secret_access_key: Optional[str] = None,
                 region_name: Optional[str] = None,
                 skip_bucket_check: bool = False,
                 s3_client: Any = None):
        self.bucket_name = bucket_name
        self.prefix = prefix.rstrip('/') + '/' if prefix else ''

        session_kwargs = {}
        if aws_access_key_id:
            session_kwargs['aws_access_key_id'] = aws_access_key_id
        if aws_secret_access_key:
            session_kwargs['aws_secret_access_key'] = aws_secret_access_key
        if region_name:
            session_kwargs['region_name'] = region_name

        self.s3_client = s3_client or self._create_s3_client(session_kwargs)

        if not skip_bucket_check:
            try:
                self.s3_client.head_bucket(Bucket=bucket_name)
            except Exception as e:
                raise ConnectionError(f"Cannot connect to S3 bucket {bucket_name}: {e}") from e

    def _create_s3_client(self, session_kwargs):
        """Create S3 client - separated for easier testing."""
        import boto3

        session = boto3.Session(**session_kwargs)
        return session.client('s3')

    def _get_s3_key(self, path: str) -> str:
        path = path.replace('\\', '/')
        return self.prefix + path.lstrip('/')

    def exists(self, path: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=self._get_s3_key(path))
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def read_bytes(self, path: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=self._get_s3_key(path))
            return response['Body'].read()
        except Exception as e:
            raise FileNotFoundError(f"Cannot read {path} from S3: {e}") from e

    def write_bytes(self, path: str, data: bytes, meta: Optional[dict] = None) -> None:
        put_kwargs: Dict[str, Any] = {
            "Bucket": self.bucket_name,
            "Key": self._get_s3_key(path),
            "Body": data,
        }
        content_type = _content_type_from_meta(path, meta)
        if content_type:
            put_kwargs["ContentType"] = content_type
        if meta and isinstance(meta.get("Metadata"), dict):
            # S3 requires str values for Metadata
            put_kwargs["Metadata"] = {str(k): str(v) for k, v in meta["Metadata"].items()}
        try:
            self.s3_client.put_object(**put_kwargs)
        except Exception as e:
            raise IOError(f"Cannot write {path} to S3: {e}") from e

    def delete(self, path: str) -> None:
        self.s3_client.delete_object(Bucket=self.bucket_name, Key=self._get_s3_key(path))


class InMemoryObject:
    def __init__(self, key: str, data: bytes, content_type: Optional[str] = None):
        self.__key = key
        self.__data = data
        self.__content_type = content_type

    @property
    def key(self):
        return self.__key

    @property
    def data(self) -> bytes:
        return self.__data

    @property
    def content_type(self) -> Optional[str]:
        return self.__content_type


class InMemoryStorageBackend(IStorageBackend):
    """In-memory storage backend."""

    def __init__(self) -> None:
        self.__fs_objects: Dict[str, InMemoryObject] = {}
        self.__lock = threading.RLock()

    @contextmanager
    def __with_lock(self):
        self.__lock.acquire()
        try:
            yield
        finally:
            self.__lock.release()

    def exists(self, path: str) -> bool:
        with self.__with_lock():
            return path in self.__fs_objects

    def read_bytes(self, path: str) -> bytes:
        with self.__with_lock():
            if path in self.__fs_objects:
                return self.__fs_objects[path].data
        raise FileNotFoundError(f"{path} not found in storage")

    def write_bytes(self, path: str, data: bytes, meta: Optional[dict] = None) -> None:
        if path.endswith('/'):
            raise ValueError(f"{path} is a directory")
        with self.__with_lock():
            self.__fs_objects[path] = InMemoryObject(path, data, _content_type_from_meta(path, meta))

    def delete(self, path: str) -> None:
        with self.__with_lock():
            self.__fs_objects.pop(path, None)

    def get_object(self, path: str) -> Optional[InMemoryObject]:
        with self.__with_lock():
            return self.__fs_objects.get(path)

    def keys(self) -> List[str]:
        with self.__with_lock():
            return sorted(self.__fs_objects.keys())


def create_storage_backend(storage_uri: str, **kwargs) -> IStorageBackend:
    """Factory function to create storage backends from URI."""
    parsed = urlparse(storage_uri)

    if parsed.scheme == 'file' or not parsed.scheme:
        path = parsed.path if parsed.path else storage_uri
        return LocalFileSystemBackend(path)

    elif parsed.scheme == 's3':
        bucket_name = parsed.netloc
        prefix = parsed.path.lstrip('/') if parsed.path else ''
        return S3StorageBackend(
            bucket_name=bucket_name,
            prefix=prefix,
            **kwargs
        )

    elif parsed.scheme == 'mem':
        return InMemoryStorageBackend()

    else:
        raise ValueError(f"Unsupported storage scheme: {parsed.scheme}")
