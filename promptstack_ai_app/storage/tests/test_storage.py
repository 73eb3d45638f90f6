# SPDX-License-Identifier: MIT

import asyncio
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from promptstack_ai_app.storage.storage import (
    InMemoryStorageBackend,
    LocalFileSystemBackend,
    S3StorageBackend,
    create_storage_backend,
)


class FakeS3Client:
    def __init__(self):
        self.objects = {}
        self.put_calls = []

    def head_bucket(self, Bucket):
        return {}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {}

    def put_object(self, **kwargs):
        self.put_calls.append(kwargs)
        self.objects[kwargs["Key"]] = kwargs["Body"]

    def get_object(self, Bucket, Key):
        import io
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)


def test_local_backend_roundtrip(tmp_path):
    fs = LocalFileSystemBackend(str(tmp_path))
    fs.write_text("traces/1/2025-01-15/1/t/trace.json", '{"a": 1}')

    assert fs.exists("traces/1/2025-01-15/1/t/trace.json")
    assert fs.read_text("traces/1/2025-01-15/1/t/trace.json") == '{"a": 1}'
    assert [p.name for p in (tmp_path / "traces/1/2025-01-15/1/t").iterdir()] == ["trace.json"]

    fs.delete("traces/1")
    assert not fs.exists("traces/1/2025-01-15/1/t/trace.json")


def test_local_backend_stays_inside_base(tmp_path):
    fs = LocalFileSystemBackend(str(tmp_path / "base"))
    with pytest.raises(ValueError):
        fs.write_bytes("../escape.json", b"{}")


@pytest.mark.asyncio
async def test_concurrent_writes_to_one_key_all_succeed(tmp_path):
    fs = LocalFileSystemBackend(str(tmp_path))
    key = "traces/1/2025-01-15/1/t/trace.json"
    payloads = [bytes([65 + i]) * (1024 * 1024) for i in range(8)]

    for _ in range(3):
        results = await asyncio.gather(*(fs.write_bytes_a(key, p) for p in payloads), return_exceptions=True)
        assert results == [None] * len(payloads)
        assert fs.read_bytes(key) in payloads

    assert [p.name for p in (tmp_path / "traces/1/2025-01-15/1/t").iterdir()] == ["trace.json"]


def test_failed_write_leaves_no_temp_file(tmp_path, monkeypatch):
    fs = LocalFileSystemBackend(str(tmp_path))

    def fail_replace(self, target):
        raise OSError("rename failed")

    monkeypatch.setattr(Path, "replace", fail_replace)
    with pytest.raises(OSError):
        fs.write_bytes("a/b.json", b"{}")

    assert list((tmp_path / "a").iterdir()) == []


@pytest.mark.asyncio
async def test_async_wrappers(tmp_path):
    fs = LocalFileSystemBackend(str(tmp_path))
    await fs.write_bytes_a("a/b.json", b"{}")

    assert await fs.exists_a("a/b.json")
    assert await fs.read_bytes_a("a/b.json") == b"{}"
    assert await fs.read_text_a("a/b.json") == "{}"
    await fs.delete_a("a/b.json")
    assert not await fs.exists_a("a/b.json")


def test_in_memory_backend_keeps_content_type():
    fs = InMemoryStorageBackend()
    fs.write_bytes("x/trace.json", b"{}", {"ContentType": "application/json"})
    fs.write_bytes("x/readme", b"hi")

    assert fs.get_object("x/trace.json").content_type == "application/json"
    assert fs.get_object("x/readme").content_type is None
    assert fs.keys() == ["x/readme", "x/trace.json"]
    with pytest.raises(FileNotFoundError):
        fs.read_bytes("x/missing")
    with pytest.raises(ValueError):
        fs.write_bytes("x/", b"")


def test_s3_backend_uses_prefix_and_metadata():
    client = FakeS3Client()
    fs = S3StorageBackend("bucket", prefix="snapshots", s3_client=client)

    fs.write_bytes("traces/1/trace.json", b"{}", {"ContentType": "application/json", "Metadata": {"tenant": 1}})

    put = client.put_calls[0]
    assert put["Key"] == "snapshots/traces/1/trace.json"
    assert put["ContentType"] == "application/json"
    assert put["Metadata"] == {"tenant": "1"}
    assert fs.exists("traces/1/trace.json")
    assert not fs.exists("traces/2/trace.json")
    assert fs.read_bytes("traces/1/trace.json") == b"{}"
    with pytest.raises(FileNotFoundError):
        fs.read_bytes("traces/2/trace.json")


def test_s3_write_failure_raises_ioerror():
    client = FakeS3Client()

    def boom(**kwargs):
        raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")

    client.put_object = boom
    fs = S3StorageBackend("bucket", s3_client=client)
    with pytest.raises(IOError):
        fs.write_bytes("a.json", b"{}")


def test_factory(tmp_path):
    assert isinstance(create_storage_backend(f"file://{tmp_path}"), LocalFileSystemBackend)
    assert isinstance(create_storage_backend(str(tmp_path)), LocalFileSystemBackend)
    assert isinstance(create_storage_backend("mem://"), InMemoryStorageBackend)
    s3 = create_storage_backend("s3://bucket/pre", s3_client=FakeS3Client())
    assert isinstance(s3, S3StorageBackend)
    assert s3.prefix == "pre/"
    with pytest.raises(ValueError):
        create_storage_backend("ftp://host/x")
