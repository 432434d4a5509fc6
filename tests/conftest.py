from datetime import datetime
from datetime import timezone
from s3_storage_driver.interfaces import IS3Client
from s3_storage_driver.models import ListPage
from s3_storage_driver.models import MultipartUpload
from s3_storage_driver.models import ObjectInfo
from s3_storage_driver.models import Part
from s3_storage_driver.s3client import S3OperationError
from s3_storage_driver.writer import MIN_CHUNK_SIZE
from zope.interface import implementer

import hashlib
import io
import itertools
import pytest
import threading


@implementer(IS3Client)
class InMemoryS3Client:
    """Bucket held in a dict, with S3's multipart part-size rule.

    ``calls`` records operation names in order.  ``fail`` maps an operation
    name to an exception raised when that operation is called (a callable
    receiving the call arguments may decide per call).
    """

    def __init__(self, min_part_size=MIN_CHUNK_SIZE):
        self.min_part_size = min_part_size
        self.objects = {}  # key -> (data, last_modified)
        self.uploads = {}  # upload_id -> {"key": key, "parts": {number: bytes}}
        self.calls = []
        self.completed_part_sizes = []
        self.fail = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _record(self, operation, *args):
        with self._lock:
            self.calls.append(operation)
        failure = self.fail.get(operation)
        if failure is None:
            return
        if isinstance(failure, BaseException):
            raise failure
        exc = failure(*args)
        if exc is not None:
            raise exc

    def _upload(self, key, upload_id):
        upload = self.uploads.get(upload_id)
        if upload is None or upload["key"] != key:
            raise S3OperationError(f"no such upload {upload_id}", code="NoSuchUpload")
        return upload

    @staticmethod
    def _slice(data, byte_range):
        first, last = byte_range[len("bytes="):].split("-")
        last = int(last) if last else len(data) - 1
        return data[int(first):last + 1]

    def get_object(self, key, byte_range=None):
        self._record("get_object", key)
        if key not in self.objects:
            return None
        data = self.objects[key][0]
        if byte_range:
            data = self._slice(data, byte_range)
        return io.BytesIO(data)

    def put_object(self, key, data, content_type):
        self._record("put_object", key)
        self.objects[key] = (bytes(data), datetime.now(timezone.utc))

    def list_objects(self, prefix, delimiter="", max_keys=1000, continuation_token=None):
        self._record("list_objects", prefix)
        entries = []
        seen_prefixes = set()
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            if delimiter:
                index = key.find(delimiter, len(prefix))
                if index != -1:
                    common = key[:index + 1]
                    if common not in seen_prefixes:
                        seen_prefixes.add(common)
                        entries.append((common, None))
                    continue
            entries.append((key, key))
        # The token is the last name returned, so listing resumes correctly
        # after keys from earlier pages were deleted.
        if continuation_token:
            entries = [entry for entry in entries if entry[0] > continuation_token]
        chunk = entries[:max_keys]
        truncated = max_keys < len(entries)
        page = ListPage(
            is_truncated=truncated,
            next_token=chunk[-1][0] if truncated else None,
        )
        for name, key in chunk:
            if key is None:
                page.common_prefixes.append(name)
            else:
                data, modified = self.objects[key]
                page.contents.append(ObjectInfo(key, len(data), modified))
        return page

    def initiate_multipart_upload(self, key, content_type):
        self._record("initiate_multipart_upload", key)
        upload_id = f"upload-{next(self._ids)}"
        self.uploads[upload_id] = {"key": key, "parts": {}}
        return upload_id

    def upload_part(self, key, upload_id, part_number, data):
        self._record("upload_part", key, upload_id, part_number, data)
        self._upload(key, upload_id)["parts"][part_number] = bytes(data)
        return '"%s"' % hashlib.md5(data).hexdigest()

    def upload_part_copy(self, key, upload_id, part_number, source_key, byte_range=None):
        self._record("upload_part_copy", key, upload_id, part_number, source_key, byte_range)
        if source_key not in self.objects:
            raise S3OperationError(f"no such key {source_key}", code="NoSuchKey")
        data = self.objects[source_key][0]
        if byte_range:
            data = self._slice(data, byte_range)
        with self._lock:
            self._upload(key, upload_id)["parts"][part_number] = data
        return '"%s"' % hashlib.md5(data).hexdigest()

    def complete_multipart_upload(self, key, upload_id, parts):
        self._record("complete_multipart_upload", key, upload_id, parts)
        upload = self._upload(key, upload_id)
        numbers = [part.number for part in parts]
        if numbers != sorted(numbers):
            raise S3OperationError("parts out of order", code="InvalidPartOrder")
        stored = [upload["parts"][number] for number in numbers]
        for data in stored[:-1]:
            if len(data) < self.min_part_size:
                raise S3OperationError("part too small", code="EntityTooSmall")
        self.completed_part_sizes = [len(data) for data in stored]
        self.objects[key] = (b"".join(stored), datetime.now(timezone.utc))
        del self.uploads[upload_id]

    def abort_multipart_upload(self, key, upload_id):
        self._record("abort_multipart_upload", key, upload_id)
        self._upload(key, upload_id)
        del self.uploads[upload_id]

    def list_parts(self, key, upload_id):
        self._record("list_parts", key)
        parts = self._upload(key, upload_id)["parts"]
        return [
            Part(number, '"%s"' % hashlib.md5(parts[number]).hexdigest(), len(parts[number]))
            for number in sorted(parts)
        ]

    def list_multipart_uploads(self, prefix):
        self._record("list_multipart_uploads", prefix)
        return [
            MultipartUpload(upload["key"], upload_id)
            for upload_id, upload in self.uploads.items()
            if upload["key"].startswith(prefix)
        ]

    def delete_objects(self, keys):
        self._record("delete_objects", keys)
        for key in keys:
            self.objects.pop(key, None)

    def copy_object(self, source_key, dest_key):
        self._record("copy_object", source_key, dest_key)
        if source_key not in self.objects:
            raise S3OperationError(f"no such key {source_key}", code="NoSuchKey")
        self.objects[dest_key] = (self.objects[source_key][0], datetime.now(timezone.utc))

    def presigned_url(self, method, key, expires_in):
        self._record("presigned_url", method, key, expires_in)
        return f"https://bucket.example.com/{key}?method={method}&expires={expires_in}"


@pytest.fixture
def fake_client():
    return InMemoryS3Client()
