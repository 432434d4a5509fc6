from s3_storage_driver.errors import AlreadyTerminalError
from s3_storage_driver.errors import PathNotFoundError
from s3_storage_driver.interfaces import IFileWriter
from s3_storage_driver.models import Part
from zope.interface import implementer

import logging


logger = logging.getLogger(__name__)

# S3 rejects completing an upload whose non-final parts are smaller than this.
MIN_CHUNK_SIZE = 5 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 2 * MIN_CHUNK_SIZE

CONTENT_TYPE = "application/octet-stream"

WRITABLE = "writable"
CLOSED = "closed"
COMMITTED = "committed"
CANCELLED = "cancelled"


def check_chunk_size(chunk_size):
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool):
        raise ValueError(f"chunk size must be an integer: {chunk_size!r}")
    if chunk_size < MIN_CHUNK_SIZE:
        raise ValueError(
            f"chunk size {chunk_size} is smaller than the minimum part size "
            f"{MIN_CHUNK_SIZE}"
        )
    return chunk_size


@implementer(IFileWriter)
class S3FileWriter:
    """Streams writes into a multipart upload.

    Bytes are held in two buffers of ``chunk_size`` bytes each: ``ready``
    fills first, then ``pending``.  When ``pending`` is full, ``ready`` is
    uploaded as the next part and ``pending`` takes its place.  Only the
    final flush on close/commit may upload a part smaller than
    ``chunk_size``.

    Not safe for concurrent use; callers serialize all calls.
    """

    def __init__(self, client, key, upload_id, chunk_size=DEFAULT_CHUNK_SIZE, parts=None):
        self._client = client
        self.key = key
        self.upload_id = upload_id
        self.chunk_size = check_chunk_size(chunk_size)
        self.parts = list(parts or [])
        self.state = WRITABLE
        self._size = sum(part.size for part in self.parts)
        self._ready = bytearray()
        self._pending = bytearray()

    def __repr__(self):
        return (
            f"<S3FileWriter key={self.key!r} upload_id={self.upload_id!r} "
            f"state={self.state} size={self._size}>"
        )

    @property
    def size(self):
        return self._size

    def _check_writable(self):
        if self.state != WRITABLE:
            raise AlreadyTerminalError(self.state)

    def write(self, data):
        self._check_writable()

        if self.parts and self.parts[-1].size < MIN_CHUNK_SIZE:
            self._restart_upload()

        view = memoryview(data)
        offset = 0
        try:
            while offset < len(view):
                offset = self._fill(self._ready, view, offset)
                offset = self._fill(self._pending, view, offset)
                if len(self._pending) >= self.chunk_size:
                    self._flush_part()
            # Both buffers full means a flush failed on an earlier call
            if len(self._pending) >= self.chunk_size:
                self._flush_part()
        finally:
            self._size += offset
        return offset

    def _fill(self, buffer, view, offset):
        needed = self.chunk_size - len(buffer)
        if needed <= 0:
            return offset
        chunk = view[offset:offset + needed]
        buffer += chunk
        return offset + len(chunk)

    def _restart_upload(self):
        """Fold a too-small trailing part into a fresh upload.

        Completes the current upload, starts a new one for the same key and
        seeds it with the completed object: as the first part when it is
        large enough, otherwise as buffered bytes.  If any step fails the
        upload in progress is aborted and the writer is cancelled.
        """
        logger.info(
            "Restarting upload for key=%s: last part is %d bytes",
            self.key,
            self.parts[-1].size,
        )
        try:
            self._client.complete_multipart_upload(self.key, self.upload_id, self.parts)
        except Exception:
            self.state = CANCELLED
            self._abort()
            raise

        try:
            self.upload_id = self._client.initiate_multipart_upload(
                self.key, CONTENT_TYPE
            )
        except Exception:
            # The completed object stays; there is no upload left to abort
            self.state = CANCELLED
            raise

        try:
            if self._size < MIN_CHUNK_SIZE:
                body = self._client.get_object(self.key)
                if body is None:
                    raise PathNotFoundError(self.key)
                try:
                    ready = bytearray(body.read())
                finally:
                    body.close()
                parts = []
            else:
                etag = self._client.upload_part_copy(
                    self.key, self.upload_id, 1, self.key
                )
                ready = bytearray()
                parts = [Part(1, etag, self._size)]
        except Exception:
            self.state = CANCELLED
            self._abort()
            raise
        self._ready = ready
        self.parts = parts

    def _flush_part(self):
        if not self._ready and not self._pending:
            return
        if len(self._pending) < self.chunk_size:
            # Finalizing: merge so the store never gets two small trailing parts
            self._ready += self._pending
            self._pending = bytearray()

        part_number = len(self.parts) + 1
        data = bytes(self._ready)
        etag = self._client.upload_part(self.key, self.upload_id, part_number, data)
        logger.debug(
            "Uploaded part %d (%d bytes) for key=%s", part_number, len(data), self.key
        )
        self.parts.append(Part(part_number, etag, len(data)))
        self._ready = self._pending
        self._pending = bytearray()

    def _abort(self):
        try:
            self._client.abort_multipart_upload(self.key, self.upload_id)
        except Exception:
            logger.warning(
                "Failed to abort upload %s for key=%s",
                self.upload_id,
                self.key,
                exc_info=True,
            )

    def close(self):
        self._check_writable()
        self.state = CLOSED
        self._flush_part()

    def cancel(self):
        self._check_writable()
        self.state = CANCELLED
        self._client.abort_multipart_upload(self.key, self.upload_id)

    def commit(self):
        self._check_writable()
        self._flush_part()
        if not self.parts:
            # Nothing was written: an empty single part makes a zero-byte object
            etag = self._client.upload_part(self.key, self.upload_id, 1, b"")
            self.parts.append(Part(1, etag, 0))
        self.state = COMMITTED
        try:
            self._client.complete_multipart_upload(self.key, self.upload_id, self.parts)
        except Exception:
            self._abort()
            raise
        logger.info(
            "Committed upload for key=%s: %d bytes in %d parts",
            self.key,
            self._size,
            len(self.parts),
        )
