from concurrent.futures import as_completed
from concurrent.futures import ThreadPoolExecutor
from s3_storage_driver.models import Part

import logging
import threading


logger = logging.getLogger(__name__)

# Objects at or below this size are copied with a single request.
MULTIPART_COPY_THRESHOLD = 128 * 1024 * 1024
MULTIPART_COPY_CHUNK_SIZE = 128 * 1024 * 1024
MULTIPART_COPY_MAX_CONCURRENCY = 10


class MultipartCopier:
    """Server-side object copy, split into parallel part copies when large.

    At most ``max_concurrency`` part copies are in flight at once.  The
    destination upload is completed only when every part succeeded and is
    aborted otherwise.
    """

    def __init__(
        self,
        client,
        content_type,
        threshold=MULTIPART_COPY_THRESHOLD,
        chunk_size=MULTIPART_COPY_CHUNK_SIZE,
        max_concurrency=MULTIPART_COPY_MAX_CONCURRENCY,
    ):
        self._client = client
        self._content_type = content_type
        self.threshold = threshold
        self.chunk_size = chunk_size
        self.max_concurrency = max_concurrency

    def copy(self, source_key, dest_key, size):
        if size <= self.threshold:
            self._client.copy_object(source_key, dest_key)
            return
        self._copy_parts(source_key, dest_key, size)

    def _copy_parts(self, source_key, dest_key, size):
        upload_id = self._client.initiate_multipart_upload(dest_key, self._content_type)
        num_parts = (size + self.chunk_size - 1) // self.chunk_size
        logger.info(
            "Multipart copy %s -> %s: %d bytes in %d parts",
            source_key,
            dest_key,
            size,
            num_parts,
        )
        # Each task writes only its own slot
        parts = [None] * num_parts
        stop = threading.Event()

        def copy_part(index):
            if stop.is_set():
                return
            first_byte = index * self.chunk_size
            last_byte = min(first_byte + self.chunk_size, size) - 1
            etag = self._client.upload_part_copy(
                dest_key,
                upload_id,
                index + 1,
                source_key,
                byte_range=f"bytes={first_byte}-{last_byte}",
            )
            parts[index] = Part(index + 1, etag, last_byte - first_byte + 1)

        executor = ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="part-copy"
        )
        try:
            futures = [executor.submit(copy_part, i) for i in range(num_parts)]
            for future in as_completed(futures):
                try:
                    future.result()
                except Exception:
                    stop.set()
                    self._abort(dest_key, upload_id)
                    raise
        finally:
            # Tasks already running finish in the background
            executor.shutdown(wait=False, cancel_futures=True)

        try:
            self._client.complete_multipart_upload(dest_key, upload_id, parts)
        except Exception:
            self._abort(dest_key, upload_id)
            raise

    def _abort(self, key, upload_id):
        try:
            self._client.abort_multipart_upload(key, upload_id)
        except Exception:
            logger.warning(
                "Failed to abort multipart copy %s for key=%s",
                upload_id,
                key,
                exc_info=True,
            )
