from datetime import datetime
from datetime import timedelta
from s3_storage_driver.errors import InvalidOffsetError
from s3_storage_driver.errors import PathNotFoundError
from s3_storage_driver.errors import UnsupportedMethodError
from s3_storage_driver.interfaces import IStorageDriver
from s3_storage_driver.models import FileInfo
from s3_storage_driver.multipart_copy import MultipartCopier
from s3_storage_driver.paths import PathMapper
from s3_storage_driver.paths import validate_path
from s3_storage_driver.writer import check_chunk_size
from s3_storage_driver.writer import CONTENT_TYPE
from s3_storage_driver.writer import DEFAULT_CHUNK_SIZE
from s3_storage_driver.writer import S3FileWriter
from zope.interface import implementer

import logging


logger = logging.getLogger(__name__)

LIST_MAX = 1000

DEFAULT_URL_EXPIRY = timedelta(minutes=20)

_URL_METHODS = ("GET", "HEAD")


class SkipDir(Exception):
    """Raised by a walk visitor to skip the contents of a directory."""


@implementer(IStorageDriver)
class S3StorageDriver:
    """Path-addressed blob storage on top of an S3-compatible bucket.

    Directories are not stored; they are synthesized from key prefixes
    and disappear with their last key.
    """

    name = "s3"

    def __init__(self, client, root_directory="", chunk_size=DEFAULT_CHUNK_SIZE, copier=None):
        self._client = client
        self._paths = PathMapper(root_directory)
        self.chunk_size = check_chunk_size(chunk_size)
        self._copier = copier or MultipartCopier(client, CONTENT_TYPE)

    def __repr__(self):
        return f"<S3StorageDriver root={self._paths.root_directory!r}>"

    def _key(self, path):
        return self._paths.to_key(path)

    # -- Content --

    def get_content(self, path):
        validate_path(path)
        body = self._client.get_object(self._key(path))
        if body is None:
            raise PathNotFoundError(path)
        try:
            return body.read()
        finally:
            body.close()

    def put_content(self, path, content):
        validate_path(path)
        self._client.put_object(self._key(path), bytes(content), CONTENT_TYPE)

    def reader(self, path, offset=0):
        validate_path(path)
        if offset < 0:
            raise InvalidOffsetError(path, offset)
        body = self._client.get_object(self._key(path), byte_range=f"bytes={offset}-")
        if body is None:
            raise PathNotFoundError(path)
        return body

    def writer(self, path, append=False):
        validate_path(path)
        key = self._key(path)
        if not append:
            upload_id = self._client.initiate_multipart_upload(key, CONTENT_TYPE)
            logger.info("Initiated upload %s for key=%s", upload_id, key)
            return S3FileWriter(self._client, key, upload_id, self.chunk_size)

        for upload in self._client.list_multipart_uploads(key):
            if upload.key != key:
                continue
            parts = self._client.list_parts(key, upload.upload_id)
            logger.info(
                "Resuming upload %s for key=%s with %d parts",
                upload.upload_id,
                key,
                len(parts),
            )
            return S3FileWriter(
                self._client, key, upload.upload_id, self.chunk_size, parts
            )
        raise PathNotFoundError(path)

    # -- Metadata --

    def stat(self, path):
        validate_path(path, allow_root=True)
        key = self._key(path)
        page = self._client.list_objects(key, max_keys=1)

        if len(page.contents) == 1:
            obj = page.contents[0]
            if obj.key == key:
                return FileInfo(
                    path, size=obj.size, mod_time=_timestamp(obj.last_modified)
                )
            if key == "" or obj.key.startswith(key.rstrip("/") + "/"):
                return FileInfo(path, is_dir=True)
            # A sibling such as "a-b" sorts before "a/...": look up the
            # directory prefix itself.
            page = self._client.list_objects(key + "/", max_keys=1)
            if page.contents:
                return FileInfo(path, is_dir=True)
        elif len(page.common_prefixes) == 1:
            return FileInfo(path, is_dir=True)
        raise PathNotFoundError(path)

    def list(self, path):
        validate_path(path, allow_root=True)
        list_path = path if path.endswith("/") else path + "/"
        prefix = self._key(list_path)

        files = []
        directories = []
        token = None
        while True:
            page = self._client.list_objects(
                prefix, delimiter="/", max_keys=LIST_MAX, continuation_token=token
            )
            for obj in page.contents:
                files.append(self._paths.to_path(obj.key))
            for common_prefix in page.common_prefixes:
                directories.append(self._paths.to_path(common_prefix[:-1]))
            if not page.is_truncated:
                break
            token = page.next_token

        # A marker object for the directory itself is not a child
        if files and files[0] == self._paths.to_path(prefix):
            files = files[1:]

        if path != "/" and not files and not directories:
            raise PathNotFoundError(path)
        return files + directories

    def move(self, source_path, dest_path):
        validate_path(source_path)
        validate_path(dest_path)
        info = self.stat(source_path)
        if info.is_dir:
            raise PathNotFoundError(source_path)
        source_key = self._key(source_path)
        self._copier.copy(source_key, self._key(dest_path), info.size)
        self._client.delete_objects([source_key])

    def delete(self, path):
        validate_path(path)
        key = self._key(path)
        subtree = key + "/"

        deleted = 0
        token = None
        while True:
            page = self._client.list_objects(
                key, max_keys=LIST_MAX, continuation_token=token
            )
            # Longer siblings ("/a-b" when deleting "/a") interleave with
            # subpaths in key order and are left alone.
            keys = [
                obj.key
                for obj in page.contents
                if obj.key == key or obj.key.startswith(subtree)
            ]
            if keys:
                self._client.delete_objects(keys)
                deleted += len(keys)
                logger.debug("Deleted %d keys under %s", len(keys), key)
            if not page.is_truncated:
                break
            token = page.next_token

        if not deleted:
            raise PathNotFoundError(path)

    # -- Access --

    def url_for(self, path, options=None):
        validate_path(path)
        options = options or {}
        method = options.get("method", "GET")
        if not isinstance(method, str) or method not in _URL_METHODS:
            raise UnsupportedMethodError(method)

        expiry = options.get("expiry")
        if isinstance(expiry, datetime):
            now = datetime.now(tz=expiry.tzinfo)
        else:
            now = datetime.now()
            expiry = now + DEFAULT_URL_EXPIRY
        expires_in = int((expiry - now).total_seconds())
        return self._client.presigned_url(method, self._key(path), expires_in)

    def walk(self, path, fn):
        """Visit every descendant of path, depth first in sorted order.

        ``fn`` receives a FileInfo.  Raising SkipDir for a directory skips
        its contents; raising it for a file skips the rest of the files
        and directories in the same directory.
        """
        for child in sorted(self.list(path)):
            info = self.stat(child)
            try:
                fn(info)
            except SkipDir:
                if info.is_dir:
                    continue
                return
            if info.is_dir:
                self.walk(child, fn)


def _timestamp(value):
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
