from zope.interface import Attribute
from zope.interface import Interface


class IS3Client(Interface):
    """Abstraction over S3-compatible object storage."""

    def get_object(key, byte_range=None):
        """Return a readable body for an object, or None if not found."""

    def put_object(key, data, content_type):
        """Store a whole object with a private ACL."""

    def list_objects(prefix, delimiter="", max_keys=1000, continuation_token=None):
        """Return one ListPage of keys (and common prefixes) under prefix."""

    def initiate_multipart_upload(key, content_type):
        """Start a multipart upload and return its upload id."""

    def upload_part(key, upload_id, part_number, data):
        """Upload one part and return its ETag."""

    def upload_part_copy(key, upload_id, part_number, source_key, byte_range=None):
        """Copy (a byte range of) source_key into a part and return its ETag."""

    def complete_multipart_upload(key, upload_id, parts):
        """Complete an upload from Part records, in part number order."""

    def abort_multipart_upload(key, upload_id):
        """Abort an upload and discard its parts."""

    def list_parts(key, upload_id):
        """Return the Part records already stored for an upload."""

    def list_multipart_uploads(prefix):
        """Return the in-flight MultipartUpload records under prefix."""

    def delete_objects(keys):
        """Delete up to 1000 keys in a single request."""

    def copy_object(source_key, dest_key):
        """Copy an object server-side in a single request."""

    def presigned_url(method, key, expires_in):
        """Return a URL granting `method` access to key for expires_in seconds."""


class IFileWriter(Interface):
    """Resumable, buffered writer backed by a multipart upload."""

    size = Attribute("Number of bytes accepted so far, including resumed parts.")
    state = Attribute("One of 'writable', 'closed', 'committed', 'cancelled'.")

    def write(data):
        """Buffer data, uploading full parts as they become available."""

    def close():
        """Flush buffered data and leave the upload open for resumption."""

    def commit():
        """Flush buffered data and complete the upload."""

    def cancel():
        """Abort the upload."""


class IStorageDriver(Interface):
    """Uniform path-addressed blob storage contract."""

    name = Attribute("Short driver name.")

    def get_content(path):
        """Return the whole content stored at path."""

    def put_content(path, content):
        """Store content at path, replacing anything stored there."""

    def reader(path, offset=0):
        """Return a readable stream of path starting at offset."""

    def writer(path, append=False):
        """Return an IFileWriter for path, resuming an open upload on append."""

    def stat(path):
        """Return a FileInfo for path."""

    def list(path):
        """Return the logical paths of the direct children of path."""

    def move(source_path, dest_path):
        """Move an object, removing the source only after a successful copy."""

    def delete(path):
        """Delete path and everything stored below it."""

    def url_for(path, options=None):
        """Return a signed URL for path."""

    def walk(path, fn):
        """Call fn with the FileInfo of every descendant of path."""
