from botocore.config import Config
from botocore.exceptions import ClientError
from s3_storage_driver.interfaces import IS3Client
from s3_storage_driver.models import ListPage
from s3_storage_driver.models import MultipartUpload
from s3_storage_driver.models import ObjectInfo
from s3_storage_driver.models import Part
from zope.interface import implementer

import boto3
import io
import logging


logger = logging.getLogger(__name__)

_PRESIGN_OPERATIONS = {
    "GET": "get_object",
    "HEAD": "head_object",
}


class S3OperationError(Exception):
    """Wraps boto3 ClientError to avoid leaking AWS infrastructure details."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


def _error_code(e):
    return e.response.get("Error", {}).get("Code", "Unknown")


@implementer(IS3Client)
class S3Client:
    """Thin boto3 wrapper for S3-compatible object storage."""

    def __init__(
        self,
        bucket_name,
        endpoint_url=None,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        use_ssl=True,
        addressing_style="auto",
        connect_timeout=60,
        read_timeout=60,
    ):
        self.bucket_name = bucket_name

        config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )

        kwargs = {"config": config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region_name:
            kwargs["region_name"] = region_name
        if aws_access_key_id:
            kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            kwargs["aws_secret_access_key"] = aws_secret_access_key
        kwargs["use_ssl"] = use_ssl
        if not use_ssl:
            logger.warning(
                "S3 SSL is disabled: data and credentials are transmitted in cleartext"
            )

        self._client = boto3.client("s3", **kwargs)

    def _wrap_client_error(self, e, operation, key):
        """Wrap ClientError in a generic error, logging the original at DEBUG."""
        logger.debug("S3 %s failed for key=%s: %s", operation, key, e)
        code = _error_code(e)
        raise S3OperationError(
            f"S3 {operation} failed for key={key}: {code}", code=code
        ) from e

    def _copy_source(self, key):
        return {"Bucket": self.bucket_name, "Key": key}

    def get_object(self, key, byte_range=None):
        kwargs = {"Bucket": self.bucket_name, "Key": key}
        if byte_range:
            kwargs["Range"] = byte_range
        try:
            return self._client.get_object(**kwargs)["Body"]
        except ClientError as e:
            code = _error_code(e)
            if code in ("NoSuchKey", "404"):
                return None
            if code == "InvalidRange":
                # Range starts at or past the end of the object
                return io.BytesIO(b"")
            self._wrap_client_error(e, "get", key)

    def put_object(self, key, data, content_type):
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ACL="private",
                ContentLength=len(data),
                ContentType=content_type,
            )
        except ClientError as e:
            self._wrap_client_error(e, "put", key)

    def list_objects(
        self, prefix, delimiter="", max_keys=1000, continuation_token=None
    ):
        kwargs = {"Bucket": self.bucket_name, "Prefix": prefix, "MaxKeys": max_keys}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        try:
            resp = self._client.list_objects_v2(**kwargs)
        except ClientError as e:
            self._wrap_client_error(e, "list", prefix)
        return ListPage(
            contents=[
                ObjectInfo(obj["Key"], obj["Size"], obj["LastModified"])
                for obj in resp.get("Contents", [])
            ],
            common_prefixes=[p["Prefix"] for p in resp.get("CommonPrefixes", [])],
            is_truncated=resp.get("IsTruncated", False),
            next_token=resp.get("NextContinuationToken"),
        )

    def initiate_multipart_upload(self, key, content_type):
        try:
            resp = self._client.create_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                ACL="private",
                ContentType=content_type,
            )
        except ClientError as e:
            self._wrap_client_error(e, "initiate multipart upload", key)
        return resp["UploadId"]

    def upload_part(self, key, upload_id, part_number, data):
        try:
            resp = self._client.upload_part(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
                ContentLength=len(data),
            )
        except ClientError as e:
            self._wrap_client_error(e, "upload part", key)
        return resp["ETag"]

    def upload_part_copy(
        self, key, upload_id, part_number, source_key, byte_range=None
    ):
        kwargs = {
            "Bucket": self.bucket_name,
            "Key": key,
            "UploadId": upload_id,
            "PartNumber": part_number,
            "CopySource": self._copy_source(source_key),
        }
        if byte_range:
            kwargs["CopySourceRange"] = byte_range
        try:
            resp = self._client.upload_part_copy(**kwargs)
        except ClientError as e:
            self._wrap_client_error(e, "upload part copy", key)
        return resp["CopyPartResult"]["ETag"]

    def complete_multipart_upload(self, key, upload_id, parts):
        ordered = sorted(parts, key=lambda part: part.number)
        try:
            self._client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": part.etag, "PartNumber": part.number}
                        for part in ordered
                    ]
                },
            )
        except ClientError as e:
            self._wrap_client_error(e, "complete multipart upload", key)

    def abort_multipart_upload(self, key, upload_id):
        try:
            self._client.abort_multipart_upload(
                Bucket=self.bucket_name, Key=key, UploadId=upload_id
            )
        except ClientError as e:
            self._wrap_client_error(e, "abort multipart upload", key)

    def list_parts(self, key, upload_id):
        paginator = self._client.get_paginator("list_parts")
        parts = []
        try:
            for page in paginator.paginate(
                Bucket=self.bucket_name, Key=key, UploadId=upload_id
            ):
                for part in page.get("Parts", []):
                    parts.append(
                        Part(part["PartNumber"], part["ETag"], part["Size"])
                    )
        except ClientError as e:
            self._wrap_client_error(e, "list parts", key)
        return parts

    def list_multipart_uploads(self, prefix):
        paginator = self._client.get_paginator("list_multipart_uploads")
        uploads = []
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for upload in page.get("Uploads", []):
                    uploads.append(MultipartUpload(upload["Key"], upload["UploadId"]))
        except ClientError as e:
            self._wrap_client_error(e, "list multipart uploads", prefix)
        return uploads

    def delete_objects(self, keys):
        if not keys:
            return
        try:
            resp = self._client.delete_objects(
                Bucket=self.bucket_name,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": False},
            )
        except ClientError as e:
            self._wrap_client_error(e, "delete", keys[0])
        errors = resp.get("Errors", [])
        if errors:
            first = errors[0]
            logger.debug("S3 delete reported %d failed keys: %s", len(errors), errors)
            raise S3OperationError(
                f"S3 delete failed for key={first.get('Key')}: "
                f"{first.get('Code', 'Unknown')}",
                code=first.get("Code"),
            )

    def copy_object(self, source_key, dest_key):
        try:
            self._client.copy_object(
                Bucket=self.bucket_name,
                Key=dest_key,
                CopySource=self._copy_source(source_key),
                ACL="private",
            )
        except ClientError as e:
            self._wrap_client_error(e, "copy", source_key)

    def presigned_url(self, method, key, expires_in):
        return self._client.generate_presigned_url(
            _PRESIGN_OPERATIONS[method],
            Params={"Bucket": self.bucket_name, "Key": key},
            ExpiresIn=expires_in,
        )
