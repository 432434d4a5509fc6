from s3_storage_driver.driver import S3StorageDriver
from s3_storage_driver.errors import InvalidParameterError
from s3_storage_driver.s3client import S3Client
from s3_storage_driver.writer import DEFAULT_CHUNK_SIZE
from s3_storage_driver.writer import MIN_CHUNK_SIZE

import io
import logging
import os
import ZConfig


logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "t", "T", "true", "TRUE", "True"}
_FALSE_STRINGS = {"0", "f", "F", "false", "FALSE", "False"}

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.xml")


def _required(parameters, name):
    value = parameters.get(name)
    if value is None or str(value) == "":
        raise InvalidParameterError(f"No {name} parameter provided")
    return str(value)


def _parse_secure(value):
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
    raise InvalidParameterError("the secure parameter should be a boolean")


def _parse_chunk_size(value):
    if value is None:
        return DEFAULT_CHUNK_SIZE
    if isinstance(value, str):
        try:
            chunk_size = int(value, 0)
        except ValueError:
            raise InvalidParameterError(
                f"chunksize parameter must be an integer, {value!r} invalid"
            ) from None
    elif isinstance(value, int) and not isinstance(value, bool):
        chunk_size = value
    else:
        raise InvalidParameterError(f"invalid value for chunksize: {value!r}")

    if chunk_size < MIN_CHUNK_SIZE:
        raise InvalidParameterError(
            f"The chunksize {chunk_size} parameter should be a number that is "
            f"larger than or equal to {MIN_CHUNK_SIZE}"
        )
    return chunk_size


def from_parameters(parameters):
    """Build a driver from a flat parameter map.

    Required: secretid, secretkey, bucket, region.  Optional: secure,
    chunksize, rootdirectory, regionendpoint.
    """
    secret_id = _required(parameters, "secretid")
    secret_key = _required(parameters, "secretkey")
    region = _required(parameters, "region")
    bucket = _required(parameters, "bucket")
    secure = _parse_secure(parameters.get("secure"))
    chunk_size = _parse_chunk_size(parameters.get("chunksize"))
    root_directory = str(parameters.get("rootdirectory") or "")
    endpoint = parameters.get("regionendpoint") or None

    client = S3Client(
        bucket_name=bucket,
        endpoint_url=endpoint,
        region_name=region,
        aws_access_key_id=secret_id,
        aws_secret_access_key=secret_key,
        use_ssl=secure,
    )
    try:
        driver = S3StorageDriver(client, root_directory, chunk_size)
    except ValueError as e:
        raise InvalidParameterError(str(e)) from e
    logger.info(
        "Configured S3 driver for bucket=%s region=%s root=%r chunk_size=%d",
        bucket,
        region,
        root_directory,
        chunk_size,
    )
    return driver


class S3DriverFactory:
    """ZConfig factory for S3StorageDriver."""

    def __init__(self, config):
        self.config = config
        self.name = config.getSectionName()

    def open(self):
        config = self.config
        return from_parameters(
            {
                "secretid": config.secret_id,
                "secretkey": config.secret_key,
                "bucket": config.bucket,
                "region": config.region,
                "regionendpoint": config.region_endpoint,
                "secure": config.secure,
                "chunksize": config.chunk_size,
                "rootdirectory": config.root_directory,
            }
        )


def driver_from_string(text):
    """Open the driver described by a ZConfig ``<s3driver>`` section."""
    schema = ZConfig.loadSchema(SCHEMA_PATH)
    config, _handler = ZConfig.loadConfigFile(schema, io.StringIO(text))
    return config.driver.open()
