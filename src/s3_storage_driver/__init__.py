from s3_storage_driver.config import from_parameters
from s3_storage_driver.driver import S3StorageDriver


__all__ = ["S3StorageDriver", "from_parameters"]
