from dataclasses import dataclass
from dataclasses import field


@dataclass(frozen=True)
class Part:
    """A completed part of a multipart upload."""

    number: int
    etag: str
    size: int


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    last_modified: object


@dataclass
class ListPage:
    """One page of a (possibly delimited) bucket listing."""

    contents: list = field(default_factory=list)
    common_prefixes: list = field(default_factory=list)
    is_truncated: bool = False
    next_token: str = None


@dataclass(frozen=True)
class MultipartUpload:
    key: str
    upload_id: str


@dataclass(frozen=True)
class FileInfo:
    path: str
    size: int = 0
    mod_time: object = None
    is_dir: bool = False
