from s3_storage_driver.errors import InvalidPathError

import re


PATH_RE = re.compile(r"^(/[A-Za-z0-9._-]+)+$")

_ROOT_RE = re.compile(r"[a-zA-Z0-9._/-]*")


def validate_path(path, allow_root=False):
    if allow_root and path == "/":
        return path
    if not isinstance(path, str) or not PATH_RE.match(path):
        raise InvalidPathError(path)
    return path


class PathMapper:
    """Translates logical paths to object keys under an optional root prefix.

    Logical paths are absolute and slash separated ("/a/b"); keys never
    start with a slash ("root/a/b").
    """

    def __init__(self, root_directory=""):
        root_directory = root_directory or ""
        if not _ROOT_RE.fullmatch(root_directory):
            raise ValueError(
                f"root directory contains invalid characters: {root_directory!r}. "
                "Only alphanumeric characters, dots, hyphens, underscores, "
                "and slashes are allowed."
            )
        if ".." in root_directory.split("/"):
            raise ValueError(
                f"root directory must not contain '..': {root_directory!r}"
            )
        self.root_directory = root_directory
        self.root_key = self.to_key("")
        # With no root prefix, listed keys need a leading slash added back
        # to become valid logical paths.
        self._sentinel = "/" if self.root_key == "" else ""

    def to_key(self, path):
        return (self.root_directory.rstrip("/") + path).lstrip("/")

    def to_path(self, key):
        if not key.startswith(self.root_key):
            raise ValueError(f"key {key!r} is outside root {self.root_key!r}")
        return self._sentinel + key[len(self.root_key):]
