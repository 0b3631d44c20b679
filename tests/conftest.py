from __future__ import annotations

from pathlib import Path
import shutil

import pytest

from static2jxl.models import ConvertOptions, FileEntry
from static2jxl.sniff import classify
from static2jxl.stats import Statistics
from static2jxl.tools import Toolchain

JXL_CODESTREAM = b"\xff\x0a"
JPEG_HEADER = b"\xff\xd8\xff\xe0"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"
MIB = 1024 * 1024


class FakeTools:
    """In-memory stand-in for cjxl/djxl/exiftool.

    ``ratio`` scales the encoded size relative to the source.
    """

    def __init__(
        self,
        ratio: float = 0.5,
        encode_ok: bool = True,
        valid: bool | None = True,
        metadata_ok: bool = True,
        payload: bytes = JXL_CODESTREAM,
    ) -> None:
        self.ratio = ratio
        self.encode_ok = encode_ok
        self.valid = valid
        self.metadata_ok = metadata_ok
        self.payload = payload
        self.calls: list[tuple[str, Path]] = []
        self.sources: dict[Path, Path] = {}
        self.on_encode = None

    def encode(self, source: Path, output: Path, reversible: bool, options: ConvertOptions) -> bool:
        self.calls.append(("encode", source))
        if self.on_encode is not None:
            self.on_encode(source)
        if not self.encode_ok:
            output.write_bytes(b"partial")
            return False
        size = max(len(self.payload), int(source.stat().st_size * self.ratio))
        output.write_bytes(self.payload + b"\0" * (size - len(self.payload)))
        self.sources[output] = source
        return True

    def validate(self, path: Path) -> bool | None:
        self.calls.append(("validate", path))
        return self.valid

    def decode(self, path: Path, output: Path) -> bool:
        self.calls.append(("decode", path))
        shutil.copyfile(self.sources[path], output)
        return True

    def copy_xattrs(self, source: Path, dest: Path) -> bool:
        self.calls.append(("xattrs", dest))
        return True

    def copy_metadata(self, source: Path, dest: Path) -> bool:
        self.calls.append(("metadata", dest))
        # exiftool rewrites the file, which grows it and resets its mtime
        with dest.open("ab") as handle:
            handle.write(b"exif")
        return self.metadata_ok

    def copy_creation_time(self, source: Path, dest: Path) -> bool:
        self.calls.append(("creation-time", dest))
        return True

    def count_tags(self, path: Path) -> int | None:
        return 10

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def toolchain(self) -> Toolchain:
        return Toolchain(
            encode=self.encode,
            validate=self.validate,
            decode=self.decode,
            copy_xattrs=self.copy_xattrs,
            copy_metadata=self.copy_metadata,
            copy_creation_time=self.copy_creation_time,
            count_tags=self.count_tags,
        )


@pytest.fixture
def fake_tools() -> FakeTools:
    return FakeTools()


@pytest.fixture
def stats() -> Statistics:
    return Statistics()


@pytest.fixture
def make_file(tmp_path):
    def _make(name: str, header: bytes, size: int | None = None) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        size = len(header) if size is None else size
        path.write_bytes(header + b"\0" * (size - len(header)))
        return path

    return _make


@pytest.fixture
def make_entry():
    def _make(path: Path) -> FileEntry:
        return FileEntry(path, path.stat().st_size, classify(path))

    return _make


@pytest.fixture
def make_tools():
    return FakeTools
