"""JSONL storage - one log entity per line, optionally zstandard-compressed"""

import io
import json
import logging
from pathlib import Path
from typing import Iterable, Iterator, List

try:
    import zstandard as _zstd
except ImportError:
    _zstd = None

from ..models.entity import LogEntity, StoreFormatError

log = logging.getLogger(__name__)

ZSTD_SUFFIX = ".zst"


def _is_compressed(path: Path) -> bool:
    return path.suffix == ZSTD_SUFFIX


def _require_zstd():
    if _zstd is None:
        raise RuntimeError("reading .zst logs requires the 'zstandard' package")
    return _zstd


def _parse_lines(lines: Iterable[str], source: str) -> Iterator[LogEntity]:
    for line_num, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield LogEntity.from_dict(json.loads(line))
        except (json.JSONDecodeError, StoreFormatError) as e:
            log.warning("%s:%d: skipping malformed record (%s)", source, line_num, e)


def read_entities(file_path) -> List[LogEntity]:
    """Read all entities from a JSONL (or JSONL.zst) file."""
    return list(iter_entities(file_path))


def iter_entities(file_path) -> Iterator[LogEntity]:
    path = Path(file_path)
    if _is_compressed(path):
        zstd = _require_zstd()
        with open(path, "rb") as raw:
            reader = zstd.ZstdDecompressor().stream_reader(raw)
            text = io.TextIOWrapper(reader, encoding="utf-8", errors="replace")
            yield from _parse_lines(text, str(path))
        return
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        yield from _parse_lines(f, str(path))


def write_entities(file_path, entities: Iterable[LogEntity], append: bool = False) -> Path:
    """Write entities as JSONL. Compressed files are always rewritten."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = "".join(
        json.dumps(e.to_dict(), ensure_ascii=False) + "\n" for e in entities
    )
    if _is_compressed(path):
        zstd = _require_zstd()
        path.write_bytes(zstd.ZstdCompressor().compress(payload.encode("utf-8")))
        return path
    with open(path, "a" if append else "w", encoding="utf-8") as f:
        f.write(payload)
    return path


class JsonlTailer:
    """Reads entities appended to a growing JSONL file.

    Only complete lines are consumed; a partially written last line is left
    for the next poll. A file that was replaced (new inode), shrank, or no
    longer starts with the first line already read is read again from the
    start, even if it has meanwhile grown past the previous offset.
    """

    def __init__(self, file_path):
        self.path = Path(file_path)
        if _is_compressed(self.path):
            raise ValueError("cannot follow a compressed log")
        self.offset = 0
        self.line_num = 0
        self.truncated = False
        self._inode = None
        self._head = b""   # first complete line read

    def poll(self) -> List[LogEntity]:
        """Return entities appended since the previous poll."""
        self.truncated = False
        if not self.path.exists():
            return []
        stat = self.path.stat()
        size = stat.st_size
        if self.offset and self._was_replaced(stat):
            log.info("%s was truncated or replaced, reading from the start", self.path)
            self.offset = 0
            self.line_num = 0
            self._head = b""
            self.truncated = True
        self._inode = stat.st_ino
        if size == self.offset:
            return []

        with open(self.path, "rb") as f:
            f.seek(self.offset)
            chunk = f.read(size - self.offset)

        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        complete = chunk[:end + 1]
        if self.offset == 0:
            self._head = complete[:complete.find(b"\n") + 1]
        self.offset += len(complete)

        entities = []
        for raw in complete.decode("utf-8", errors="replace").splitlines():
            self.line_num += 1
            raw = raw.strip()
            if not raw:
                continue
            try:
                entities.append(LogEntity.from_dict(json.loads(raw)))
            except (json.JSONDecodeError, StoreFormatError) as e:
                log.warning("%s:%d: skipping malformed record (%s)", self.path, self.line_num, e)
        return entities

    def _was_replaced(self, stat) -> bool:
        if self._inode is not None and stat.st_ino != self._inode:
            return True
        if stat.st_size < self.offset:
            return True
        if self._head:
            with open(self.path, "rb") as f:
                return f.read(len(self._head)) != self._head
        return False
