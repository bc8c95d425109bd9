# spritr/core/archive.py
"""
Tar container holding a project: named entries, no compression.

Entries come back with their tar block padding intact so text documents can be
measured by scanning for the first NUL, the way files written by older builds
expect. Binary payloads should use ``TarRecord.data`` (declared length).
"""
from __future__ import annotations
import io
import tarfile
from typing import BinaryIO, Dict, Mapping, NamedTuple

from spritr.core.errors import ArchiveCorrupt
from spritr.core.logging import get_logger

BLOCK_SIZE = tarfile.BLOCKSIZE

_log = get_logger(__name__)


class TarRecord(NamedTuple):
    buffer: bytes   # payload followed by zero padding up to the block boundary
    length: int     # size declared in the entry header

    @property
    def data(self) -> bytes:
        return self.buffer[: self.length]

    def text_length(self) -> int:
        """Length up to the first NUL; the whole buffer if it has none."""
        end = self.buffer.find(b"\0")
        return len(self.buffer) if end < 0 else end


def padded_size(length: int) -> int:
    return -(-length // BLOCK_SIZE) * BLOCK_SIZE


def read(stream: BinaryIO) -> Dict[str, TarRecord]:
    """Read every regular file entry, in archive order."""
    try:
        raw = stream.read()
    except OSError as ex:
        raise ArchiveCorrupt(f"cannot read archive: {ex}") from ex
    if not raw:
        raise ArchiveCorrupt("archive is empty")

    records: Dict[str, TarRecord] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(raw), mode="r:") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                start = member.offset_data
                buffer = raw[start: start + padded_size(member.size)]
                if len(buffer) < member.size:
                    raise ArchiveCorrupt(f"entry {member.name!r} is truncated")
                if member.name in records:
                    _log.warning("Duplicate archive entry %s, keeping the last one", member.name)
                records[member.name] = TarRecord(buffer, member.size)
                _log.debug("Archive entry %s (%d bytes)", member.name, member.size)
    except tarfile.TarError as ex:
        raise ArchiveCorrupt(f"cannot read archive: {ex}") from ex
    return records


def _tarinfo(name: str, size: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.size = size
    info.mode = 0o644
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def write(entries: Mapping[str, bytes], stream: BinaryIO) -> None:
    """
    Write entries in mapping order; identical input gives identical bytes.
    Names longer than the 100-byte header field go into a pax extended header.
    """
    try:
        with tarfile.open(fileobj=stream, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for name, payload in entries.items():
                payload = bytes(payload)
                tar.addfile(_tarinfo(name, len(payload)), io.BytesIO(payload))
                _log.debug("Packed %s (%d bytes)", name, len(payload))
    except (tarfile.TarError, ValueError) as ex:
        raise ArchiveCorrupt(f"cannot write archive: {ex}") from ex
