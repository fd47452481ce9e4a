"""
Read .blend file headers and render info without running Blender.

Two header layouts exist:

    legacy (12 bytes):  BLENDER _ v 279
                        |       | | +-- version, 3 digits
                        |       | +---- endianness: v little, V big
                        |       +------ pointer size: _ 4 bytes, - 8 bytes
    Blender 5+ (17 bytes): BLENDER 17 - 01 v 0500
                           header size, pointer size, file format version,
                           endianness, version (4 digits)

Right after the header, Blender writes one ``REND`` block per scene holding
the frame range and scene name.
"""

from __future__ import annotations

from dataclasses import dataclass
import gzip
import struct
from typing import BinaryIO, List, Optional, Tuple

from blendtools.errors import BlendToolsError, NotABlendFileError

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"
BLEND_MAGIC = b"BLENDER"


@dataclass
class BlendHeader:
    """Parsed .blend header."""

    version: Optional[Tuple[int, int]]
    pointer_size: Optional[int]
    endian: Optional[str]
    compression: Optional[str]
    file_format_version: int = 0
    header_size: int = 12

    @property
    def version_string(self) -> str:
        if self.version is None:
            return "unknown"
        return f"{self.version[0]}.{self.version[1]}"

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict."""
        return {
            "version": self.version_string,
            "pointer_size": self.pointer_size,
            "endian": self.endian,
            "compression": self.compression,
            "file_format_version": self.file_format_version,
        }


def _sniff_compression(path: str) -> Optional[str]:
    with open(path, "rb") as handle:
        magic = handle.read(4)
    if magic.startswith(GZIP_MAGIC):
        return "gzip"
    if magic == ZSTD_MAGIC:
        return "zstd"
    return None


def _open(path: str, compression: Optional[str]) -> BinaryIO:
    if compression == "gzip":
        return gzip.open(path, "rb")
    return open(path, "rb")


def parse_header(data: bytes, compression: Optional[str] = None) -> BlendHeader:
    """Parse the leading bytes of an uncompressed .blend stream."""
    if len(data) < 12 or not data.startswith(BLEND_MAGIC):
        raise NotABlendFileError("missing BLENDER magic")

    if data[7:9].isdigit():
        if len(data) < 17:
            raise NotABlendFileError("truncated header")
        header_size = int(data[7:9])
        pointer_char = data[9:10]
        file_format_version = int(data[10:12])
        endian_char = data[12:13]
        version_digits = data[13:17]
        if not version_digits.isdigit():
            raise NotABlendFileError("malformed version in header")
        version = (int(version_digits[:2]), int(version_digits[2:]))
    else:
        header_size = 12
        pointer_char = data[7:8]
        file_format_version = 0
        endian_char = data[8:9]
        version_digits = data[9:12]
        if not version_digits.isdigit():
            raise NotABlendFileError("malformed version in header")
        version = (int(version_digits[:1]), int(version_digits[1:]))

    if pointer_char not in (b"_", b"-"):
        raise NotABlendFileError("malformed pointer size in header")
    if endian_char not in (b"v", b"V"):
        raise NotABlendFileError("malformed endianness in header")

    return BlendHeader(
        version=version,
        pointer_size=4 if pointer_char == b"_" else 8,
        endian="little" if endian_char == b"v" else "big",
        compression=compression,
        file_format_version=file_format_version,
        header_size=header_size,
    )


def read_header(path: str) -> BlendHeader:
    """
    Read the header of a .blend file.

    Args:
        path: Path to the .blend file

    Returns:
        BlendHeader; zstd-compressed files only report their compression
    """
    compression = _sniff_compression(path)
    if compression == "zstd":
        return BlendHeader(
            version=None, pointer_size=None, endian=None, compression="zstd"
        )
    with _open(path, compression) as handle:
        try:
            data = handle.read(17)
        except OSError as exc:
            raise NotABlendFileError(f"{path}: {exc}") from exc
    try:
        return parse_header(data, compression)
    except NotABlendFileError as exc:
        raise NotABlendFileError(f"Not a .blend file: {path} ({exc})") from exc


def _bhead_reader(header: BlendHeader):
    order = "<" if header.endian == "little" else ">"
    if header.file_format_version >= 1:
        # code, SDNAnr, old pointer, len, nr
        fmt = order + "4siQqq"
        size = struct.calcsize(fmt)

        def read(raw: bytes) -> Tuple[bytes, int]:
            code, _sdna, _old, length, _nr = struct.unpack(fmt, raw)
            return code, length

    else:
        pointer = "I" if header.pointer_size == 4 else "Q"
        fmt = order + "4si" + pointer + "ii"
        size = struct.calcsize(fmt)

        def read(raw: bytes) -> Tuple[bytes, int]:
            code, length, _old, _sdna, _nr = struct.unpack(fmt, raw)
            return code, length

    return size, read


def read_render_info(path: str) -> List[Tuple[str, int, int]]:
    """
    Read ``(scene_name, frame_start, frame_end)`` for each scene.

    Args:
        path: Path to the .blend file

    Returns:
        One tuple per ``REND`` block, in file order
    """
    header = read_header(path)
    if header.compression == "zstd":
        raise BlendToolsError(
            f"{path} is zstd-compressed; run blend-info without --header-only"
        )

    order = "<" if header.endian == "little" else ">"
    bhead_size, read_bhead = _bhead_reader(header)
    scenes: List[Tuple[str, int, int]] = []

    with _open(path, header.compression) as handle:
        handle.read(header.header_size)
        while True:
            raw = handle.read(bhead_size)
            if len(raw) < bhead_size:
                break
            code, length = read_bhead(raw)
            if code == b"REND":
                block = handle.read(length)
                if len(block) < 8:
                    break
                start, end = struct.unpack(order + "2i", block[:8])
                name = block[8:].split(b"\0", 1)[0].decode("utf-8", errors="replace")
                scenes.append((name, start, end))
            elif code == b"TEST":
                handle.read(length)
            else:
                break
    return scenes
