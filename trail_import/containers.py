from __future__ import annotations

import io
import logging
import struct
import zipfile
import zlib

logger = logging.getLogger(__name__)

ZIP_SIGNATURE = b"PK\x03\x04"
OLE_SIGNATURE = bytes.fromhex("D0CF11E0A1B11AE1")

LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")
MAX_ENTRY_BYTES = 64 * 1024 * 1024


def is_zip(buffer: bytes) -> bool:
    return buffer[:4] == ZIP_SIGNATURE


def is_ole_compound(buffer: bytes) -> bool:
    return buffer[:8] == OLE_SIGNATURE


def _decompress(method: int, payload: bytes) -> bytes | None:
    if method == 0:
        return payload
    if method == 8:
        try:
            decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
            return decompressor.decompress(payload, MAX_ENTRY_BYTES) + decompressor.flush()
        except zlib.error as exc:
            logger.warning("Deflate stream could not be decoded: %s", exc)
            return None
    logger.warning("Unsupported ZIP compression method %s", method)
    return None


def _scan_local_headers(buffer: bytes, name: str) -> bytes | None:
    """Walk local file headers directly; works on archives with a damaged central directory."""

    offset = 0
    while True:
        offset = buffer.find(ZIP_SIGNATURE, offset)
        if offset < 0 or offset + LOCAL_HEADER.size > len(buffer):
            return None

        (
            _signature,
            _version,
            flags,
            method,
            _mtime,
            _mdate,
            _crc,
            compressed_size,
            _uncompressed_size,
            name_length,
            extra_length,
        ) = LOCAL_HEADER.unpack_from(buffer, offset)

        name_start = offset + LOCAL_HEADER.size
        entry_name = buffer[name_start : name_start + name_length].decode("utf-8", errors="replace")
        data_start = name_start + name_length + extra_length

        if entry_name == name:
            if flags & 0x08 or compressed_size == 0:
                # sizes live in a trailing data descriptor; read up to the next header
                next_header = buffer.find(b"PK\x03\x04", data_start)
                central = buffer.find(b"PK\x01\x02", data_start)
                candidates = [value for value in (next_header, central) if value >= 0]
                data_end = min(candidates) if candidates else len(buffer)
            else:
                data_end = data_start + compressed_size
            return _decompress(method, buffer[data_start:data_end])

        offset = data_start + (compressed_size if not flags & 0x08 else 0)
        offset = max(offset, name_start)


def extract_named_entry(buffer: bytes, name: str) -> bytes | None:
    """Return the decompressed bytes of one archive member, or None when absent or unreadable."""

    if not is_zip(buffer):
        return None

    try:
        with zipfile.ZipFile(io.BytesIO(buffer)) as archive:
            info = archive.getinfo(name)
            if info.file_size > MAX_ENTRY_BYTES:
                logger.warning("Archive entry %s exceeds size guard", name)
                return None
            return archive.read(info)
    except KeyError:
        return None
    except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError, NotImplementedError) as exc:
        logger.warning("ZIP directory unreadable, scanning local headers: %s", exc)

    return _scan_local_headers(buffer, name)
