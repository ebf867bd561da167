"""
Decoder for the engine's multiplexed exec/attach stream.

Each frame is an 8-byte header followed by its payload:

    byte 0      stream type (0 = stdin, 1 = stdout, 2 = stderr)
    bytes 1-3   padding
    bytes 4-7   payload length, big-endian uint32
"""

import struct
from typing import Iterator, Tuple

STDIN = 0
STDOUT = 1
STDERR = 2

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxL")

Frame = Tuple[int, bytes]


def iter_frames(buffer: bytes) -> Iterator[Frame]:
    """Yield (stream_type, payload) for every complete frame in ``buffer``.

    Trailing bytes that do not form a full header are ignored.
    """
    offset = 0
    while offset + HEADER_SIZE <= len(buffer):
        stream_type, length = _HEADER.unpack_from(buffer, offset)
        start = offset + HEADER_SIZE
        end = start + length
        yield stream_type, bytes(buffer[start:end])
        offset = end


def demultiplex(buffer: bytes) -> Tuple[bytes, bytes]:
    """Split a multiplexed buffer into (stdout, stderr), keeping arrival order."""
    stdout = bytearray()
    stderr = bytearray()
    for stream_type, payload in iter_frames(buffer):
        if stream_type == STDOUT:
            stdout.extend(payload)
        elif stream_type == STDERR:
            stderr.extend(payload)
    return bytes(stdout), bytes(stderr)


def encode_frame(stream_type: int, payload: bytes) -> bytes:
    """Build one frame; the inverse of what the engine sends."""
    return _HEADER.pack(stream_type, len(payload)) + payload
