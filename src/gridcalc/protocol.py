"""Line protocol for streaming cell contents in and out of a sheet.

A record is::

    <address> <content-length> <content-bytes>\\n

``address`` matches ``[A-Za-z]+[0-9]+``, ``content-length`` is a decimal
byte count (at most 4096 by default) and the content is exactly that many
UTF-8 bytes, so it may itself contain newlines.  Export writes one record
per populated cell using its edit content, which round-trips through
:func:`ingest`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, BinaryIO

from gridcalc.address import CellAddress
from gridcalc.cell import CellKind
from gridcalc.errors import InvalidAddressError, ProtocolError
from gridcalc.logging.events import (
    BAD_RECORD,
    INVALID_ADDRESS,
    EventType,
    emit_warning,
)

if TYPE_CHECKING:
    from gridcalc.sheet import Sheet

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 4096

# Longest accepted address or length field, in bytes.
_MAX_FIELD_BYTES = 64

_LEADING_WS = b" \t\r\n"


def _read_first_field(stream: BinaryIO) -> str | None:
    """Read the address field, skipping blank lines before it.

    Returns ``None`` at a clean end of stream.
    """
    while True:
        ch = stream.read(1)
        if not ch:
            return None
        if ch not in _LEADING_WS:
            return _read_field(stream, ch)


def _read_field(stream: BinaryIO, prefix: bytes = b"") -> str:
    """Read bytes up to the next single space."""
    buf = bytearray(prefix)
    while True:
        ch = stream.read(1)
        if not ch:
            raise ProtocolError("Unexpected end of stream inside record header")
        if ch == b" ":
            break
        buf += ch
        if len(buf) > _MAX_FIELD_BYTES:
            raise ProtocolError(f"Record header field longer than {_MAX_FIELD_BYTES} bytes")
    if not buf:
        raise ProtocolError("Empty record header field")
    return buf.decode("ascii", errors="replace")


def _read_exact(stream: BinaryIO, n: int) -> bytes:
    chunks: list[bytes] = []
    remaining = n
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_record(
    stream: BinaryIO, *, max_length: int = MAX_CONTENT_LENGTH
) -> tuple[CellAddress, str] | None:
    """Read one record from *stream*.

    The whole record is consumed before the address is validated, so a
    caller that chooses to skip a bad record stays aligned with the stream.

    Returns:
        ``(address, content)``, or ``None`` at a clean end of stream.

    Raises:
        ProtocolError: Bad length, short read, missing terminator or
            content that is not UTF-8.
        InvalidAddressError: The address field is malformed.
    """
    addr_text = _read_first_field(stream)
    if addr_text is None:
        return None
    length_text = _read_field(stream)
    if not length_text.isdigit():
        raise ProtocolError(f"Expected a content length, got {length_text!r}")
    length = int(length_text)
    if length > max_length:
        raise ProtocolError(f"Bad length for content: {length} exceeds {max_length}")

    data = _read_exact(stream, length)
    if len(data) < length:
        raise ProtocolError(f"Short read: expected {length} bytes, got {len(data)}")
    if stream.read(1) != b"\n":
        raise ProtocolError("Record not terminated by newline")

    address = CellAddress.parse(addr_text)
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"Content for {address} is not valid UTF-8") from exc
    return address, content


def format_record(address: CellAddress | str, content: str) -> bytes:
    """Encode one record, newline included."""
    data = content.encode("utf-8")
    return f"{address} {len(data)} ".encode("ascii") + data + b"\n"


def write_record(stream: BinaryIO, address: CellAddress | str, content: str) -> None:
    stream.write(format_record(address, content))


def write_range(sheet: Sheet, start: CellAddress, end: CellAddress, stream: BinaryIO) -> int:
    """Write one record per populated cell in ``start .. end``.

    Returns:
        Number of records written.
    """
    count = 0
    for addr, cell in sheet.enumerate(start, end):
        if cell.kind is CellKind.transient:
            continue
        write_record(stream, addr, cell.edit_content())
        count += 1
    return count


def ingest(
    sheet: Sheet,
    stream: BinaryIO,
    *,
    max_length: int = MAX_CONTENT_LENGTH,
    skip_errors: bool = False,
) -> int:
    """Apply records from *stream* to *sheet* until end of stream.

    Args:
        sheet: Target sheet.
        stream: Binary stream positioned at a record boundary.
        max_length: Largest accepted content length.
        skip_errors: Log and skip bad records instead of raising.

    Returns:
        Number of records applied.
    """
    applied = 0
    while True:
        try:
            record = read_record(stream, max_length=max_length)
        except (ProtocolError, InvalidAddressError) as exc:
            if not skip_errors:
                raise
            code = INVALID_ADDRESS if isinstance(exc, InvalidAddressError) else BAD_RECORD
            logger.debug("skipping record: %s", exc)
            emit_warning(
                EventType.record_rejected,
                str(exc),
                {"records_applied": applied},
                error_code=code,
            )
            continue
        if record is None:
            return applied
        addr, content = record
        sheet.set_content(addr, content)
        applied += 1
