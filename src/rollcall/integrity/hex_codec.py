from __future__ import annotations

from rollcall.errors import InvalidEncoding

# Index by code point; -1 marks a non-hex character.
_NIBBLES: tuple[int, ...] = tuple(
    int(chr(c), 16) if chr(c) in "0123456789abcdefABCDEF" else -1 for c in range(128)
)


def to_hex(data: bytes, *, upper: bool = True) -> str:
    text = data.hex()
    return text.upper() if upper else text


def _nibble(ch: str) -> int:
    code = ord(ch)
    value = _NIBBLES[code] if code < 128 else -1
    if value < 0:
        raise InvalidEncoding(
            f"Ensure string only has hexadecimal characters and no whitespace (got {ch!r})"
        )
    return value


def from_hex(text: str, *, strict: bool = False) -> bytes:
    """Decode hex text (either case) to bytes.

    Odd-length input is left-padded with a ``0`` nibble for compatibility with
    rolls written by older tools. ``strict=True`` rejects it instead.
    """

    if len(text) % 2:
        if strict:
            raise InvalidEncoding(f"hex text has odd length {len(text)}")
        text = "0" + text

    out = bytearray(len(text) // 2)
    for i in range(len(out)):
        out[i] = (_nibble(text[2 * i]) << 4) | _nibble(text[2 * i + 1])
    return bytes(out)


def is_hex(text: str) -> bool:
    try:
        from_hex(text)
    except InvalidEncoding:
        return False
    return True


def digests_equal(a: str, b: str) -> bool:
    """Compare two hex digests by value, ignoring case."""

    return from_hex(a) == from_hex(b)
