from __future__ import annotations


class RollError(Exception):
    """Base class for every failure raised by the roll tooling."""


class RollIoError(RollError, OSError):
    """A file could not be read or written to completion."""


class InvalidEncoding(RollError, ValueError):
    """Text that should be hexadecimal is not."""


class BuildError(RollError):
    """A roll could not be produced (nothing selected, name collision, bad metadata)."""


class Cancelled(RollError):
    """The enclosing operation was aborted while work was still pending."""


class IntegrityMismatch(RollError):
    """The self-digest of a roll does not match its bytes; nothing in it is trusted."""


class UnsupportedFormat(RollError):
    """The roll declares a format/version this reader does not understand."""


class MalformedArtifact(RollError):
    """The roll header is structurally broken."""


class RetransmitMismatch(RollError):
    """A retransmit roll does not carry the record set of the transmission it repeats."""


__all__ = [
    "BuildError",
    "Cancelled",
    "IntegrityMismatch",
    "InvalidEncoding",
    "MalformedArtifact",
    "RetransmitMismatch",
    "RollError",
    "RollIoError",
    "UnsupportedFormat",
]
