"""Exception taxonomy for the Omnisol client."""
from __future__ import annotations

from typing import Any, Sequence


class OmnisolError(Exception):
    """Base class for every error raised by this package."""


# ---------------------------------------------------------------------------
# Read path: decoding
# ---------------------------------------------------------------------------


class DecodeError(OmnisolError, ValueError):
    """Raw account or instruction bytes could not be interpreted."""


class WrongAccountKind(DecodeError):
    """The leading discriminator does not belong to the expected account kind."""

    def __init__(self, kind: str, expected: bytes, found: bytes) -> None:
        self.kind = kind
        self.expected = bytes(expected)
        self.found = bytes(found)
        super().__init__(
            f"Expected {kind} account (discriminator {self.expected.hex()}), "
            f"found discriminator {self.found.hex()}"
        )


class TruncatedBuffer(DecodeError):
    """Fewer bytes are present than the layout requires."""

    def __init__(self, kind: str, needed: int | None, available: int) -> None:
        # needed is None when a length prefix ran past the end of the buffer
        self.kind = kind
        self.needed = needed
        self.available = available
        wanted = f"{needed} bytes" if needed is not None else "more bytes"
        super().__init__(f"{kind}: buffer too short, needed {wanted}, got {available}")


class InvalidFieldValue(DecodeError):
    """A field holds a byte pattern its type does not allow (e.g. bool == 2)."""


class AccountNotFound(OmnisolError, LookupError):
    """No account exists at the queried address (never created or closed)."""

    def __init__(self, address: Any) -> None:
        self.address = address
        super().__init__(f"Account not found: {address}")


# ---------------------------------------------------------------------------
# Address derivation
# ---------------------------------------------------------------------------


class InvalidSeeds(OmnisolError, ValueError):
    """Seeds are malformed or hash to an on-curve point."""


class ExhaustedBumpSeeds(OmnisolError):
    """No bump in 255..0 yields an off-curve address. Fatal, never retried."""

    def __init__(self, seeds: Sequence[bytes], program_id: Any) -> None:
        self.seeds = tuple(bytes(s) for s in seeds)
        self.program_id = program_id
        seed_repr = ", ".join(s.hex() for s in self.seeds)
        super().__init__(
            f"Unable to find a viable bump for seeds [{seed_repr}] "
            f"under program {program_id}"
        )


# ---------------------------------------------------------------------------
# Write path / transport
# ---------------------------------------------------------------------------


class RpcError(OmnisolError, RuntimeError):
    """The RPC transport failed on every configured endpoint."""


class SubmissionError(OmnisolError):
    """The cluster rejected a transaction. ``data`` is the raw RPC payload."""

    def __init__(self, message: str, data: Any = None) -> None:
        self.data = data
        super().__init__(message)
