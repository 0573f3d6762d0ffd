from typing import Optional, TYPE_CHECKING

from solders.pubkey import Pubkey
from solders.signature import Signature

if TYPE_CHECKING:
    from altpy.types import LookupTable


class LookupTableError(Exception):
    """Base class for every error raised by altpy."""


class ConfigurationError(LookupTableError):
    """Missing or invalid key material or endpoint. Fatal at startup."""


class DerivationMismatch(LookupTableError):
    """The locally derived table address disagrees with the ledger."""


class SubmissionError(LookupTableError):
    """The gateway rejected a transaction or could not confirm it.

    `table` holds the last state reached before the failure when an operation
    made partial progress (e.g. some extension chunks already landed).
    """

    def __init__(
        self,
        message: str,
        signature: Optional[Signature] = None,
        table: Optional["LookupTable"] = None,
    ):
        super().__init__(message)
        self.signature = signature
        self.table = table


class StaleFreshnessToken(SubmissionError):
    """The blockhash expired before the transaction was confirmed."""


class ActivationTimeout(LookupTableError):
    def __init__(self, message: str, table: "LookupTable"):
        super().__init__(message)
        self.table = table


class DuplicateAddressError(LookupTableError):
    def __init__(self, duplicates: list[Pubkey]):
        super().__init__(
            f"addresses already present in lookup table: {[str(d) for d in duplicates]}"
        )
        self.duplicates = duplicates


class NoSignerSpecified(LookupTableError):
    pass


class TableNotReadable(LookupTableError):
    pass


class MissingSignature(LookupTableError):
    def __init__(self, missing: list[Pubkey]):
        super().__init__(f"missing signers: {[str(m) for m in missing]}")
        self.missing = missing
