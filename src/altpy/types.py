from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

from anchorpy import Wallet
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

Signer = Union[Keypair, Wallet]


def to_keypair(signer: Signer) -> Keypair:
    if isinstance(signer, Wallet):
        return signer.payer
    return signer


class TableStatus(Enum):
    UNINITIALIZED = "uninitialized"
    CREATED = "created"
    EXTENDED = "extended"
    ACTIVE = "active"


@dataclass(frozen=True)
class FreshnessToken:
    blockhash: Hash
    last_valid_block_height: int


@dataclass
class BufferAndSlot:
    slot: int
    buffer: bytes
    owner: Pubkey


@dataclass
class TxSigAndSlot:
    tx_sig: Signature
    slot: int


@dataclass
class LookupTable:
    """Client-side view of an address lookup table.

    Instances are treated as values: lifecycle operations return a new
    `LookupTable` instead of mutating the one they were given.
    """

    key: Pubkey
    authority: Optional[Pubkey]
    update_authority: Optional[Pubkey]
    creation_slot: Optional[int]
    addresses: list[Pubkey] = field(default_factory=list)
    status: TableStatus = TableStatus.UNINITIALIZED
    last_extended_slot: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == TableStatus.ACTIVE

    def contains(self, address: Pubkey) -> bool:
        return address in self.addresses

    def index_of(self, address: Pubkey) -> Optional[int]:
        try:
            return self.addresses.index(address)
        except ValueError:
            return None

    def to_account(self) -> AddressLookupTableAccount:
        return AddressLookupTableAccount(self.key, list(self.addresses))


@dataclass
class CompiledMessage:
    fee_payer: Pubkey
    freshness: FreshnessToken
    instructions: Sequence[Instruction]
    message: MessageV0
    # address -> (table key, index in that table)
    lookups: dict[Pubkey, tuple[Pubkey, int]]
    static_keys: list[Pubkey]

    def required_signers(self) -> list[Pubkey]:
        num_signers = self.message.header.num_required_signatures
        return list(self.message.account_keys[:num_signers])

    def __bytes__(self) -> bytes:
        return bytes(self.message)


@dataclass
class SignedTransaction:
    compiled: CompiledMessage
    tx: VersionedTransaction

    @property
    def signature(self) -> Signature:
        return self.tx.signatures[0]

    @property
    def freshness(self) -> FreshnessToken:
        return self.compiled.freshness

    def __bytes__(self) -> bytes:
        return bytes(self.tx)
