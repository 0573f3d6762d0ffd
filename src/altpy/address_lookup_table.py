from dataclasses import dataclass
from typing import Optional, Sequence

from construct import Bytes, Int8ul, Int16ul, Int32ul, Int64ul, PrefixedArray, Struct
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from altpy.addresses import U64_MAX, get_lookup_table_public_key_and_bump
from altpy.constants.config import (
    ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
    LOOKUP_TABLE_META_SIZE,
    SYSTEM_PROGRAM_ID,
)

# ProgramState discriminants
LOOKUP_TABLE_TYPE_INDEX = 1

# ProgramInstruction discriminants
CREATE_LOOKUP_TABLE_IX = 0
EXTEND_LOOKUP_TABLE_IX = 2

CREATE_LOOKUP_TABLE_LAYOUT = Struct(
    "instruction" / Int32ul,
    "recent_slot" / Int64ul,
    "bump_seed" / Int8ul,
)

EXTEND_LOOKUP_TABLE_LAYOUT = Struct(
    "instruction" / Int32ul,
    "new_addresses" / PrefixedArray(Int64ul, Bytes(32)),
)

LOOKUP_TABLE_META_LAYOUT = Struct(
    "type_index" / Int32ul,
    "deactivation_slot" / Int64ul,
    "last_extended_slot" / Int64ul,
    "last_extended_slot_start_index" / Int8ul,
    "has_authority" / Int8ul,
    "authority" / Bytes(32),
    "padding" / Int16ul,
)


@dataclass
class LookupTableState:
    deactivation_slot: int
    last_extended_slot: int
    last_extended_slot_start_index: int
    authority: Optional[Pubkey]
    addresses: list[Pubkey]

    @property
    def is_deactivated(self) -> bool:
        return self.deactivation_slot != U64_MAX


def create_lookup_table_ix(
    authority: Pubkey, payer: Pubkey, recent_slot: int
) -> tuple[Instruction, Pubkey]:
    table_address, bump = get_lookup_table_public_key_and_bump(authority, recent_slot)

    data = CREATE_LOOKUP_TABLE_LAYOUT.build(
        dict(
            instruction=CREATE_LOOKUP_TABLE_IX,
            recent_slot=recent_slot,
            bump_seed=bump,
        )
    )

    accounts = [
        AccountMeta(table_address, is_signer=False, is_writable=True),
        AccountMeta(authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]

    return Instruction(ADDRESS_LOOKUP_TABLE_PROGRAM_ID, data, accounts), table_address


def extend_lookup_table_ix(
    table_address: Pubkey,
    authority: Pubkey,
    payer: Pubkey,
    new_addresses: Sequence[Pubkey],
) -> Instruction:
    data = EXTEND_LOOKUP_TABLE_LAYOUT.build(
        dict(
            instruction=EXTEND_LOOKUP_TABLE_IX,
            new_addresses=[bytes(address) for address in new_addresses],
        )
    )

    accounts = [
        AccountMeta(table_address, is_signer=False, is_writable=True),
        AccountMeta(authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]

    return Instruction(ADDRESS_LOOKUP_TABLE_PROGRAM_ID, data, accounts)


def decode_lookup_table_state(data: bytes) -> LookupTableState:
    data_len = len(data)
    if data_len < LOOKUP_TABLE_META_SIZE:
        raise ValueError(f"lookup table account too small: {data_len} bytes")
    if (data_len - LOOKUP_TABLE_META_SIZE) % 32 != 0:
        raise ValueError(f"lookup table address region misaligned: {data_len} bytes")

    meta = LOOKUP_TABLE_META_LAYOUT.parse(data[:LOOKUP_TABLE_META_SIZE])
    if meta.type_index != LOOKUP_TABLE_TYPE_INDEX:
        raise ValueError(f"account is not an initialized lookup table: {meta.type_index}")

    authority = Pubkey.from_bytes(meta.authority) if meta.has_authority else None

    return LookupTableState(
        deactivation_slot=meta.deactivation_slot,
        last_extended_slot=meta.last_extended_slot,
        last_extended_slot_start_index=meta.last_extended_slot_start_index,
        authority=authority,
        addresses=decode_addresses(data),
    )


def decode_addresses(data: bytes) -> list[Pubkey]:
    data_len = len(data)

    addresses = []
    i = LOOKUP_TABLE_META_SIZE
    while i < data_len:
        addresses.append(Pubkey.from_bytes(data[i : i + 32]))
        i += 32

    return addresses

