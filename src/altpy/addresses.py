from solders.pubkey import Pubkey

from altpy.constants.config import ADDRESS_LOOKUP_TABLE_PROGRAM_ID

U64_MAX = 2**64 - 1


def int_to_le_bytes(a: int) -> bytes:
    if a < 0 or a > U64_MAX:
        raise ValueError(f"slot out of u64 range: {a}")
    return a.to_bytes(8, "little")


def get_lookup_table_public_key_and_bump(
    authority: Pubkey,
    recent_slot: int,
    program_id: Pubkey = ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [bytes(authority), int_to_le_bytes(recent_slot)], program_id
    )


def get_lookup_table_public_key(
    authority: Pubkey,
    recent_slot: int,
    program_id: Pubkey = ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
) -> Pubkey:
    return get_lookup_table_public_key_and_bump(authority, recent_slot, program_id)[0]
