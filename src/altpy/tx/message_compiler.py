import logging
from typing import Optional, Sequence

from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey

from altpy.errors import NoSignerSpecified, TableNotReadable
from altpy.types import CompiledMessage, FreshnessToken, LookupTable

logger = logging.getLogger(__name__)


def get_lookupable_keys(fee_payer: Pubkey, instructions: Sequence[Instruction]) -> list[Pubkey]:
    """Keys a v0 message is allowed to load from a lookup table.

    Signers and invoked programs always stay in the static key list.
    """
    program_ids = {ix.program_id for ix in instructions}
    signers = {fee_payer}
    for ix in instructions:
        for meta in ix.accounts:
            if meta.is_signer:
                signers.add(meta.pubkey)

    keys: list[Pubkey] = []
    for ix in instructions:
        for meta in ix.accounts:
            key = meta.pubkey
            if key in signers or key in program_ids or key in keys:
                continue
            keys.append(key)
    return keys


def select_tables(
    keys: Sequence[Pubkey], tables: Sequence[LookupTable]
) -> list[LookupTable]:
    """Returns the tables that will resolve at least one key, in the given order."""
    selected: list[LookupTable] = []
    for key in keys:
        for table in tables:
            if not table.contains(key):
                continue
            if not table.is_active:
                raise TableNotReadable(
                    f"lookup table {table.key} is {table.status.value}, not active"
                )
            if table not in selected:
                selected.append(table)
            break
    return [table for table in tables if table in selected]


def compile_message(
    fee_payer: Optional[Pubkey],
    instructions: Sequence[Instruction],
    tables: Sequence[LookupTable],
    freshness: FreshnessToken,
) -> CompiledMessage:
    if fee_payer is None:
        raise NoSignerSpecified("a fee payer is required to compile a message")

    instructions = list(instructions)

    deduped: list[LookupTable] = []
    for table in tables:
        if all(table.key != seen.key for seen in deduped):
            deduped.append(table)

    keys = get_lookupable_keys(fee_payer, instructions)
    usable = select_tables(keys, deduped)

    msg = MessageV0.try_compile(
        fee_payer,
        instructions,
        [table.to_account() for table in usable],
        freshness.blockhash,
    )

    tables_by_key = {table.key: table for table in usable}
    lookups: dict[Pubkey, tuple[Pubkey, int]] = {}
    for table_lookup in msg.address_table_lookups:
        table = tables_by_key[table_lookup.account_key]
        for index in list(table_lookup.writable_indexes) + list(
            table_lookup.readonly_indexes
        ):
            lookups[table.addresses[index]] = (table.key, index)

    static_keys = list(msg.account_keys)
    logger.debug(
        f"Compiled message: {len(static_keys)} static keys, {len(lookups)} via lookup tables"
    )

    return CompiledMessage(
        fee_payer=fee_payer,
        freshness=freshness,
        instructions=instructions,
        message=msg,
        lookups=lookups,
        static_keys=static_keys,
    )
