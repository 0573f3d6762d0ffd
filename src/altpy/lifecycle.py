import asyncio
import logging
from dataclasses import replace
from typing import List, Optional, Sequence, TypeVar

from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from altpy.address_lookup_table import (
    create_lookup_table_ix,
    decode_lookup_table_state,
    extend_lookup_table_ix,
)
from altpy.addresses import get_lookup_table_public_key
from altpy.constants.config import (
    ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
    LOOKUP_TABLE_MAX_ADDRESSES,
    MAX_ADDRESSES_PER_EXTEND,
    LifecycleConfig,
)
from altpy.errors import (
    ActivationTimeout,
    DerivationMismatch,
    DuplicateAddressError,
    MissingSignature,
    SubmissionError,
    TableNotReadable,
)
from altpy.tx.message_compiler import compile_message
from altpy.tx.tx_submitter import TransactionSubmitter
from altpy.tx.types import LedgerGateway
from altpy.types import LookupTable, Signer, TableStatus, TxSigAndSlot, to_keypair

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunks(array: List[T], size: int) -> List[List[T]]:
    return [array[i : i + size] for i in range(0, len(array), size)]


class TableLifecycleManager:
    """Drives an address lookup table through create -> extend -> active.

    Every operation returns a new `LookupTable`; the object passed in is left
    as it was, so after a failure the caller still holds the last state that
    the ledger confirmed and can resume from there.

    One authority process per table: concurrent `extend` calls against the
    same table are not serialized here.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        config: LifecycleConfig,
        submitter: Optional[TransactionSubmitter] = None,
    ):
        self.gateway = gateway
        self.config = config
        self.submitter = (
            submitter
            if submitter is not None
            else TransactionSubmitter(gateway, config.commitment)
        )

    async def create(self, authority: Signer, fee_payer: Signer) -> LookupTable:
        authority_kp = to_keypair(authority)
        payer_kp = to_keypair(fee_payer)

        slot = await self.gateway.get_slot()
        ix, table_address = create_lookup_table_ix(
            authority_kp.pubkey(), payer_kp.pubkey(), slot
        )
        logger.info(f"Creating lookup table {table_address} at slot {slot}")

        freshness = await self.gateway.get_latest_freshness_token()
        msg = compile_message(payer_kp.pubkey(), [ix], [], freshness)
        await self.submitter.submit(msg, [payer_kp, authority_kp])

        logger.info(f"Lookup table {table_address} created")
        return LookupTable(
            key=table_address,
            authority=authority_kp.pubkey(),
            update_authority=authority_kp.pubkey(),
            creation_slot=slot,
            addresses=[],
            status=TableStatus.CREATED,
        )

    async def extend(
        self,
        table: LookupTable,
        authority: Signer,
        fee_payer: Signer,
        addresses: Sequence[Pubkey],
    ) -> LookupTable:
        addresses = list(addresses)
        if len(addresses) == 0:
            raise ValueError("no addresses to add to lookup table")
        if table.status == TableStatus.UNINITIALIZED:
            raise ValueError(f"lookup table {table.key} has not been created")

        duplicates = []
        seen = set(table.addresses)
        for address in addresses:
            if address in seen:
                duplicates.append(address)
            seen.add(address)
        if duplicates:
            raise DuplicateAddressError(duplicates)

        if len(table.addresses) + len(addresses) > LOOKUP_TABLE_MAX_ADDRESSES:
            raise ValueError(
                f"lookup table {table.key} would exceed {LOOKUP_TABLE_MAX_ADDRESSES} addresses"
            )

        authority_kp = to_keypair(authority)
        payer_kp = to_keypair(fee_payer)
        if table.update_authority is None:
            raise ValueError(f"lookup table {table.key} is frozen")
        if authority_kp.pubkey() != table.update_authority:
            raise MissingSignature([table.update_authority])

        self.verify_derivation(table)

        current = table
        for batch in chunks(addresses, MAX_ADDRESSES_PER_EXTEND):
            ix = extend_lookup_table_ix(
                table.key, authority_kp.pubkey(), payer_kp.pubkey(), batch
            )
            try:
                freshness = await self.gateway.get_latest_freshness_token()
                msg = compile_message(payer_kp.pubkey(), [ix], [], freshness)
                await self.submitter.submit(msg, [payer_kp, authority_kp])
            except SubmissionError as e:
                e.table = current
                raise
            except (OSError, RPCException, SolanaRpcException) as e:
                logger.warning(
                    f"Extending lookup table {table.key} stopped at {len(current.addresses)} addresses: {e}"
                )
                raise SubmissionError(
                    f"could not extend lookup table {table.key}: {e}", table=current
                ) from e
            current = replace(
                current,
                addresses=current.addresses + batch,
                status=TableStatus.EXTENDED,
            )
            logger.info(
                f"Extended lookup table {table.key} to {len(current.addresses)} addresses"
            )

        return current

    def verify_derivation(self, table: LookupTable):
        if table.creation_slot is None or table.authority is None:
            return
        expected = get_lookup_table_public_key(table.authority, table.creation_slot)
        if expected != table.key:
            raise DerivationMismatch(
                f"lookup table {table.key} does not derive from authority "
                f"{table.authority} at slot {table.creation_slot} (expected {expected})"
            )

    async def fetch(
        self,
        table_address: Pubkey,
        authority: Optional[Pubkey] = None,
        creation_slot: Optional[int] = None,
    ) -> Optional[LookupTable]:
        """Loads a table as the ledger currently sees it.

        When both `authority` and `creation_slot` are given the address is
        checked against the derivation rule first.
        """
        if authority is not None and creation_slot is not None:
            expected = get_lookup_table_public_key(authority, creation_slot)
            if expected != table_address:
                raise DerivationMismatch(
                    f"{table_address} is not the lookup table of {authority} at slot {creation_slot}"
                )

        account = await self.gateway.get_account(table_address)
        if account is None:
            return None
        if account.owner != ADDRESS_LOOKUP_TABLE_PROGRAM_ID:
            raise DerivationMismatch(
                f"account {table_address} is owned by {account.owner}, not the lookup table program"
            )

        state = decode_lookup_table_state(account.buffer)
        if state.is_deactivated:
            raise TableNotReadable(f"lookup table {table_address} is deactivated")
        if authority is not None and state.authority not in (None, authority):
            raise DerivationMismatch(
                f"lookup table {table_address} has authority {state.authority}, expected {authority}"
            )

        # a never-extended table has last_extended_slot 0 and is readable as
        # soon as the account exists
        current_slot = await self.gateway.get_slot()
        if current_slot > state.last_extended_slot:
            status = TableStatus.ACTIVE
        else:
            status = TableStatus.EXTENDED

        return LookupTable(
            key=table_address,
            authority=authority if authority is not None else state.authority,
            update_authority=state.authority,
            creation_slot=creation_slot,
            addresses=state.addresses,
            status=status,
            last_extended_slot=state.last_extended_slot,
        )

    async def await_active(
        self,
        table: LookupTable,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> LookupTable:
        if poll_interval is None:
            poll_interval = self.config.poll_interval
        if timeout is None:
            timeout = self.config.activation_timeout

        try:
            return await asyncio.wait_for(
                self._poll_until_active(table, poll_interval), timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Lookup table {table.key} not active after {timeout}s "
                f"({len(table.addresses)} addresses expected)"
            )
            raise ActivationTimeout(
                f"lookup table {table.key} did not become active within {timeout}s",
                table,
            ) from None

    async def _poll_until_active(
        self, table: LookupTable, poll_interval: float
    ) -> LookupTable:
        polls = 0
        while True:
            polls += 1
            fetched = await self.fetch(table.key, table.update_authority)
            if fetched is not None and self._reflects(table, fetched):
                logger.info(
                    f"Lookup table {table.key} active with {len(fetched.addresses)} addresses after {polls} poll(s)"
                )
                return replace(
                    fetched,
                    authority=table.authority,
                    creation_slot=table.creation_slot,
                )
            logger.debug(f"Lookup table {table.key} not yet active (poll {polls})")
            await asyncio.sleep(poll_interval)

    @staticmethod
    def _reflects(expected: LookupTable, fetched: LookupTable) -> bool:
        if not fetched.is_active:
            return False
        return fetched.addresses[: len(expected.addresses)] == expected.addresses

    async def provision(
        self,
        authority: Signer,
        fee_payer: Signer,
        addresses: Sequence[Pubkey],
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> LookupTable:
        table = await self.create(authority, fee_payer)
        table = await self.extend(table, authority, fee_payer, addresses)
        return await self.await_active(table, poll_interval, timeout)

    async def send_with_tables(
        self,
        instructions: Sequence[Instruction],
        tables: Sequence[LookupTable],
        fee_payer: Signer,
        signers: Sequence[Signer] = (),
    ) -> TxSigAndSlot:
        payer_kp = to_keypair(fee_payer)
        freshness = await self.gateway.get_latest_freshness_token()
        msg = compile_message(payer_kp.pubkey(), instructions, tables, freshness)
        return await self.submitter.submit(msg, [payer_kp, *signers])
