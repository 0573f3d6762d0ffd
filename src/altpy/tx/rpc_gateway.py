import logging
from typing import Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Processed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature

from altpy.constants.config import LifecycleConfig
from altpy.errors import StaleFreshnessToken, SubmissionError
from altpy.tx.types import LedgerGateway
from altpy.types import BufferAndSlot, FreshnessToken, SignedTransaction, TxSigAndSlot

logger = logging.getLogger(__name__)

DEFAULT_TX_OPTIONS = TxOpts(skip_confirmation=True, preflight_commitment=Processed)


class RpcLedgerGateway(LedgerGateway):
    def __init__(
        self,
        connection: AsyncClient,
        opts: TxOpts = DEFAULT_TX_OPTIONS,
        blockhash_commitment: Commitment = Confirmed,
        account_commitment: Commitment = Processed,
    ):
        self.connection = connection
        if not opts.skip_confirmation:
            raise ValueError("RpcLedgerGateway confirms separately, use skip_confirmation")
        self.opts = opts
        self.blockhash_commitment = blockhash_commitment
        self.account_commitment = account_commitment

    @classmethod
    def from_config(cls, config: LifecycleConfig) -> "RpcLedgerGateway":
        return cls(
            AsyncClient(config.rpc_url, commitment=config.commitment),
            config.tx_opts(),
            blockhash_commitment=config.blockhash_commitment,
            account_commitment=config.commitment,
        )

    async def get_latest_freshness_token(self) -> FreshnessToken:
        resp = await self.connection.get_latest_blockhash(self.blockhash_commitment)
        return FreshnessToken(
            blockhash=resp.value.blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def get_slot(self) -> int:
        return (await self.connection.get_slot(self.blockhash_commitment)).value

    async def get_account(self, address: Pubkey) -> Optional[BufferAndSlot]:
        resp = await self.connection.get_account_info(
            address, commitment=self.account_commitment
        )
        if resp.value is None:
            return None
        return BufferAndSlot(resp.context.slot, bytes(resp.value.data), resp.value.owner)

    async def submit_transaction(self, signed: SignedTransaction) -> Signature:
        try:
            resp = await self.connection.send_raw_transaction(bytes(signed), self.opts)
        except (RPCException, SolanaRpcException) as e:
            logger.warning(f"Transaction {signed.signature} rejected: {e}")
            raise SubmissionError(
                f"transaction rejected: {e}", signature=signed.signature
            ) from e
        return resp.value

    async def send_and_confirm(
        self, signed: SignedTransaction, commitment: Commitment
    ) -> TxSigAndSlot:
        sig = await self.submit_transaction(signed)

        try:
            resp = await self.connection.confirm_transaction(
                sig,
                commitment,
                last_valid_block_height=signed.freshness.last_valid_block_height,
            )
        except TransactionExpiredBlockheightExceededError as e:
            logger.warning(f"Transaction {sig} expired before confirmation")
            raise StaleFreshnessToken(
                f"blockhash expired before confirmation: {e}", signature=sig
            ) from e
        except (UnconfirmedTxError, RPCException, SolanaRpcException) as e:
            logger.warning(f"Transaction {sig} could not be confirmed: {e}")
            raise SubmissionError(
                f"could not confirm transaction: {e}", signature=sig
            ) from e

        status = resp.value[0]
        if status is None:
            raise SubmissionError(f"no status for transaction {sig}", signature=sig)
        if status.err is not None:
            raise SubmissionError(
                f"transaction {sig} failed: {status.err}", signature=sig
            )

        return TxSigAndSlot(sig, resp.context.slot)
