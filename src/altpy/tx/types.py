from abc import abstractmethod
from typing import Optional

from solana.rpc.commitment import Commitment
from solders.pubkey import Pubkey
from solders.signature import Signature

from altpy.types import BufferAndSlot, FreshnessToken, SignedTransaction, TxSigAndSlot


class LedgerGateway:
    """Narrow view of the ledger the lifecycle needs.

    Implementations raise `SubmissionError` (or `StaleFreshnessToken`) from the
    write methods; read methods let transport errors propagate.
    """

    @abstractmethod
    async def get_latest_freshness_token(self) -> FreshnessToken:
        pass

    @abstractmethod
    async def get_slot(self) -> int:
        pass

    @abstractmethod
    async def get_account(self, address: Pubkey) -> Optional[BufferAndSlot]:
        pass

    @abstractmethod
    async def submit_transaction(self, signed: SignedTransaction) -> Signature:
        pass

    @abstractmethod
    async def send_and_confirm(
        self, signed: SignedTransaction, commitment: Commitment
    ) -> TxSigAndSlot:
        pass
