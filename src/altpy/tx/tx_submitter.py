import logging
from typing import Sequence

from solana.rpc.commitment import Commitment, Processed
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from altpy.errors import MissingSignature
from altpy.tx.types import LedgerGateway
from altpy.types import CompiledMessage, SignedTransaction, Signer, TxSigAndSlot, to_keypair

logger = logging.getLogger(__name__)


class TransactionSubmitter:
    """Signs compiled messages and drives them to confirmation through a gateway.

    Nothing is retried here: a rejected or expired transaction surfaces as a
    `SubmissionError` and the caller decides whether to recompile with a fresh
    blockhash.
    """

    def __init__(self, gateway: LedgerGateway, commitment: Commitment = Processed):
        self.gateway = gateway
        self.commitment = commitment

    def sign(
        self, message: CompiledMessage, signers: Sequence[Signer]
    ) -> SignedTransaction:
        keypairs: dict = {}
        for signer in signers:
            kp = to_keypair(signer)
            keypairs.setdefault(kp.pubkey(), kp)

        required = message.required_signers()
        missing = [key for key in required if key not in keypairs]
        if missing:
            raise MissingSignature(missing)

        selected: list[Keypair] = [keypairs[key] for key in required]
        tx = VersionedTransaction(message.message, selected)
        return SignedTransaction(message, tx)

    async def submit(
        self, message: CompiledMessage, signers: Sequence[Signer]
    ) -> TxSigAndSlot:
        signed = self.sign(message, signers)
        logger.debug(f"Sending transaction {signed.signature}")
        result = await self.gateway.send_and_confirm(signed, self.commitment)
        logger.info(f"Transaction {result.tx_sig} confirmed at slot {result.slot}")
        return result
