import asyncio
import logging

from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from solders.system_program import TransferParams, transfer
from solders.sysvar import RENT

from altpy.constants.config import load_config
from altpy.keypair import load_signer_from_env
from altpy.lifecycle import TableLifecycleManager
from altpy.tx.rpc_gateway import RpcLedgerGateway

logging.basicConfig(level=logging.INFO)


async def main():
    config = load_config(env="devnet")
    payer = load_signer_from_env()
    print(f"Using wallet: {payer.pubkey()}")

    gateway = RpcLedgerGateway.from_config(config)
    manager = TableLifecycleManager(gateway, config)

    recipient = Pubkey.new_unique()
    addresses = [
        SYS_PROGRAM_ID,
        RENT,
        recipient,
        Pubkey.new_unique(),
        Pubkey.new_unique(),
        Pubkey.new_unique(),
    ]

    try:
        table = await manager.create(payer, payer)
        print(f"Created lookup table {table.key}")

        table = await manager.extend(table, payer, payer, addresses)
        print(f"Extended with {len(table.addresses)} addresses")

        table = await manager.await_active(table)
        print(f"Lookup table active: {table.key}")

        # a fresh system account must be funded to the rent-exempt minimum
        rent = await gateway.connection.get_minimum_balance_for_rent_exemption(0)
        ix = transfer(
            TransferParams(
                from_pubkey=payer.pubkey(), to_pubkey=recipient, lamports=rent.value
            )
        )
        result = await manager.send_with_tables([ix], [table], payer)
        print(f"Final transaction using lookup table: {result.tx_sig}")
    finally:
        await gateway.connection.close()


if __name__ == "__main__":
    asyncio.run(main())
