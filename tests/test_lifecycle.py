import asyncio

from pytest import mark, raises
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from altpy.addresses import get_lookup_table_public_key
from altpy.constants.config import ADDRESS_LOOKUP_TABLE_PROGRAM_ID, LifecycleConfig
from altpy.errors import (
    ActivationTimeout,
    DerivationMismatch,
    DuplicateAddressError,
    MissingSignature,
    StaleFreshnessToken,
    SubmissionError,
    TableNotReadable,
)
from altpy.lifecycle import TableLifecycleManager
from altpy.tx.message_compiler import compile_message
from altpy.types import TableStatus

from mock_ledger import MockLedgerGateway, TableRecord, encode_lookup_table


@mark.asyncio
async def test_create_returns_empty_created_table(manager, gateway, payer, authority):
    table = await manager.create(authority, payer)

    assert table.status == TableStatus.CREATED
    assert table.addresses == []
    assert table.authority == authority.pubkey()
    assert table.update_authority == authority.pubkey()
    assert table.key == get_lookup_table_public_key(authority.pubkey(), table.creation_slot)
    assert len(gateway.sent) == 1
    assert table.key in gateway.records


@mark.asyncio
async def test_end_to_end_lifecycle(manager, gateway, payer, authority):
    x, y, z = (Pubkey.new_unique() for _ in range(3))

    table = await manager.create(authority, payer)
    assert table.status == TableStatus.CREATED

    extended = await manager.extend(table, authority, payer, [x, y, z])
    assert extended.status == TableStatus.EXTENDED
    assert extended.addresses == [x, y, z]
    assert [extended.index_of(a) for a in (x, y, z)] == [0, 1, 2]

    active = await manager.await_active(extended, poll_interval=0.01, timeout=1.0)
    assert active.status == TableStatus.ACTIVE
    assert active.addresses == [x, y, z]
    # stale on the first poll, visible on the second
    assert gateway.account_polls == 2
    assert active.creation_slot == table.creation_slot

    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=y, lamports=10_000))
    freshness = await gateway.get_latest_freshness_token()
    compiled = compile_message(payer.pubkey(), [ix], [active], freshness)
    assert compiled.lookups[y] == (table.key, 1)

    result = await manager.send_with_tables([ix], [active], payer)
    assert result.tx_sig == gateway.sent[-1].signature
    assert len(gateway.sent[-1].tx.message.address_table_lookups) == 1


@mark.asyncio
async def test_extend_appends_in_order(manager, payer, authority):
    first = [Pubkey.new_unique() for _ in range(2)]
    second = [Pubkey.new_unique() for _ in range(3)]

    table = await manager.create(authority, payer)
    table = await manager.extend(table, authority, payer, first)
    table = await manager.extend(table, authority, payer, second)

    assert table.addresses == first + second
    for position, address in enumerate(first + second):
        assert table.index_of(address) == position


@mark.asyncio
async def test_extend_does_not_mutate_input(manager, payer, authority):
    table = await manager.create(authority, payer)
    await manager.extend(table, authority, payer, [Pubkey.new_unique()])
    assert table.addresses == []
    assert table.status == TableStatus.CREATED


@mark.asyncio
async def test_extend_rejects_existing_address(manager, gateway, payer, authority):
    existing = Pubkey.new_unique()
    table = await manager.create(authority, payer)
    table = await manager.extend(table, authority, payer, [existing])
    sent_before = len(gateway.sent)

    with raises(DuplicateAddressError) as e:
        await manager.extend(table, authority, payer, [Pubkey.new_unique(), existing])

    assert e.value.duplicates == [existing]
    assert len(gateway.sent) == sent_before
    assert gateway.records[table.key].addresses == [existing]


@mark.asyncio
async def test_extend_rejects_repeats_within_batch(manager, gateway, payer, authority):
    repeated = Pubkey.new_unique()
    table = await manager.create(authority, payer)

    with raises(DuplicateAddressError):
        await manager.extend(table, authority, payer, [repeated, repeated])
    assert len(gateway.sent) == 1


@mark.asyncio
async def test_extend_validates_arguments(manager, payer, authority):
    table = await manager.create(authority, payer)

    with raises(ValueError):
        await manager.extend(table, authority, payer, [])

    with raises(ValueError):
        await manager.extend(
            table, authority, payer, [Pubkey.new_unique() for _ in range(257)]
        )

    with raises(MissingSignature):
        await manager.extend(table, Keypair(), payer, [Pubkey.new_unique()])


@mark.asyncio
async def test_extend_detects_derivation_mismatch(manager, payer, authority):
    table = await manager.create(authority, payer)
    table.creation_slot += 1

    with raises(DerivationMismatch):
        await manager.extend(table, authority, payer, [Pubkey.new_unique()])


@mark.asyncio
async def test_large_extension_is_chunked(manager, gateway, payer, authority):
    addresses = [Pubkey.new_unique() for _ in range(45)]
    table = await manager.create(authority, payer)

    table = await manager.extend(table, authority, payer, addresses)

    assert table.addresses == addresses
    # create + three extend transactions of at most 20 addresses
    assert len(gateway.sent) == 4
    assert gateway.records[table.key].addresses == addresses


@mark.asyncio
async def test_partial_extension_is_reported(config, payer, authority):
    gateway = MockLedgerGateway(reject_from=2)
    manager = TableLifecycleManager(gateway, config)
    addresses = [Pubkey.new_unique() for _ in range(25)]
    table = await manager.create(authority, payer)

    with raises(SubmissionError) as e:
        await manager.extend(table, authority, payer, addresses)

    assert e.value.table.status == TableStatus.EXTENDED
    assert e.value.table.addresses == addresses[:20]
    assert table.addresses == []


class FlakyTokenGateway(MockLedgerGateway):
    def __init__(self, fail_on_call: int, **kwargs):
        super().__init__(**kwargs)
        self.fail_on_call = fail_on_call
        self.token_calls = 0

    async def get_latest_freshness_token(self):
        self.token_calls += 1
        if self.token_calls == self.fail_on_call:
            raise ConnectionError("connection reset by peer")
        return await super().get_latest_freshness_token()


@mark.asyncio
async def test_transport_error_mid_extension_keeps_progress(config, payer, authority):
    # create, first batch, then the second batch's token fetch fails
    gateway = FlakyTokenGateway(fail_on_call=3)
    manager = TableLifecycleManager(gateway, config)
    addresses = [Pubkey.new_unique() for _ in range(25)]
    table = await manager.create(authority, payer)

    with raises(SubmissionError) as e:
        await manager.extend(table, authority, payer, addresses)

    assert isinstance(e.value.__cause__, ConnectionError)
    assert e.value.table.status == TableStatus.EXTENDED
    assert e.value.table.addresses == addresses[:20]
    assert gateway.records[table.key].addresses == addresses[:20]
    assert table.addresses == []


@mark.asyncio
async def test_create_surfaces_stale_token(config, payer, authority):
    manager = TableLifecycleManager(MockLedgerGateway(expire=True), config)
    with raises(StaleFreshnessToken):
        await manager.create(authority, payer)


@mark.asyncio
async def test_await_active_times_out(config, payer, authority):
    gateway = MockLedgerGateway(visibility_delay=None)
    manager = TableLifecycleManager(gateway, config)
    table = await manager.create(authority, payer)
    table = await manager.extend(table, authority, payer, [Pubkey.new_unique()])

    with raises(ActivationTimeout) as e:
        await manager.await_active(table, poll_interval=0.01, timeout=0.05)

    assert e.value.table is table
    assert table.status == TableStatus.EXTENDED
    assert gateway.account_polls >= 2


@mark.asyncio
async def test_await_active_uses_config_defaults(payer, authority):
    config = LifecycleConfig(
        rpc_url="http://127.0.0.1:8899", poll_interval=0.01, activation_timeout=0.05
    )
    manager = TableLifecycleManager(MockLedgerGateway(visibility_delay=None), config)
    table = await manager.create(authority, payer)

    with raises(ActivationTimeout):
        await manager.await_active(table)


@mark.asyncio
async def test_await_active_is_cancellable(config, payer, authority):
    manager = TableLifecycleManager(MockLedgerGateway(visibility_delay=None), config)
    table = await manager.create(authority, payer)

    task = asyncio.create_task(manager.await_active(table, poll_interval=0.01, timeout=60))
    await asyncio.sleep(0.03)
    task.cancel()

    with raises(asyncio.CancelledError):
        await task


@mark.asyncio
async def test_await_active_prefers_ledger_state(manager, gateway, payer, authority):
    table = await manager.create(authority, payer)
    table = await manager.extend(table, authority, payer, [Pubkey.new_unique()])
    extra = Pubkey.new_unique()
    record = gateway.records[table.key]
    record.addresses = record.addresses + [extra]
    gateway.set_account(
        table.key, encode_lookup_table(record), ADDRESS_LOOKUP_TABLE_PROGRAM_ID
    )
    gateway.pending = []

    active = await manager.await_active(table, poll_interval=0.01, timeout=1.0)

    assert active.addresses == table.addresses + [extra]


@mark.asyncio
async def test_await_active_detects_foreign_owner(manager, gateway, payer, authority):
    table = await manager.create(authority, payer)
    gateway.pending = []
    gateway.set_account(
        table.key,
        encode_lookup_table(TableRecord(authority=authority.pubkey())),
        Pubkey.new_unique(),
    )

    with raises(DerivationMismatch):
        await manager.await_active(table, poll_interval=0.01, timeout=1.0)


@mark.asyncio
async def test_await_active_rejects_deactivated_table(manager, gateway, payer, authority):
    table = await manager.create(authority, payer)
    gateway.pending = []
    gateway.set_account(
        table.key,
        encode_lookup_table(
            TableRecord(authority=authority.pubkey(), deactivation_slot=5)
        ),
        ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
    )

    with raises(TableNotReadable):
        await manager.await_active(table, poll_interval=0.01, timeout=1.0)


@mark.asyncio
async def test_fetch_resumes_from_ledger(manager, gateway, payer, authority):
    addresses = [Pubkey.new_unique() for _ in range(2)]
    table = await manager.provision(
        authority, payer, addresses, poll_interval=0.01, timeout=1.0
    )

    fetched = await manager.fetch(table.key, authority.pubkey(), table.creation_slot)

    assert fetched.status == TableStatus.ACTIVE
    assert fetched.addresses == addresses
    assert fetched.update_authority == authority.pubkey()
    assert await manager.fetch(Pubkey.new_unique()) is None

    with raises(DerivationMismatch):
        await manager.fetch(table.key, authority.pubkey(), table.creation_slot + 1)


@mark.asyncio
async def test_never_extended_table_is_active(config, payer, authority):
    manager = TableLifecycleManager(MockLedgerGateway(), config)
    table = await manager.create(authority, payer)

    fetched = await manager.fetch(table.key, authority.pubkey(), table.creation_slot)

    assert fetched.status == TableStatus.ACTIVE
    assert fetched.addresses == []
    assert fetched.last_extended_slot == 0


@mark.asyncio
async def test_await_active_on_created_table(manager, payer, authority):
    table = await manager.create(authority, payer)

    active = await manager.await_active(table, poll_interval=0.01, timeout=1.0)

    assert active.status == TableStatus.ACTIVE
    assert active.addresses == []
    assert active.creation_slot == table.creation_slot
