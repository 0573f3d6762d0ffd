from pytest import fixture
from solders.keypair import Keypair

from altpy.constants.config import LifecycleConfig
from altpy.lifecycle import TableLifecycleManager

from mock_ledger import MockLedgerGateway


@fixture
def payer() -> Keypair:
    return Keypair()


@fixture
def authority() -> Keypair:
    return Keypair()


@fixture
def config() -> LifecycleConfig:
    return LifecycleConfig(
        rpc_url="http://127.0.0.1:8899", poll_interval=0.01, activation_timeout=1.0
    )


@fixture
def gateway() -> MockLedgerGateway:
    return MockLedgerGateway(visibility_delay=1)


@fixture
def manager(gateway: MockLedgerGateway, config: LifecycleConfig) -> TableLifecycleManager:
    return TableLifecycleManager(gateway, config)
