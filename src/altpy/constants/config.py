import os
from dataclasses import dataclass
from typing import Literal, Optional

from dotenv import load_dotenv
from solana.rpc.commitment import Commitment, Confirmed, Processed
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey

from altpy.errors import ConfigurationError

AltEnv = Literal["devnet", "mainnet", "localnet"]

ADDRESS_LOOKUP_TABLE_PROGRAM_ID = Pubkey.from_string(
    "AddressLookupTab1e1111111111111111111111111"
)
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")

LOOKUP_TABLE_META_SIZE = 56
LOOKUP_TABLE_MAX_ADDRESSES = 256
# keeps a single extend transaction under the packet size limit
MAX_ADDRESSES_PER_EXTEND = 20

DEFAULT_POLL_INTERVAL_SECS = 0.5
DEFAULT_ACTIVATION_TIMEOUT_SECS = 30.0

RPC_URL_ENV = "RPC_URL"
PRIVATE_KEY_ENV = "PRIVATE_KEY"


@dataclass
class LifecycleConfig:
    rpc_url: str
    commitment: Commitment = Processed
    blockhash_commitment: Commitment = Confirmed
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECS
    activation_timeout: float = DEFAULT_ACTIVATION_TIMEOUT_SECS
    skip_preflight: bool = False

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigurationError("rpc_url must be set")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if self.activation_timeout <= 0:
            raise ConfigurationError("activation_timeout must be positive")

    def tx_opts(self) -> TxOpts:
        return TxOpts(
            skip_confirmation=True,
            skip_preflight=self.skip_preflight,
            preflight_commitment=self.commitment,
        )


@dataclass
class EnvDefaults:
    env: AltEnv
    default_http: str


configs = {
    "devnet": EnvDefaults(
        env="devnet",
        default_http="https://api.devnet.solana.com",
    ),
    "mainnet": EnvDefaults(
        env="mainnet",
        default_http="https://api.mainnet-beta.solana.com",
    ),
    "localnet": EnvDefaults(
        env="localnet",
        default_http="http://127.0.0.1:8899",
    ),
}


def load_config(env: Optional[AltEnv] = None, **overrides) -> LifecycleConfig:
    """Builds a `LifecycleConfig` from the process environment.

    `RPC_URL` (optionally from a `.env` file) wins over the defaults of `env`.
    Raises `ConfigurationError` when no endpoint can be resolved.
    """
    load_dotenv()

    rpc_url = os.environ.get(RPC_URL_ENV)
    if not rpc_url and env is not None:
        if env not in configs:
            raise ConfigurationError(f"unknown env: {env}")
        rpc_url = configs[env].default_http
    if not rpc_url:
        raise ConfigurationError(
            f"no RPC endpoint configured, set {RPC_URL_ENV} or pass env"
        )

    return LifecycleConfig(rpc_url=rpc_url, **overrides)
