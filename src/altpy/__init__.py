from altpy.addresses import get_lookup_table_public_key
from altpy.constants.config import LifecycleConfig, load_config
from altpy.errors import (
    ActivationTimeout,
    ConfigurationError,
    DerivationMismatch,
    DuplicateAddressError,
    LookupTableError,
    MissingSignature,
    NoSignerSpecified,
    StaleFreshnessToken,
    SubmissionError,
    TableNotReadable,
)
from altpy.lifecycle import TableLifecycleManager
from altpy.tx.message_compiler import compile_message
from altpy.tx.rpc_gateway import RpcLedgerGateway
from altpy.tx.tx_submitter import TransactionSubmitter
from altpy.types import LookupTable, TableStatus

__version__ = "0.1.0"
