from .ledger_client import (
    AsyncLedgerService,
    LedgerRpcClient,
    MalformedPageError,
    TransportError,
    parse_metadata_result,
    parse_page,
)

__all__ = [
    "AsyncLedgerService",
    "LedgerRpcClient",
    "MalformedPageError",
    "TransportError",
    "parse_metadata_result",
    "parse_page",
]
