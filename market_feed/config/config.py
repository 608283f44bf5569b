import logging
import os
from dotenv import load_dotenv
load_dotenv()


class Config:
    # Ledger RPC endpoint (JSON-RPC 2.0 over HTTP)
    LEDGER_RPC_URL = os.getenv('LEDGER_RPC_URL', 'http://localhost:4943/rpc')
    LEDGER_RPC_TIMEOUT_SECONDS = float(os.getenv('LEDGER_RPC_TIMEOUT_SECONDS', '30'))

    # Account used by the CLI runner when --account is not given
    LEDGER_ACCOUNT = os.getenv('LEDGER_ACCOUNT', None)

    # Pagination
    PAGE_SIZE = int(os.getenv('PAGE_SIZE', '5'))
    # Listings scan used to work out which hubs are no longer for sale
    SOLD_SCAN_LIMIT = int(os.getenv('SOLD_SCAN_LIMIT', '9999'))

    # Metadata resolution
    METADATA_BATCH_SIZE = int(os.getenv('METADATA_BATCH_SIZE', '100'))

    # Fixed-point token amounts (raw = display * 10^TOKEN_DECIMALS)
    TOKEN_DECIMALS = int(os.getenv('TOKEN_DECIMALS', '8'))

    # Remaining distance to the end of content that counts as reaching the sentinel
    SCROLL_THRESHOLD = float(os.getenv('SCROLL_THRESHOLD', '0'))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls):
        problems = []
        if not cls.LEDGER_RPC_URL:
            problems.append('LEDGER_RPC_URL must not be empty')
        if cls.PAGE_SIZE <= 0:
            problems.append(f'PAGE_SIZE must be positive, got {cls.PAGE_SIZE}')
        if cls.METADATA_BATCH_SIZE <= 0:
            problems.append(f'METADATA_BATCH_SIZE must be positive, got {cls.METADATA_BATCH_SIZE}')
        if cls.TOKEN_DECIMALS < 0:
            problems.append(f'TOKEN_DECIMALS must not be negative, got {cls.TOKEN_DECIMALS}')
        if cls.SCROLL_THRESHOLD < 0:
            problems.append(f'SCROLL_THRESHOLD must not be negative, got {cls.SCROLL_THRESHOLD}')
        if problems:
            raise ValueError(f"Invalid configuration: {'; '.join(problems)}")
        return True


def setup_logging(level: str | None = None):
    """Configure the root logger once for CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


Config.validate()
