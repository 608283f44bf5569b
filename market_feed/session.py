import logging
from typing import Optional

logger = logging.getLogger(__name__)


class AuthRequiredError(Exception):
    """Raised when an operation needs an account but nobody is logged in."""
    pass


class Session:
    """
    Identity handle passed explicitly to controllers, caches and feeds.
    The login flow itself lives elsewhere; this only carries its outcome.
    """

    def __init__(self, account: Optional[str] = None):
        self._account = account

    def get_current_account(self) -> Optional[str]:
        return self._account

    @property
    def is_authenticated(self) -> bool:
        return self._account is not None

    def login(self, account: str):
        if not account:
            raise ValueError('account must not be empty')
        self._account = account
        logger.info(f'Session bound to account {account}')

    def logout(self):
        if self._account is not None:
            logger.info(f'Session for account {self._account} ended')
        self._account = None

    def require_account(self) -> str:
        if self._account is None:
            raise AuthRequiredError('Login required')
        return self._account
