from .config import Config, setup_logging

__all__ = ['Config', 'setup_logging']
