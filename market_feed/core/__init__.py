from .feed import MarketFeed
from .main import FeedRunner, main

__all__ = ['MarketFeed', 'FeedRunner', 'main']
