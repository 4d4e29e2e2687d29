"""Chrome DevTools Protocol transport and browser management."""

from .connector import ChromeConnector, ChromeConnectionError
from .chrome_instance import ChromeInstanceManager, ChromeInstanceError, ChromeStartupError

__all__ = [
    'ChromeConnector',
    'ChromeConnectionError',
    'ChromeInstanceManager',
    'ChromeInstanceError',
    'ChromeStartupError'
]
