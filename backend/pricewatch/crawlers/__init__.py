"""Browser driver implementations."""

from .driver import (
    BrowserDriver,
    DriverError,
    PageLoadTimeoutError,
    NavigationError,
    BrowserUnavailableError,
    ProfileInUseError,
)
from .stealth import PlaywrightDriver

__all__ = [
    'BrowserDriver',
    'DriverError',
    'PageLoadTimeoutError',
    'NavigationError',
    'BrowserUnavailableError',
    'ProfileInUseError',
    'PlaywrightDriver',
]
