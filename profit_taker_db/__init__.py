"""SQLite data-access layer for the Profit Taker analyzer."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
