"""
Provides common, stateless utility functions used across the application.

This module is a collection of simple, reusable helper functions that do not
fit into a more specific module and have no external dependencies other than
standard Python libraries.
"""
import random
import string
import time
import uuid
from datetime import datetime


def get_timestamp() -> str:
    """
    Generates a formatted, uppercase timestamp string.

    Returns:
        A string representing the current time in the format 'DDMMMYYYY_HHMMSSAM/PM',
        e.g., '07AUG2025_014830PM'.
    """
    return datetime.now().strftime("%d%b%Y_%I%M%S%p").upper()


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def create_message_id() -> str:
    return str(uuid.uuid4())


def random_suffix(alphabet: str, length: int = 8) -> str:
    """Returns a short random token drawn from ``alphabet``."""
    return "".join(random.choice(alphabet) for _ in range(length))


HEX_ALPHABET = string.hexdigits[:16]
BASE36_ALPHABET = string.digits + string.ascii_lowercase
