# app/core/limiter.py
"""
Rate limiter configuration module.
Separated to avoid circular imports.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Keyed by client IP; tracking pixels and unsubscribe links are public
limiter = Limiter(key_func=get_remote_address)
