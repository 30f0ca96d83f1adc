"""Rate limiting using slowapi.

Module-level Limiter shared by main.py and any router that needs a
tighter per-endpoint limit via ``@limiter.limit("N/period")``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)
