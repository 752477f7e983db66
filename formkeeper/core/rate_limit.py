"""Rate limiting for public form submission."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from formkeeper.core.config import settings

# Use RATE_LIMIT_STORAGE_URI=redis://... when running several workers
STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=STORAGE_URI,
    enabled=settings.RATE_LIMIT_SUBMIT > 0,
)

SUBMIT_LIMIT = f"{max(settings.RATE_LIMIT_SUBMIT, 1)}/minute"
