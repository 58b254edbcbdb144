"""
Exceptions raised inside the tracker.

Negative lookups (unknown handle, unknown market, no quote) are not errors:
they come back as None or 0.0.
"""
from __future__ import annotations


class UpstreamUnavailable(RuntimeError):
    """An upstream API timed out, returned a non-2xx status, or sent a malformed body."""
