"""Payload envelopes sent to the remote terminal.

Wire format: one JSON object per tick, {"data": "#<random printable>"}.
The leading '#' marks a data message (as opposed to a resize request).
"""

import json
import secrets
import string

DATA_MARKER = "#"
CHARSET = string.ascii_letters + string.digits


def random_string(length: int) -> str:
    """Return `length` cryptographically random alphanumeric characters."""
    if length < 0:
        raise ValueError(f"length must be non-negative, got {length}")
    return "".join(secrets.choice(CHARSET) for _ in range(length))


def make_payload(size: int) -> str:
    if size < 1:
        raise ValueError(f"payload size must be at least 1, got {size}")
    return DATA_MARKER + random_string(size - 1)


def encode_request(data: str) -> bytes:
    # Compact separators, matching the server's own JSON encoder
    return json.dumps({"data": data}, separators=(",", ":")).encode()


def encode_payload(size: int) -> bytes:
    """One serialized envelope carrying `size` payload characters."""
    return encode_request(make_payload(size))
