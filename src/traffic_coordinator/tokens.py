from __future__ import annotations

import secrets

DEFAULT_PREFIX = "/target_"
MIN_TOKEN_BYTES = 16


class TokenGenerator:
    """Issues secret hit paths: a fixed prefix plus CSPRNG hex bytes."""

    def __init__(self, *, prefix: str = DEFAULT_PREFIX, num_bytes: int = MIN_TOKEN_BYTES) -> None:
        if num_bytes < MIN_TOKEN_BYTES:
            raise ValueError(f"Token length must be at least {MIN_TOKEN_BYTES} bytes.")
        self.prefix = prefix
        self.num_bytes = num_bytes

    def generate(self) -> str:
        return f"{self.prefix}{secrets.token_hex(self.num_bytes)}"
