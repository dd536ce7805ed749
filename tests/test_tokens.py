from __future__ import annotations

import re

import pytest

from traffic_coordinator.tokens import TokenGenerator


def test_token_has_prefix_and_hex_body() -> None:
    token = TokenGenerator().generate()
    assert re.fullmatch(r"/target_[0-9a-f]{32}", token)


def test_tokens_do_not_repeat() -> None:
    generator = TokenGenerator(prefix="/t_", num_bytes=24)
    tokens = {generator.generate() for _ in range(2000)}
    assert len(tokens) == 2000
    assert all(len(token) == len("/t_") + 48 for token in tokens)


def test_short_tokens_are_refused() -> None:
    with pytest.raises(ValueError):
        TokenGenerator(num_bytes=8)
