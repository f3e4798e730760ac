"""Test doubles shared across the test-suite."""

from __future__ import annotations

import random
from typing import Any
from unittest.mock import MagicMock

import httpx

SECRET = "whsec_test_0123456789abcdef"
TENANT = "tenant_1"


class ScriptedEndpoint:
    """httpx.MockTransport handler replaying scripted responses.

    Each script item is a status code, an httpx.Response or an httpx
    exception class to raise. The last item repeats once the script runs out.
    """

    def __init__(self, *script: Any) -> None:
        self._script = list(script) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, type) and issubclass(item, httpx.RequestError):
            raise item("scripted failure", request=request)
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(item, text=f"status {item}")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def zero_jitter() -> MagicMock:
    """Random source whose jitter is always 0."""
    rng = MagicMock(spec=random.Random)
    rng.random.return_value = 0.0
    return rng
