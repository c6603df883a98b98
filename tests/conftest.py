"""Test configuration: import paths and the fake chain gateway fixture."""

from __future__ import annotations

import sys
from pathlib import Path


def _ensure_src_on_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    src_value = str(src_path)
    if src_value not in sys.path:
        sys.path.insert(0, src_value)


_ensure_src_on_path()

import pytest  # noqa: E402

from helpers import FakeGateway  # noqa: E402


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
