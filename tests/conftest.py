from __future__ import annotations

from pathlib import Path

import pytest

from homeserver_provision.types import Configuration

from fakes import BASE_VALUES, make_settings


@pytest.fixture
def settings(tmp_path: Path):
    return make_settings(tmp_path)


@pytest.fixture
def config() -> Configuration:
    return Configuration(dict(BASE_VALUES))
