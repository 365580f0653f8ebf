from __future__ import annotations

import pytest
from loguru import logger

from fleetcmd.config import Settings
from fakes import CountingCredential


@pytest.fixture
def log_records():
    records: list[dict] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)


@pytest.fixture
def credential() -> CountingCredential:
    return CountingCredential("secret")


@pytest.fixture
def settings(credential: CountingCredential) -> Settings:
    return Settings(password=credential)
