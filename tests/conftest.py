import pytest
from loguru import logger

from arlite.core.config import config
from arlite.core.database.orm import Record
from arlite.core.database.store import MemoryRecordStore

from record_models import COMPANY_ROWS, TOPIC_ROWS, Company, Topic


@pytest.fixture(autouse=True)
def default_settings():
    """Settings are process-wide; every test starts from and returns to defaults."""
    config.reset()
    yield config
    config.reset()


@pytest.fixture
def store():
    store = MemoryRecordStore()
    Record.use_store(store)
    yield store
    Record.use_store(None)


@pytest.fixture
def topics(store):
    for row in TOPIC_ROWS:
        store.insert(Topic.table_ref(), row)
    return store


@pytest.fixture
def companies(store):
    for row in COMPANY_ROWS:
        store.insert(Company.table_ref(), row)
    return store


@pytest.fixture
def log_messages():
    """Collects loguru output for assertions."""
    messages = []
    handler_id = logger.add(lambda msg: messages.append(str(msg)), level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)
