import pytest
import pytest_asyncio

from database import NoteRepository, StorageHandleProvider
from models import AppContext
from preferences import PreferenceStore
from view_state import ViewState


@pytest.fixture
def context(tmp_path):
    return AppContext(data_dir=tmp_path)


@pytest_asyncio.fixture
async def provider():
    provider = StorageHandleProvider()
    yield provider
    await provider.close()


@pytest.fixture
def repo(provider):
    return NoteRepository(provider)


@pytest.fixture
def prefs():
    return PreferenceStore()


@pytest.fixture
def state(repo, prefs, context):
    state = ViewState(repo, prefs)
    state.bind(context)
    return state
