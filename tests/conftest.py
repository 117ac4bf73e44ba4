"""
Pytest configuration and shared fixtures.

Key fixtures:
- repository: fresh in-memory CandidateRepository stand-in
- identity: IdentityResolver over that repository
- user / other_user: seeded CRM users
- contact: seeded contact

Handler tests run against tests/fakes.py; SQL is covered separately against a
mocked AsyncEngine.
"""

import sys
from pathlib import Path

import pytest

# Add src and tests to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from fakes import InMemoryRepository  # noqa: E402

from candidate_sync.resolution.identity import IdentityResolver  # noqa: E402


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def identity(repository) -> IdentityResolver:
    return IdentityResolver(repository)


@pytest.fixture
def user(repository):
    return repository.add_user('usr_ana', name='Ana Torres')


@pytest.fixture
def other_user(repository):
    return repository.add_user('usr_luis', name='Luis Paredes')


@pytest.fixture
def contact(repository):
    return repository.add_contact('ct_100', full_name='Maria Quispe', email='maria@example.com')
