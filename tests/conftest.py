import sys
import pytest
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is importable for test modules
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from modern_art_server import db


@pytest.fixture(autouse=True)
def mock_db_connection(monkeypatch):
    """
    Swap the singleton connection for a mock so game logging never needs PostgreSQL.
    """
    conn = MagicMock()
    monkeypatch.setattr(db, "_conn", conn)
    yield conn
