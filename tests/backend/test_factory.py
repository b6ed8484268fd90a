from unittest.mock import patch

import pytest

from promptguess.backend.factory import get_backend
from promptguess.backend.memory import MemoryBackend


def test_memory_backend_selected():
    with patch("promptguess.backend.factory.config") as mock_config:
        mock_config.db.backend = "memory"
        assert isinstance(get_backend(), MemoryBackend)


def test_unknown_backend_rejected():
    with patch("promptguess.backend.factory.config") as mock_config:
        mock_config.db.backend = "sqlite"
        with pytest.raises(ValueError):
            get_backend()
