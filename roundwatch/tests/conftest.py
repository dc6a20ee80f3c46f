from pathlib import Path

import pytest

from helpers import NOW, RecordingStore


@pytest.fixture
def store(tmp_path: Path) -> RecordingStore:
    return RecordingStore(str(tmp_path / "prediction.db"), clock=lambda: NOW)
