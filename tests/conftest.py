from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from neck import FrameRecord, parse_trace
from trace_fixtures import REFERENCE_TEXT


@pytest.fixture
def reference_trace() -> List[FrameRecord]:
    return parse_trace(REFERENCE_TEXT)


@pytest.fixture
def reference_file(tmp_path: Path) -> Path:
    path = tmp_path / "trace.txt"
    path.write_text(REFERENCE_TEXT)
    return path
