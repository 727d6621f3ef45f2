"""
Shared fixtures for careerscan tests.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from careerscan.core.dictionary import Dictionary, load_dictionary

FIXTURES_DIR = Path(__file__).parent / 'fixtures'


@pytest.fixture
def dictionary() -> Dictionary:
    return load_dictionary('en')


@pytest.fixture
def fixture_html():
    """Read an HTML fixture by name"""
    def _read(name: str) -> str:
        with open(FIXTURES_DIR / f"{name}.html", 'r', encoding='utf-8') as f:
            return f.read()
    return _read
