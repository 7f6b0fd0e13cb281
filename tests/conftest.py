"""Test configuration and fixtures for the entire test suite."""

import pytest
from dotenv import load_dotenv

from irix.model import account, orderbook, ticker


@pytest.fixture(scope="session", autouse=True)
def load_env() -> None:
    """Load optional live credentials from a .env file."""
    load_dotenv()


@pytest.fixture(autouse=True)
def clear_caches():
    """Start every test with empty ticker, order book and holdings caches."""
    yield
    ticker._tickers.clear()
    orderbook._books.clear()
    account._holdings.clear()
