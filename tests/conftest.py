import pytest


@pytest.fixture
def public_resolver():
    async def _resolve(hostname: str) -> str:
        return "93.184.216.34"

    return _resolve
