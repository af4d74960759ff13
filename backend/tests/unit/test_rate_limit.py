import pytest

from careerlink.infra.rate_limit import allow


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
	assert await allow("typing", "u5", limit=2, window_seconds=60, now=1_000.0)
	assert await allow("typing", "u5", limit=2, window_seconds=60, now=1_001.0)


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
	await allow("typing", "u6", limit=1, window_seconds=60, now=1_000.0)
	assert not await allow("typing", "u6", limit=1, window_seconds=60, now=1_010.0)


@pytest.mark.asyncio
async def test_rate_limit_resets_with_next_window():
	await allow("typing", "u7", limit=1, window_seconds=60, now=1_000.0)
	assert await allow("typing", "u7", limit=1, window_seconds=60, now=1_080.0)


@pytest.mark.asyncio
async def test_zero_limit_always_blocks():
	assert not await allow("typing", "u8", limit=0)
