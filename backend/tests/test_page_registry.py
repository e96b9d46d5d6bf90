"""Tests for the in-memory page session registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from shareview.services.page_registry import PageRegistry
from shareview.services.viewer_page import PageStatus


def _factory():
    counter = iter(range(1000))

    def _new(token, client_id):
        page = MagicMock()
        page.page_id = f"p{next(counter)}"
        page.token = token
        page.client_id = client_id
        page.status = PageStatus.EMAIL_INPUT
        page.load = AsyncMock()
        return page

    return _new


@pytest.mark.asyncio
class TestPageRegistry:
    async def test_open_loads_page(self):
        registry = PageRegistry(_factory(), max_pages=5)
        page = await registry.open("abc123", "browser-1")
        page.load.assert_awaited_once()
        assert page.client_id == "browser-1"
        assert registry.get(page.page_id) is page
        assert len(registry) == 1

    async def test_evicts_least_recently_used(self):
        registry = PageRegistry(_factory(), max_pages=2)
        first = await registry.open("a", "browser-1")
        second = await registry.open("b", "browser-1")
        registry.get(first.page_id)
        third = await registry.open("c", "browser-1")

        second.close.assert_called_once()
        assert registry.get(second.page_id) is None
        assert registry.get(first.page_id) is first
        assert registry.get(third.page_id) is third

    async def test_close(self):
        registry = PageRegistry(_factory(), max_pages=5)
        page = await registry.open("abc123", "browser-1")
        assert registry.close(page.page_id) is True
        page.close.assert_called_once()
        assert registry.close(page.page_id) is False

    async def test_close_all(self):
        registry = PageRegistry(_factory(), max_pages=5)
        pages = [await registry.open(t, "browser-1") for t in ("a", "b")]
        registry.close_all()
        assert len(registry) == 0
        for page in pages:
            page.close.assert_called_once()
