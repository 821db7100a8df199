"""
Unit tests for the product repository.
"""

import pytest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from product_analytics.core.exceptions import PersistentStoreError, ValidationError
from product_analytics.infrastructure.repositories import ProductRepository


@pytest.fixture
def products(database):
    return ProductRepository(database)


class TestProductRepository:
    """Test ProductRepository against in-memory SQLite."""

    @pytest.mark.asyncio
    async def test_replace_creates_then_replaces(self, products):
        created = await products.replace(
            "2142", {"name": "Night Serum", "sku": "NS-01", "total_revenue": 250.5}
        )
        assert created is True

        created = await products.replace("2142", {"name": "Night Serum v2"})
        assert created is False

        record = await products.get("2142")
        assert record.name == "Night Serum v2"
        assert record.sku is None
        assert record.total_revenue == 0.0
        assert record.refund_rate == 0.15
        assert record.last_updated is not None

    @pytest.mark.asyncio
    async def test_replace_requires_id_and_name(self, products):
        with pytest.raises(ValidationError):
            await products.replace("", {"name": "Nameless"})
        with pytest.raises(ValidationError, match="name"):
            await products.replace("2142", {"sku": "NS-01"})

    @pytest.mark.asyncio
    async def test_list_active_orders_by_revenue(self, products):
        await products.replace("1", {"name": "Low", "total_revenue": 10.0})
        await products.replace("2", {"name": "High", "total_revenue": 500.0})
        await products.replace("3", {"name": "Hidden", "total_revenue": 900.0, "is_active": False})

        records = await products.list_active()
        assert [record.product_id for record in records] == ["2", "1"]

        records = await products.list_active(["1", "3", "404"])
        assert [record.product_id for record in records] == ["1"]

    @pytest.mark.asyncio
    async def test_to_dict(self, products):
        await products.replace("2142", {"name": "Night Serum", "category_id": "7"})

        data = (await products.get("2142")).to_dict()
        assert data["product_id"] == "2142"
        assert data["category_id"] == "7"
        assert data["is_active"] is True
        assert isinstance(data["last_updated"], str)

    @pytest.mark.asyncio
    async def test_write_failure_raises_persistent_store_error(self, products, database):
        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(database, "session", side_effect=error):
            with pytest.raises(PersistentStoreError) as exc_info:
                await products.replace("2142", {"name": "Night Serum"})

        assert exc_info.value.details["operation"] == "replace"
