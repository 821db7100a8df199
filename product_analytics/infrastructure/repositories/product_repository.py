"""
Product Repository

Authoritative product records. A sync replaces a product's record
wholesale in one transaction; records are never partially patched.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ...constants import get_current_timestamp
from ...core.database import DatabaseManager
from ...core.exceptions import PersistentStoreError, ValidationError
from ...models import ProductRecord

logger = structlog.get_logger()

PRODUCT_DEFAULTS: Dict[str, Any] = {
    "name": None,
    "sku": None,
    "category_id": None,
    "price": 0.0,
    "cost": 0.0,
    "total_revenue": 0.0,
    "total_orders": 0,
    "total_quantity_sold": 0,
    "average_order_value": 0.0,
    "refund_rate": 0.15,
    "total_refunds": 0.0,
    "net_revenue": 0.0,
    "total_costs": 0.0,
    "profit_loss": 0.0,
    "profit_margin": 0.0,
    "is_active": True,
}


class ProductRepository:
    """Product store backed by the ``products`` table."""

    def __init__(self, database: DatabaseManager):
        self.database = database

    async def replace(self, product_id: str, fields: Dict[str, Any]) -> bool:
        """
        Overwrite the record for product_id with a full set of fields.

        Returns:
            True if a new record was created, False if one was replaced

        Raises:
            ValidationError: If product_id or name is missing
            PersistentStoreError: If the write fails
        """
        if not product_id:
            raise ValidationError("product_id is required", field="product_id")
        if not fields.get("name"):
            raise ValidationError("Product name is required", field="name", value=product_id)

        # Every column is set explicitly so merge overwrites the whole row.
        values = {
            name: default if fields.get(name) is None else fields[name]
            for name, default in PRODUCT_DEFAULTS.items()
        }
        record = ProductRecord(
            product_id=str(product_id),
            last_updated=get_current_timestamp(),
            **values,
        )

        try:
            async with self.database.session() as session:
                existing = await session.get(ProductRecord, str(product_id))
                created = existing is None
                await session.merge(record)
        except SQLAlchemyError as e:
            logger.error("Product replace failed", product_id=product_id, error=str(e))
            raise PersistentStoreError(
                message=f"Failed to store product {product_id}",
                operation="replace",
                key=str(product_id),
                original_error=e,
            ) from e

        logger.info(
            "Product record replaced",
            product_id=product_id,
            created=created,
            total_revenue=values.get("total_revenue"),
        )
        return created

    async def get(self, product_id: str) -> Optional[ProductRecord]:
        try:
            async with self.database.session() as session:
                return await session.get(ProductRecord, str(product_id))
        except SQLAlchemyError as e:
            raise PersistentStoreError(
                message=f"Failed to load product {product_id}",
                operation="get",
                key=str(product_id),
                original_error=e,
            ) from e

    async def list_active(
        self, product_ids: Optional[Sequence[str]] = None
    ) -> List[ProductRecord]:
        """Active products, highest revenue first."""
        query = select(ProductRecord).where(ProductRecord.is_active.is_(True))
        if product_ids is not None:
            query = query.where(ProductRecord.product_id.in_([str(p) for p in product_ids]))
        query = query.order_by(ProductRecord.total_revenue.desc())

        try:
            async with self.database.session() as session:
                return list((await session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            raise PersistentStoreError(
                message="Failed to list products",
                operation="list_active",
                original_error=e,
            ) from e
