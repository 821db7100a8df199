"""
Product Analytics Database Models

SQLAlchemy models for the authoritative product store and the
persistent cache tier.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Canonical Base class for all database models."""

    pass


class CachedEntryRecord(Base):
    """Persistent cache row.

    Rows are never merged; a refresh supersedes the latest row for the
    key and type. Expired rows stay until cleanup purges them.
    """

    __tablename__ = "cached_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_key: Mapped[str] = mapped_column(String(250), nullable=False, index=True)
    cache_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    entry_metadata: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSON, default=dict, nullable=False
    )

    __table_args__ = (
        Index("idx_cached_data_key_type", "cache_key", "cache_type"),
    )


class ProductRecord(Base):
    """Synced product with derived financials. Replaced wholesale on sync."""

    __tablename__ = "products"

    product_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    price: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Revenue
    total_revenue: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_quantity_sold: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    average_order_value: Mapped[float] = mapped_column(
        Float, default=0.0, nullable=False
    )

    # Derived financials
    refund_rate: Mapped[float] = mapped_column(Float, default=0.15, nullable=False)
    total_refunds: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    net_revenue: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_costs: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    profit_loss: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    profit_margin: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "category_id": self.category_id,
            "price": self.price,
            "cost": self.cost,
            "total_revenue": self.total_revenue,
            "total_orders": self.total_orders,
            "total_quantity_sold": self.total_quantity_sold,
            "average_order_value": self.average_order_value,
            "refund_rate": self.refund_rate,
            "total_refunds": self.total_refunds,
            "net_revenue": self.net_revenue,
            "total_costs": self.total_costs,
            "profit_loss": self.profit_loss,
            "profit_margin": self.profit_margin,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "is_active": self.is_active,
        }


__all__ = ["Base", "CachedEntryRecord", "ProductRecord"]
