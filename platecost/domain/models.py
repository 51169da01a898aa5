from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Use JSONB on Postgres while keeping SQLite test databases working.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Restaurant(Base):
    __tablename__ = "restaurants"

    # Tenant root; every tenant-scoped row hangs off a restaurant id.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    city: Mapped[str] = mapped_column(String, default="")
    default_currency: Mapped[str] = mapped_column(String, default="IQD")
    target_margin_pct: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("30"))
    # Identity-provider subject of the owning user; the tenant isolation key.
    owner_id: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Exactly one subscription row per restaurant.
    restaurant_id: Mapped[str] = mapped_column(
        String, ForeignKey("restaurants.id"), unique=True, index=True
    )
    plan: Mapped[str] = mapped_column(String, default="free")
    status: Mapped[str] = mapped_column(String, default="active")
    stripe_customer_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    current_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class StripeProcessedEvent(Base):
    __tablename__ = "stripe_processed_events"

    # The primary key is the uniqueness constraint that makes the claim atomic.
    event_id: Mapped[str] = mapped_column(String, primary_key=True)
    event_type: Mapped[str] = mapped_column(String)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AiUsageLog(Base):
    __tablename__ = "ai_usage_logs"
    __table_args__ = (
        CheckConstraint("tokens_used >= 0", name="ck_ai_usage_logs_tokens_non_negative"),
        Index("ix_ai_usage_logs_restaurant_created", "restaurant_id", "created_at"),
    )

    # Append-only consumption ledger aggregated per calendar month.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String, ForeignKey("restaurants.id"))
    user_id: Mapped[str] = mapped_column(String)
    tokens_used: Mapped[int] = mapped_column(Integer)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Null for system-initiated events such as provider webhooks.
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String, index=True)
    entity_type: Mapped[str] = mapped_column(String)
    entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Ingredient(Base):
    __tablename__ = "ingredients"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String, ForeignKey("restaurants.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    unit: Mapped[str] = mapped_column(String, default="kg")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Recipe(Base):
    __tablename__ = "recipes"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String, ForeignKey("restaurants.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    category: Mapped[str] = mapped_column(String, default="")
    selling_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    recipe_id: Mapped[str] = mapped_column(String, ForeignKey("recipes.id"), index=True)
    ingredient_id: Mapped[str] = mapped_column(String, ForeignKey("ingredients.id"), index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"))


class OperatingCost(Base):
    __tablename__ = "operating_costs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String, ForeignKey("restaurants.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    # fixed or variable; drives labelling only.
    cost_type: Mapped[str] = mapped_column(String, default="fixed")
    monthly_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SalesImport(Base):
    __tablename__ = "sales_imports"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String, ForeignKey("restaurants.id"), index=True)
    file_name: Mapped[str] = mapped_column(String)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SalesRow(Base):
    __tablename__ = "sales_rows"
    __table_args__ = (
        Index("ix_sales_rows_import_dish", "sales_import_id", "dish_name"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    sales_import_id: Mapped[str] = mapped_column(String, ForeignKey("sales_imports.id"))
    sale_date: Mapped[str | None] = mapped_column(String, nullable=True)
    dish_name: Mapped[str] = mapped_column(String)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    matched_recipe_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("recipes.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
