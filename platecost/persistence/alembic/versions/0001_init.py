"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-18 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "restaurants",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False, server_default=""),
        sa.Column("default_currency", sa.String(), nullable=False, server_default="IQD"),
        sa.Column("target_margin_pct", sa.Numeric(6, 2), nullable=False, server_default="30"),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_restaurants_owner_id", "restaurants", ["owner_id"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("restaurant_id", sa.String(), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("plan", sa.String(), nullable=False, server_default="free"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # One subscription per restaurant.
    op.create_index("ix_subscriptions_restaurant_id", "subscriptions", ["restaurant_id"], unique=True)
    op.create_index("ix_subscriptions_stripe_customer_id", "subscriptions", ["stripe_customer_id"])
    op.create_index("ix_subscriptions_stripe_subscription_id", "subscriptions", ["stripe_subscription_id"])

    # Primary key doubles as the webhook idempotency constraint.
    op.create_table(
        "stripe_processed_events",
        sa.Column("event_id", sa.String(), primary_key=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "ai_usage_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("restaurant_id", sa.String(), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=False),
        sa.Column("model", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("tokens_used >= 0", name="ck_ai_usage_logs_tokens_non_negative"),
    )
    op.create_index(
        "ix_ai_usage_logs_restaurant_created", "ai_usage_logs", ["restaurant_id", "created_at"]
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    op.create_table(
        "ingredients",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("restaurant_id", sa.String(), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("unit", sa.String(), nullable=False, server_default="kg"),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_ingredients_restaurant_id", "ingredients", ["restaurant_id"])

    op.create_table(
        "recipes",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("restaurant_id", sa.String(), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False, server_default=""),
        sa.Column("selling_price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_recipes_restaurant_id", "recipes", ["restaurant_id"])

    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("recipe_id", sa.String(), sa.ForeignKey("recipes.id"), nullable=False),
        sa.Column("ingredient_id", sa.String(), sa.ForeignKey("ingredients.id"), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False, server_default="0"),
    )
    op.create_index("ix_recipe_ingredients_recipe_id", "recipe_ingredients", ["recipe_id"])
    op.create_index("ix_recipe_ingredients_ingredient_id", "recipe_ingredients", ["ingredient_id"])

    op.create_table(
        "operating_costs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("restaurant_id", sa.String(), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("cost_type", sa.String(), nullable=False, server_default="fixed"),
        sa.Column("monthly_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_operating_costs_restaurant_id", "operating_costs", ["restaurant_id"])

    op.create_table(
        "sales_imports",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("restaurant_id", sa.String(), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sales_imports_restaurant_id", "sales_imports", ["restaurant_id"])

    op.create_table(
        "sales_rows",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("sales_import_id", sa.String(), sa.ForeignKey("sales_imports.id"), nullable=False),
        sa.Column("sale_date", sa.String(), nullable=True),
        sa.Column("dish_name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("matched_recipe_id", sa.String(), sa.ForeignKey("recipes.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sales_rows_import_dish", "sales_rows", ["sales_import_id", "dish_name"])


def downgrade() -> None:
    op.drop_index("ix_sales_rows_import_dish", table_name="sales_rows")
    op.drop_table("sales_rows")
    op.drop_index("ix_sales_imports_restaurant_id", table_name="sales_imports")
    op.drop_table("sales_imports")
    op.drop_index("ix_operating_costs_restaurant_id", table_name="operating_costs")
    op.drop_table("operating_costs")
    op.drop_index("ix_recipe_ingredients_ingredient_id", table_name="recipe_ingredients")
    op.drop_index("ix_recipe_ingredients_recipe_id", table_name="recipe_ingredients")
    op.drop_table("recipe_ingredients")
    op.drop_index("ix_recipes_restaurant_id", table_name="recipes")
    op.drop_table("recipes")
    op.drop_index("ix_ingredients_restaurant_id", table_name="ingredients")
    op.drop_table("ingredients")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_ai_usage_logs_restaurant_created", table_name="ai_usage_logs")
    op.drop_table("ai_usage_logs")
    op.drop_table("stripe_processed_events")
    op.drop_index("ix_subscriptions_stripe_subscription_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_stripe_customer_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_restaurant_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_restaurants_owner_id", table_name="restaurants")
    op.drop_table("restaurants")
