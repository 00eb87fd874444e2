"""Initial schema: trades, claim log, bet log and top trader tables.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:01:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _resolution_columns() -> list[sa.Column]:
    return [
        sa.Column("resolved_status", sa.String(4), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_resolution_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("profit_per_dollar", sa.Numeric(14, 4), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "trades",
        sa.Column("transaction_hash", sa.String(80), nullable=False),
        sa.Column("proxy_wallet", sa.String(42), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("asset", sa.String(100), nullable=False),
        sa.Column("condition_id", sa.String(80), nullable=False),
        sa.Column("size", sa.Numeric(20, 8), nullable=False),
        sa.Column("price", sa.Numeric(10, 8), nullable=False),
        sa.Column("amount", sa.Numeric(20, 8), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("event_slug", sa.Text(), nullable=False),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("outcome_index", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("pseudonym", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("profile_image_optimized", sa.Text(), nullable=True),
        sa.Column("good_trader", sa.Boolean(), nullable=True),
        sa.Column("follow_score", sa.Integer(), nullable=True),
        sa.Column("insider_score", sa.Integer(), nullable=True),
        sa.Column("bot_score", sa.Integer(), nullable=True),
        sa.Column("whale_score", sa.Integer(), nullable=True),
        sa.Column("classification", sa.String(10), nullable=True),
        sa.Column("take_bet", sa.Boolean(), nullable=True),
        *_resolution_columns(),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("transaction_hash"),
    )
    op.create_index("idx_trades_proxy_wallet", "trades", ["proxy_wallet"])
    op.create_index("idx_trades_timestamp", "trades", ["timestamp"])
    op.create_index("idx_trades_event_slug", "trades", ["event_slug"])
    op.create_index("idx_trades_side", "trades", ["side"])
    op.create_index("idx_trades_condition_id", "trades", ["condition_id"])
    op.create_index("idx_trades_resolved_status", "trades", ["resolved_status"])
    op.create_index(
        "idx_trades_take_bet", "trades", ["proxy_wallet", "condition_id", "outcome", "take_bet"]
    )

    op.create_table(
        "claim_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("condition_id", sa.String(80), nullable=False),
        sa.Column("market_slug", sa.Text(), nullable=False),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("value", sa.Numeric(20, 6), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("tx_hash", sa.String(80), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_claim_log_condition_status", "claim_log", ["condition_id", "status"])
    op.create_index("idx_claim_log_created_at", "claim_log", ["created_at"])
    op.create_index(
        "idx_claim_log_unique_claimed",
        "claim_log",
        ["condition_id"],
        unique=True,
        postgresql_where=sa.text("status = 'claimed'"),
    )

    op.create_table(
        "bet_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(100), nullable=True),
        sa.Column("market_slug", sa.Text(), nullable=False),
        sa.Column("condition_id", sa.String(80), nullable=True),
        sa.Column("token_id", sa.String(100), nullable=True),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("amount", sa.Numeric(20, 8), nullable=False),
        sa.Column("price", sa.Numeric(10, 8), nullable=False),
        sa.Column("size", sa.Numeric(20, 8), nullable=True),
        sa.Column("order_type", sa.String(3), nullable=True),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("source", sa.String(6), nullable=False),
        sa.Column("trigger_transaction_hash", sa.String(80), nullable=True),
        sa.Column("trigger_wallet", sa.String(42), nullable=True),
        sa.Column("trigger_follow_score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("placed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )
    op.create_index("idx_bet_log_status", "bet_log", ["status"])
    op.create_index("idx_bet_log_market_slug", "bet_log", ["market_slug"])
    op.create_index("idx_bet_log_created_at", "bet_log", ["created_at"])
    op.create_index("idx_bet_log_source", "bet_log", ["source"])

    op.create_table(
        "top_pv_traders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("proxy_wallet", sa.String(42), nullable=False),
        sa.Column("user_name", sa.Text(), nullable=True),
        sa.Column("x_username", sa.Text(), nullable=True),
        sa.Column("verified_badge", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("pnl", sa.Numeric(20, 2), nullable=False),
        sa.Column("vol", sa.Numeric(20, 2), nullable=False),
        sa.Column("pv", sa.Numeric(12, 6), nullable=False),
        sa.Column("source", sa.String(4), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("proxy_wallet"),
    )
    op.create_index("idx_top_pv_traders_pv", "top_pv_traders", ["pv"])
    op.create_index("idx_top_pv_traders_rank", "top_pv_traders", ["rank"])

    op.create_table(
        "top_trader_trades",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("last_transaction_hash", sa.String(80), nullable=False),
        sa.Column("proxy_wallet", sa.String(42), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("pseudonym", sa.Text(), nullable=True),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("event_slug", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("condition_id", sa.String(80), nullable=False),
        sa.Column("outcome", sa.Text(), nullable=False),
        sa.Column("outcome_index", sa.Integer(), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("total_size", sa.Numeric(20, 8), nullable=False),
        sa.Column("total_value", sa.Numeric(20, 8), nullable=False),
        sa.Column("avg_price", sa.Numeric(10, 8), nullable=False),
        sa.Column("trade_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("first_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("latest_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        *_resolution_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "proxy_wallet", "slug", "side", "outcome", name="uq_top_trader_trades_position"
        ),
    )
    op.create_index("idx_ttt_proxy_wallet", "top_trader_trades", ["proxy_wallet"])
    op.create_index("idx_ttt_latest_timestamp", "top_trader_trades", ["latest_timestamp"])
    op.create_index("idx_ttt_slug", "top_trader_trades", ["slug"])
    op.create_index("idx_ttt_side", "top_trader_trades", ["side"])


def downgrade() -> None:
    op.drop_table("top_trader_trades")
    op.drop_table("top_pv_traders")
    op.drop_table("bet_log")
    op.drop_index("idx_claim_log_unique_claimed", table_name="claim_log")
    op.drop_table("claim_log")
    op.drop_table("trades")
