"""Create orders table.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op


revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                BIGSERIAL PRIMARY KEY,
            order_date        DATE NOT NULL,
            customer          VARCHAR(128) NOT NULL,
            delivery_address  VARCHAR(256) NOT NULL,
            status            TEXT NOT NULL,
            amount            DOUBLE PRECISION NOT NULL,

            CONSTRAINT valid_status CHECK (
                status IN ('NEW', 'PAID', 'SHIPPED', 'DELIVERED', 'CANCELLED',
                           'ON_HOLD', 'BACKORDER', 'REFUNDED', 'PARTIAL', 'PROCESSING')
            )
        );
    """)

    # Streams filter on these and always page by id
    op.execute("CREATE INDEX idx_orders_status_id ON orders(status, id);")
    op.execute("CREATE INDEX idx_orders_date_id ON orders(order_date, id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
