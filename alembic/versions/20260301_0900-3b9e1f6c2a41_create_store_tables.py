"""create_store_tables

Revision ID: 3b9e1f6c2a41
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9e1f6c2a41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='更新时间'),
    ]


def upgrade() -> None:
    # 结算会话
    op.create_table(
        'checkouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_type', sa.String(length=10), nullable=False, comment='归属类型: user/guest'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='注册用户ID'),
        sa.Column('session_id', sa.String(length=128), nullable=True, comment='访客会话ID'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active', comment='状态: active/completed/abandoned/expired'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码 ISO-4217'),
        sa.Column('shipping_address', sa.JSON(), nullable=True, comment='收货地址'),
        sa.Column('billing_address', sa.JSON(), nullable=True, comment='账单地址'),
        sa.Column('customer_details', sa.JSON(), nullable=True, comment='客户信息'),
        sa.Column('shipping_method_id', sa.Integer(), nullable=True, comment='配送方式ID'),
        sa.Column('shipping_rate_id', sa.Integer(), nullable=True, comment='运费费率ID'),
        sa.Column('payment_provider', sa.String(length=50), nullable=True, comment='支付渠道'),
        sa.Column('discount_id', sa.Integer(), nullable=True, comment='折扣ID'),
        sa.Column('discount_code', sa.String(length=64), nullable=True, comment='折扣码'),
        sa.Column('total_amount', sa.BigInteger(), nullable=False, server_default='0', comment='商品合计'),
        sa.Column('shipping_cost', sa.BigInteger(), nullable=False, server_default='0', comment='运费'),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False, server_default='0', comment='折扣金额'),
        sa.Column('final_amount', sa.BigInteger(), nullable=False, server_default='0', comment='应付金额'),
        sa.Column('total_weight', sa.Float(), nullable=False, server_default='0', comment='总重量'),
        *_timestamps(),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True, comment='最后活动时间'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, comment='过期时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.Column('converted_order_id', sa.Integer(), nullable=True, comment='转换后的订单ID'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_checkouts_id', 'checkouts', ['id'])
    op.create_index('ix_checkouts_user_id', 'checkouts', ['user_id'])
    op.create_index('ix_checkouts_session_id', 'checkouts', ['session_id'])
    op.create_index('ix_checkouts_status', 'checkouts', ['status'])
    op.create_index('ix_checkouts_expires_at', 'checkouts', ['expires_at'])
    op.create_index('ix_checkouts_status_expires', 'checkouts', ['status', 'expires_at'])
    # 每个归属同一时间最多一个 active 会话
    op.create_index(
        'uq_checkouts_active_user', 'checkouts', ['user_id'], unique=True,
        postgresql_where=sa.text("status = 'active' AND user_id IS NOT NULL"),
        sqlite_where=sa.text("status = 'active' AND user_id IS NOT NULL"),
    )
    op.create_index(
        'uq_checkouts_active_session', 'checkouts', ['session_id'], unique=True,
        postgresql_where=sa.text("status = 'active' AND session_id IS NOT NULL"),
        sqlite_where=sa.text("status = 'active' AND session_id IS NOT NULL"),
    )

    op.create_table(
        'checkout_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('checkout_id', sa.Integer(), nullable=False, comment='所属结算会话'),
        sa.Column('product_id', sa.Integer(), nullable=False, comment='商品ID'),
        sa.Column('variant_id', sa.Integer(), nullable=True, comment='规格ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        sa.Column('price', sa.BigInteger(), nullable=False, comment='单价（最小货币单位）'),
        sa.Column('weight', sa.Float(), nullable=False, server_default='0', comment='单件重量'),
        sa.Column('product_name', sa.String(length=255), nullable=False, server_default='', comment='商品名称快照'),
        sa.Column('variant_name', sa.String(length=255), nullable=False, server_default='', comment='规格名称快照'),
        sa.Column('sku', sa.String(length=100), nullable=False, server_default='', comment='SKU'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, comment='更新时间'),
        sa.ForeignKeyConstraint(['checkout_id'], ['checkouts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_checkout_items_id', 'checkout_items', ['id'])
    op.create_index('ix_checkout_items_checkout_id', 'checkout_items', ['checkout_id'])

    # 订单
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False, comment='订单号'),
        sa.Column('owner_type', sa.String(length=10), nullable=False, comment='归属类型: user/guest'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='注册用户ID'),
        sa.Column('guest_email', sa.String(length=255), nullable=True, comment='访客邮箱'),
        sa.Column('guest_full_name', sa.String(length=255), nullable=True, comment='访客姓名'),
        sa.Column('guest_phone', sa.String(length=50), nullable=True, comment='访客电话'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='订单状态'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码 ISO-4217'),
        sa.Column('total_amount', sa.BigInteger(), nullable=False, server_default='0', comment='商品合计'),
        sa.Column('shipping_cost', sa.BigInteger(), nullable=False, server_default='0', comment='运费'),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False, server_default='0', comment='折扣金额'),
        sa.Column('final_amount', sa.BigInteger(), nullable=False, server_default='0', comment='应付金额'),
        sa.Column('total_weight', sa.Float(), nullable=False, server_default='0', comment='总重量'),
        sa.Column('shipping_address', sa.JSON(), nullable=True, comment='收货地址'),
        sa.Column('billing_address', sa.JSON(), nullable=True, comment='账单地址'),
        sa.Column('customer_details', sa.JSON(), nullable=True, comment='客户信息'),
        sa.Column('shipping_method_id', sa.Integer(), nullable=True, comment='配送方式ID'),
        sa.Column('discount_id', sa.Integer(), nullable=True, comment='折扣ID'),
        sa.Column('discount_code', sa.String(length=64), nullable=True, comment='折扣码'),
        sa.Column('checkout_id', sa.Integer(), nullable=True, comment='来源结算会话ID'),
        sa.Column('payment_id', sa.String(length=200), nullable=True, comment='支付渠道的支付ID'),
        sa.Column('payment_provider', sa.String(length=50), nullable=True, comment='支付渠道'),
        sa.Column('tracking_code', sa.String(length=100), nullable=True, comment='物流单号'),
        sa.Column('action_url', sa.String(length=1024), nullable=True, comment='待用户操作的跳转地址'),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_checkout_id', 'orders', ['checkout_id'])
    op.create_index('ix_orders_payment_id', 'orders', ['payment_id'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_user_status', 'orders', ['user_id', 'status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='所属订单'),
        sa.Column('product_id', sa.Integer(), nullable=False, comment='商品ID'),
        sa.Column('variant_id', sa.Integer(), nullable=True, comment='规格ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        sa.Column('price', sa.BigInteger(), nullable=False, comment='单价'),
        sa.Column('subtotal', sa.BigInteger(), nullable=False, comment='小计'),
        sa.Column('weight', sa.Float(), nullable=False, server_default='0', comment='单件重量'),
        sa.Column('product_name', sa.String(length=255), nullable=False, server_default='', comment='商品名称快照'),
        sa.Column('variant_name', sa.String(length=255), nullable=False, server_default='', comment='规格名称快照'),
        sa.Column('sku', sa.String(length=100), nullable=False, server_default='', comment='SKU'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    # 折扣
    op.create_table(
        'discounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False, comment='折扣码（大写存储）'),
        sa.Column('discount_type', sa.String(length=20), nullable=False, comment='适用范围: order/product/shipping'),
        sa.Column('method', sa.String(length=20), nullable=False, comment='计算方式: percentage/fixed'),
        sa.Column('value', sa.Numeric(precision=15, scale=4), nullable=False, comment='折扣值'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False, comment='生效时间'),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False, comment='失效时间'),
        sa.Column('min_order_value', sa.BigInteger(), nullable=False, server_default='0', comment='最低订单金额'),
        sa.Column('max_discount_value', sa.BigInteger(), nullable=False, server_default='0', comment='最高折扣金额，0 表示不限'),
        sa.Column('product_ids', sa.JSON(), nullable=True, comment='适用商品ID'),
        sa.Column('category_ids', sa.JSON(), nullable=True, comment='适用分类ID'),
        sa.Column('usage_limit', sa.Integer(), nullable=False, server_default='0', comment='使用上限，0 表示不限'),
        sa.Column('current_usage', sa.Integer(), nullable=False, server_default='0', comment='已使用次数'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_discounts_id', 'discounts', ['id'])
    op.create_index('ix_discounts_code', 'discounts', ['code'], unique=True)
    op.create_index('ix_discounts_active', 'discounts', ['active'])

    # 运费
    op.create_table(
        'shipping_methods',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False, comment='名称'),
        sa.Column('description', sa.Text(), nullable=False, server_default='', comment='描述'),
        sa.Column('estimated_delivery_days', sa.Integer(), nullable=False, server_default='0', comment='预计送达天数'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipping_methods_id', 'shipping_methods', ['id'])

    op.create_table(
        'shipping_zones',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False, comment='名称'),
        sa.Column('description', sa.Text(), nullable=False, server_default='', comment='描述'),
        sa.Column('countries', sa.JSON(), nullable=True, comment='国家代码列表'),
        sa.Column('states', sa.JSON(), nullable=True, comment='州/省列表'),
        sa.Column('zip_codes', sa.JSON(), nullable=True, comment='邮编列表'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipping_zones_id', 'shipping_zones', ['id'])
    op.create_index('ix_shipping_zones_active', 'shipping_zones', ['active'])

    op.create_table(
        'shipping_rates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shipping_method_id', sa.Integer(), nullable=False),
        sa.Column('shipping_zone_id', sa.Integer(), nullable=False),
        sa.Column('base_rate', sa.BigInteger(), nullable=False, comment='基础运费'),
        sa.Column('min_order_value', sa.BigInteger(), nullable=False, server_default='0', comment='最低订单金额'),
        sa.Column('free_shipping_threshold', sa.BigInteger(), nullable=True, comment='免运费门槛'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['shipping_method_id'], ['shipping_methods.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['shipping_zone_id'], ['shipping_zones.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipping_rates_id', 'shipping_rates', ['id'])
    op.create_index('ix_shipping_rates_shipping_method_id', 'shipping_rates', ['shipping_method_id'])
    op.create_index('ix_shipping_rates_shipping_zone_id', 'shipping_rates', ['shipping_zone_id'])

    op.create_table(
        'shipping_weight_tiers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shipping_rate_id', sa.Integer(), nullable=False),
        sa.Column('min_weight', sa.Float(), nullable=False, comment='最小重量（含）'),
        sa.Column('max_weight', sa.Float(), nullable=False, comment='最大重量（含）'),
        sa.Column('rate', sa.BigInteger(), nullable=False, comment='附加运费'),
        sa.ForeignKeyConstraint(['shipping_rate_id'], ['shipping_rates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipping_weight_tiers_id', 'shipping_weight_tiers', ['id'])
    op.create_index('ix_shipping_weight_tiers_shipping_rate_id', 'shipping_weight_tiers', ['shipping_rate_id'])

    op.create_table(
        'shipping_value_tiers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shipping_rate_id', sa.Integer(), nullable=False),
        sa.Column('min_order_value', sa.BigInteger(), nullable=False, comment='最小订单金额（含）'),
        sa.Column('max_order_value', sa.BigInteger(), nullable=False, comment='最大订单金额（含）'),
        sa.Column('rate', sa.BigInteger(), nullable=False, comment='附加运费'),
        sa.ForeignKeyConstraint(['shipping_rate_id'], ['shipping_rates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipping_value_tiers_id', 'shipping_value_tiers', ['id'])
    op.create_index('ix_shipping_value_tiers_shipping_rate_id', 'shipping_value_tiers', ['shipping_rate_id'])

    # 支付流水（只追加）
    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('transaction_id', sa.String(length=200), nullable=False, comment='渠道支付ID'),
        sa.Column('transaction_type', sa.String(length=20), nullable=False, comment='类型: authorize/capture/refund/cancel'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='状态: pending/successful/failed'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='金额（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码 ISO-4217'),
        sa.Column('provider', sa.String(length=50), nullable=False, comment='支付渠道'),
        sa.Column('raw_response', sa.Text(), nullable=False, server_default='', comment='渠道原始响应'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_transactions_id', 'payment_transactions', ['id'])
    op.create_index('ix_payment_transactions_order_id', 'payment_transactions', ['order_id'])
    op.create_index('ix_payment_transactions_transaction_id', 'payment_transactions', ['transaction_id'])
    op.create_index('ix_payment_transactions_status', 'payment_transactions', ['status'])
    op.create_index('ix_payment_transactions_provider', 'payment_transactions', ['provider'])
    op.create_index('ix_payment_transactions_created_at', 'payment_transactions', ['created_at'])
    op.create_index('ix_payment_transactions_order_type_status', 'payment_transactions', ['order_id', 'transaction_type', 'status'])
    op.create_index('ix_payment_transactions_provider_ref', 'payment_transactions', ['provider', 'transaction_id'])


def downgrade() -> None:
    # 索引随表一起删除
    op.drop_table('payment_transactions')
    op.drop_table('shipping_value_tiers')
    op.drop_table('shipping_weight_tiers')
    op.drop_table('shipping_rates')
    op.drop_table('shipping_zones')
    op.drop_table('shipping_methods')
    op.drop_table('discounts')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('checkout_items')
    op.drop_table('checkouts')
