"""
Order totals

Pure functions: the same order always gives the same breakdown, and nothing
here touches the order or the database.

    subtotal          = sum of line subtotals
    coupon_discount   = coupon over its applicable lines (whole cart if unrestricted)
    discount_amount   = subtotal * discount_percentage / 100
    total             = max(0, subtotal - coupon_discount - discount_amount)
                        + table_charge (dine-in only) + delivery_charge (delivery only)
    final_total       = total + payment surcharge (card payments)
"""

from decimal import Decimal
from typing import List, Optional

from retailpos.core.config import settings
from retailpos.common.money import ZERO, quantize, percentage_of
from retailpos.modules.discounts.models import CouponType
from retailpos.modules.orders.schemas import (
    Order, OrderTotals, OrderType, CartItem, Coupon, CardPayment
)


def cart_subtotal(cart: List[CartItem]) -> Decimal:
    return quantize(sum((line.subtotal for line in cart), ZERO))


def coupon_discount(cart: List[CartItem], coupon: Optional[Coupon]) -> Decimal:
    if coupon is None:
        return ZERO

    if coupon.applicable_items:
        items = set(coupon.applicable_items)
        applicable = cart_subtotal([line for line in cart if line.product.id in items])
    else:
        applicable = cart_subtotal(cart)

    if coupon.type == CouponType.PERCENTAGE:
        return percentage_of(applicable, coupon.discount)
    # Fixed coupons never discount more than the lines they apply to
    return min(quantize(coupon.discount), applicable)


def card_surcharge(total: Decimal, issuer: Optional[str]) -> Decimal:
    """Bank service charge for a card payment of ``total``."""
    return percentage_of(total, settings.card_service_charge_rate(issuer))


def compute_totals(order: Order) -> OrderTotals:
    subtotal = cart_subtotal(order.cart)
    coupon = coupon_discount(order.cart, order.applied_coupon)
    discount_amount = percentage_of(subtotal, order.discount_percentage)

    table_charge = quantize(order.table_charge) if order.order_type == OrderType.DINE_IN else ZERO
    delivery_charge = quantize(order.delivery_charge) if order.order_type == OrderType.DELIVERY else ZERO

    pre_charge_total = max(ZERO, subtotal - coupon - discount_amount)
    total = quantize(pre_charge_total + table_charge + delivery_charge)

    surcharge = ZERO
    if isinstance(order.payment_details, CardPayment):
        surcharge = quantize(order.payment_details.service_charge)

    return OrderTotals(
        subtotal=subtotal,
        coupon_discount=coupon,
        discount_amount=discount_amount,
        table_charge=table_charge,
        delivery_charge=delivery_charge,
        payment_surcharge=surcharge,
        total=total,
        final_total=quantize(total + surcharge)
    )
