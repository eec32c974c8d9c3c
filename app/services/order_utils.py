"""
Order utilities - numbering, totals and Ukrainian display helpers

Author: TM3
Date: 2025-10-17
"""
import random
import time
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Union

from app.core.config import settings

Number = Union[int, float, Decimal]

UKRAINIAN_MONTHS = [
    'січня', 'лютого', 'березня', 'квітня', 'травня', 'червня',
    'липня', 'серпня', 'вересня', 'жовтня', 'листопада', 'грудня',
]

DELIVERY_METHOD_NAMES = {
    'nova_poshta': 'Доставка Новою поштою',
    'courier': "Доставка кур'єром",
    'store_pickup': 'Самовивіз з магазину',
}

PAYMENT_METHOD_NAMES = {
    'liqpay': 'Оплата через LiqPay',
    'monobank': 'Оплата через Monobank',
    'stripe': 'Оплата карткою (Stripe)',
    'cash_on_delivery': 'Готівкою при отриманні',
}

ORDER_STATUS_NAMES = {
    'processing': 'В обробці',
    'confirmed': 'Підтверджено',
    'shipped': 'Відправлено',
    'delivered': 'Доставлено',
    'cancelled': 'Скасовано',
}

PAYMENT_STATUS_NAMES = {
    'pending': 'Очікує оплати',
    'paid': 'Оплачено',
    'failed': 'Помилка оплати',
    'refunded': 'Повернуто',
}


def _round2(value: Decimal) -> Decimal:
    return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def generate_order_number() -> str:
    """'#' followed by the last 10 digits of epoch millis plus 3 random digits"""
    timestamp = str(int(time.time() * 1000))
    suffix = f"{random.randint(0, 999):03d}"
    return f"#{(timestamp + suffix)[-10:]}"


def generate_product_article(product_id: int) -> str:
    """Article number shown on receipts: 8 random digits, dash, zero-padded product id"""
    return f"{random.randint(0, 99999999):08d}-{int(product_id):06d}"


def calculate_subtotal(lines: Iterable[Dict]) -> Decimal:
    return sum(
        (Decimal(str(line['price'])) * int(line['quantity']) for line in lines),
        Decimal('0')
    )


def calculate_totals(
    subtotal: Number,
    discount_percent: Number = 0,
    delivery_cost: Number = 0,
    prepayment_amount: Optional[Number] = None,
) -> Dict[str, Decimal]:
    """
    Compute order money fields.

    discount = round(subtotal * pct / 100, 2)
    total = subtotal - discount + delivery
    prepayment = round(total * share, 2)

    The prepayment share is ORDER_PREPAYMENT_PERCENTAGE unless the client
    sent an explicit prepayment_amount, which is then taken as a share of
    subtotal + delivery.
    """
    subtotal = Decimal(str(subtotal))
    pct = Decimal(str(discount_percent or 0))
    delivery = Decimal(str(delivery_cost or 0))

    if prepayment_amount and subtotal + delivery > 0:
        share = Decimal(str(prepayment_amount)) / (subtotal + delivery)
    else:
        share = Decimal(str(settings.ORDER_PREPAYMENT_PERCENTAGE))

    discount_amount = _round2(subtotal * pct / 100)
    total_amount = subtotal - discount_amount + delivery

    return {
        'subtotal': subtotal,
        'discount_percent': pct,
        'discount_amount': discount_amount,
        'delivery_cost': delivery,
        'total_amount': total_amount,
        'prepayment_amount': _round2(total_amount * share),
    }


def payment_deadline(hours: Optional[int] = None, now: Optional[datetime] = None) -> datetime:
    hours = hours or settings.ORDER_PAYMENT_DEADLINE_HOURS
    return (now or datetime.now()) + timedelta(hours=hours)


def format_ukrainian_date(value: Union[datetime, str, None]) -> str:
    """'03 березня 2024'"""
    if not value:
        return ''
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    return f"{value.day:02d} {UKRAINIAN_MONTHS[value.month - 1]} {value.year}"


def format_ukrainian_price(amount: Optional[Number]) -> str:
    """'16 000 грн' - whole hryvnias, space as thousands separator"""
    rounded = int(Decimal(str(amount or 0)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    return f"{rounded:,}".replace(',', ' ') + ' грн'


def format_delivery_address(
    city: Optional[str] = None,
    street: Optional[str] = None,
    building: Optional[str] = None,
    apartment: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> str:
    parts = []
    if street:
        parts.append(f"вул. {street}")
    if building:
        parts.append(f"буд. {building}")
    if apartment:
        parts.append(f"кв. {apartment}")
    if city:
        parts.append(city)
    if postal_code:
        parts.append(postal_code)
    return ', '.join(parts)


def get_delivery_method_name(method: str) -> str:
    return DELIVERY_METHOD_NAMES.get(method, method)


def get_payment_method_name(method: str) -> str:
    return PAYMENT_METHOD_NAMES.get(method, method)


def get_order_status_name(status: str) -> str:
    return ORDER_STATUS_NAMES.get(status, status)


def get_payment_status_name(status: str) -> str:
    return PAYMENT_STATUS_NAMES.get(status, status)


def format_percent(value: Optional[Number]) -> str:
    """10.00 -> '10', 12.50 -> '12.5'"""
    text = f"{float(value or 0):.2f}".rstrip('0').rstrip('.')
    return text or '0'
