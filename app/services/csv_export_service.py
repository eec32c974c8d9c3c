"""
CSV export of orders for the back office

Values containing a comma, a double quote or a newline are wrapped in
quotes with inner quotes doubled. Rows are joined with "\\n" and the file
starts with a UTF-8 BOM.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

UTF8_BOM = "\ufeff"

CSV_HEADERS = [
    'Order Number',
    'Customer Name',
    'Email',
    'Phone',
    'Delivery Method',
    'City',
    'Address',
    'Street',
    'Building',
    'Apartment',
    'Subtotal',
    'Discount %',
    'Discount Amount',
    'Delivery Cost',
    'Total',
    'Prepayment',
    'Payment Method',
    'Payment Status',
    'Order Status',
    'Customer Notes',
    'Admin Notes',
    'Created At',
    'Shipped At',
    'Delivered At',
]


def escape_csv_value(value: Any) -> str:
    text = "" if value is None else str(value)
    if ',' in text or '"' in text or '\n' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def _iso(value: Optional[datetime]) -> str:
    if not value:
        return ''
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _number(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, Decimal):
        return format(value, 'f')
    return str(value)


def order_to_row(order: Dict[str, Any]) -> List[str]:
    return [
        order.get('order_number') or '',
        f"{order.get('user_name') or ''} {order.get('user_surname') or ''}".strip(),
        order.get('user_email') or '',
        order.get('user_phone') or '',
        order.get('delivery_method') or '',
        order.get('delivery_city') or '',
        order.get('delivery_address') or '',
        order.get('delivery_street') or '',
        order.get('delivery_building') or '',
        order.get('delivery_apartment') or '',
        _number(order.get('subtotal')),
        _number(order.get('discount_percent')),
        _number(order.get('discount_amount')),
        _number(order.get('delivery_cost')),
        _number(order.get('total_amount')),
        _number(order.get('prepayment_amount')),
        order.get('payment_method') or '',
        order.get('payment_status') or '',
        order.get('order_status') or '',
        order.get('customer_notes') or '',
        order.get('admin_notes') or '',
        _iso(order.get('created_at')),
        _iso(order.get('shipped_at')),
        _iso(order.get('delivered_at')),
    ]


def orders_to_csv(orders: Iterable[Dict[str, Any]]) -> str:
    lines = [','.join(escape_csv_value(header) for header in CSV_HEADERS)]
    for order in orders:
        lines.append(','.join(escape_csv_value(cell) for cell in order_to_row(order)))
    return UTF8_BOM + '\n'.join(lines)


def export_filename(today: Optional[date] = None) -> str:
    return f"orders_export_{(today or date.today()).isoformat()}.csv"
