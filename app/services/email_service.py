"""
Order confirmation email via the Resend REST API

Renders an HTML and a plain-text body for an order and posts them to
https://api.resend.com/emails.

Author: TM3
Date: 2025-10-17
"""
import logging
from html import escape
from typing import Any, Dict

import httpx

from app.core.config import settings
from app.domain.order import Order
from app.services.order_utils import (
    format_delivery_address,
    format_percent,
    format_ukrainian_date,
    format_ukrainian_price,
    get_delivery_method_name,
    get_order_status_name,
    get_payment_method_name,
)

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(Exception):
    """Resend is not configured or refused the message"""


def _sender() -> str:
    return f"{settings.RESEND_FROM_NAME} <{settings.RESEND_FROM_EMAIL}>"


def _item_rows_html(order: Order) -> str:
    rows = []
    for item in order.items:
        image = (
            f'<img src="{escape(item.product_image_url)}" alt="{escape(item.product_name)}" '
            f'style="width: 80px; height: 80px; object-fit: cover; border-radius: 8px;" />'
            if item.product_image_url else ''
        )
        article = (
            f'<span style="color: #666; font-size: 14px;">Арт. №{escape(item.product_article)}</span>'
            if item.product_article else ''
        )
        color = (
            f'<br /><span style="color: #666; font-size: 14px;">Колір: {escape(item.color)}</span>'
            if item.color else ''
        )
        rows.append(f"""
    <tr>
      <td style="padding: 15px; border-bottom: 1px solid #eee;">{image}</td>
      <td style="padding: 15px; border-bottom: 1px solid #eee;">
        <strong>{escape(item.product_name)}</strong><br />
        {article}{color}
      </td>
      <td style="padding: 15px; border-bottom: 1px solid #eee; text-align: center;">×{item.quantity}</td>
      <td style="padding: 15px; border-bottom: 1px solid #eee; text-align: right;">
        <strong>{format_ukrainian_price(item.total_price)}</strong>
      </td>
    </tr>""")
    return "".join(rows)


def build_order_confirmation_html(order: Order) -> str:
    order_number = escape(order.order_number)
    delivery_address = format_delivery_address(
        city=order.delivery_city,
        street=order.delivery_street,
        building=order.delivery_building,
        apartment=order.delivery_apartment,
        postal_code=order.delivery_postal_code,
    )
    paragraph = '<p style="margin: 5px 0; color: #666; font-size: 15px;">{}</p>'

    delivery_lines = ""
    if delivery_address:
        delivery_lines += paragraph.format(escape(delivery_address))
    if order.store_location:
        delivery_lines += paragraph.format(escape(order.store_location))

    prepayment_lines = ""
    if order.prepayment_amount > 0:
        prepayment_lines = (
            f'<p style="margin: 10px 0 5px; color: #E94444; font-size: 16px; font-weight: 600;">'
            f'Сума передплати: {format_ukrainian_price(order.prepayment_amount)}</p>'
        )
        if order.payment_deadline:
            prepayment_lines += paragraph.format(
                f"Заплатіть до: {format_ukrainian_date(order.payment_deadline)}"
            )

    summary_row = (
        '<tr><td style="padding: 10px 0; text-align: right; color: #666; font-size: 15px;">{label}</td>'
        '<td style="padding: 10px 0 10px 20px; text-align: right; font-size: 15px;">{value}</td></tr>'
    )
    summary = summary_row.format(label="Підсумок:", value=format_ukrainian_price(order.subtotal))
    if order.discount_amount > 0:
        summary += summary_row.format(
            label=f"Знижка ({format_percent(order.discount_percent)}%):",
            value=f"-{format_ukrainian_price(order.discount_amount)}",
        )
    if order.delivery_cost > 0:
        summary += summary_row.format(label="Доставка:", value=format_ukrainian_price(order.delivery_cost))

    contact = escape(settings.RESEND_FROM_EMAIL)
    recipient_lines = (
        paragraph.format(f"Телефон: {escape(order.user_phone)}")
        + paragraph.format(f"Email: {escape(order.user_email)}")
    )
    detail_lines = (
        paragraph.format(f"Номер замовлення: <strong>{order_number}</strong>")
        + paragraph.format(f"Дата замовлення: {format_ukrainian_date(order.created_at)}")
    )
    delivery_method_line = paragraph.format(f"<strong>{get_delivery_method_name(order.delivery_method)}</strong>")
    payment_method_line = paragraph.format(get_payment_method_name(order.payment_method))
    item_rows = _item_rows_html(order)
    status_name = get_order_status_name(order.order_status)
    customer_name = escape(order.customer_name)
    total = format_ukrainian_price(order.total_amount)

    return f"""<!DOCTYPE html>
<html lang="uk">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Підтвердження замовлення {order_number}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f5f5f5;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f5f5f5; padding: 40px 20px;">
    <tr><td align="center">
      <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 12px;">
        <tr><td style="padding: 40px 40px 30px; text-align: center; border-bottom: 1px solid #eee;">
          <h1 style="margin: 0 0 10px; color: #160101; font-size: 28px;">Дякуємо за Ваше замовлення!</h1>
          <p style="margin: 0; color: #666; font-size: 16px;">Ваше замовлення {order_number} прийнято в обробку</p>
        </td></tr>
        <tr><td style="padding: 20px 40px; text-align: center;">
          <span style="display: inline-block; padding: 8px 20px; background-color: #4CAF50; color: white; border-radius: 20px;">
            {status_name}
          </span>
        </td></tr>
        <tr><td style="padding: 20px 40px;">
          <h2 style="margin: 0 0 15px; color: #160101; font-size: 18px;">Отримувач</h2>
          <p style="margin: 5px 0; color: #333; font-size: 15px;"><strong>{customer_name}</strong></p>
          {recipient_lines}
        </td></tr>
        <tr><td style="padding: 20px 40px;">
          <h2 style="margin: 0 0 15px; color: #160101; font-size: 18px;">Деталі замовлення</h2>
          {detail_lines}
        </td></tr>
        <tr><td style="padding: 20px 40px;">
          <h2 style="margin: 0 0 15px; color: #160101; font-size: 18px;">Доставка</h2>
          {delivery_method_line}
          {delivery_lines}
        </td></tr>
        <tr><td style="padding: 20px 40px;">
          <h2 style="margin: 0 0 15px; color: #160101; font-size: 18px;">Оплата</h2>
          {payment_method_line}
          {prepayment_lines}
        </td></tr>
        <tr><td style="padding: 20px 40px;">
          <h2 style="margin: 0 0 15px; color: #160101; font-size: 18px;">Товари</h2>
          <table width="100%" cellpadding="0" cellspacing="0" style="border-collapse: collapse;">
            {item_rows}
          </table>
        </td></tr>
        <tr><td style="padding: 20px 40px;">
          <table width="100%" cellpadding="0" cellspacing="0">
            {summary}
            <tr>
              <td style="padding: 15px 0 0; text-align: right; color: #160101; font-size: 18px; font-weight: 700; border-top: 2px solid #eee;">Загальна вартість:</td>
              <td style="padding: 15px 0 0 20px; text-align: right; font-size: 20px; font-weight: 700; color: #E94444; border-top: 2px solid #eee;">{total}</td>
            </tr>
          </table>
        </td></tr>
        <tr><td style="padding: 30px 40px; background-color: #f9f9f9; border-top: 1px solid #eee;">
          <p style="margin: 0 0 10px; color: #666; font-size: 14px; text-align: center;">Якщо у Вас виникли питання, будь ласка, зв'яжіться з нами</p>
          <p style="margin: 0; color: #666; font-size: 14px; text-align: center;">
            <a href="mailto:{contact}" style="color: #E94444; text-decoration: none;">{contact}</a>
          </p>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


def build_order_confirmation_text(order: Order) -> str:
    lines = [
        "DEKOP FURNITURE STORE",
        "",
        "Дякуємо за Ваше замовлення!",
        "",
        f"Ваше замовлення {order.order_number} прийнято в обробку.",
        "",
        "ДЕТАЛІ ЗАМОВЛЕННЯ",
        f"Номер замовлення: {order.order_number}",
        f"Дата: {format_ukrainian_date(order.created_at)}",
        f"Статус: {get_order_status_name(order.order_status)}",
        "",
        "ОТРИМУВАЧ",
        order.customer_name,
        f"Телефон: {order.user_phone}",
        f"Email: {order.user_email}",
        "",
        "ТОВАРИ",
    ]

    for item in order.items:
        line = f"{item.product_name} "
        if item.product_article:
            line += f"(Арт. №{item.product_article}) "
        if item.color:
            line += f"- {item.color} "
        line += f"× {item.quantity} = {format_ukrainian_price(item.total_price)}"
        lines.append(line)

    lines += [
        "",
        "ДОСТАВКА",
        get_delivery_method_name(order.delivery_method),
        "",
        "ОПЛАТА",
        get_payment_method_name(order.payment_method),
        "",
        "РАЗОМ",
        f"Підсумок: {format_ukrainian_price(order.subtotal)}",
    ]
    if order.discount_amount > 0:
        lines.append(
            f"Знижка ({format_percent(order.discount_percent)}%): -{format_ukrainian_price(order.discount_amount)}"
        )
    if order.delivery_cost > 0:
        lines.append(f"Доставка: {format_ukrainian_price(order.delivery_cost)}")
    lines += [
        f"Загальна вартість: {format_ukrainian_price(order.total_amount)}",
        "",
        "Якщо у Вас виникли питання, зв'яжіться з нами:",
        settings.RESEND_FROM_EMAIL,
    ]
    return "\n".join(lines) + "\n"


def build_order_confirmation_message(order: Order) -> Dict[str, Any]:
    """Resend API payload for an order confirmation"""
    return {
        "from": _sender(),
        "to": [order.user_email],
        "subject": f"Підтвердження замовлення {order.order_number} - Dekop",
        "html": build_order_confirmation_html(order),
        "text": build_order_confirmation_text(order),
        "tags": [
            {"name": "category", "value": "order-confirmation"},
            {"name": "order_id", "value": order.id},
        ],
    }


async def send_order_confirmation_email(order: Order) -> Dict[str, Any]:
    """
    Send the order confirmation to the customer.

    Returns:
        {"success": True, "message_id": ..., "status": "sent"}

    Raises:
        EmailDeliveryError: RESEND_API_KEY missing or the API call failed
    """
    if not settings.RESEND_API_KEY:
        logger.error(
            f"RESEND_API_KEY is not configured, cannot send confirmation for order "
            f"{order.order_number} to {order.user_email}"
        )
        raise EmailDeliveryError("RESEND_API_KEY is not configured. Cannot send emails.")

    message = build_order_confirmation_message(order)
    logger.info(f"Sending order confirmation {order.order_number} to {order.user_email}")

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(
                RESEND_API_URL,
                json=message,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                timeout=30.0,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Resend API error: {e.response.status_code} - {e.response.text}")
            raise EmailDeliveryError(f"Resend API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Resend request error: {e}")
            raise EmailDeliveryError(str(e) or "Failed to send email via Resend") from e

    logger.info(f"Order confirmation sent for {order.order_number}, message id {data.get('id')}")
    return {"success": True, "message_id": data.get("id"), "status": "sent"}
