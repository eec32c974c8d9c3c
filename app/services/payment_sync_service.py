"""
Payment Sync Service
Applies provider payment outcomes to orders

Webhooks (LiqPay, Monobank, Stripe) and the client-triggered status check
all go through this one state machine:

    paid      -> payment_status=paid, order_status=confirmed, confirmation email
    failed    -> payment_status=failed
    refunded  -> payment_status=refunded
    pending   -> payment_status=pending
    cancelled -> payment_status=failed, order_status=cancelled, cancelled_at

Author: TM3
Date: 2025-10-17
"""
import logging
from typing import Optional

from app.repositories.order_repository import OrderRepository
from app.services import email_service

logger = logging.getLogger(__name__)

PAYMENT_OUTCOMES = ("paid", "failed", "refunded", "pending", "cancelled")


class PaymentSyncService:
    """Order state transitions driven by payment providers"""

    def __init__(self, order_repository: Optional[OrderRepository] = None):
        self.order_repository = order_repository or OrderRepository()

    async def mark_paid(self, order_id: str, payment_id: Optional[str] = None) -> bool:
        """
        Confirm the order and email the customer.

        Email failures are logged and swallowed so the provider still gets
        its acknowledgement.
        """
        updated = self.order_repository.update_payment(
            order_id, "paid", payment_intent_id=payment_id, order_status="confirmed"
        )
        if not updated:
            logger.warning(f"Payment success for unknown order {order_id}")
            return False

        logger.info(f"Payment successful for order {order_id}")
        await self.send_confirmation(order_id)
        return True

    async def send_confirmation(self, order_id: str) -> None:
        try:
            order = self.order_repository.find_with_items(order_id)
            if not order:
                logger.error(f"Order {order_id} not found - cannot send confirmation email")
                return
            await email_service.send_order_confirmation_email(order)
            logger.info(f"Confirmation email sent for order {order_id}")
        except Exception as e:
            logger.error(f"Failed to send confirmation email for order {order_id}: {e}")

    def mark_failed(self, order_id: str, payment_id: Optional[str] = None) -> bool:
        updated = self.order_repository.update_payment(order_id, "failed", payment_intent_id=payment_id)
        logger.info(f"Payment failed for order {order_id}")
        return updated

    def mark_refunded(self, order_id: str, payment_id: Optional[str] = None) -> bool:
        updated = self.order_repository.update_payment(order_id, "refunded", payment_intent_id=payment_id)
        logger.info(f"Refund processed for order {order_id}")
        return updated

    def mark_pending(self, order_id: str, payment_id: Optional[str] = None) -> bool:
        updated = self.order_repository.update_payment(order_id, "pending", payment_intent_id=payment_id)
        logger.info(f"Payment pending for order {order_id}")
        return updated

    def mark_cancelled(self, order_id: str, payment_id: Optional[str] = None) -> bool:
        updated = self.order_repository.update_payment(
            order_id, "failed", payment_intent_id=payment_id, order_status="cancelled", cancelled=True
        )
        logger.info(f"Payment cancelled for order {order_id}")
        return updated

    async def apply_status(self, order_id: str, status: str, payment_id: Optional[str] = None) -> bool:
        """Dispatch a mapped provider status; unknown statuses count as pending"""
        if status == "paid":
            return await self.mark_paid(order_id, payment_id)
        if status == "failed":
            return self.mark_failed(order_id, payment_id)
        if status == "refunded":
            return self.mark_refunded(order_id, payment_id)
        if status == "cancelled":
            return self.mark_cancelled(order_id, payment_id)
        return self.mark_pending(order_id, payment_id)


payment_sync = PaymentSyncService()
