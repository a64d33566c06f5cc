"""
Background billing work queued by the Stripe webhook.

Tasks run inside a Flask app context (see extensions.celery_init_app). Stripe
errors are retried with exponential backoff; anything else is logged and
dropped because the webhook was already acknowledged.
"""
import stripe
from celery import shared_task
from flask import current_app
from app.billing.sync import get_reconciler
from app.billing.webhooks import record_one_time_order
from app.services.billing import get_stripe_client


def backoff_seconds(retries: int) -> int:
    cfg = current_app.config
    base = int(cfg.get("BILLING_SYNC_BACKOFF_SECONDS", 10))
    cap = int(cfg.get("BILLING_SYNC_BACKOFF_MAX_SECONDS", 600))
    return min(base * (2 ** retries), cap)


def _retry_or_give_up(task, exc, **context):
    max_retries = int(current_app.config.get("BILLING_SYNC_MAX_RETRIES", 5))
    if task.request.retries >= max_retries:
        current_app.logger.error(
            "billing.task_gave_up",
            exc_info=exc,
            extra={"task": task.name, "retries": task.request.retries, **context},
        )
        return None
    current_app.logger.warning(
        "billing.task_retry",
        extra={"task": task.name, "retries": task.request.retries, "error": str(exc), **context},
    )
    raise task.retry(exc=exc, countdown=backoff_seconds(task.request.retries), max_retries=max_retries)


@shared_task(bind=True, name="billing.sync_customer", ignore_result=True)
def sync_customer(self, customer_id: str, event_type: str | None = None):
    try:
        record = get_reconciler().reconcile(customer_id)
        return record.status
    except stripe.StripeError as exc:
        return _retry_or_give_up(self, exc, customer_id=customer_id, event_type=event_type)
    except Exception:
        current_app.logger.exception(
            "billing.sync_failed",
            extra={"customer_id": customer_id, "event_type": event_type},
        )
        return None


@shared_task(bind=True, name="billing.pause_subscription", ignore_result=True)
def pause_subscription(self, subscription_id: str, customer_id: str, event_type: str | None = None):
    """Stop collection on a subscription whose first post-trial charge failed, then resync."""
    if not self.request.retries:
        try:
            get_stripe_client().subscriptions.update(
                subscription_id,
                params={"pause_collection": {"behavior": "void"}},
            )
            current_app.logger.info(
                "billing.subscription_paused",
                extra={"subscription_id": subscription_id, "customer_id": customer_id},
            )
        except Exception:
            # Still resync below so the record reflects whatever Stripe now says
            current_app.logger.exception(
                "billing.pause_failed",
                extra={"subscription_id": subscription_id, "customer_id": customer_id},
            )

    try:
        get_reconciler().reconcile(customer_id)
    except stripe.StripeError as exc:
        return _retry_or_give_up(self, exc, customer_id=customer_id, event_type=event_type)
    except Exception:
        current_app.logger.exception(
            "billing.sync_failed",
            extra={"customer_id": customer_id, "event_type": event_type},
        )
    return None


@shared_task(bind=True, name="billing.record_order", ignore_result=True)
def record_order(self, session_obj: dict):
    try:
        order = record_one_time_order(session_obj)
        return order.id if order else None
    except Exception:
        current_app.logger.exception(
            "billing.order_record_failed",
            extra={"checkout_session_id": session_obj.get("id"), "customer_id": session_obj.get("customer")},
        )
        return None
