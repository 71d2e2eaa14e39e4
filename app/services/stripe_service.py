"""
Stripe service for webhook verification, checkout and billing portal.
"""
import json
import logging
from typing import Dict, Optional, Union

import stripe

from app.core.exceptions import WebhookPayloadError, WebhookSignatureError

logger = logging.getLogger(__name__)

TRIAL_PERIOD_DAYS = 14


def verify_webhook(
    request_body: Union[bytes, str],
    signature: str,
    secret: str,
    tolerance: Optional[int] = None,
) -> dict:
    """
    Verify and decode a Stripe webhook body.

    The signature is an HMAC-SHA256 of ``"{t}.{raw_body}"`` compared in
    constant time against every ``v1`` entry of the header. The body must be
    the exact bytes received; it is never re-serialized before verifying.

    Args:
        request_body: Raw request body
        signature: Stripe-Signature header value (``t=<unix>,v1=<hex>``)
        secret: Endpoint signing secret
        tolerance: Max age of the signature timestamp in seconds, None to skip

    Returns:
        Decoded event dictionary

    Raises:
        WebhookSignatureError: If the header is malformed or does not match
        WebhookPayloadError: If the verified body is not a JSON object
    """
    if isinstance(request_body, bytes):
        try:
            payload = request_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookPayloadError("Webhook body is not valid UTF-8") from e
    else:
        payload = request_body

    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(str(e)) from e

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise WebhookPayloadError(f"Invalid webhook payload: {e}") from e

    if not isinstance(event, dict):
        raise WebhookPayloadError("Webhook payload is not a JSON object")

    logger.info(f"Verified webhook event: {event.get('type')}, id={event.get('id')}")
    return event


def create_customer(email: str, name: str, api_key: str, metadata: Optional[Dict[str, str]] = None) -> str:
    """
    Create a Stripe customer.

    Returns:
        The new customer ID
    """
    try:
        customer = stripe.Customer.create(
            email=email,
            name=name,
            metadata=metadata or {},
            api_key=api_key,
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating customer: {e}")
        raise ValueError(f"Failed to create customer: {str(e)}")

    logger.info(f"Created Stripe customer: customer_id={customer.id}")
    return customer.id


def create_checkout_session(
    customer_id: str,
    price_id: str,
    base_url: str,
    api_key: str,
    metadata: Optional[Dict[str, str]] = None,
) -> dict:
    """
    Create a subscription-mode Checkout session with a free trial.

    Args:
        customer_id: Stripe customer ID
        price_id: Stripe price ID of the chosen plan
        base_url: Frontend base URL used for the success and cancel redirects
        api_key: Stripe secret key
        metadata: Stored on the session, read back by the webhook reconciler

    Returns:
        Dictionary with 'id' and 'url' of the checkout session
    """
    try:
        session = stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            line_items=[{
                "price": price_id,
                "quantity": 1,
            }],
            success_url=f"{base_url}/dashboard/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/pricing",
            subscription_data={"trial_period_days": TRIAL_PERIOD_DAYS},
            metadata=metadata or {},
            api_key=api_key,
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating checkout session: {e}")
        raise ValueError(f"Failed to create checkout session: {str(e)}")

    logger.info(f"Created checkout session: customer_id={customer_id}, session_id={session.id}")
    return {"id": session.id, "url": session.url}


def create_billing_portal_session(customer_id: str, return_url: str, api_key: str) -> dict:
    """
    Create a Stripe Billing Portal session for managing the subscription.

    Returns:
        Dictionary with 'url' key containing portal session URL
    """
    try:
        session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=return_url,
            api_key=api_key,
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating portal session: {e}")
        raise ValueError(f"Failed to create portal session: {str(e)}")

    logger.info(f"Created billing portal session for customer_id={customer_id}")
    return {"url": session.url}
