"""Forward partner records to the automation webhook."""

import logging
from typing import Optional

import requests

import config
from exceptions import ConfigurationError, ExternalServiceError
from models import Partner

logger = logging.getLogger(__name__)


def partner_payload(partner: Partner) -> dict:
    return {"id": partner.id, **partner.to_record()}


def send_partner_to_webhook(
    partner: Partner,
    url: Optional[str] = None,
    session: Optional[requests.Session] = None,
    timeout: float = None,
) -> None:
    """
    POST a partner record as JSON to the configured webhook.

    Raises:
        ConfigurationError: if no webhook URL is configured
        ExternalServiceError: if the webhook cannot be reached or rejects the request
    """
    url = url or config.WEBHOOK_URL
    if not url:
        raise ConfigurationError(
            "Webhook URL not configured. Set WEBHOOK_URL in environment variables.",
            setting_key="WEBHOOK_URL",
        )

    http = session or requests
    try:
        response = http.post(
            url,
            json=partner_payload(partner),
            timeout=timeout if timeout is not None else config.REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error(f"Webhook request for {partner.name!r} failed: {e}")
        raise ExternalServiceError(f"Webhook request failed: {e}", service="webhook") from e

    if not response.ok:
        logger.error(f"Webhook returned {response.status_code}: {response.text[:200]}")
        raise ExternalServiceError(
            f"Webhook returned {response.status_code}: {response.text[:200]}",
            service="webhook",
            status_code=response.status_code,
        )

    logger.info(f"Forwarded partner {partner.name!r} to webhook")
