"""
Best-effort notification sender.

Wraps the email gateway so callers get a plain success flag. A gateway
failure is logged and reported as False; it never raises into the
financial operation that triggered the send.
"""

import logging
from typing import Any

from clients.email_client import EmailGatewayClient, EmailGatewayError

logger = logging.getLogger(__name__)


class EmailNotifier:
    """send(template_type, recipient, data) -> bool over EmailGatewayClient."""

    def __init__(self, email_client: EmailGatewayClient):
        self.email_client = email_client

    def send(self, template_type: str, recipient: str, data: dict[str, Any]) -> bool:
        """
        Send a templated email.

        Returns:
            True if the gateway accepted the email, False otherwise.
        """
        try:
            self.email_client.send_template(template_type, recipient, data)
        except (EmailGatewayError, ValueError) as e:
            logger.error("Failed to send %s email to %s: %s", template_type, recipient, e)
            return False
        return True
