"""
Balance Notification Module

Subscribers attached to an account are told about every balance change.
The SMS, email and push subscribers render a human-readable message and
log it; the webhook subscriber posts the account state to a URL.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from abc import ABC, abstractmethod
import requests

from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .accounts import Account


logger = get_logger("bank_ledger.notifications")


class NotificationChannel(Enum):
    """Available notification channels"""
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"
    WEBHOOK = "webhook"


class BalanceSubscriber(ABC):
    """Receives balance-change events from an account"""

    @abstractmethod
    def on_balance_changed(self, account: 'Account') -> None:
        """Called synchronously after the account balance changed"""
        pass


class MessageNotification(BalanceSubscriber):
    """Renders a balance message for one channel and logs it"""

    channel: NotificationChannel

    def __init__(self):
        self.sent_messages: List[str] = []

    def render(self, account: 'Account') -> str:
        label = "SMS" if self.channel == NotificationChannel.SMS else self.channel.value.capitalize()
        return (
            f"{label} notification: Your account balance has changed. "
            f"Current balance: {account.balance_money.to_string()}"
        )

    def on_balance_changed(self, account: 'Account') -> None:
        message = self.render(account)
        self.sent_messages.append(message)
        log_action(
            logger, "info", message,
            action=f"notify_{self.channel.value}", resource=f"account:{account.id}"
        )


class SMSNotification(MessageNotification):
    channel = NotificationChannel.SMS


class EmailNotification(MessageNotification):
    channel = NotificationChannel.EMAIL


class PushNotification(MessageNotification):
    channel = NotificationChannel.PUSH


class WebhookNotification(BalanceSubscriber):
    """Posts the account state as JSON to an external URL"""

    channel = NotificationChannel.WEBHOOK

    def __init__(self, url: str, timeout: Optional[float] = None):
        if not url:
            raise ValueError("Webhook URL is required")
        if timeout is None:
            from .config import get_config
            timeout = get_config().webhook_timeout
        self.url = url
        self.timeout = timeout

    def build_payload(self, account: 'Account') -> Dict[str, Any]:
        return {
            "account_id": account.id,
            "account_number": account.account_number,
            "currency": account.currency.code,
            "balance": str(account.balance),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    def on_balance_changed(self, account: 'Account') -> None:
        """
        Raises:
            requests.RequestException: If the request fails or the endpoint
                answers with an error status
        """
        response = requests.post(
            self.url,
            json=self.build_payload(account),
            timeout=self.timeout,
            headers={"Content-Type": "application/json"}
        )
        response.raise_for_status()
        logger.debug(f"Webhook {self.url} notified for account {account.account_number}")
