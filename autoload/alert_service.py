#!/usr/bin/env python3
"""
Alert Service Module

Delivers success/failure notifications for the scheduled jobs.

Channels (any combination, chosen from the credential set):
    Teams webhook   MessageCard posted to an incoming-webhook URL
    Teams chat      One-on-one chat message via Microsoft Graph
                    (client-credentials app registration)
    Pub/Sub         JSON alert published to the "tenbis-alerts" topic (GCP only)

IMPORTANT: A notification is an observer of the outcome, never part of it.
send_alert() catches and logs every delivery failure and never raises, so a
broken webhook cannot turn a successful credit load into a failed run.

Usage:
    alert_service = AlertService.from_credentials(credentials, "CREDIT_LOADER")
    alert_service.credit_loaded(amount="100", timestamp="10/18/2026, 09:30:00")
    alert_service.credit_load_failed("100", timestamp, "HTTP 401: Unauthorized", auth_error=True)

Set ALERT_DRY_RUN=true to log the formatted payloads instead of sending them.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from autoload import github_actions

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 15  # seconds
GRAPH_TIMEOUT = 10  # seconds
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
TENBIS_WEB_URL = "https://www.10bis.co.il"


class AlertPriority(Enum):
    """Alert priority levels."""
    HIGH = "high"      # Failures - something needs attention
    MEDIUM = "medium"  # Successful credit load
    LOW = "low"        # Informational (token refresh, connection test)


class AlertType(Enum):
    """Alert types for the scheduled jobs."""
    CREDIT_LOADED = "credit_loaded"
    CREDIT_LOAD_FAILED = "credit_load_failed"
    TOKENS_REFRESHED = "tokens_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    CONNECTION_TEST = "connection_test"


DEFAULT_PRIORITIES = {
    AlertType.CREDIT_LOAD_FAILED: AlertPriority.HIGH,
    AlertType.TOKEN_REFRESH_FAILED: AlertPriority.HIGH,
    AlertType.CREDIT_LOADED: AlertPriority.MEDIUM,
    AlertType.TOKENS_REFRESHED: AlertPriority.LOW,
    AlertType.CONNECTION_TEST: AlertPriority.LOW,
}


@dataclass
class Alert:
    """One notification: an action outcome plus its context."""
    alert_type: AlertType
    action_title: str
    success: bool
    timestamp: str
    amount: Optional[Any] = None
    error: Optional[str] = None
    auth_error: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def status_text(self) -> str:
        return "Success" if self.success else "Failed"

    @property
    def emoji(self) -> str:
        return "✅" if self.success else "❌"

    @property
    def priority(self) -> AlertPriority:
        return DEFAULT_PRIORITIES.get(self.alert_type, AlertPriority.MEDIUM)

    @property
    def error_text(self) -> Optional[str]:
        if not self.error:
            return None
        if self.auth_error:
            return f"{self.error} (authentication error - tokens may need refresh)"
        return self.error

    def facts(self) -> List[Dict[str, str]]:
        """Name/value pairs shown by every channel."""
        facts = []
        if self.amount not in (None, ""):
            facts.append({"name": "Amount", "value": f"₪{self.amount}"})
        facts.append({"name": "Time", "value": f"{self.timestamp} (Israel Time)"})
        facts.append({"name": "Status", "value": self.status_text})
        if not self.success and self.error_text:
            facts.append({"name": "Error", "value": self.error_text})
        return facts


# =============================================================================
# CHANNELS
# =============================================================================

class NotificationChannel:
    """Delivers an Alert. deliver() raises on failure; AlertService catches."""

    name = "channel"

    def deliver(self, alert: Alert) -> None:
        raise NotImplementedError

    def format(self, alert: Alert) -> Dict[str, Any]:
        raise NotImplementedError


class TeamsWebhookChannel(NotificationChannel):
    """Teams incoming webhook with a MessageCard payload."""

    name = "teams_webhook"

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    def format(self, alert: Alert) -> Dict[str, Any]:
        accent_color = "#28a745" if alert.success else "#dc3545"
        return {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "themeColor": accent_color,
            "summary": f"10bis {alert.action_title} {alert.status_text}",
            "sections": [
                {
                    "activityTitle": f"{alert.emoji} 10bis Bot",
                    "activitySubtitle": f"{alert.action_title} {alert.status_text}",
                    "activityImage": f"{TENBIS_WEB_URL}/favicon.ico",
                    "facts": alert.facts(),
                    "markdown": True
                }
            ],
            "potentialAction": [
                {
                    "@type": "OpenUri",
                    "name": "Open 10bis",
                    "targets": [{"os": "default", "uri": TENBIS_WEB_URL}]
                }
            ]
        }

    def deliver(self, alert: Alert) -> None:
        response = requests.post(
            self.webhook_url,
            json=self.format(alert),
            headers={"Content-Type": "application/json"},
            timeout=WEBHOOK_TIMEOUT
        )
        if response.status_code != 200:
            raise RuntimeError(f"Webhook returned status {response.status_code}")


class TeamsGraphChannel(NotificationChannel):
    """Direct Teams chat message through Microsoft Graph."""

    name = "teams_chat"

    def __init__(self, tenant_id: str, client_id: str, client_secret: str, user_id: str):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_id = user_id
        self._access_token: Optional[str] = None

    def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token

        response = requests.post(
            f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=GRAPH_TIMEOUT
        )
        response.raise_for_status()
        self._access_token = response.json()["access_token"]
        logger.info("Microsoft Graph access token obtained")
        return self._access_token

    def format(self, alert: Alert) -> Dict[str, Any]:
        color = "#00FF00" if alert.success else "#FF0000"
        items = "".join(
            f"<li><strong>{fact['name']}:</strong> {fact['value']}</li>" for fact in alert.facts()
        )
        html = (
            f'<div style="border-left: 4px solid {color}; padding-left: 12px; margin: 8px 0;">'
            f'<h3 style="margin: 0; color: {color};">{alert.emoji} 10bis Bot</h3>'
            f'<p style="margin: 4px 0; font-size: 14px;">'
            f'<strong>{alert.action_title} {alert.status_text}</strong></p>'
            f'<ul style="margin: 8px 0; padding-left: 20px; font-size: 13px;">{items}</ul>'
            f'</div>'
        )
        return {"body": {"contentType": "html", "content": html}}

    def deliver(self, alert: Alert) -> None:
        headers = {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Content-Type": "application/json",
        }

        # Creating a oneOnOne chat returns the existing one if it already exists
        chat_response = requests.post(
            f"{GRAPH_BASE_URL}/chats",
            json={
                "chatType": "oneOnOne",
                "members": [
                    {
                        "@odata.type": "#microsoft.graph.aadUserConversationMember",
                        "roles": ["owner"],
                        "user@odata.bind": f"{GRAPH_BASE_URL}/users('{self.user_id}')"
                    }
                ]
            },
            headers=headers,
            timeout=GRAPH_TIMEOUT
        )
        chat_response.raise_for_status()
        chat_id = chat_response.json()["id"]

        response = requests.post(
            f"{GRAPH_BASE_URL}/chats/{chat_id}/messages",
            json=self.format(alert),
            headers=headers,
            timeout=GRAPH_TIMEOUT
        )
        if response.status_code != 201:
            raise RuntimeError(f"Teams chat message returned status {response.status_code}")


class PubSubChannel(NotificationChannel):
    """
    Publishes alerts to Google Cloud Pub/Sub.

    A Cloud Function subscribed to the topic fans them out to email/chat.
    """

    name = "pubsub"
    PUBSUB_TOPIC = "tenbis-alerts"

    def __init__(self, project_id: str, bot_name: str, topic: str = PUBSUB_TOPIC):
        from google.cloud import pubsub_v1

        self.bot_name = bot_name
        self._publisher = pubsub_v1.PublisherClient()
        self._topic_path = self._publisher.topic_path(project_id, topic)
        logger.info(f"Alert Pub/Sub topic: {self._topic_path}")

    def format(self, alert: Alert) -> Dict[str, Any]:
        return {
            "bot_name": self.bot_name,
            "alert_type": alert.alert_type.value,
            "priority": alert.priority.value,
            "title": f"10bis {alert.action_title} {alert.status_text}",
            "message": alert.error_text or f"{alert.action_title} completed",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "details": {**alert.details, "amount": alert.amount, "auth_error": alert.auth_error},
        }

    def deliver(self, alert: Alert) -> None:
        data = json.dumps(self.format(alert), default=str).encode("utf-8")
        future = self._publisher.publish(self._topic_path, data)
        message_id = future.result(timeout=5)
        logger.debug(f"Alert published to Pub/Sub with message ID: {message_id}")


# =============================================================================
# SERVICE
# =============================================================================

class AlertService:
    """
    Fans an alert out to every configured channel.

    Args:
        channels: Notification channels (empty = log only)
        bot_name: Name of the job (e.g., "CREDIT_LOADER", "TOKEN_REFRESH")
    """

    def __init__(self, channels: Optional[List[NotificationChannel]] = None, bot_name: str = "AUTOLOAD"):
        self.channels = list(channels or [])
        self.bot_name = bot_name
        self._dry_run = os.environ.get("ALERT_DRY_RUN", "").lower() == "true"

    @classmethod
    def from_credentials(
        cls,
        credentials: Dict[str, Any],
        bot_name: str,
        project_id: Optional[str] = None,
    ) -> "AlertService":
        """
        Build the channel list from notification fields in the credential set.

        Args:
            credentials: Loaded credential set
            bot_name: Job name for log lines and Pub/Sub payloads
            project_id: GCP project (enables Pub/Sub) or None
        """
        channels: List[NotificationChannel] = []

        webhook_url = (credentials.get("TeamsWebhookUrl") or "").strip()
        if webhook_url:
            channels.append(TeamsWebhookChannel(webhook_url))

        graph_fields = [credentials.get(name) for name in
                        ("TeamsTenantId", "TeamsClientId", "TeamsClientSecret", "TeamsUserId")]
        if all(graph_fields):
            channels.append(TeamsGraphChannel(*graph_fields))

        if project_id:
            try:
                channels.append(PubSubChannel(project_id, bot_name))
            except Exception as e:
                logger.error(f"Failed to initialize Pub/Sub publisher: {e}")

        if not channels:
            logger.info("No notification channel configured - alerts will be logged only")

        return cls(channels, bot_name)

    def send_alert(self, alert: Alert) -> bool:
        """
        Deliver an alert to every channel.

        Returns:
            bool: True if at least one channel delivered it. Never raises.
        """
        log_msg = (
            f"{alert.emoji} ALERT [{self.bot_name}] [{alert.priority.value.upper()}] "
            f"{alert.alert_type.value}: {alert.action_title} {alert.status_text}"
        )
        if alert.priority == AlertPriority.HIGH:
            logger.warning(log_msg)
        else:
            logger.info(log_msg)

        if self._dry_run:
            for channel in self.channels:
                logger.info(f"DRY RUN - Would send via {channel.name}: "
                            f"{json.dumps(channel.format(alert), ensure_ascii=False)}")
            return True

        if not self.channels:
            return False

        delivered = False
        for channel in self.channels:
            try:
                logger.info(f"Sending {channel.name} notification...")
                channel.deliver(alert)
                logger.info(f"{channel.name} notification sent successfully")
                delivered = True
            except Exception as e:
                logger.error(f"Failed to send {channel.name} notification: {e}")
                github_actions.set_output("teams_error", str(e))

        github_actions.set_output("teams_notification", "sent" if delivered else "failed")
        return delivered

    # =========================================================================
    # CONVENIENCE METHODS
    # =========================================================================

    def credit_loaded(self, amount: Any, timestamp: str) -> bool:
        return self.send_alert(Alert(
            alert_type=AlertType.CREDIT_LOADED,
            action_title="Credit Loading",
            success=True,
            timestamp=timestamp,
            amount=amount,
        ))

    def credit_load_failed(self, amount: Any, timestamp: str, error: str, auth_error: bool = False) -> bool:
        return self.send_alert(Alert(
            alert_type=AlertType.CREDIT_LOAD_FAILED,
            action_title="Credit Loading",
            success=False,
            timestamp=timestamp,
            amount=amount,
            error=error,
            auth_error=auth_error,
        ))

    def tokens_refreshed(self, updated_fields: List[str], timestamp: str) -> bool:
        return self.send_alert(Alert(
            alert_type=AlertType.TOKENS_REFRESHED,
            action_title="Token Refresh",
            success=True,
            timestamp=timestamp,
            details={"updated_fields": list(updated_fields)},
        ))

    def token_refresh_failed(self, timestamp: str, error: str, auth_error: bool = False) -> bool:
        return self.send_alert(Alert(
            alert_type=AlertType.TOKEN_REFRESH_FAILED,
            action_title="Token Refresh",
            success=False,
            timestamp=timestamp,
            error=error,
            auth_error=auth_error,
        ))

    def test_connection(self, timestamp: str) -> bool:
        """Send a sample success card to every channel."""
        return self.send_alert(Alert(
            alert_type=AlertType.CONNECTION_TEST,
            action_title="Credit Loading",
            success=True,
            timestamp=timestamp,
            amount="50",
        ))
