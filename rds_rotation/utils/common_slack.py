import json
import logging

import requests

from .aws_utils import run_blocking
from .logger import format_message, log

RED = 'ff0505'
YELLOW = 'ffcc00'


def build_payload(channel, text, username, color=RED):
    return {
        "channel": channel,
        "username": username,
        "icon_emoji": ":robot_face:",
        "attachments": [{
            "color": f"{color}",
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": text
                    }
                }
            ]
        }]
    }


def send_slack_alert(webhook_url, payload, timeout=10):
    """
    Post a message to a Slack incoming webhook.

    Failures are logged, never raised: a notification problem must not fail the rotation.
    """
    try:
        response = requests.post(webhook_url, data=json.dumps(payload),
                                 headers={'Content-Type': 'application/json'}, timeout=timeout)
    except requests.RequestException as e:
        logging.error(f"Failed to send Slack notification to {payload.get('channel')}: {e}")
        return False
    if response.status_code != 200:
        logging.error(f"Could not send Slack notification to {payload.get('channel')}: {response.content}")
        return False
    return True


class SlackNotifier:
    """
    Relays warning and alert conditions to their Slack channels.

    A channel that is not configured, or a missing webhook URL, turns the
    corresponding notification into a log line only.
    """

    def __init__(self, webhook_url=None, warnings_channel=None, alerts_channel=None,
                 username='rds-dr-rotation', environment=''):
        self.webhook_url = webhook_url
        self.warnings_channel = warnings_channel
        self.alerts_channel = alerts_channel
        self.username = username
        self.environment = environment

    @classmethod
    def from_config(cls, config):
        return cls(webhook_url=config.slack_webhook_url,
                   warnings_channel=config.slack_warnings_channel,
                   alerts_channel=config.slack_alerts_channel,
                   username=config.application,
                   environment=config.environment)

    async def warning(self, msg, db_instance_id=None):
        log(logging.WARNING, msg, db_instance_id)
        await self._send(self.warnings_channel, 'WARN', msg, db_instance_id, YELLOW)

    async def alert(self, msg, db_instance_id=None):
        log(logging.ERROR, msg, db_instance_id)
        await self._send(self.alerts_channel, 'ERR', msg, db_instance_id, RED)

    async def _send(self, channel, level, msg, db_instance_id, color):
        if not channel or not self.webhook_url:
            return
        text = f"{level}: {format_message(msg, db_instance_id)}"
        if self.environment:
            text = f"*{self.environment}* {text}"
        payload = build_payload(channel, text, self.username, color)
        await run_blocking(send_slack_alert, self.webhook_url, payload)
