"""
Killmail Notification Delivery.

Components:
- KillmailFormatter: Killmail -> NotificationDocument rendering
- Dispatcher: Fire-and-forget fan-out with delivery health accounting
- DiscordChannelClient: Bot API client with retry and rate limit handling
"""

from ..models import SendResult
from .discord_client import DiscordChannelClient, to_embed
from .dispatcher import ChannelHealth, DeliveryClient, DeliveryHealth, Dispatcher
from .formatter import KillmailFormatter, format_isk, format_time_ago, isk_color

__all__ = [
    "ChannelHealth",
    "DeliveryClient",
    "DeliveryHealth",
    "DiscordChannelClient",
    "Dispatcher",
    "KillmailFormatter",
    "SendResult",
    "format_isk",
    "format_time_ago",
    "isk_color",
    "to_embed",
]
