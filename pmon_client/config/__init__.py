"""
Configuration module: settings, logging, protocol constants.
"""

from pmon_client.config.settings import ClientSettings, get_settings
from pmon_client.config.logging import get_logger, mask_token, setup_logging
from pmon_client.config.constants import (
    ChannelCloseCode,
    Endpoints,
    InboundType,
    ManagerAction,
    NotificationLevel,
    OutboundType,
    SUBSCRIBED_CHANNELS,
)

__all__ = [
    # settings
    "ClientSettings",
    "get_settings",
    # logging
    "get_logger",
    "mask_token",
    "setup_logging",
    # constants
    "ChannelCloseCode",
    "Endpoints",
    "InboundType",
    "ManagerAction",
    "NotificationLevel",
    "OutboundType",
    "SUBSCRIBED_CHANNELS",
]
