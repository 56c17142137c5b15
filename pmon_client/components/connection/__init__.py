"""
Connection: the real-time channel, its state machine, timers and fallbacks.
"""

from pmon_client.components.connection.availability import AvailabilityMonitor
from pmon_client.components.connection.machine import ConnectionMachine
from pmon_client.components.connection.manager import ConnectionManager
from pmon_client.components.connection.polling import LogPoller
from pmon_client.components.connection.state import ConnectionState, MachineState, Subscription
from pmon_client.components.connection.timers import ScheduledTask
from pmon_client.components.connection.transport import (
    ChannelTransport,
    TransportFactory,
    WebSocketTransport,
    websocket_factory,
)

__all__ = [
    "AvailabilityMonitor",
    "ChannelTransport",
    "ConnectionMachine",
    "ConnectionManager",
    "ConnectionState",
    "LogPoller",
    "MachineState",
    "ScheduledTask",
    "Subscription",
    "TransportFactory",
    "WebSocketTransport",
    "websocket_factory",
]
