"""Ably realtime SDK adapters expressed as resource acquisitions."""

from ablycli.services.ably.channels import channel_options, channel_subscription
from ablycli.services.ably.client import (
    build_realtime,
    client_identity,
    connection_listener,
    realtime_connection,
)
from ablycli.services.ably.meta import log_subscription, occupancy_subscription
from ablycli.services.ably.presence import (
    fetch_members,
    members_record,
    presence_entry,
    presence_subscription,
)

__all__ = [
    "build_realtime",
    "channel_options",
    "channel_subscription",
    "client_identity",
    "connection_listener",
    "fetch_members",
    "log_subscription",
    "members_record",
    "occupancy_subscription",
    "presence_entry",
    "presence_subscription",
    "realtime_connection",
]
