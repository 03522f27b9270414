from __future__ import annotations

from .storage.bans import GatewayBansMixin
from .storage.guilds import GatewayGuildsMixin
from .storage.personas import GatewayPersonasMixin
from .storage.schema import GatewaySchemaMixin
from .storage.sessions import GatewaySessionsMixin


class GatewayStore(
    GatewaySchemaMixin,
    GatewayBansMixin,
    GatewayGuildsMixin,
    GatewayPersonasMixin,
    GatewaySessionsMixin,
):
    """Durable gateway state: bans, guild overrides, tracked channels, personas, sessions and history."""

    backend_name = "sqlite"
