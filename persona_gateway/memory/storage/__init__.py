from .bans import GatewayBansMixin
from .guilds import GatewayGuildsMixin
from .personas import GatewayPersonasMixin
from .schema import GatewaySchemaMixin
from .sessions import GatewaySessionsMixin

__all__ = [
    "GatewaySchemaMixin",
    "GatewayBansMixin",
    "GatewayGuildsMixin",
    "GatewayPersonasMixin",
    "GatewaySessionsMixin",
]
