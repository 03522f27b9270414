from .store import GatewayStore

__all__ = ["GatewayStore"]
