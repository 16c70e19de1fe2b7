from .settings import SocialBridgeSettings

__all__ = ["SocialBridgeSettings"]
