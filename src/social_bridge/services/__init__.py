from .actors import ActorResolver
from .federation import FederationAdapter

__all__ = ["ActorResolver", "FederationAdapter"]
