from src.domain.models import RequestContext, User

__all__ = ["RequestContext", "User"]
