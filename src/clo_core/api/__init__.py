# CLO Core - API
#
# FastAPI app factory, routers and session authentication.

from .main import create_app, start_api_server
from .security import SessionRegistry, bearer_token, get_current_user
from .services import Services, build_services, get_services

__all__ = [
    "create_app",
    "start_api_server",
    "SessionRegistry",
    "get_current_user",
    "bearer_token",
    "Services",
    "build_services",
    "get_services",
]
