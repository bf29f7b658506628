from ordering.api.errors import register_error_handlers
from ordering.api.routes import order_router

__all__ = ["order_router", "register_error_handlers"]
