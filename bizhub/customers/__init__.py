from .service import CustomerService
from .routes import customers_router

__all__ = ["CustomerService", "customers_router"]
