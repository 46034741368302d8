# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso a datos
# ==============================================================================
# Esta capa encapsula todo el acceso a la base (SQLAlchemy).
# Los servicios solo conocen los métodos públicos, nunca el SQL.
#
# ESTRUCTURA:
# ├── interfaces.py          → Protocolos (contratos)
# ├── base.py                → BaseRepository + transaction()
# ├── filters.py             → OrderFilter / ProductFilter (predicados)
# ├── product_repository.py  → products
# ├── order_repository.py    → orders + order_items
# ├── user_repository.py     → users
# └── audit_repository.py    → audit_logs
# ==============================================================================

from app_pedidos.repositories.interfaces import (
    IRepository,
    IProductRepository,
    IOrderRepository,
    IUserRepository,
    IAuditRepository,
)

from app_pedidos.repositories.base import BaseRepository
from app_pedidos.repositories.filters import OrderFilter, ProductFilter
from app_pedidos.repositories.product_repository import ProductRepository
from app_pedidos.repositories.order_repository import OrderRepository
from app_pedidos.repositories.user_repository import UserRepository
from app_pedidos.repositories.audit_repository import AuditRepository

__all__ = [
    # Interfaces
    'IRepository',
    'IProductRepository',
    'IOrderRepository',
    'IUserRepository',
    'IAuditRepository',

    # Base y filtros
    'BaseRepository',
    'OrderFilter',
    'ProductFilter',

    # Implementaciones
    'ProductRepository',
    'OrderRepository',
    'UserRepository',
    'AuditRepository',
]
