# ==============================================================================
# INTERFACES DE REPOSITORIOS
# ==============================================================================
#
# Los servicios dependen de estos protocolos, NO de las clases concretas.
# Esto permite:
#
# 1. INDEPENDENCIA DE ALMACENAMIENTO
#    - SQLite en desarrollo, PostgreSQL en producción, sin tocar servicios
#
# 2. TESTING
#    - Cualquier doble que cumpla el protocolo sirve como repositorio
#
# ==============================================================================

from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class IRepository(Protocol):
    """Operaciones mínimas de cualquier repositorio."""

    def transaction(self) -> AbstractContextManager:
        """Unidad de trabajo: commit al salir, rollback ante excepción."""
        ...

    def get_by_id(self, record_id: Any) -> Optional[Any]:
        ...

    def add(self, record: Any) -> Any:
        ...

    def delete(self, record: Any) -> None:
        ...


@runtime_checkable
class IProductRepository(IRepository, Protocol):
    """Catálogo de productos."""

    def list_products(self, product_filter: Any = None) -> List[Any]:
        ...

    def get_active_for_update(self, product_ids: Iterable[int]) -> Dict[int, Any]:
        """Productos activos con bloqueo de fila."""
        ...

    def exists(self, product_id: int) -> bool:
        ...

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """Descuento condicional; False si no alcanzó el stock."""
        ...


@runtime_checkable
class IOrderRepository(IRepository, Protocol):
    """Compras y su detalle."""

    def get_with_items(self, order_id: int) -> Optional[Any]:
        ...

    def list_orders(self, order_filter: Any = None) -> List[Any]:
        ...

    def add_item(
        self,
        order: Any,
        product_id: int,
        quantity: int,
        unit_price: Decimal,
        subtotal: Decimal
    ) -> Any:
        ...

    def delete_items(self, order_id: int) -> int:
        ...

    def items_total(self, order_id: int) -> Decimal:
        ...


@runtime_checkable
class IUserRepository(IRepository, Protocol):
    """Usuarios del panel."""

    def get_user(self, username: str) -> Optional[Any]:
        ...

    def user_exists(self, username: str) -> bool:
        ...

    def create_user(self, username: str, password_hash: str, role: str) -> Any:
        ...


@runtime_checkable
class IAuditRepository(IRepository, Protocol):
    """Registro de auditoría."""

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None
    ) -> Any:
        ...

    def recent(self, limit: int = 100, log_type: Optional[str] = None) -> List[Any]:
        ...
