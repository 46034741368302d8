# ==============================================================================
# REPOSITORIO DE PRODUCTOS
# ==============================================================================
# Encapsula todo el acceso a la tabla products.
# El descuento de stock es CONDICIONAL: solo afecta la fila si todavía
# alcanza el stock, así dos compras simultáneas no pueden sobrevender.
# ==============================================================================

from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update

from app_pedidos.models import Product
from app_pedidos.repositories.base import BaseRepository
from app_pedidos.repositories.filters import ProductFilter


class ProductRepository(BaseRepository):
    """Repositorio para el catálogo de productos."""

    model = Product

    def list_products(self, product_filter: Optional[ProductFilter] = None) -> List[Product]:
        """
        Lista productos aplicando el filtro.

        Returns:
            Productos ordenados por categoría, subcategoría y nombre
        """
        product_filter = product_filter or ProductFilter()
        stmt = (
            select(Product)
            .where(*product_filter.predicates())
            .order_by(Product.category, Product.subcategory, Product.name)
        )
        return list(self.session.scalars(stmt))

    def get_active_for_update(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """
        Carga productos activos bloqueando sus filas (SELECT ... FOR UPDATE).

        En SQLite el bloqueo no aplica; la protección real contra la carrera
        es el descuento condicional de decrement_stock().

        Returns:
            Dict {product_id: Product} solo con los que existen y están activos
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = (
            select(Product)
            .where(Product.id.in_(ids), Product.active.is_(True))
            .with_for_update()
        )
        return {p.id: p for p in self.session.scalars(stmt)}

    def exists(self, product_id: int) -> bool:
        """True si el producto existe (activo o no)."""
        stmt = select(Product.id).where(Product.id == product_id)
        return self.session.execute(stmt).first() is not None

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Descuenta stock solo si el producto sigue activo y alcanza la cantidad.

        Args:
            product_id: ID del producto
            quantity: Cantidad a descontar (> 0)

        Returns:
            True si se descontó; False si otra transacción ganó la carrera
        """
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.active.is_(True),
                Product.stock >= quantity,
            )
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1
