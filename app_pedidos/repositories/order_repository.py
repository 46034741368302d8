# ==============================================================================
# REPOSITORIO DE COMPRAS
# ==============================================================================
# Encapsula el acceso a orders y order_items.
# Las agregaciones para estadísticas también viven acá: son consultas puras.
# ==============================================================================

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from app_pedidos.models import Order, OrderItem, Product
from app_pedidos.repositories.base import BaseRepository
from app_pedidos.repositories.filters import OrderFilter


class OrderRepository(BaseRepository):
    """Repositorio para compras y su detalle."""

    model = Order

    def get_with_items(self, order_id: int) -> Optional[Order]:
        """
        Obtiene una compra con sus items (y el nombre de cada producto).

        Returns:
            Order o None si no existe
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items).joinedload(OrderItem.product))
        )
        return self.session.scalars(stmt).first()

    def list_orders(self, order_filter: Optional[OrderFilter] = None) -> List[Order]:
        """
        Lista compras aplicando el filtro, más recientes primero.
        """
        order_filter = order_filter or OrderFilter()
        stmt = (
            select(Order)
            .where(*order_filter.predicates())
            .options(selectinload(Order.items).joinedload(OrderItem.product))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(self.session.scalars(stmt))

    def add_item(
        self,
        order: Order,
        product_id: int,
        quantity: int,
        unit_price: Decimal,
        subtotal: Decimal
    ) -> OrderItem:
        """Agrega un item de detalle a la compra (sin commit)."""
        item = OrderItem(
            order_id=order.id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=subtotal,
        )
        self.session.add(item)
        return item

    def delete_items(self, order_id: int) -> int:
        """
        Borra todos los items de una compra.

        Returns:
            Cantidad de items borrados
        """
        stmt = (
            delete(OrderItem)
            .where(OrderItem.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def items_total(self, order_id: int) -> Decimal:
        """Suma de subtotales tal como está en la base."""
        stmt = select(func.coalesce(func.sum(OrderItem.subtotal), 0)).where(
            OrderItem.order_id == order_id
        )
        return Decimal(str(self.session.execute(stmt).scalar_one()))

    # =========================================================================
    # AGREGACIONES (estadísticas)
    # =========================================================================

    def totals(self) -> Dict[str, Any]:
        """Cantidad de compras y monto total."""
        stmt = select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
        count, amount = self.session.execute(stmt).one()
        return {'count': int(count), 'amount': Decimal(str(amount))}

    def totals_by_payment_method(self) -> List[Dict[str, Any]]:
        """Cantidad y monto agrupados por método de pago."""
        stmt = (
            select(
                Order.payment_method,
                func.count(Order.id),
                func.coalesce(func.sum(Order.total), 0),
            )
            .group_by(Order.payment_method)
            .order_by(Order.payment_method)
        )
        return [
            {'payment_method': method, 'count': int(count), 'amount': Decimal(str(amount))}
            for method, count, amount in self.session.execute(stmt)
        ]

    def top_products(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Productos más vendidos por cantidad."""
        quantity_sold = func.sum(OrderItem.quantity).label('quantity_sold')
        stmt = (
            select(
                Product.id,
                Product.name,
                quantity_sold,
                func.coalesce(func.sum(OrderItem.subtotal), 0),
            )
            .select_from(OrderItem)
            .join(Product, OrderItem.product_id == Product.id)
            .group_by(Product.id, Product.name)
            .order_by(quantity_sold.desc(), Product.name)
            .limit(limit)
        )
        return [
            {
                'product_id': pid,
                'name': name,
                'quantity_sold': int(qty or 0),
                'amount': Decimal(str(amount)),
            }
            for pid, name, qty, amount in self.session.execute(stmt)
        ]
