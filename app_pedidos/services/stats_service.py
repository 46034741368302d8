# ==============================================================================
# SERVICIO DE ESTADÍSTICAS DE VENTAS
# ==============================================================================
# Resumen para el panel: totales, desglose por método de pago y productos
# más vendidos. Cuenta TODAS las compras registradas (abonadas o no).
# ==============================================================================

from typing import Any, Dict

from app_pedidos.models import money
from app_pedidos.repositories.interfaces import IOrderRepository


class StatsService:
    """Servicio para estadísticas de ventas."""

    # Cantidad de productos en el ranking
    TOP_PRODUCTS = 10

    def __init__(self, order_repo: IOrderRepository):
        self.order_repo = order_repo

    def sales_summary(self) -> Dict[str, Any]:
        """
        Calcula el resumen de ventas.

        Returns:
            {
                'total_orders': int,
                'total_amount': float,
                'by_payment_method': [{payment_method, count, amount}],
                'top_products': [{product_id, name, quantity_sold, amount}]
            }
        """
        totals = self.order_repo.totals()
        by_method = self.order_repo.totals_by_payment_method()
        top = self.order_repo.top_products(self.TOP_PRODUCTS)

        return {
            'total_orders': totals['count'],
            'total_amount': money(totals['amount']),
            'by_payment_method': [
                {**row, 'amount': money(row['amount'])} for row in by_method
            ],
            'top_products': [
                {**row, 'amount': money(row['amount'])} for row in top
            ],
        }
