# ==============================================================================
# SERVICIO DE AUDITORÍA
# ==============================================================================
# Centraliza el registro de auditoría con mensajes humanizados.
# No hace commit: cada registro viaja en la transacción de la operación.
# ==============================================================================

from decimal import Decimal
from typing import Any, Dict, List, Optional

from app_pedidos.models import AuditType
from app_pedidos.repositories.interfaces import IAuditRepository


# Usuario para acciones de la tienda pública (compradores sin cuenta)
PUBLIC_USER = 'public'


class AuditService:
    """
    Servicio para registro y consulta de auditoría.

    Categorías: ORDER, PAYMENT, STOCK, PRODUCT, SYSTEM.
    La regla de oro: si cambia el estado de pago → siempre log de PAYMENT.
    """

    def __init__(self, audit_repo: IAuditRepository):
        self.audit_repo = audit_repo

    def log(
        self,
        log_type: AuditType,
        user: Optional[str],
        message: str,
        related_id: Any = '',
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Registra un evento de auditoría genérico.

        Args:
            log_type: Tipo de evento
            user: Usuario que realizó la acción (None = tienda pública)
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (compra, producto)
            details: Detalles adicionales (solo tipos JSON)
        """
        self.audit_repo.log(
            log_type.value,
            user or PUBLIC_USER,
            message,
            related_id,
            details,
        )

    # =========================================================================
    # COMPRAS
    # =========================================================================

    def log_order_created(
        self,
        user: Optional[str],
        order_id: int,
        total: Decimal,
        payment_method: str,
        items_count: int
    ) -> None:
        message = (
            f"Compra #{order_id} registrada por {user or PUBLIC_USER} - "
            f"Total: $ {total:.2f} - {items_count} items - Pago: {payment_method}"
        )
        self.log(
            AuditType.ORDER,
            user,
            message,
            order_id,
            {'total': str(total), 'payment_method': payment_method, 'items_count': items_count},
        )

    def log_status_change(self, user: str, order_id: int, changes: Dict[str, Any]) -> None:
        """
        Registra cambios de abonado/entregado.

        Args:
            changes: {'paid': (antes, después), 'delivered': (antes, después)}
        """
        for field, (old, new) in changes.items():
            label = 'Abonado' if field == 'paid' else 'Entregado'
            log_type = AuditType.PAYMENT if field == 'paid' else AuditType.ORDER
            message = f"Compra #{order_id}: {label} {_yes_no(old)} → {_yes_no(new)} por {user}"
            self.log(log_type, user, message, order_id, {'field': field, 'from': old, 'to': new})

    def log_items_replaced(
        self,
        user: str,
        order_id: int,
        old_total: Decimal,
        new_total: Decimal,
        items_count: int
    ) -> None:
        message = (
            f"Compra #{order_id}: detalle reemplazado por {user} "
            f"({items_count} items) - Total $ {old_total:.2f} → $ {new_total:.2f}"
        )
        self.log(
            AuditType.ORDER,
            user,
            message,
            order_id,
            {'from': str(old_total), 'to': str(new_total), 'items_count': items_count},
        )

    def log_buyer_updated(self, user: str, order_id: int, fields: Dict[str, Any]) -> None:
        changed = ', '.join(sorted(fields)) or 'sin cambios'
        message = f"Compra #{order_id}: datos del comprador editados por {user} ({changed})"
        self.log(AuditType.ORDER, user, message, order_id, {'fields': fields})

    def log_order_deleted(self, user: str, order_id: int, total: Decimal) -> None:
        message = f"Compra #{order_id} eliminada por {user} - Total: $ {total:.2f} (stock no repuesto)"
        self.log(AuditType.ORDER, user, message, order_id, {'total': str(total)})

    # =========================================================================
    # PRODUCTOS
    # =========================================================================

    def log_product_created(self, user: str, product_id: int, name: str, stock: int) -> None:
        message = f"Producto #{product_id} '{name}' creado por {user} con stock {stock}"
        self.log(AuditType.PRODUCT, user, message, product_id, {'stock': stock})

    def log_product_updated(self, user: str, product_id: int, name: str, fields: List[str]) -> None:
        message = f"Producto #{product_id} '{name}' editado por {user} ({', '.join(sorted(fields))})"
        self.log(AuditType.PRODUCT, user, message, product_id, {'fields': sorted(fields)})

    def log_stock_change(self, user: str, product_id: int, name: str, old: int, new: int) -> None:
        message = f"Stock de '{name}': {old} → {new} por {user}"
        self.log(AuditType.STOCK, user, message, product_id, {'from': old, 'to': new})

    def log_product_deactivated(self, user: str, product_id: int, name: str) -> None:
        message = f"Producto #{product_id} '{name}' desactivado por {user}"
        self.log(AuditType.PRODUCT, user, message, product_id)

    # =========================================================================
    # SISTEMA
    # =========================================================================

    def log_user_login(self, username: str) -> None:
        self.log(AuditType.SYSTEM, username, f"Inicio de sesión de {username}", '')

    def log_user_created(self, created_by: str, username: str, role: str) -> None:
        message = f"Usuario {username} creado con rol {role} por {created_by}"
        self.log(AuditType.SYSTEM, created_by, message, '', {'username': username, 'role': role})

    # =========================================================================
    # CONSULTA
    # =========================================================================

    def recent(self, limit: int = 100, log_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.audit_repo.recent(limit, log_type)]


def _yes_no(value: Any) -> str:
    return 'sí' if value else 'no'
