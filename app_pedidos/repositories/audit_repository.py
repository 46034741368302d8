# ==============================================================================
# REPOSITORIO DE AUDITORÍA
# ==============================================================================
# Encapsula el acceso a audit_logs.
# Los registros se agregan a la sesión SIN commit: quedan dentro de la misma
# transacción que la operación que describen.
# ==============================================================================

from typing import Any, Dict, List, Optional

from sqlalchemy import select

from app_pedidos.models import AuditLog
from app_pedidos.repositories.base import BaseRepository


class AuditRepository(BaseRepository):
    """
    Repositorio para el log de auditoría.

    Formato de cada registro:
        {
            "type": "ORDER",
            "user": "admin",
            "message": "Compra #12 registrada - Total: $ 200.00 - 1 items",
            "related_id": "12",
            "details": {...}
        }
    """

    model = AuditLog

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Registra un nuevo evento de auditoría.

        Args:
            log_type: Tipo de evento (ORDER, PAYMENT, STOCK, PRODUCT, SYSTEM)
            user: Usuario que realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (compra, producto, etc.)
            details: Detalles adicionales
        """
        entry = AuditLog(
            type=log_type,
            user=user or 'sistema',
            message=message,
            related_id=str(related_id) if related_id not in (None, '') else None,
            details=details or {},
        )
        self.session.add(entry)
        return entry

    def recent(self, limit: int = 100, log_type: Optional[str] = None) -> List[AuditLog]:
        """
        Últimos registros (más recientes primero).

        Args:
            limit: Máximo de registros
            log_type: Filtrar por tipo (opcional)
        """
        stmt = select(AuditLog)
        if log_type:
            stmt = stmt.where(AuditLog.type == log_type)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
        return list(self.session.scalars(stmt))

    def find_by_related(self, related_id: str) -> List[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.related_id == str(related_id))
            .order_by(AuditLog.id)
        )
        return list(self.session.scalars(stmt))
