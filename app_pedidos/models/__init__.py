# ==============================================================================
# CAPA DE MODELOS - Tablas y enumeraciones del sistema
# ==============================================================================

from .entities import (
    db,
    utcnow,
    money,

    # Enumeraciones
    PaymentMethod,
    UserRole,
    AuditType,

    # Catálogo
    Product,

    # Compras
    Order,
    OrderItem,

    # Usuarios y auditoría
    User,
    AuditLog,
)

__all__ = [
    'db',
    'utcnow',
    'money',
    'PaymentMethod',
    'UserRole',
    'AuditType',
    'Product',
    'Order',
    'OrderItem',
    'User',
    'AuditLog',
]
