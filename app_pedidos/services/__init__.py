# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Esta capa contiene TODA la lógica de negocio de la aplicación.
#
# PRINCIPIOS:
# 1. Los servicios orquestan operaciones entre repositorios
# 2. Aplican reglas de negocio y validaciones ANTES de escribir
# 3. Marcan el límite de la transacción (repo.transaction())
# 4. Las rutas solo llaman a servicios; los errores viajan como ServiceError
#
# ESTRUCTURA:
# ├── errors.py           → ServiceError + ErrorKind
# ├── order_service.py    → Compras (creación atómica, estado, detalle)
# ├── catalog_service.py  → Productos (baja lógica)
# ├── auth_service.py     → Tokens bearer, roles y permisos
# ├── audit_service.py    → Logs de actividad
# ├── stats_service.py    → Estadísticas de ventas
# └── image_service.py    → Comprobantes e imágenes de productos
# ==============================================================================

from app_pedidos.services.errors import (
    AuthError,
    CatalogError,
    ErrorKind,
    OrderError,
    ServiceError,
)
from app_pedidos.services.audit_service import AuditService
from app_pedidos.services.image_service import ImageStore, UploadedImage
from app_pedidos.services.order_service import OrderService
from app_pedidos.services.catalog_service import CatalogService
from app_pedidos.services.auth_service import AuthService, ROLE_PERMISSIONS
from app_pedidos.services.stats_service import StatsService

__all__ = [
    'ServiceError',
    'OrderError',
    'CatalogError',
    'AuthError',
    'ErrorKind',
    'AuditService',
    'ImageStore',
    'UploadedImage',
    'OrderService',
    'CatalogService',
    'AuthService',
    'ROLE_PERMISSIONS',
    'StatsService',
]
