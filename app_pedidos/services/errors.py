# ==============================================================================
# ERRORES DE NEGOCIO
# ==============================================================================
# Los servicios lanzan ServiceError (o una subclase) con un tipo verificable
# por máquina (kind), un mensaje legible y el código HTTP que le corresponde.
# Las rutas no arman respuestas de error: el errorhandler de main.py lo hace.
# ==============================================================================

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Tipos de error que puede recibir el cliente."""
    # Validación (400)
    MISSING_FIELD = "missing-field"
    INVALID_FIELD = "invalid-field"
    INVALID_RANGE = "invalid-range"
    INVALID_PAYMENT_METHOD = "invalid-payment-method"
    MISSING_RECEIPT = "missing-receipt"
    INVALID_RECEIPT_TYPE = "invalid-receipt-type"
    MALFORMED_LINE_ITEMS = "malformed-line-items"
    INSUFFICIENT_STOCK = "insufficient-stock"

    # No encontrado (404)
    PRODUCT_NOT_FOUND = "product-not-found"
    ORDER_NOT_FOUND = "order-not-found"

    # Autenticación / permisos
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"

    PAYLOAD_TOO_LARGE = "payload-too-large"
    PERSISTENCE_FAILURE = "persistence-failure"


# Código HTTP por tipo de error
STATUS_BY_KIND = {
    ErrorKind.MISSING_FIELD: 400,
    ErrorKind.INVALID_FIELD: 400,
    ErrorKind.INVALID_RANGE: 400,
    ErrorKind.INVALID_PAYMENT_METHOD: 400,
    ErrorKind.MISSING_RECEIPT: 400,
    ErrorKind.INVALID_RECEIPT_TYPE: 400,
    ErrorKind.MALFORMED_LINE_ITEMS: 400,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.PRODUCT_NOT_FOUND: 404,
    ErrorKind.ORDER_NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.PERSISTENCE_FAILURE: 500,
}


class ServiceError(Exception):
    """
    Error de negocio con tipo y código HTTP.

    Attributes:
        kind: Tipo de error (ErrorKind)
        message: Mensaje legible para el usuario
        status: Código HTTP (derivado del kind si no se indica)
    """

    def __init__(self, kind: ErrorKind, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status or STATUS_BY_KIND.get(kind, 400)

    def to_dict(self):
        return {
            'success': False,
            'kind': self.kind.value,
            'message': self.message,
        }


class OrderError(ServiceError):
    """Error al crear o modificar una compra."""
    pass


class CatalogError(ServiceError):
    """Error en la gestión de productos."""
    pass


class AuthError(ServiceError):
    """Token ausente/inválido o permisos insuficientes."""
    pass
