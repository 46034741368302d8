# ==============================================================================
# ENTIDADES DEL DOMINIO - Modelos SQLAlchemy
# ==============================================================================
# Cada entidad representa un concepto del negocio y su tabla.
# Los montos se guardan como Numeric(10, 2) y se manejan como Decimal;
# to_dict() los convierte a float solo al serializar hacia JSON.
# ==============================================================================

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()


def utcnow() -> datetime:
    """Hora actual en UTC, sin tzinfo (igual en SQLite y PostgreSQL)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def money(value: Optional[Decimal]) -> float:
    """Convierte un monto Decimal a float con 2 decimales para JSON."""
    if value is None:
        return 0.0
    return float(Decimal(value).quantize(Decimal('0.01')))


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class PaymentMethod(str, Enum):
    """Métodos de pago aceptados en una compra."""
    CASH = "cash"
    TRANSFER = "transfer"  # Requiere comprobante


class UserRole(str, Enum):
    """Roles del panel de vendedores."""
    ADMIN = "admin"
    VENDEDOR = "vendedor"
    CAJERO = "cajero"


class AuditType(str, Enum):
    """Tipos de eventos de auditoría."""
    ORDER = "ORDER"
    PAYMENT = "PAYMENT"
    STOCK = "STOCK"
    PRODUCT = "PRODUCT"
    SYSTEM = "SYSTEM"


# ==============================================================================
# CATÁLOGO
# ==============================================================================

class Product(db.Model):
    """
    Producto vendible.

    Nunca se borra físicamente: "eliminar" pone active=False para que los
    detalles de compras históricas sigan apuntando a un producto existente.
    """
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))
    stock = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(60), nullable=False, index=True)
    subcategory = db.Column(db.String(60), nullable=True, index=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    # Ruta (/uploads/products/...) o data URI, según IMAGE_STORAGE
    image_url = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint('price >= 0', name='ck_products_price_positive'),
        db.CheckConstraint('stock >= 0', name='ck_products_stock_positive'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': money(self.price),
            'stock': self.stock,
            'category': self.category,
            'subcategory': self.subcategory,
            'active': self.active,
            'image_url': self.image_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


# ==============================================================================
# COMPRAS
# ==============================================================================

class Order(db.Model):
    """
    Compra registrada desde la tienda.

    Invariante: total == suma de los subtotales de sus items, siempre.
    paid y delivered son banderas independientes.
    """
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    buyer_name = db.Column(db.String(120), nullable=False)
    buyer_phone = db.Column(db.String(40), nullable=True)
    table_number = db.Column(db.Integer, nullable=True, index=True)
    payment_method = db.Column(db.String(20), nullable=False)
    total = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))
    receipt_image = db.Column(db.Text, nullable=True)
    note = db.Column(db.Text, nullable=True)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    delivered = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    items = db.relationship(
        'OrderItem',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderItem.id',
    )

    def to_dict(self, include_items: bool = True) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'buyer_name': self.buyer_name,
            'buyer_phone': self.buyer_phone,
            'table_number': self.table_number,
            'payment_method': self.payment_method,
            'total': money(self.total),
            'receipt_image': self.receipt_image,
            'note': self.note,
            'paid': self.paid,
            'delivered': self.delivered,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Detalle de una compra.
    unit_price es el precio del producto AL MOMENTO de la compra.
    """
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey('orders.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)

    order = db.relationship('Order', back_populates='items')
    product = db.relationship('Product', lazy='joined')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'order_id': self.order_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'unit_price': money(self.unit_price),
            'subtotal': money(self.subtotal),
        }


# ==============================================================================
# USUARIOS Y AUDITORÍA
# ==============================================================================

class User(db.Model):
    """Usuario del panel de vendedores. La contraseña se guarda hasheada."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.CAJERO.value)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Nunca incluye el hash de la contraseña."""
        return {
            'id': self.id,
            'username': self.username,
            'role': self.role,
            'active': self.active,
        }


class AuditLog(db.Model):
    """Registro de actividad con mensajes legibles."""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False, index=True)
    user = db.Column(db.String(80), nullable=False)
    message = db.Column(db.Text, nullable=False)
    related_id = db.Column(db.String(40), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'user': self.user,
            'message': self.message,
            'related_id': self.related_id,
            'details': self.details or {},
            'timestamp': self.created_at.isoformat() if self.created_at else None,
        }
