# ==============================================================================
# SERVICIO DE COMPRAS
# ==============================================================================
# Centraliza toda la lógica de negocio de las compras:
# - Creación (validación + snapshot de precios + comprobante + commit atómico)
# - Cambios de estado (abonado / entregado)
# - Reemplazo del detalle y edición de datos del comprador
# - Eliminación
#
# REGLA CRÍTICA: toda validación ocurre ANTES de escribir. Si algo falla
# después de empezar a escribir, la transacción completa se revierte: nunca
# queda una compra sin sus items ni un descuento de stock sin compra.
# ==============================================================================

import json
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from app_pedidos.models import Order, PaymentMethod
from app_pedidos.performance_logger import profile_function
from app_pedidos.repositories.filters import OrderFilter
from app_pedidos.repositories.interfaces import IOrderRepository, IProductRepository
from app_pedidos.services.audit_service import AuditService
from app_pedidos.services.errors import ErrorKind, OrderError
from app_pedidos.services.image_service import (
    RECEIPT_MIMETYPES,
    UploadedImage,
    encode_data_uri,
)


CENT = Decimal('0.01')

# Métodos de pago válidos
PAYMENT_METHODS = frozenset(m.value for m in PaymentMethod)


def to_int(value: Any) -> Optional[int]:
    """
    Convierte a entero sin aceptar basura: '3' → 3, 3.0 → 3, '3.5' → None,
    True → None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convierte a Decimal (2 decimales) o None si no es numérico."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result.quantize(CENT)


class OrderService:
    """
    Servicio para gestión de compras.

    Responsabilidades:
    - Validar y registrar compras de la tienda (create_order)
    - Actualizar estado, detalle y datos del comprador
    - Consultar compras para el panel de vendedores
    """

    def __init__(
        self,
        order_repo: IOrderRepository,
        product_repo: IProductRepository,
        audit_service: Optional[AuditService] = None,
        table_range: Tuple[int, int] = (1, 50),
        receipt_max_bytes: int = 6 * 1024 * 1024
    ):
        """
        Args:
            order_repo: Repositorio de compras
            product_repo: Repositorio de productos
            audit_service: Servicio de auditoría (opcional)
            table_range: Mesas válidas (mínimo, máximo), inclusive
            receipt_max_bytes: Tamaño máximo del comprobante codificado
        """
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.audit_service = audit_service
        self.table_min, self.table_max = table_range
        self.receipt_max_bytes = receipt_max_bytes

    # =========================================================================
    # VALIDACIONES
    # =========================================================================

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def parse_table_number(self, value: Any) -> Optional[int]:
        """
        Valida el número de mesa.

        Returns:
            Número de mesa o None si no se envió

        Raises:
            OrderError(invalid-range): Si no es entero o está fuera de rango
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        table = to_int(value)
        if table is None or not (self.table_min <= table <= self.table_max):
            raise OrderError(
                ErrorKind.INVALID_RANGE,
                f'El número de mesa debe estar entre {self.table_min} y {self.table_max}'
            )
        return table

    @staticmethod
    def _load_list(items: Any) -> List[Any]:
        """Acepta lista o string JSON (multipart). Lista vacía = error."""
        if isinstance(items, (str, bytes)):
            try:
                items = json.loads(items)
            except ValueError:
                raise OrderError(ErrorKind.MALFORMED_LINE_ITEMS, 'El formato de productos es inválido')
        if not isinstance(items, list) or not items:
            raise OrderError(ErrorKind.MALFORMED_LINE_ITEMS, 'Debe incluir al menos un producto')
        return items

    def parse_line_items(self, items: Any) -> List[Tuple[int, int]]:
        """
        Parsea los items de una compra nueva.

        Args:
            items: [{product_id, quantity}, ...] como lista o string JSON

        Returns:
            Lista de (product_id, quantity)

        Raises:
            OrderError(malformed-line-items)
        """
        lines = []
        for raw in self._load_list(items):
            if not isinstance(raw, dict):
                raise OrderError(ErrorKind.MALFORMED_LINE_ITEMS, 'El formato de productos es inválido')
            product_id = to_int(raw.get('product_id'))
            quantity = to_int(raw.get('quantity'))
            if product_id is None or quantity is None or quantity < 1:
                raise OrderError(
                    ErrorKind.MALFORMED_LINE_ITEMS,
                    'Cada producto necesita product_id y una cantidad entera mayor a 0'
                )
            lines.append((product_id, quantity))
        return lines

    def parse_replacement_items(self, items: Any) -> List[Dict[str, Any]]:
        """
        Parsea el detalle completo que envía el panel al editar una compra.

        Cada item trae product_id, quantity, unit_price y subtotal ya
        calculados por el cliente.
        """
        parsed = []
        for raw in self._load_list(items):
            if not isinstance(raw, dict):
                raise OrderError(ErrorKind.MALFORMED_LINE_ITEMS, 'El formato de productos es inválido')
            product_id = to_int(raw.get('product_id'))
            quantity = to_int(raw.get('quantity'))
            unit_price = to_decimal(raw.get('unit_price'))
            subtotal = to_decimal(raw.get('subtotal'))
            if (product_id is None or quantity is None or quantity < 1
                    or unit_price is None or unit_price < 0
                    or subtotal is None or subtotal < 0):
                raise OrderError(
                    ErrorKind.MALFORMED_LINE_ITEMS,
                    'Cada producto necesita product_id, quantity, unit_price y subtotal válidos'
                )
            parsed.append({
                'product_id': product_id,
                'quantity': quantity,
                'unit_price': unit_price,
                'subtotal': subtotal,
            })
        return parsed

    def encode_receipt(self, receipt: UploadedImage) -> str:
        """
        Codifica el comprobante como data URI respetando el tamaño máximo.

        Raises:
            OrderError(invalid-receipt-type): Si no es JPG/PNG/WEBP
            OrderError(payload-too-large): Si el resultado excede el límite
        """
        if (receipt.mimetype or '').lower() not in RECEIPT_MIMETYPES:
            raise OrderError(
                ErrorKind.INVALID_RECEIPT_TYPE,
                'Solo se permiten archivos de imagen (JPG, PNG, WEBP)'
            )
        data_uri = encode_data_uri(receipt.data, receipt.mimetype.lower())
        if len(data_uri) > self.receipt_max_bytes:
            limit_mb = self.receipt_max_bytes / (1024 * 1024)
            raise OrderError(
                ErrorKind.PAYLOAD_TOO_LARGE,
                f'El comprobante es demasiado grande (máximo {limit_mb:.1f} MB codificado)'
            )
        return data_uri

    @staticmethod
    def _snapshot_prices(
        lines: List[Tuple[int, int]],
        products: Dict[int, Any]
    ) -> Dict[int, Decimal]:
        """
        Verifica existencia y stock de cada item, en orden. El primer item
        que falla aborta toda la compra.

        Las cantidades del mismo producto se suman antes de comparar con
        el stock.

        Returns:
            {product_id: precio unitario} leído en este momento
        """
        requested: Dict[int, int] = {}
        for product_id, quantity in lines:
            requested[product_id] = requested.get(product_id, 0) + quantity

        prices = {}
        for product_id, _ in lines:
            product = products.get(product_id)
            if product is None:
                raise OrderError(
                    ErrorKind.PRODUCT_NOT_FOUND,
                    f'El producto con ID {product_id} no existe o no está disponible'
                )
            if product.stock < requested[product_id]:
                raise OrderError(
                    ErrorKind.INSUFFICIENT_STOCK,
                    f'No hay suficiente stock de {product.name}. Stock disponible: {product.stock}'
                )
            prices[product_id] = Decimal(product.price).quantize(CENT)
        return prices

    @contextmanager
    def _unit_of_work(self, failure_message: str) -> Iterator[Any]:
        """
        Transacción de compras. Los errores de base se reportan como
        persistence-failure (la transacción ya quedó revertida).
        """
        try:
            with self.order_repo.transaction() as session:
                yield session
        except SQLAlchemyError as e:
            raise OrderError(ErrorKind.PERSISTENCE_FAILURE, failure_message) from e

    def _require_order(self, order_id: int) -> Order:
        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise OrderError(ErrorKind.ORDER_NOT_FOUND, 'Compra no encontrada')
        return order

    # =========================================================================
    # CREACIÓN DE COMPRAS
    # =========================================================================

    @profile_function(name="Crear compra")
    def create_order(
        self,
        buyer_name: Any,
        payment_method: Any,
        items: Any,
        buyer_phone: Any = None,
        table_number: Any = None,
        note: Any = None,
        receipt: Optional[UploadedImage] = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Registra una compra de la tienda.
        Esta es la ÚNICA función que crea compras.

        Orden de validación (falla en el primer error, sin efectos):
            1. buyer_name y payment_method obligatorios
            2. mesa dentro del rango configurado (si se envió)
            3. payment_method ∈ {cash, transfer}
            4. transfer exige comprobante
            5. items: lista no vacía de {product_id, quantity}
            6. cada producto existe, está activo y tiene stock
            7. total = Σ precio actual × cantidad
            8. comprobante codificado dentro del tamaño máximo

        Args:
            buyer_name: Nombre del comprador
            payment_method: 'cash' o 'transfer'
            items: [{product_id, quantity}, ...] (lista o string JSON)
            buyer_phone: Teléfono (opcional)
            table_number: Mesa (opcional)
            note: Detalle libre del pedido (opcional)
            receipt: Comprobante de pago (obligatorio para transfer)
            actor: Usuario autenticado, si lo hay

        Returns:
            Compra persistida como dict, con sus items

        Raises:
            OrderError: Con el kind correspondiente
        """
        name = self._clean_text(buyer_name)
        method = self._clean_text(payment_method)
        if not name or not method:
            raise OrderError(
                ErrorKind.MISSING_FIELD,
                'Faltan datos obligatorios: buyer_name y payment_method'
            )

        table = self.parse_table_number(table_number)

        method = method.lower()
        if method not in PAYMENT_METHODS:
            raise OrderError(
                ErrorKind.INVALID_PAYMENT_METHOD,
                'El método de pago debe ser "cash" o "transfer"'
            )

        if method == PaymentMethod.TRANSFER.value and receipt is None:
            raise OrderError(
                ErrorKind.MISSING_RECEIPT,
                'Para transferencia es obligatorio subir el comprobante'
            )

        lines = self.parse_line_items(items)

        with self._unit_of_work('Error al procesar la compra'):
            products = self.product_repo.get_active_for_update(pid for pid, _ in lines)
            prices = self._snapshot_prices(lines, products)

            total = sum((prices[pid] * qty for pid, qty in lines), Decimal('0')).quantize(CENT)

            receipt_uri = self.encode_receipt(receipt) if receipt is not None else None

            order = self.order_repo.add(Order(
                buyer_name=name,
                buyer_phone=self._clean_text(buyer_phone),
                table_number=table,
                payment_method=method,
                total=total,
                receipt_image=receipt_uri,
                note=self._clean_text(note),
            ))

            # El precio unitario es el snapshot de la validación, no se relee
            for product_id, quantity in lines:
                unit_price = prices[product_id]
                self.order_repo.add_item(
                    order, product_id, quantity, unit_price, (unit_price * quantity).quantize(CENT)
                )
                if not self.product_repo.decrement_stock(product_id, quantity):
                    # Otra compra se llevó el stock entre la lectura y el descuento
                    raise OrderError(
                        ErrorKind.INSUFFICIENT_STOCK,
                        f'No hay suficiente stock del producto {products[product_id].name}'
                    )

            if self.audit_service:
                self.audit_service.log_order_created(actor, order.id, total, method, len(lines))

            order_id = order.id

        return self.get_order(order_id)

    # =========================================================================
    # CAMBIOS SOBRE COMPRAS EXISTENTES
    # =========================================================================

    def update_status(
        self,
        order_id: int,
        paid: Any = None,
        delivered: Any = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Fija abonado y/o entregado (asignación, no alternancia).

        Solo se consideran valores booleanos reales; cualquier otro valor es
        ignorado. Debe venir al menos uno.

        Raises:
            OrderError(missing-field): Si no vino ningún booleano
            OrderError(order-not-found)
        """
        updates = {
            field: value
            for field, value in (('paid', paid), ('delivered', delivered))
            if isinstance(value, bool)
        }
        if not updates:
            raise OrderError(
                ErrorKind.MISSING_FIELD,
                'Debe proporcionar al menos un campo a actualizar (paid o delivered)'
            )

        with self._unit_of_work('Error al actualizar el estado de la compra'):
            order = self._require_order(order_id)
            changes = {}
            for field, value in updates.items():
                old = getattr(order, field)
                setattr(order, field, value)
                if old != value:
                    changes[field] = (old, value)
            if changes and self.audit_service:
                self.audit_service.log_status_change(actor, order.id, changes)

        return self.get_order(order_id)

    @profile_function(name="Reemplazar detalle de compra")
    def replace_items(
        self,
        order_id: int,
        items: Any,
        actor: Optional[str] = None
    ) -> Decimal:
        """
        Reemplaza el detalle completo de una compra y recalcula el total.

        Borrado + inserción + total en una sola transacción.
        NO revalida ni ajusta stock con las nuevas cantidades.

        Args:
            order_id: ID de la compra
            items: [{product_id, quantity, unit_price, subtotal}, ...]

        Returns:
            Nuevo total (suma de los subtotales recibidos)
        """
        self._require_order(order_id)
        replacement = self.parse_replacement_items(items)

        with self._unit_of_work('Error al actualizar los productos') as session:
            order = self._require_order(order_id)
            for item in replacement:
                if not self.product_repo.exists(item['product_id']):
                    raise OrderError(
                        ErrorKind.PRODUCT_NOT_FOUND,
                        f"Producto con ID {item['product_id']} no encontrado"
                    )

            old_total = Decimal(order.total or 0)
            self.order_repo.delete_items(order.id)
            session.expire(order, ['items'])

            for item in replacement:
                self.order_repo.add_item(
                    order,
                    item['product_id'],
                    item['quantity'],
                    item['unit_price'],
                    item['subtotal'],
                )
            session.flush()

            new_total = self.order_repo.items_total(order.id).quantize(CENT)
            order.total = new_total

            if self.audit_service:
                self.audit_service.log_items_replaced(
                    actor, order.id, old_total, new_total, len(replacement)
                )

        return new_total

    def update_buyer_info(
        self,
        order_id: int,
        buyer_name: Any = None,
        buyer_phone: Any = None,
        table_number: Any = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Edición parcial de los datos del comprador.
        Los campos en None quedan como estaban.

        Raises:
            OrderError(missing-field): buyer_name enviado vacío
            OrderError(invalid-range): mesa fuera de rango
            OrderError(order-not-found)
        """
        fields: Dict[str, Any] = {}
        if buyer_name is not None:
            name = self._clean_text(buyer_name)
            if not name:
                raise OrderError(ErrorKind.MISSING_FIELD, 'El nombre del comprador no puede quedar vacío')
            fields['buyer_name'] = name
        if buyer_phone is not None:
            fields['buyer_phone'] = self._clean_text(buyer_phone)
        table = self.parse_table_number(table_number)
        if table is not None:
            fields['table_number'] = table

        with self._unit_of_work('Error al actualizar la compra'):
            order = self._require_order(order_id)
            for field, value in fields.items():
                setattr(order, field, value)
            if fields and self.audit_service:
                self.audit_service.log_buyer_updated(actor, order.id, fields)

        return self.get_order(order_id)

    def delete_order(self, order_id: int, actor: Optional[str] = None) -> None:
        """
        Elimina una compra y, en cascada, su detalle.
        El stock descontado NO se repone.
        """
        with self._unit_of_work('Error al eliminar la compra'):
            order = self._require_order(order_id)
            total = Decimal(order.total or 0)
            self.order_repo.delete(order)
            if self.audit_service:
                self.audit_service.log_order_deleted(actor, order_id, total)

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_order(self, order_id: int) -> Dict[str, Any]:
        """
        Raises:
            OrderError(order-not-found)
        """
        order = self.order_repo.get_with_items(order_id)
        if order is None:
            raise OrderError(ErrorKind.ORDER_NOT_FOUND, 'Compra no encontrada')
        return order.to_dict()

    def list_orders(self, order_filter: Optional[OrderFilter] = None) -> List[Dict[str, Any]]:
        return [order.to_dict() for order in self.order_repo.list_orders(order_filter)]
