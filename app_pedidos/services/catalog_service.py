# ==============================================================================
# SERVICIO DE CATÁLOGO
# ==============================================================================
# Alta, edición y baja lógica de productos.
# "Eliminar" un producto solo lo desactiva: las compras viejas siguen
# apuntando a él.
# ==============================================================================

from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from app_pedidos.models import Product
from app_pedidos.repositories.filters import ProductFilter, parse_bool
from app_pedidos.repositories.interfaces import IProductRepository
from app_pedidos.services.audit_service import AuditService
from app_pedidos.services.errors import CatalogError, ErrorKind
from app_pedidos.services.image_service import ImageStore, UploadedImage
from app_pedidos.services.order_service import to_decimal, to_int


# Campos de texto editables y su largo máximo
TEXT_FIELDS = {
    'name': 150,
    'description': None,
    'category': 60,
    'subcategory': 60,
}


class CatalogService:
    """
    Servicio para gestión del catálogo.

    Responsabilidades:
    - Listar productos (tienda pública y panel)
    - Crear / editar / desactivar productos
    - Guardar la imagen del producto según IMAGE_STORAGE
    """

    def __init__(
        self,
        product_repo: IProductRepository,
        audit_service: Optional[AuditService] = None,
        image_store: Optional[ImageStore] = None,
        image_max_bytes: int = 5 * 1024 * 1024
    ):
        self.product_repo = product_repo
        self.audit_service = audit_service
        self.image_store = image_store or ImageStore()
        self.image_max_bytes = image_max_bytes

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def list_products(self, product_filter: Optional[ProductFilter] = None) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.product_repo.list_products(product_filter)]

    def get_product(self, product_id: int) -> Dict[str, Any]:
        return self._require_product(product_id).to_dict()

    def _require_product(self, product_id: int) -> Product:
        product = self.product_repo.get_by_id(product_id)
        if product is None:
            raise CatalogError(ErrorKind.PRODUCT_NOT_FOUND, 'Producto no encontrado')
        return product

    # =========================================================================
    # VALIDACIÓN DE CAMPOS
    # =========================================================================

    def _parse_fields(self, data: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
        """
        Normaliza los campos recibidos (JSON o formulario).

        Args:
            data: Campos enviados por el cliente
            partial: True en edición (solo se validan los campos presentes)

        Returns:
            Dict con los valores ya convertidos

        Raises:
            CatalogError(missing-field / invalid-field)
        """
        fields: Dict[str, Any] = {}

        for field, max_len in TEXT_FIELDS.items():
            if field not in data:
                continue
            value = data.get(field)
            text = str(value).strip() if value is not None else ''
            if max_len and len(text) > max_len:
                raise CatalogError(
                    ErrorKind.INVALID_FIELD,
                    f'El campo {field} admite como máximo {max_len} caracteres'
                )
            fields[field] = text or None

        if 'price' in data and data.get('price') not in (None, ''):
            price = to_decimal(data.get('price'))
            if price is None or price < 0:
                raise CatalogError(ErrorKind.INVALID_FIELD, 'El precio debe ser un número mayor o igual a 0')
            fields['price'] = price

        if 'stock' in data and data.get('stock') not in (None, ''):
            stock = to_int(data.get('stock'))
            if stock is None or stock < 0:
                raise CatalogError(ErrorKind.INVALID_FIELD, 'El stock debe ser un entero mayor o igual a 0')
            fields['stock'] = stock

        if 'active' in data:
            try:
                active = parse_bool(data.get('active'))
            except ValueError:
                raise CatalogError(ErrorKind.INVALID_FIELD, 'El campo active debe ser booleano')
            if active is not None:
                fields['active'] = active

        # name y category no pueden quedar vacíos, ni al crear ni al editar
        required = ('name', 'category', 'price') if not partial else ()
        missing = [f for f in required if fields.get(f) is None]
        if missing:
            raise CatalogError(
                ErrorKind.MISSING_FIELD,
                f"Faltan datos obligatorios: {', '.join(missing)}"
            )
        for field in ('name', 'category'):
            if field in fields and fields[field] is None:
                raise CatalogError(ErrorKind.MISSING_FIELD, f'El campo {field} no puede quedar vacío')

        return fields

    def _store_image(self, image: Optional[UploadedImage]) -> Optional[str]:
        if image is None:
            return None
        if not self.image_store.is_allowed(image):
            raise CatalogError(
                ErrorKind.INVALID_FIELD,
                'Tipo de imagen no permitido (PNG, JPG, JPEG, GIF, WEBP)'
            )
        if image.size > self.image_max_bytes:
            raise CatalogError(
                ErrorKind.PAYLOAD_TOO_LARGE,
                f'La imagen supera el máximo de {self.image_max_bytes // (1024 * 1024)} MB'
            )
        return self.image_store.save_product_image(image)

    # =========================================================================
    # ALTA / EDICIÓN / BAJA
    # =========================================================================

    def create_product(
        self,
        data: Mapping[str, Any],
        image: Optional[UploadedImage] = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Crea un producto.

        Args:
            data: name, category, price obligatorios; description,
                  subcategory, stock (0) y active (True) opcionales
            image: Imagen del producto (opcional)
            actor: Usuario del panel

        Returns:
            Producto creado como dict
        """
        fields = self._parse_fields(data, partial=False)
        fields.setdefault('stock', 0)
        fields.setdefault('active', True)
        image_url = self._store_image(image)

        try:
            with self.product_repo.transaction():
                product = self.product_repo.add(Product(image_url=image_url, **fields))
                if self.audit_service:
                    self.audit_service.log_product_created(actor, product.id, product.name, product.stock)
                product_id = product.id
        except SQLAlchemyError as e:
            self.image_store.discard(image_url)
            raise CatalogError(ErrorKind.PERSISTENCE_FAILURE, 'Error al crear el producto') from e

        return self.get_product(product_id)

    def update_product(
        self,
        product_id: int,
        data: Mapping[str, Any],
        image: Optional[UploadedImage] = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Edita un producto. Los campos ausentes quedan como estaban; una
        imagen nueva reemplaza la anterior.
        """
        fields = self._parse_fields(data, partial=True)
        image_url = None

        try:
            with self.product_repo.transaction():
                product = self._require_product(product_id)
                image_url = self._store_image(image)
                if image_url:
                    fields['image_url'] = image_url

                old_stock = product.stock
                changed = [f for f, v in fields.items() if getattr(product, f) != v]
                for field, value in fields.items():
                    setattr(product, field, value)

                if self.audit_service and changed:
                    if 'stock' in changed:
                        self.audit_service.log_stock_change(
                            actor, product.id, product.name, old_stock, product.stock
                        )
                    self.audit_service.log_product_updated(actor, product.id, product.name, changed)
        except SQLAlchemyError as e:
            self.image_store.discard(image_url)
            raise CatalogError(ErrorKind.PERSISTENCE_FAILURE, 'Error al actualizar el producto') from e

        return self.get_product(product_id)

    def deactivate_product(self, product_id: int, actor: Optional[str] = None) -> None:
        """Baja lógica (active = False). Idempotente."""
        try:
            with self.product_repo.transaction():
                product = self._require_product(product_id)
                if product.active:
                    product.active = False
                    if self.audit_service:
                        self.audit_service.log_product_deactivated(actor, product.id, product.name)
        except SQLAlchemyError as e:
            raise CatalogError(ErrorKind.PERSISTENCE_FAILURE, 'Error al eliminar el producto') from e
