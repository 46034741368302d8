# ==============================================================================
# FILTROS DE CONSULTA - Predicados parametrizados
# ==============================================================================
# En lugar de concatenar SQL según los filtros que lleguen en la URL, cada
# listado recibe un objeto de filtro que produce expresiones SQLAlchemy.
# Los valores siempre viajan como parámetros ligados, nunca en el texto SQL.
# ==============================================================================

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, List, Mapping, Optional

from app_pedidos.models import Order, Product


_TRUE_VALUES = ('1', 'true', 'yes', 'si', 'sí')
_FALSE_VALUES = ('0', 'false', 'no')


def parse_bool(value: Any) -> Optional[bool]:
    """
    Interpreta un booleano de query string o formulario.

    Returns:
        True/False, o None si viene vacío

    Raises:
        ValueError: Si el texto no es un booleano reconocible
    """
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == '':
        return None
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Valor booleano inválido: {value}")


def parse_datetime(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parsea una fecha ISO (YYYY-MM-DD o fecha-hora completa).

    Con end_of_day=True una fecha sin hora se convierte en el inicio del día
    siguiente, para usarla como límite exclusivo ("hasta" incluye todo el día).

    Raises:
        ValueError: Si el formato no es ISO
    """
    if not value:
        return None
    text = value.strip()
    if len(text) == 10:
        day = date.fromisoformat(text)
        start = datetime(day.year, day.month, day.day)
        return start + timedelta(days=1) if end_of_day else start
    parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    # Las fechas se guardan en UTC sin tzinfo
    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


@dataclass
class OrderFilter:
    """
    Filtros del listado de compras (panel de vendedores).

    Attributes:
        date_from: Desde (inclusive)
        date_to: Hasta (exclusivo; una fecha sin hora cubre el día entero)
        table_number: Número de mesa exacto
        paid: Solo abonadas / no abonadas
        delivered: Solo entregadas / no entregadas
    """
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    table_number: Optional[int] = None
    paid: Optional[bool] = None
    delivered: Optional[bool] = None

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> 'OrderFilter':
        """
        Construye el filtro desde request.args.

        Raises:
            ValueError: Si algún valor tiene formato inválido
        """
        table = (args.get('table') or args.get('table_number') or '').strip()
        return cls(
            date_from=parse_datetime(args.get('date_from')),
            date_to=parse_datetime(args.get('date_to'), end_of_day=True),
            table_number=int(table) if table else None,
            paid=parse_bool(args.get('paid')),
            delivered=parse_bool(args.get('delivered')),
        )

    def predicates(self) -> List[Any]:
        clauses = []
        if self.date_from is not None:
            clauses.append(Order.created_at >= self.date_from)
        if self.date_to is not None:
            clauses.append(Order.created_at < self.date_to)
        if self.table_number is not None:
            clauses.append(Order.table_number == self.table_number)
        if self.paid is not None:
            clauses.append(Order.paid.is_(self.paid))
        if self.delivered is not None:
            clauses.append(Order.delivered.is_(self.delivered))
        return clauses


@dataclass
class ProductFilter:
    """Filtros del catálogo (público y panel)."""
    category: Optional[str] = None
    subcategory: Optional[str] = None
    include_inactive: bool = False

    @classmethod
    def from_args(cls, args: Mapping[str, Any], allow_inactive: bool = False) -> 'ProductFilter':
        include_inactive = bool(parse_bool(args.get('include_inactive'))) if allow_inactive else False
        return cls(
            category=(args.get('category') or '').strip() or None,
            subcategory=(args.get('subcategory') or '').strip() or None,
            include_inactive=include_inactive,
        )

    def predicates(self) -> List[Any]:
        clauses = []
        if not self.include_inactive:
            clauses.append(Product.active.is_(True))
        if self.category:
            clauses.append(Product.category == self.category)
        if self.subcategory:
            clauses.append(Product.subcategory == self.subcategory)
        return clauses
