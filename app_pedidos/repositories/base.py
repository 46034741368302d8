# ==============================================================================
# REPOSITORIO BASE - Funcionalidad común para acceso a la base de datos
# ==============================================================================

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from app_pedidos.models import db


class BaseRepository:
    """
    Clase base para todos los repositorios SQLAlchemy.

    Los repositorios NUNCA hacen commit por su cuenta: solo agregan, leen y
    modifican dentro de la sesión. El límite de la transacción lo marca el
    servicio con `with repo.transaction():`, así varias escrituras (compra +
    detalle + stock + auditoría) se confirman o se revierten juntas.
    """

    # Modelo SQLAlchemy que administra el repositorio
    model = None

    def __init__(self, session: Optional[Session] = None):
        """
        Args:
            session: Sesión explícita (tests). Por defecto db.session.
        """
        self._session = session

    @property
    def session(self) -> Session:
        return self._session if self._session is not None else db.session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Unidad de trabajo atómica.

        Confirma al salir sin errores. Ante CUALQUIER excepción (validación,
        error de BD, timeout) revierte todo y la relanza.
        """
        session = self.session
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise

    def get_by_id(self, record_id: Any) -> Optional[Any]:
        """
        Obtiene un registro por su ID.

        Returns:
            Instancia del modelo o None si no existe
        """
        return self.session.get(self.model, record_id)

    def add(self, record: Any) -> Any:
        """Agrega un registro a la sesión y asigna su ID (flush)."""
        self.session.add(record)
        self.session.flush()
        return record

    def delete(self, record: Any) -> None:
        self.session.delete(record)
        self.session.flush()
