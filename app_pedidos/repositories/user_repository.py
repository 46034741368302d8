# ==============================================================================
# REPOSITORIO DE USUARIOS
# ==============================================================================
# Solo persistencia. Hash de contraseñas y permisos viven en AuthService.
# ==============================================================================

from typing import Optional

from sqlalchemy import select

from app_pedidos.models import User
from app_pedidos.repositories.base import BaseRepository


class UserRepository(BaseRepository):
    """Repositorio para usuarios del panel."""

    model = User

    def get_user(self, username: str) -> Optional[User]:
        """
        Busca un usuario por nombre.

        Args:
            username: Nombre de usuario (sensible a mayúsculas)

        Returns:
            User o None si no existe
        """
        if not username:
            return None
        stmt = select(User).where(User.username == username)
        return self.session.scalars(stmt).first()

    def user_exists(self, username: str) -> bool:
        return self.get_user(username) is not None

    def create_user(self, username: str, password_hash: str, role: str) -> User:
        """Crea un usuario (sin commit)."""
        return self.add(User(username=username, password_hash=password_hash, role=role))
