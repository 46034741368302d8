# ==============================================================================
# SERVICIO DE AUTENTICACIÓN
# ==============================================================================
# Token bearer firmado (itsdangerous), sin estado en el servidor:
# el cliente guarda el token y lo manda en cada request del panel.
#
#   Authorization: Bearer <token>
#
# Los permisos salen de una tabla estática rol → permisos. No hay permisos
# por usuario ni edición de roles desde la API.
# ==============================================================================

from typing import Any, Dict, FrozenSet, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from app_pedidos.models import UserRole
from app_pedidos.repositories.interfaces import IUserRepository
from app_pedidos.services.audit_service import AuditService
from app_pedidos.services.errors import AuthError, ErrorKind


# =========================================================================
# PERMISOS
# =========================================================================
VIEW_ORDERS = 'view_orders'
EDIT_ORDERS = 'edit_orders'
DELETE_ORDERS = 'delete_orders'
MANAGE_CATALOG = 'manage_catalog'

ROLE_PERMISSIONS = {
    UserRole.ADMIN.value: frozenset([VIEW_ORDERS, EDIT_ORDERS, DELETE_ORDERS, MANAGE_CATALOG]),
    UserRole.VENDEDOR.value: frozenset([VIEW_ORDERS, EDIT_ORDERS, MANAGE_CATALOG]),
    UserRole.CAJERO.value: frozenset([VIEW_ORDERS, EDIT_ORDERS]),
}

VALID_ROLES = frozenset(ROLE_PERMISSIONS)


class AuthService:
    """
    Servicio de autenticación y permisos.

    Responsabilidades:
    - Login (usuario + contraseña hasheada con werkzeug)
    - Emitir y verificar tokens bearer
    - Resolver permisos por rol
    - Alta de usuarios (comando create-user)
    """

    TOKEN_SALT = 'app-pedidos-auth'

    def __init__(
        self,
        user_repo: IUserRepository,
        audit_service: Optional[AuditService] = None,
        secret_key: str = '',
        token_max_age: int = 8 * 60 * 60
    ):
        """
        Args:
            user_repo: Repositorio de usuarios
            audit_service: Servicio de auditoría (opcional)
            secret_key: Clave de firma (SECRET_KEY de la app)
            token_max_age: Validez del token en segundos
        """
        self.user_repo = user_repo
        self.audit_service = audit_service
        self.token_max_age = token_max_age
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.TOKEN_SALT)

    # =========================================================================
    # LOGIN
    # =========================================================================

    def authenticate(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Verifica credenciales.

        Returns:
            Usuario como dict, o None si no existe, está inactivo o la
            contraseña no coincide
        """
        if not username or not password:
            return None
        user = self.user_repo.get_user(username)
        if user is None or not user.active:
            return None
        if not check_password_hash(user.password_hash, password):
            return None

        if self.audit_service:
            with self.user_repo.transaction():
                self.audit_service.log_user_login(user.username)
        return user.to_dict()

    # =========================================================================
    # TOKENS
    # =========================================================================

    def issue_token(self, user: Dict[str, Any]) -> str:
        """Firma {uid, role} con marca de tiempo."""
        return self._serializer.dumps({'uid': user['id'], 'role': user['role']})

    def verify_token(self, token: Optional[str]) -> Dict[str, Any]:
        """
        Valida firma y vencimiento del token y recarga el usuario.

        Returns:
            Usuario como dict (con su lista de permisos)

        Raises:
            AuthError(unauthorized): Token ausente, inválido, vencido o de
            un usuario que ya no existe / está inactivo
        """
        if not token:
            raise AuthError(ErrorKind.UNAUTHORIZED, 'Se requiere autenticación')
        try:
            payload = self._serializer.loads(token, max_age=self.token_max_age)
        except SignatureExpired:
            raise AuthError(ErrorKind.UNAUTHORIZED, 'La sesión expiró, vuelva a iniciar sesión')
        except BadSignature:
            raise AuthError(ErrorKind.UNAUTHORIZED, 'Token inválido')

        user = self.user_repo.get_by_id(payload.get('uid')) if isinstance(payload, dict) else None
        if user is None or not user.active:
            raise AuthError(ErrorKind.UNAUTHORIZED, 'Usuario no autorizado')

        data = user.to_dict()
        data['permissions'] = sorted(self.permissions_for(user.role))
        return data

    # =========================================================================
    # PERMISOS
    # =========================================================================

    @staticmethod
    def permissions_for(role: Optional[str]) -> FrozenSet[str]:
        return ROLE_PERMISSIONS.get(role or '', frozenset())

    def has_permission(self, user: Optional[Dict[str, Any]], permission: str) -> bool:
        if not user:
            return False
        return permission in self.permissions_for(user.get('role'))

    # =========================================================================
    # USUARIOS
    # =========================================================================

    def create_user(
        self,
        username: str,
        password: str,
        role: str = UserRole.CAJERO.value,
        created_by: str = 'sistema'
    ) -> Dict[str, Any]:
        """
        Crea un usuario del panel.

        Raises:
            AuthError(missing-field / invalid-field): Datos inválidos,
            rol desconocido o usuario repetido
        """
        username = (username or '').strip()
        if not username or not password:
            raise AuthError(ErrorKind.MISSING_FIELD, 'Usuario y contraseña son obligatorios')
        if role not in VALID_ROLES:
            raise AuthError(
                ErrorKind.INVALID_FIELD,
                f"Rol inválido: {role}. Roles válidos: {', '.join(sorted(VALID_ROLES))}"
            )
        if self.user_repo.user_exists(username):
            raise AuthError(ErrorKind.INVALID_FIELD, f'El usuario {username} ya existe')

        try:
            with self.user_repo.transaction():
                user = self.user_repo.create_user(username, generate_password_hash(password), role)
                if self.audit_service:
                    self.audit_service.log_user_created(created_by, username, role)
                data = user.to_dict()
        except SQLAlchemyError as e:
            raise AuthError(ErrorKind.PERSISTENCE_FAILURE, 'Error al crear el usuario') from e
        return data
