# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Este módulo proporciona una forma centralizada de obtener instancias
# de repositorios y servicios. Facilita:
#   - Inyección de dependencias
#   - Testing (se pueden reemplazar los repositorios)
#   - Cambiar de motor (SQLite → PostgreSQL) sin tocar servicios
#
# Los repositorios usan db.session de Flask-SQLAlchemy, que es por request:
# compartir las instancias entre requests es seguro.
# ==============================================================================

from typing import Any, Mapping, Optional

from app_pedidos.config import Config
from app_pedidos.repositories import (
    AuditRepository,
    OrderRepository,
    ProductRepository,
    UserRepository,
)
from app_pedidos.services import (
    AuditService,
    AuthService,
    CatalogService,
    ImageStore,
    OrderService,
    StatsService,
)


def _config_from_object(config_class) -> dict:
    return {key: getattr(config_class, key) for key in dir(config_class) if key.isupper()}


class AppContainer:
    """
    Contenedor de dependencias de la aplicación.

    Implementa el patrón Singleton para asegurar una única instancia
    de cada repositorio y servicio.

    Uso:
        container = AppContainer(app.config)
        order_service = container.order_service
    """

    _instance: Optional['AppContainer'] = None

    def __new__(cls, config: Optional[Mapping[str, Any]] = None):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        """
        Args:
            config: app.config (o cualquier mapping con las mismas claves)
        """
        if self._initialized:
            return

        self._config = dict(config) if config is not None else _config_from_object(Config)

        # Repositorios (lazy loading)
        self._product_repo: Optional[ProductRepository] = None
        self._order_repo: Optional[OrderRepository] = None
        self._user_repo: Optional[UserRepository] = None
        self._audit_repo: Optional[AuditRepository] = None

        # Servicios (lazy loading)
        self._audit_service: Optional[AuditService] = None
        self._order_service: Optional[OrderService] = None
        self._catalog_service: Optional[CatalogService] = None
        self._auth_service: Optional[AuthService] = None
        self._stats_service: Optional[StatsService] = None

        self._initialized = True

    @property
    def config(self) -> dict:
        return self._config

    # =========================================================================
    # REPOSITORIOS
    # =========================================================================

    @property
    def product_repo(self) -> ProductRepository:
        """Repositorio de productos (singleton)."""
        if self._product_repo is None:
            self._product_repo = ProductRepository()
        return self._product_repo

    @property
    def order_repo(self) -> OrderRepository:
        """Repositorio de compras (singleton)."""
        if self._order_repo is None:
            self._order_repo = OrderRepository()
        return self._order_repo

    @property
    def user_repo(self) -> UserRepository:
        """Repositorio de usuarios (singleton)."""
        if self._user_repo is None:
            self._user_repo = UserRepository()
        return self._user_repo

    @property
    def audit_repo(self) -> AuditRepository:
        """Repositorio de auditoría (singleton)."""
        if self._audit_repo is None:
            self._audit_repo = AuditRepository()
        return self._audit_repo

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def audit_service(self) -> AuditService:
        """Servicio de auditoría (singleton)."""
        if self._audit_service is None:
            self._audit_service = AuditService(self.audit_repo)
        return self._audit_service

    @property
    def order_service(self) -> OrderService:
        """Servicio de compras (singleton)."""
        if self._order_service is None:
            self._order_service = OrderService(
                self.order_repo,
                self.product_repo,
                self.audit_service,
                table_range=(self._config['TABLE_MIN'], self._config['TABLE_MAX']),
                receipt_max_bytes=self._config['RECEIPT_MAX_ENCODED_BYTES'],
            )
        return self._order_service

    @property
    def catalog_service(self) -> CatalogService:
        """Servicio de catálogo (singleton)."""
        if self._catalog_service is None:
            self._catalog_service = CatalogService(
                self.product_repo,
                self.audit_service,
                ImageStore(self._config['IMAGE_STORAGE'], self._config['UPLOAD_DIR']),
                image_max_bytes=self._config['PRODUCT_IMAGE_MAX_BYTES'],
            )
        return self._catalog_service

    @property
    def auth_service(self) -> AuthService:
        """Servicio de autenticación (singleton)."""
        if self._auth_service is None:
            self._auth_service = AuthService(
                self.user_repo,
                self.audit_service,
                secret_key=self._config['SECRET_KEY'],
                token_max_age=self._config['TOKEN_MAX_AGE'],
            )
        return self._auth_service

    @property
    def stats_service(self) -> StatsService:
        """Servicio de estadísticas (singleton)."""
        if self._stats_service is None:
            self._stats_service = StatsService(self.order_repo)
        return self._stats_service

    # =========================================================================
    # UTILIDADES
    # =========================================================================

    def reset(self) -> None:
        """
        Reinicia todas las instancias.
        Útil para testing o para recargar configuración.
        """
        self._product_repo = None
        self._order_repo = None
        self._user_repo = None
        self._audit_repo = None

        self._audit_service = None
        self._order_service = None
        self._catalog_service = None
        self._auth_service = None
        self._stats_service = None

    @classmethod
    def get_instance(cls, config: Optional[Mapping[str, Any]] = None) -> 'AppContainer':
        """
        Obtiene la instancia singleton del contenedor.

        Args:
            config: Configuración (solo se usa en la primera llamada)
        """
        if cls._instance is None:
            return cls(config)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Elimina la instancia singleton (útil para tests)."""
        if cls._instance is not None:
            cls._instance.reset()
            cls._instance = None


def get_container(config: Optional[Mapping[str, Any]] = None) -> AppContainer:
    """
    Obtiene el contenedor de dependencias global.

    Args:
        config: Configuración de la app

    Returns:
        Instancia del contenedor
    """
    return AppContainer.get_instance(config)
