# ==============================================================================
# APLICACIÓN FLASK - Tienda y panel de vendedores
# ==============================================================================
# - create_app(): fábrica de la aplicación (config, base, profiling, rutas)
# - Blueprint /api: tienda pública + panel autenticado con token bearer
# - Errores: los servicios lanzan ServiceError, acá se convierten en JSON
# - CLI: flask --app wsgi init-db / create-user
# ==============================================================================

import logging
from functools import wraps
from typing import Any, Dict, Optional

import click
from flask import Blueprint, Flask, current_app, g, request, send_from_directory
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge

from app_pedidos.app_container import AppContainer, get_container
from app_pedidos.config import Config
from app_pedidos.models import db
from app_pedidos.performance_logger import init_profiling
from app_pedidos.repositories import OrderFilter, ProductFilter
from app_pedidos.services import (
    AuthError,
    ErrorKind,
    OrderError,
    ServiceError,
    UploadedImage,
)
from app_pedidos.services.auth_service import (
    DELETE_ORDERS,
    EDIT_ORDERS,
    MANAGE_CATALOG,
    VALID_ROLES,
    VIEW_ORDERS,
)


api = Blueprint('api', __name__, url_prefix='/api')

CONTAINER_KEY = 'pedidos_container'


def _container() -> AppContainer:
    return current_app.extensions[CONTAINER_KEY]


# ═══════════════════════════════════════════════════════════════════════════
# AUTENTICACIÓN - Token bearer
# ═══════════════════════════════════════════════════════════════════════════

def _bearer_token() -> Optional[str]:
    """Extrae el token de 'Authorization: Bearer <token>'."""
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer':
        return None
    return token.strip() or None


def _optional_user() -> Optional[Dict[str, Any]]:
    """Usuario del token si vino uno válido; None en la tienda pública."""
    token = _bearer_token()
    if not token:
        return None
    try:
        return _container().auth_service.verify_token(token)
    except AuthError:
        return None


def _actor() -> Optional[str]:
    user = g.get('current_user')
    return user['username'] if user else None


def token_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        g.current_user = _container().auth_service.verify_token(_bearer_token())
        return f(*args, **kwargs)
    return wrapper


def permission_required(permission):
    """
    Exige token válido y que el rol del usuario tenga el permiso.

    Uso:
        @api.route('/orders/<int:order_id>', methods=['DELETE'])
        @permission_required(DELETE_ORDERS)
        def delete_order(order_id): ...
    """
    def deco(f):
        @wraps(f)
        @token_required
        def wrapper(*args, **kwargs):
            if not _container().auth_service.has_permission(g.current_user, permission):
                raise AuthError(ErrorKind.FORBIDDEN, 'Permiso denegado')
            return f(*args, **kwargs)
        return wrapper
    return deco


def _payload() -> Dict[str, Any]:
    """Body del request: JSON o formulario (multipart con archivos)."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _table_field(data: Dict[str, Any]) -> Any:
    """Mesa enviada como 'table' (o 'table_number')."""
    return data.get('table', data.get('table_number'))


# ═══════════════════════════════════════════════════════════════════════════
# SISTEMA
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/health', methods=['GET'])
def health():
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        current_app.logger.error('Health check: base de datos no disponible: %s', e)
        return {'success': False, 'status': 'error', 'database': {'connected': False}}, 503
    return {'success': True, 'status': 'ok', 'database': {'connected': True}}


# ═══════════════════════════════════════════════════════════════════════════
# AUTENTICACIÓN
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/auth/login', methods=['POST'])
def login():
    data = _payload()
    auth = _container().auth_service
    user = auth.authenticate((data.get('username') or '').strip(), data.get('password') or '')
    if user is None:
        raise AuthError(ErrorKind.UNAUTHORIZED, 'Usuario o contraseña incorrectos')
    user['permissions'] = sorted(auth.permissions_for(user['role']))
    return {'success': True, 'token': auth.issue_token(user), 'user': user}


@api.route('/auth/me', methods=['GET'])
@token_required
def me():
    return {'success': True, 'user': g.current_user}


# ═══════════════════════════════════════════════════════════════════════════
# CATÁLOGO
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/products', methods=['GET'])
def list_products():
    """Catálogo público. include_inactive solo para quien gestiona el catálogo."""
    user = _optional_user()
    can_manage = _container().auth_service.has_permission(user, MANAGE_CATALOG)
    try:
        product_filter = ProductFilter.from_args(request.args, allow_inactive=can_manage)
    except ValueError as e:
        raise ServiceError(ErrorKind.INVALID_FIELD, str(e))
    return {'success': True, 'products': _container().catalog_service.list_products(product_filter)}


@api.route('/products/<int:product_id>', methods=['GET'])
def get_product(product_id):
    return {'success': True, 'product': _container().catalog_service.get_product(product_id)}


@api.route('/products', methods=['POST'])
@permission_required(MANAGE_CATALOG)
def create_product():
    product = _container().catalog_service.create_product(
        _payload(),
        image=UploadedImage.from_file_storage(request.files.get('image')),
        actor=_actor(),
    )
    return {'success': True, 'product': product}, 201


@api.route('/products/<int:product_id>', methods=['PUT'])
@permission_required(MANAGE_CATALOG)
def update_product(product_id):
    product = _container().catalog_service.update_product(
        product_id,
        _payload(),
        image=UploadedImage.from_file_storage(request.files.get('image')),
        actor=_actor(),
    )
    return {'success': True, 'product': product}


@api.route('/products/<int:product_id>', methods=['DELETE'])
@permission_required(MANAGE_CATALOG)
def delete_product(product_id):
    _container().catalog_service.deactivate_product(product_id, actor=_actor())
    return {'success': True, 'message': 'Producto eliminado'}


# ═══════════════════════════════════════════════════════════════════════════
# COMPRAS
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/orders', methods=['POST'])
def create_order():
    """
    Registra una compra desde la tienda (pública).
    Acepta JSON, o multipart con 'items' como string JSON y el archivo
    'receipt' para transferencias.
    """
    data = _payload()
    user = _optional_user()
    order = _container().order_service.create_order(
        buyer_name=data.get('buyer_name'),
        payment_method=data.get('payment_method'),
        items=data.get('items'),
        buyer_phone=data.get('buyer_phone'),
        table_number=_table_field(data),
        note=data.get('note'),
        receipt=UploadedImage.from_file_storage(request.files.get('receipt')),
        actor=user['username'] if user else None,
    )
    return {'success': True, 'order': order}, 201


@api.route('/orders', methods=['GET'])
@permission_required(VIEW_ORDERS)
def list_orders():
    try:
        order_filter = OrderFilter.from_args(request.args)
    except ValueError as e:
        raise OrderError(ErrorKind.INVALID_FIELD, f'Filtro inválido: {e}')
    return {'success': True, 'orders': _container().order_service.list_orders(order_filter)}


@api.route('/orders/stats', methods=['GET'])
@permission_required(VIEW_ORDERS)
def order_stats():
    return {'success': True, 'stats': _container().stats_service.sales_summary()}


@api.route('/orders/<int:order_id>', methods=['GET'])
@permission_required(VIEW_ORDERS)
def get_order(order_id):
    return {'success': True, 'order': _container().order_service.get_order(order_id)}


@api.route('/orders/<int:order_id>/status', methods=['PATCH'])
@permission_required(EDIT_ORDERS)
def update_order_status(order_id):
    data = _payload()
    order = _container().order_service.update_status(
        order_id,
        paid=data.get('paid'),
        delivered=data.get('delivered'),
        actor=_actor(),
    )
    return {'success': True, 'order': order}


@api.route('/orders/<int:order_id>/items', methods=['PUT'])
@permission_required(EDIT_ORDERS)
def replace_order_items(order_id):
    data = request.get_json(silent=True)
    items = data.get('items') if isinstance(data, dict) else data
    new_total = _container().order_service.replace_items(order_id, items, actor=_actor())
    return {'success': True, 'new_total': float(new_total)}


@api.route('/orders/<int:order_id>', methods=['PUT'])
@permission_required(EDIT_ORDERS)
def update_order(order_id):
    data = _payload()
    order = _container().order_service.update_buyer_info(
        order_id,
        buyer_name=data.get('buyer_name'),
        buyer_phone=data.get('buyer_phone'),
        table_number=_table_field(data),
        actor=_actor(),
    )
    return {'success': True, 'order': order}


@api.route('/orders/<int:order_id>', methods=['DELETE'])
@permission_required(DELETE_ORDERS)
def delete_order(order_id):
    _container().order_service.delete_order(order_id, actor=_actor())
    return {'success': True, 'message': 'Compra eliminada'}


# ═══════════════════════════════════════════════════════════════════════════
# MANEJO DE ERRORES
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        if error.kind == ErrorKind.PERSISTENCE_FAILURE:
            app.logger.error('%s: %r', error.message, error.__cause__)
        return error.to_dict(), error.status

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        limit_mb = (app.config.get('MAX_CONTENT_LENGTH') or 0) / (1024 * 1024)
        return {
            'success': False,
            'kind': ErrorKind.PAYLOAD_TOO_LARGE.value,
            'message': f'El archivo es demasiado grande (máximo {limit_mb:.0f} MB)',
        }, 413

    @app.errorhandler(NotFound)
    def handle_not_found(error):
        return {'success': False, 'kind': 'not-found', 'message': 'Ruta no encontrada'}, 404

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return {'success': False, 'message': error.description}, error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        app.logger.exception('Error inesperado en %s %s', request.method, request.path)
        body = {'success': False, 'message': 'Error interno del servidor'}
        if not app.config.get('PRODUCTION_MODE', True):
            body['error'] = str(error)
        return body, 500


# ═══════════════════════════════════════════════════════════════════════════
# HEADERS DE SEGURIDAD Y CORS
# ═══════════════════════════════════════════════════════════════════════════

def register_headers(app: Flask) -> None:
    origins = [o.strip() for o in (app.config.get('CORS_ORIGINS') or '').split(',') if o.strip()]

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'
        # HSTS solo con HTTPS real
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        origin = request.headers.get('Origin')
        if '*' in origins:
            response.headers['Access-Control-Allow-Origin'] = '*'
        elif origin and origin in origins:
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers.add('Vary', 'Origin')
        response.headers['Access-Control-Allow-Headers'] = 'Authorization, Content-Type'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, PATCH, DELETE, OPTIONS'
        return response


# ═══════════════════════════════════════════════════════════════════════════
# COMANDOS CLI
# ═══════════════════════════════════════════════════════════════════════════

def register_commands(app: Flask) -> None:

    @app.cli.command('init-db')
    def init_db_command():
        """Crea las tablas que falten."""
        db.create_all()
        click.echo('Base de datos inicializada.')

    @app.cli.command('create-user')
    @click.argument('username')
    @click.option('--role', default='cajero', show_default=True, type=click.Choice(sorted(VALID_ROLES)))
    @click.password_option()
    def create_user_command(username, role, password):
        """Crea un usuario del panel."""
        try:
            user = _container().auth_service.create_user(username, password, role)
        except ServiceError as e:
            raise click.ClickException(e.message)
        click.echo(f"Usuario {user['username']} creado con rol {user['role']}.")


# ═══════════════════════════════════════════════════════════════════════════
# FÁBRICA DE LA APLICACIÓN
# ═══════════════════════════════════════════════════════════════════════════

def create_app(config_class=Config) -> Flask:
    """
    Crea y configura la aplicación.

    Args:
        config_class: Clase de configuración (Config, TestConfig, ...)
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug:
        app.logger.setLevel(logging.INFO)

    if app.config['PRODUCTION_MODE'] and app.config.get('USING_DEFAULT_SECRET'):
        app.logger.warning(
            'PEDIDOS_SECRET_KEY no está definida: se usa la clave de desarrollo. '
            'Los tokens emitidos NO son seguros.'
        )

    db.init_app(app)

    # Un contenedor por app (los tests crean varias)
    AppContainer.reset_instance()
    app.extensions[CONTAINER_KEY] = get_container(app.config)

    # Mide rendimiento de rutas y funciones. Logs en LOGS_DIR
    init_profiling(app)

    app.register_blueprint(api)
    register_error_handlers(app)
    register_headers(app)
    register_commands(app)

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_DIR'], filename)

    # Sin base disponible la app igual levanta; /api/health responde 503
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as e:
            app.logger.error('No se pudieron crear las tablas: %s', e)

    return app
