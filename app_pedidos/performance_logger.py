# ==============================================================================
# PROFILING DE RUTAS Y FUNCIONES
# ==============================================================================
# Tiempos de cada request y de las operaciones de compra, en archivos de texto
# legibles dentro de LOGS_DIR:
#
#   performance.log      todas las rutas
#   slow_routes.log      rutas que superan los umbrales
#   slow_functions.log   llamadas lentas de funciones con @profile_function
#
# Se activa con PEDIDOS_ENABLE_PROFILING (Config.ENABLE_PROFILING).
# ==============================================================================

import os
import threading
import time
from collections import defaultdict
from datetime import datetime
from functools import wraps

from flask import g, request

# Umbrales en milisegundos
THRESHOLD_WARNING = 300
THRESHOLD_CRITICAL = 700

PERFORMANCE_LOG = 'performance.log'
SLOW_ROUTES_LOG = 'slow_routes.log'
SLOW_FUNCTIONS_LOG = 'slow_functions.log'

SEPARATOR = '─' * 40

# init_profiling() lo completa con la configuración de la app
_settings = {
    'enabled': False,
    'logs_dir': os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logs'),
}

ROUTE_NAMES = {
    'POST /api/auth/login': 'Iniciar sesión',
    'GET /api/auth/me': 'Ver usuario actual',
    'GET /api/products': 'Ver catálogo',
    'GET /api/products/<int:product_id>': 'Obtener producto',
    'POST /api/products': 'Crear producto',
    'PUT /api/products/<int:product_id>': 'Editar producto',
    'DELETE /api/products/<int:product_id>': 'Desactivar producto',
    'POST /api/orders': 'Registrar compra',
    'GET /api/orders': 'Ver compras',
    'GET /api/orders/stats': 'Ver estadísticas',
    'GET /api/orders/<int:order_id>': 'Ver compra',
    'PATCH /api/orders/<int:order_id>/status': 'Cambiar estado compra',
    'PUT /api/orders/<int:order_id>/items': 'Editar productos de compra',
    'PUT /api/orders/<int:order_id>': 'Editar datos del comprador',
    'DELETE /api/orders/<int:order_id>': 'Eliminar compra',
    'GET /api/health': 'Health check',
}

# {nombre: {calls, total_time, max_time}}
_function_stats = defaultdict(lambda: {'calls': 0, 'total_time': 0.0, 'max_time': 0.0})
_stats_lock = threading.Lock()
_write_lock = threading.Lock()


def is_enabled() -> bool:
    return _settings['enabled']


def _route_name(method, rule):
    return ROUTE_NAMES.get(f"{method} {rule}", f"{method} {rule}")


def _entry(tag, *lines):
    """Bloque de log: encabezado con fecha y una línea por dato."""
    stamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    return '\n'.join([f"[{tag}] {stamp}", SEPARATOR, *lines, '']) + '\n'


def _write_log(filename, content):
    path = os.path.join(_settings['logs_dir'], filename)
    try:
        with _write_lock, open(path, 'a', encoding='utf-8') as f:
            f.write(content)
    except OSError:
        # el request sigue aunque el log no se pueda escribir
        pass


# =========================================================================
# RUTAS
# =========================================================================

def _record_request(method, path, rule, elapsed_ms, user):
    action = _route_name(method, rule)
    user = user or 'anónimo'
    _write_log(PERFORMANCE_LOG, _entry(
        'PERFORMANCE',
        f"Acción: {action}",
        f"Usuario: {user}",
        f"Ruta: {method} {path}",
        f"Tiempo: {elapsed_ms:.0f} ms",
    ))

    if elapsed_ms < THRESHOLD_WARNING:
        return
    critical = elapsed_ms >= THRESHOLD_CRITICAL
    _write_log(SLOW_ROUTES_LOG, _entry(
        'CRITICAL' if critical else 'WARNING',
        f"Ruta {'MUY LENTA' if critical else 'LENTA'}: {action}",
        f"Usuario: {user}",
        f"Detalle: {method} {path}",
        f"Tiempo: {elapsed_ms:.0f} ms "
        f"(umbral: {THRESHOLD_CRITICAL if critical else THRESHOLD_WARNING} ms)",
    ))


def init_profiling(app):
    """
    Lee ENABLE_PROFILING y LOGS_DIR de la configuración y, si está activo,
    registra los hooks before_request / after_request que miden cada request.
    """
    _settings['enabled'] = bool(app.config.get('ENABLE_PROFILING'))
    _settings['logs_dir'] = app.config.get('LOGS_DIR') or _settings['logs_dir']
    if not is_enabled():
        return

    os.makedirs(_settings['logs_dir'], exist_ok=True)

    @app.before_request
    def _start_timer():
        g.start_time = time.perf_counter()

    @app.after_request
    def _log_request(response):
        if 'start_time' in g:
            elapsed_ms = (time.perf_counter() - g.start_time) * 1000
            rule = str(request.url_rule) if request.url_rule else request.path
            user = (g.get('current_user') or {}).get('username')
            _record_request(request.method, request.path, rule, elapsed_ms, user)
        return response


# =========================================================================
# FUNCIONES
# =========================================================================

def profile_function(func=None, name=None):
    """
    Mide llamadas, tiempo promedio y máximo de una función.

        @profile_function(name="Crear compra")
        def create_order(...):

    Se aplica al importar el módulo, así que ENABLE_PROFILING se consulta
    en cada llamada.
    """
    def decorator(fn):
        label = name or fn.__name__

        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not is_enabled():
                return fn(*args, **kwargs)
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                _record_call(label, (time.perf_counter() - start) * 1000)

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


def _record_call(label, elapsed_ms):
    with _stats_lock:
        stats = _function_stats[label]
        stats['calls'] += 1
        stats['total_time'] += elapsed_ms
        stats['max_time'] = max(stats['max_time'], elapsed_ms)

    if elapsed_ms >= THRESHOLD_WARNING:
        _write_log(SLOW_FUNCTIONS_LOG, _entry(
            'CRÍTICO' if elapsed_ms >= THRESHOLD_CRITICAL else 'LENTO',
            f"Función: {label}",
            f"Tiempo: {elapsed_ms:.0f} ms",
        ))


def get_function_stats():
    """
    Returns:
        dict: {nombre: {calls, avg_time, max_time}} en milisegundos
    """
    with _stats_lock:
        return {
            label: {
                'calls': stats['calls'],
                'avg_time': round(stats['total_time'] / stats['calls'], 2) if stats['calls'] else 0,
                'max_time': round(stats['max_time'], 2),
            }
            for label, stats in _function_stats.items()
        }


def reset_stats():
    with _stats_lock:
        _function_stats.clear()


__all__ = [
    'init_profiling',
    'profile_function',
    'is_enabled',
    'get_function_stats',
    'reset_stats',
]
