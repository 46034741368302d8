from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app_pedidos.config import TestConfig
from app_pedidos.main import CONTAINER_KEY, create_app
from app_pedidos.models import Product, User, db


PASSWORDS = {
    'admin': 'admin123',
    'vendedor': 'vende123',
    'cajero': 'caja123',
}


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        UPLOAD_DIR = str(tmp_path / 'uploads')
        LOGS_DIR = str(tmp_path / 'logs')

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        db.session.add_all([
            Product(id=1, name='Hamburguesa', price=Decimal('100.00'), stock=5,
                    category='comida', subcategory='platos'),
            Product(id=2, name='Gaseosa', price=Decimal('50.50'), stock=10,
                    category='bebidas', subcategory='sin alcohol'),
            Product(id=3, name='Flan', price=Decimal('80.00'), stock=3,
                    category='postres', active=False),
        ])
        for username, password in PASSWORDS.items():
            db.session.add(User(
                username=username,
                password_hash=generate_password_hash(password),
                role=username,
            ))
        db.session.add(User(
            username='baja',
            password_hash=generate_password_hash('baja123'),
            role='admin',
            active=False,
        ))
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def container(app):
    return app.extensions[CONTAINER_KEY]


@pytest.fixture
def order_service(container):
    return container.order_service


@pytest.fixture
def auth_headers(client):
    """Login real contra /api/auth/login; devuelve el header Authorization."""
    def _headers(role='admin'):
        r = client.post('/api/auth/login', json={'username': role, 'password': PASSWORDS[role]})
        assert r.status_code == 200, r.get_json()
        return {'Authorization': f"Bearer {r.get_json()['token']}"}
    return _headers


def stock_of(product_id):
    return db.session.get(Product, product_id).stock


def cash_order(**overrides):
    data = {
        'buyer_name': 'Ana',
        'payment_method': 'cash',
        'items': [{'product_id': 1, 'quantity': 2}],
    }
    data.update(overrides)
    return data
