import pytest
from itsdangerous import URLSafeTimedSerializer
from werkzeug.security import check_password_hash

from app_pedidos.models import User, db
from app_pedidos.services import AuthError, AuthService, ErrorKind, ROLE_PERMISSIONS


def test_login_returns_token_and_permissions(client):
    r = client.post('/api/auth/login', json={'username': 'vendedor', 'password': 'vende123'})
    assert r.status_code == 200
    body = r.get_json()
    assert body['success'] is True
    assert body['token']
    assert body['user']['username'] == 'vendedor'
    assert 'password_hash' not in body['user']
    assert body['user']['permissions'] == ['edit_orders', 'manage_catalog', 'view_orders']


@pytest.mark.parametrize('username,password', [
    ('admin', 'incorrecta'),
    ('nadie', 'admin123'),
    ('baja', 'baja123'),
    ('', ''),
])
def test_bad_credentials(client, username, password):
    r = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert r.status_code == 401
    assert r.get_json()['kind'] == 'unauthorized'


def test_login_accepts_form_data(client):
    r = client.post('/api/auth/login', data={'username': 'cajero', 'password': 'caja123'})
    assert r.status_code == 200


def test_me(client, auth_headers):
    r = client.get('/api/auth/me', headers=auth_headers('cajero'))
    assert r.status_code == 200
    user = r.get_json()['user']
    assert user['role'] == 'cajero'
    assert user['permissions'] == ['edit_orders', 'view_orders']


@pytest.mark.parametrize('header', [
    None,
    'Bearer',
    'Basic YWRtaW46YWRtaW4xMjM=',
    'Bearer token-falso',
])
def test_me_rejects_missing_or_bad_token(client, header):
    headers = {'Authorization': header} if header else {}
    r = client.get('/api/auth/me', headers=headers)
    assert r.status_code == 401


def test_token_signed_with_other_secret_is_rejected(client):
    forged = URLSafeTimedSerializer('otra-clave', salt=AuthService.TOKEN_SALT).dumps({'uid': 1, 'role': 'admin'})
    r = client.get('/api/auth/me', headers={'Authorization': f'Bearer {forged}'})
    assert r.status_code == 401


def test_expired_token(container):
    auth = container.auth_service
    token = auth.issue_token({'id': 1, 'role': 'admin'})
    expired = AuthService(container.user_repo, secret_key='pedidos-test-secret', token_max_age=-1)
    with pytest.raises(AuthError) as exc:
        expired.verify_token(token)
    assert exc.value.kind == ErrorKind.UNAUTHORIZED


def test_deactivated_user_loses_access(client, auth_headers):
    headers = auth_headers('vendedor')
    user = db.session.scalars(db.select(User).filter_by(username='vendedor')).one()
    user.active = False
    db.session.commit()

    r = client.get('/api/auth/me', headers=headers)
    assert r.status_code == 401


def test_permission_table():
    assert ROLE_PERMISSIONS['admin'] >= ROLE_PERMISSIONS['vendedor'] >= ROLE_PERMISSIONS['cajero']
    assert 'delete_orders' not in ROLE_PERMISSIONS['vendedor']
    assert 'manage_catalog' not in ROLE_PERMISSIONS['cajero']


def test_has_permission(container):
    auth = container.auth_service
    assert auth.has_permission({'role': 'admin'}, 'delete_orders')
    assert not auth.has_permission({'role': 'cajero'}, 'manage_catalog')
    assert not auth.has_permission({'role': 'desconocido'}, 'view_orders')
    assert not auth.has_permission(None, 'view_orders')


def test_create_user(container):
    auth = container.auth_service
    user = auth.create_user('nuevo', 'secreto', 'vendedor')
    assert user['role'] == 'vendedor'

    stored = container.user_repo.get_user('nuevo')
    assert check_password_hash(stored.password_hash, 'secreto')
    assert auth.authenticate('nuevo', 'secreto')['username'] == 'nuevo'


@pytest.mark.parametrize('username,password,role,kind', [
    ('', 'x', 'admin', ErrorKind.MISSING_FIELD),
    ('otro', '', 'admin', ErrorKind.MISSING_FIELD),
    ('otro', 'x', 'jefe', ErrorKind.INVALID_FIELD),
    ('admin', 'x', 'admin', ErrorKind.INVALID_FIELD),
])
def test_create_user_validation(container, username, password, role, kind):
    with pytest.raises(AuthError) as exc:
        container.auth_service.create_user(username, password, role)
    assert exc.value.kind == kind


def test_create_user_cli(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['create-user', 'caja2', '--role', 'cajero', '--password', 'clave'])
    assert result.exit_code == 0, result.output
    assert 'caja2' in result.output

    result = runner.invoke(args=['create-user', 'caja2', '--role', 'cajero', '--password', 'clave'])
    assert result.exit_code != 0
    assert 'ya existe' in result.output
