import io
import os

import pytest
from sqlalchemy.exc import OperationalError

from app_pedidos.models import Product, db
from app_pedidos.services import CatalogError, CatalogService, ErrorKind, ImageStore, UploadedImage
from app_pedidos.tests.conftest import cash_order


PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16


def test_public_catalog_only_active(client):
    r = client.get('/api/products')
    assert r.status_code == 200
    names = [p['name'] for p in r.get_json()['products']]
    # ordenado por categoría: bebidas, comida
    assert names == ['Gaseosa', 'Hamburguesa']


def test_catalog_filters(client):
    r = client.get('/api/products?category=bebidas')
    assert [p['id'] for p in r.get_json()['products']] == [2]

    r = client.get('/api/products?category=comida&subcategory=bebidas')
    assert r.get_json()['products'] == []


def test_include_inactive_only_for_catalog_managers(client, auth_headers):
    r = client.get('/api/products?include_inactive=1')
    assert len(r.get_json()['products']) == 2

    r = client.get('/api/products?include_inactive=1', headers=auth_headers('cajero'))
    assert len(r.get_json()['products']) == 2

    r = client.get('/api/products?include_inactive=1', headers=auth_headers('vendedor'))
    assert len(r.get_json()['products']) == 3


def test_get_product(client):
    r = client.get('/api/products/2')
    assert r.get_json()['product']['price'] == 50.5

    r = client.get('/api/products/99')
    assert r.status_code == 404
    assert r.get_json()['kind'] == 'product-not-found'


def test_create_product_json(client, auth_headers):
    r = client.post(
        '/api/products',
        json={'name': 'Agua', 'category': 'bebidas', 'price': '30.5'},
        headers=auth_headers('vendedor'),
    )
    assert r.status_code == 201
    product = r.get_json()['product']
    assert product['price'] == 30.5
    assert product['stock'] == 0
    assert product['active'] is True
    assert product['image_url'] is None


def test_create_product_multipart_with_image(client, auth_headers):
    data = {
        'name': 'Pizza',
        'category': 'comida',
        'price': '1200',
        'stock': '4',
        'image': (io.BytesIO(PNG_BYTES), 'pizza.png', 'image/png'),
    }
    r = client.post('/api/products', data=data, content_type='multipart/form-data',
                    headers=auth_headers('admin'))
    assert r.status_code == 201, r.get_json()
    product = r.get_json()['product']
    assert product['stock'] == 4
    # TestConfig usa IMAGE_STORAGE = 'embedded'
    assert product['image_url'].startswith('data:image/png;base64,')


@pytest.mark.parametrize('data,kind', [
    ({'category': 'comida', 'price': 10}, 'missing-field'),
    ({'name': 'X', 'price': 10}, 'missing-field'),
    ({'name': 'X', 'category': 'comida'}, 'missing-field'),
    ({'name': 'X', 'category': 'comida', 'price': -1}, 'invalid-field'),
    ({'name': 'X', 'category': 'comida', 'price': 'gratis'}, 'invalid-field'),
    ({'name': 'X', 'category': 'comida', 'price': 1, 'stock': -2}, 'invalid-field'),
    ({'name': 'X', 'category': 'comida', 'price': 1, 'stock': '1.5'}, 'invalid-field'),
    ({'name': 'X' * 151, 'category': 'comida', 'price': 1}, 'invalid-field'),
])
def test_create_product_validation(client, auth_headers, data, kind):
    r = client.post('/api/products', json=data, headers=auth_headers('admin'))
    assert r.status_code == 400
    assert r.get_json()['kind'] == kind


def test_catalog_requires_manage_permission(client, auth_headers):
    r = client.post('/api/products', json={'name': 'X', 'category': 'c', 'price': 1})
    assert r.status_code == 401

    r = client.post('/api/products', json={'name': 'X', 'category': 'c', 'price': 1},
                    headers=auth_headers('cajero'))
    assert r.status_code == 403

    r = client.delete('/api/products/1', headers=auth_headers('cajero'))
    assert r.status_code == 403


def test_update_product_merges(client, auth_headers):
    headers = auth_headers('vendedor')
    r = client.put('/api/products/1', json={'price': 120, 'stock': 9}, headers=headers)
    assert r.status_code == 200
    product = r.get_json()['product']
    assert product['name'] == 'Hamburguesa'
    assert product['category'] == 'comida'
    assert product['price'] == 120.0
    assert product['stock'] == 9

    r = client.put('/api/products/1', json={'name': ''}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'missing-field'

    r = client.put('/api/products/99', json={'price': 1}, headers=headers)
    assert r.status_code == 404


def test_price_change_does_not_touch_past_orders(client, auth_headers):
    headers = auth_headers('admin')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    client.put('/api/products/1', json={'price': 999}, headers=headers)

    order = client.get(f'/api/orders/{order_id}', headers=headers).get_json()['order']
    assert order['total'] == 200.0
    assert order['items'][0]['unit_price'] == 100.0


def test_delete_is_soft(client, auth_headers):
    headers = auth_headers('admin')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    r = client.delete('/api/products/1', headers=headers)
    assert r.status_code == 200

    assert db.session.get(Product, 1).active is False
    assert [p['id'] for p in client.get('/api/products').get_json()['products']] == [2]

    # las compras viejas siguen mostrando el producto
    order = client.get(f'/api/orders/{order_id}', headers=headers).get_json()['order']
    assert order['items'][0]['product_name'] == 'Hamburguesa'

    r = client.post('/api/orders', json=cash_order())
    assert r.status_code == 404


def test_reactivate_product(client, auth_headers):
    r = client.put('/api/products/3', json={'active': True}, headers=auth_headers('admin'))
    assert r.get_json()['product']['active'] is True


def test_filesystem_image_storage(app, container, tmp_path):
    upload_dir = tmp_path / 'fotos'
    service = CatalogService(container.product_repo, image_store=ImageStore('filesystem', str(upload_dir)))

    product = service.create_product(
        {'name': 'Té', 'category': 'bebidas', 'price': 40},
        image=UploadedImage(PNG_BYTES, 'image/png', '../../té.png'),
    )

    url = product['image_url']
    assert url.startswith('/uploads/products/producto-')
    assert url.endswith('.png')
    filename = url.rsplit('/', 1)[1]
    assert os.path.exists(upload_dir / 'products' / filename)


def test_rejects_non_image_and_oversized(container):
    service = CatalogService(container.product_repo, image_store=ImageStore('embedded'), image_max_bytes=8)
    data = {'name': 'Té', 'category': 'bebidas', 'price': 40}

    with pytest.raises(CatalogError) as exc:
        service.create_product(data, image=UploadedImage(b'MZ', 'application/x-msdownload', 'virus.exe'))
    assert exc.value.kind == ErrorKind.INVALID_FIELD

    with pytest.raises(CatalogError) as exc:
        service.create_product(data, image=UploadedImage(PNG_BYTES, 'image/png', 'te.png'))
    assert exc.value.kind == ErrorKind.PAYLOAD_TOO_LARGE


def test_invalid_storage_setting():
    with pytest.raises(ValueError):
        ImageStore('s3')


def test_uploads_route_serves_files(app, client):
    folder = os.path.join(app.config['UPLOAD_DIR'], 'products')
    os.makedirs(folder, exist_ok=True)
    with open(os.path.join(folder, 'foto.png'), 'wb') as f:
        f.write(PNG_BYTES)

    r = client.get('/uploads/products/foto.png')
    assert r.status_code == 200
    assert r.data == PNG_BYTES

    assert client.get('/uploads/products/no-existe.png').status_code == 404


def _failing_commit(*args, **kwargs):
    raise OperationalError('COMMIT', {}, Exception('disk I/O error'))


def test_image_file_removed_when_create_fails(container, tmp_path, monkeypatch):
    upload_dir = tmp_path / 'fotos'
    service = CatalogService(container.product_repo, image_store=ImageStore('filesystem', str(upload_dir)))
    monkeypatch.setattr(db.session, 'commit', _failing_commit)

    with pytest.raises(CatalogError) as exc:
        service.create_product(
            {'name': 'Té', 'category': 'bebidas', 'price': 40},
            image=UploadedImage(PNG_BYTES, 'image/png', 'te.png'),
        )
    assert exc.value.kind == ErrorKind.PERSISTENCE_FAILURE
    assert os.listdir(upload_dir / 'products') == []


def test_image_file_removed_when_update_fails(container, tmp_path, monkeypatch):
    upload_dir = tmp_path / 'fotos'
    service = CatalogService(container.product_repo, image_store=ImageStore('filesystem', str(upload_dir)))
    monkeypatch.setattr(db.session, 'commit', _failing_commit)

    with pytest.raises(CatalogError) as exc:
        service.update_product(1, {'price': 150}, image=UploadedImage(PNG_BYTES, 'image/png', 'te.png'))
    assert exc.value.kind == ErrorKind.PERSISTENCE_FAILURE
    assert os.listdir(upload_dir / 'products') == []
    monkeypatch.undo()
    assert db.session.get(Product, 1).image_url is None


def test_discard_ignores_embedded_and_foreign_urls(tmp_path):
    store = ImageStore('filesystem', str(tmp_path))
    outside = tmp_path / 'otro.png'
    outside.write_bytes(PNG_BYTES)

    store.discard('/static/otro.png')
    store.discard(None)
    ImageStore('embedded').discard('data:image/png;base64,AAAA')
    assert outside.exists()
