import io
import json

from app_pedidos.tests.conftest import cash_order, stock_of


def test_public_order_creation(client):
    r = client.post('/api/orders', json=cash_order())
    assert r.status_code == 201
    body = r.get_json()
    assert body['success'] is True
    assert body['order']['total'] == 200.0
    assert stock_of(1) == 3


def test_validation_error_shape(client):
    r = client.post('/api/orders', json=cash_order(items=[{'product_id': 1, 'quantity': 9}]))
    assert r.status_code == 400
    assert r.get_json() == {
        'success': False,
        'kind': 'insufficient-stock',
        'message': r.get_json()['message'],
    }
    assert 'Hamburguesa' in r.get_json()['message']
    assert stock_of(1) == 5


def test_unknown_product_is_404(client):
    r = client.post('/api/orders', json=cash_order(items=[{'product_id': 42, 'quantity': 1}]))
    assert r.status_code == 404
    assert r.get_json()['kind'] == 'product-not-found'


def test_multipart_transfer_with_receipt(client):
    data = {
        'buyer_name': 'Ana',
        'payment_method': 'transfer',
        'table_number': '8',
        'items': json.dumps([{'product_id': 2, 'quantity': 2}]),
        'receipt': (io.BytesIO(b'\xff\xd8\xff\xe0' + b'\x00' * 32), 'pago.jpg', 'image/jpeg'),
    }
    r = client.post('/api/orders', data=data, content_type='multipart/form-data')
    assert r.status_code == 201, r.get_json()
    order = r.get_json()['order']
    assert order['table_number'] == 8
    assert order['receipt_image'].startswith('data:image/jpeg;base64,')
    assert stock_of(2) == 8


def test_multipart_transfer_without_receipt(client):
    data = {
        'buyer_name': 'Ana',
        'payment_method': 'transfer',
        'items': json.dumps([{'product_id': 2, 'quantity': 1}]),
    }
    r = client.post('/api/orders', data=data, content_type='multipart/form-data')
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'missing-receipt'


def test_request_body_over_limit_is_413(app, client):
    app.config['MAX_CONTENT_LENGTH'] = 1024
    data = {
        'buyer_name': 'Ana',
        'payment_method': 'transfer',
        'items': json.dumps([{'product_id': 2, 'quantity': 1}]),
        'receipt': (io.BytesIO(b'\x00' * 4096), 'pago.png', 'image/png'),
    }
    r = client.post('/api/orders', data=data, content_type='multipart/form-data')
    assert r.status_code == 413
    assert r.get_json()['kind'] == 'payload-too-large'
    assert stock_of(2) == 10


def test_panel_routes_require_token(client):
    assert client.get('/api/orders').status_code == 401
    assert client.get('/api/orders/1').status_code == 401
    assert client.patch('/api/orders/1/status', json={'paid': True}).status_code == 401
    r = client.delete('/api/orders/1', headers={'Authorization': 'Bearer nope'})
    assert r.status_code == 401
    assert r.get_json()['kind'] == 'unauthorized'


def test_list_and_get_orders(client, auth_headers):
    headers = auth_headers('cajero')
    first = client.post('/api/orders', json=cash_order(table_number=5)).get_json()['order']
    client.post('/api/orders', json=cash_order(table_number=6, items=[{'product_id': 2, 'quantity': 1}]))

    r = client.get('/api/orders', headers=headers)
    assert r.status_code == 200
    assert len(r.get_json()['orders']) == 2

    r = client.get('/api/orders?table=5', headers=headers)
    orders = r.get_json()['orders']
    assert [o['id'] for o in orders] == [first['id']]
    assert orders[0]['items'][0]['product_name'] == 'Hamburguesa'

    r = client.get(f"/api/orders/{first['id']}", headers=headers)
    assert r.get_json()['order']['total'] == 200.0

    r = client.get('/api/orders/999', headers=headers)
    assert r.status_code == 404
    assert r.get_json()['kind'] == 'order-not-found'


def test_invalid_filter_is_400(client, auth_headers):
    r = client.get('/api/orders?paid=quizas', headers=auth_headers('admin'))
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'invalid-field'


def test_status_patch(client, auth_headers):
    headers = auth_headers('cajero')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    client.patch(f'/api/orders/{order_id}/status', json={'paid': True}, headers=headers)
    r = client.patch(f'/api/orders/{order_id}/status', json={'paid': False, 'delivered': True}, headers=headers)
    assert r.status_code == 200
    order = r.get_json()['order']
    assert order['paid'] is False
    assert order['delivered'] is True

    r = client.patch(f'/api/orders/{order_id}/status', json={}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'missing-field'


def test_replace_items_endpoint(client, auth_headers):
    headers = auth_headers('vendedor')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    items = [{'product_id': 2, 'quantity': 1, 'unit_price': 500, 'subtotal': 500}]
    r = client.put(f'/api/orders/{order_id}/items', json={'items': items}, headers=headers)
    assert r.status_code == 200
    assert r.get_json() == {'success': True, 'new_total': 500.0}

    order = client.get(f'/api/orders/{order_id}', headers=headers).get_json()['order']
    assert order['total'] == 500.0
    assert len(order['items']) == 1


def test_buyer_edit_endpoint(client, auth_headers):
    headers = auth_headers('cajero')
    order_id = client.post('/api/orders', json=cash_order(buyer_phone='111')).get_json()['order']['id']

    r = client.put(f'/api/orders/{order_id}', json={'table_number': 10}, headers=headers)
    assert r.status_code == 200
    order = r.get_json()['order']
    assert order['table_number'] == 10
    assert order['buyer_phone'] == '111'

    r = client.put(f'/api/orders/{order_id}', json={'table_number': 0}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'invalid-range'


def test_table_field_is_validated_on_create(client):
    r = client.post('/api/orders', json=cash_order(table=99))
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'invalid-range'
    assert stock_of(1) == 5

    r = client.post('/api/orders', json=cash_order(table=7))
    assert r.status_code == 201
    assert r.get_json()['order']['table_number'] == 7


def test_table_field_is_validated_on_edit(client, auth_headers):
    headers = auth_headers('cajero')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    r = client.put(f'/api/orders/{order_id}', json={'table': 51}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'invalid-range'

    r = client.put(f'/api/orders/{order_id}', json={'table': 3}, headers=headers)
    assert r.get_json()['order']['table_number'] == 3


def test_status_patch_with_non_object_body(client, auth_headers):
    headers = auth_headers('cajero')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    for body in ([True], 'paid', 1):
        r = client.patch(f'/api/orders/{order_id}/status', json=body, headers=headers)
        assert r.status_code == 400
        assert r.get_json()['kind'] == 'missing-field'


def test_replace_items_with_non_object_body(client, auth_headers):
    headers = auth_headers('vendedor')
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    for body in ('items', 5, []):
        r = client.put(f'/api/orders/{order_id}/items', json=body, headers=headers)
        assert r.status_code == 400
        assert r.get_json()['kind'] == 'malformed-line-items'

    # la lista directa sigue aceptándose
    items = [{'product_id': 2, 'quantity': 1, 'unit_price': 50.5, 'subtotal': 50.5}]
    r = client.put(f'/api/orders/{order_id}/items', json=items, headers=headers)
    assert r.get_json()['new_total'] == 50.5


def test_delete_requires_delete_permission(client, auth_headers):
    order_id = client.post('/api/orders', json=cash_order()).get_json()['order']['id']

    r = client.delete(f'/api/orders/{order_id}', headers=auth_headers('cajero'))
    assert r.status_code == 403
    assert r.get_json()['kind'] == 'forbidden'

    r = client.delete(f'/api/orders/{order_id}', headers=auth_headers('admin'))
    assert r.status_code == 200
    assert r.get_json()['success'] is True

    r = client.delete(f'/api/orders/{order_id}', headers=auth_headers('admin'))
    assert r.status_code == 404


def test_authenticated_order_is_audited_with_username(client, auth_headers, container):
    r = client.post('/api/orders', json=cash_order(), headers=auth_headers('vendedor'))
    order_id = r.get_json()['order']['id']
    entries = container.audit_repo.find_by_related(order_id)
    assert entries[0].user == 'vendedor'
