from datetime import datetime, timedelta

import pytest
from werkzeug.datastructures import MultiDict

from app_pedidos.models import Order, db
from app_pedidos.repositories.filters import OrderFilter, ProductFilter, parse_bool, parse_datetime
from app_pedidos.tests.conftest import cash_order


@pytest.mark.parametrize('value,expected', [
    ('1', True), ('true', True), ('Sí', True), ('no', False), ('0', False),
    ('', None), (None, None), (True, True),
])
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


def test_parse_bool_rejects_garbage():
    with pytest.raises(ValueError):
        parse_bool('quizas')


def test_parse_datetime():
    assert parse_datetime('2024-03-01') == datetime(2024, 3, 1)
    assert parse_datetime('2024-03-01', end_of_day=True) == datetime(2024, 3, 2)
    assert parse_datetime('2024-03-01T10:30:00') == datetime(2024, 3, 1, 10, 30)
    assert parse_datetime('2024-03-01T10:30:00-03:00') == datetime(2024, 3, 1, 13, 30)
    assert parse_datetime('2024-03-01T10:30:00Z') == datetime(2024, 3, 1, 10, 30)
    assert parse_datetime('') is None


def test_order_filter_from_args():
    f = OrderFilter.from_args(MultiDict({
        'date_from': '2024-03-01',
        'date_to': '2024-03-05',
        'table': '12',
        'paid': 'true',
    }))
    assert f.date_from == datetime(2024, 3, 1)
    assert f.date_to == datetime(2024, 3, 6)
    assert f.table_number == 12
    assert f.paid is True
    assert f.delivered is None
    assert len(f.predicates()) == 4


def test_order_filter_rejects_bad_values():
    with pytest.raises(ValueError):
        OrderFilter.from_args({'table': 'doce'})
    with pytest.raises(ValueError):
        OrderFilter.from_args({'date_from': '01/03/2024'})


def test_empty_filters_have_no_predicates():
    assert OrderFilter().predicates() == []
    assert len(ProductFilter().predicates()) == 1
    assert ProductFilter(include_inactive=True).predicates() == []


def test_product_filter_ignores_include_inactive_for_public():
    args = {'include_inactive': 'true', 'category': ' bebidas '}
    assert ProductFilter.from_args(args).include_inactive is False
    f = ProductFilter.from_args(args, allow_inactive=True)
    assert f.include_inactive is True
    assert f.category == 'bebidas'


def test_date_range_includes_whole_last_day(client, order_service):
    order_id = order_service.create_order(**cash_order())['id']
    order = db.session.get(Order, order_id)
    order.created_at = datetime(2024, 3, 5, 23, 59)
    db.session.commit()

    day = OrderFilter.from_args({'date_from': '2024-03-05', 'date_to': '2024-03-05'})
    assert [o['id'] for o in order_service.list_orders(day)] == [order_id]

    before = OrderFilter.from_args({'date_to': '2024-03-04'})
    assert order_service.list_orders(before) == []

    after = OrderFilter(date_from=datetime(2024, 3, 5) + timedelta(days=1))
    assert order_service.list_orders(after) == []
