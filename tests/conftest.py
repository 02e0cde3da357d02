"""
Shared fixtures for the storefront test suite.
"""

import pytest

from app import create_app
from models import db


class FakeGateway:
    """Stands in for Stripe; records every session request."""

    url = 'https://checkout.example.test/session/cs_test_1'

    def __init__(self):
        self.calls = []
        self.error = None

    def create_session(self, line_items, success_url, cancel_url, metadata):
        if self.error is not None:
            raise self.error
        self.calls.append({
            'line_items': line_items,
            'success_url': success_url,
            'cancel_url': cancel_url,
            'metadata': metadata,
        })
        return self.url


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'ALLOW_ADMIN_REGISTRATION': True,
        'DEFAULT_SITE_NAME': 'Ecommercio',
    })
    app.extensions['payment_gateway'] = FakeGateway()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def gateway(app):
    return app.extensions['payment_gateway']


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username, password='secret', role=None):
    body = {'username': username, 'password': password}
    if role is not None:
        body['role'] = role
    return client.post('/api/register', json=body)


@pytest.fixture
def admin_client(app):
    c = app.test_client()
    resp = register(c, 'admin')
    assert resp.status_code == 201
    assert resp.get_json()['user']['role'] == 'admin'
    return c


@pytest.fixture
def user_client(app, admin_client):
    c = app.test_client()
    resp = register(c, 'shopper')
    assert resp.status_code == 201
    return c


def make_category(client, name):
    resp = client.post('/api/categories', json={'name': name})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def make_product(client, title, price_cents=500, category_id=None, **extra):
    body = {'title': title, 'price_cents': price_cents, 'category_id': category_id}
    body.update(extra)
    resp = client.post('/api/products', json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()
