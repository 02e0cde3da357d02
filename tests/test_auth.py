"""
Registration, login, sessions and profiles.
"""

import time

import auth
from conftest import register


def session_user(client):
    return client.get('/api/session').get_json()['user']


# ============================================================================
# Registration
# ============================================================================

class TestRegister:

    def test_first_user_is_admin_regardless_of_requested_role(self, client):
        resp = register(client, 'alice', role='user')
        assert resp.status_code == 201
        assert resp.get_json()['user']['role'] == 'admin'
        assert session_user(client)['username'] == 'alice'

    def test_later_users_default_to_user(self, app, admin_client):
        resp = register(app.test_client(), 'bob')
        assert resp.status_code == 201
        assert resp.get_json()['user']['role'] == 'user'

    def test_later_admin_request_honoured_while_allowed(self, app, admin_client):
        # second bootstrap exception: anyone may still sign up as admin
        resp = register(app.test_client(), 'carol', role='admin')
        assert resp.get_json()['user']['role'] == 'admin'

    def test_admin_request_downgraded_when_disallowed(self, app, admin_client):
        app.config['ALLOW_ADMIN_REGISTRATION'] = False
        resp = register(app.test_client(), 'dave', role='admin')
        assert resp.get_json()['user']['role'] == 'user'

    def test_first_user_admin_even_when_admin_signup_disallowed(self, app, client):
        app.config['ALLOW_ADMIN_REGISTRATION'] = False
        assert register(client, 'erin').get_json()['user']['role'] == 'admin'

    def test_duplicate_username(self, app, admin_client):
        resp = register(app.test_client(), 'admin')
        assert resp.status_code == 409
        assert resp.get_json() == {'error': 'Username already exists'}

    def test_concurrent_duplicate_is_conflict(self, monkeypatch, app, admin_client):
        # the name check passed but another registration committed first
        monkeypatch.setattr(auth, 'username_taken', lambda username: False)
        resp = register(app.test_client(), 'admin')
        assert resp.status_code == 409
        assert resp.get_json() == {'error': 'Username already exists'}
        assert len(admin_client.get('/api/admin/users').get_json()) == 1

    def test_missing_fields(self, client):
        resp = client.post('/api/register', json={'username': 'x'})
        assert resp.status_code == 400
        assert 'password' in resp.get_json()['error']

    def test_wrong_types_rejected(self, client):
        assert client.post('/api/register', json={'username': 5, 'password': 'pw'}).status_code == 400
        assert client.post('/api/register', json=['admin', 'pw']).status_code == 400
        assert client.post('/api/register', json={'username': 'x', 'password': 'pw', 'role': 'root'}).status_code == 400

    def test_unknown_fields_rejected(self, client):
        resp = client.post('/api/register', json={'username': 'x', 'password': 'pw', 'is_admin': True})
        assert resp.status_code == 400


# ============================================================================
# Login / logout
# ============================================================================

class TestLogin:

    def test_login_and_logout(self, app, admin_client):
        c = app.test_client()
        resp = c.post('/api/login', json={'username': 'admin', 'password': 'secret'})
        assert resp.status_code == 200
        assert resp.get_json()['user'] == {'id': 1, 'username': 'admin', 'role': 'admin'}
        assert c.post('/api/logout').get_json() == {'ok': True}
        assert session_user(c) is None

    def test_wrong_password(self, app, admin_client):
        resp = app.test_client().post('/api/login', json={'username': 'admin', 'password': 'nope'})
        assert resp.status_code == 401
        assert resp.get_json() == {'error': 'Invalid credentials'}

    def test_unknown_user(self, client):
        resp = client.post('/api/login', json={'username': 'ghost', 'password': 'x'})
        assert resp.status_code == 401

    def test_banned_user_gets_distinct_status(self, app, admin_client, user_client):
        uid = session_user(user_client)['id']
        assert admin_client.post('/api/admin/users/%d/ban' % uid, json={'banned': True}).status_code == 200

        c = app.test_client()
        ok_password = c.post('/api/login', json={'username': 'shopper', 'password': 'secret'})
        bad_password = c.post('/api/login', json={'username': 'shopper', 'password': 'wrong'})
        assert ok_password.status_code == 403
        assert ok_password.get_json() == {'error': 'Account is banned'}
        assert bad_password.status_code == 401
        assert session_user(c) is None

    def test_missing_credentials(self, client):
        assert client.post('/api/login', json={}).status_code == 400
        assert client.post('/api/login').status_code == 400


# ============================================================================
# Session lifetime and revalidation
# ============================================================================

class TestSession:

    def test_anonymous(self, client):
        assert session_user(client) is None

    def test_cookie_is_permanent_with_fixed_lifetime(self, app, client):
        resp = register(client, 'alice')
        cookie = resp.headers['Set-Cookie']
        assert 'Expires=' in cookie
        assert app.permanent_session_lifetime.total_seconds() == 8 * 3600
        assert app.config['SESSION_REFRESH_EACH_REQUEST'] is False

    def test_expired_session_is_anonymous(self, admin_client):
        with admin_client.session_transaction() as sess:
            sess['issued_at'] = int(time.time()) - 8 * 3600 - 5
        assert session_user(admin_client) is None
        assert admin_client.post('/api/categories', json={'name': 'Hats'}).status_code == 401

    def test_session_still_valid_inside_window(self, admin_client):
        with admin_client.session_transaction() as sess:
            sess['issued_at'] = int(time.time()) - 7 * 3600
        assert session_user(admin_client)['username'] == 'admin'

    def test_ban_ends_open_session(self, app, admin_client):
        other = app.test_client()
        uid = register(other, 'second', role='admin').get_json()['user']['id']
        assert other.get('/api/admin/users').status_code == 200

        admin_client.post('/api/admin/users/%d/ban' % uid, json={'banned': True})
        assert other.get('/api/admin/users').status_code == 401
        assert session_user(other) is None

    def test_demotion_applies_to_open_session(self, app, admin_client):
        other = app.test_client()
        uid = register(other, 'second', role='admin').get_json()['user']['id']
        admin_client.post('/api/admin/users/%d/role' % uid, json={'role': 'user'})
        assert other.get('/api/admin/users').status_code == 401
        assert session_user(other)['role'] == 'user'


# ============================================================================
# Profile
# ============================================================================

class TestProfile:

    def test_requires_login(self, client):
        assert client.get('/api/profile').status_code == 401
        assert client.post('/api/profile', json={}).status_code == 401

    def test_empty_then_upsert(self, user_client):
        assert user_client.get('/api/profile').get_json() is None

        body = {
            'first_name': 'Ada',
            'last_name': 'Lovelace',
            'birth_date': '1815-12-10',
            'shipping_address': '12 St James Sq',
            'shipping_zip': 'SW1Y',
            'billing_address': '',
            'billing_zip': '',
        }
        resp = user_client.post('/api/profile', json=body)
        assert resp.status_code == 200
        saved = user_client.get('/api/profile').get_json()
        assert saved['first_name'] == 'Ada'
        assert saved['billing_address'] is None

        user_client.post('/api/profile', json={'first_name': 'Augusta'})
        assert user_client.get('/api/profile').get_json()['first_name'] == 'Augusta'

    def test_profiles_are_per_user(self, admin_client, user_client):
        user_client.post('/api/profile', json={'first_name': 'Shop'})
        assert admin_client.get('/api/profile').get_json() is None

    def test_bad_birth_date(self, user_client):
        resp = user_client.post('/api/profile', json={'birth_date': '10/12/1815'})
        assert resp.status_code == 400
        assert resp.get_json()['error'].startswith('birth_date')

    def test_form_post(self, user_client):
        resp = user_client.post('/api/profile', data={'first_name': 'Form', 'shipping_zip': '20100'})
        assert resp.status_code == 200
        assert resp.get_json()['shipping_zip'] == '20100'
