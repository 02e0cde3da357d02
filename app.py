import os
import logging
from datetime import timedelta
from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv
from sqlalchemy import event

from models import db, Setting
import auth
import admin
import catalog
import checkout
import storefront

load_dotenv()

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB

# roughly what helmet sets by default for an API
SECURITY_HEADERS = {
    'Content-Security-Policy': "default-src 'self'; frame-ancestors 'self'; object-src 'none'",
    'Cross-Origin-Opener-Policy': 'same-origin',
    'Cross-Origin-Resource-Policy': 'same-origin',
    'Referrer-Policy': 'no-referrer',
    'Strict-Transport-Security': 'max-age=15552000; includeSubDomains',
    'X-Content-Type-Options': 'nosniff',
    'X-DNS-Prefetch-Control': 'off',
    'X-Frame-Options': 'SAMEORIGIN',
}


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.execute('PRAGMA journal_mode=WAL')
    cursor.close()


def default_config(root_path):
    return {
        'SECRET_KEY': os.getenv('SECRET_KEY') or os.getenv('SESSION_SECRET', 'devsecret'),
        'SQLALCHEMY_DATABASE_URI': os.getenv('DATABASE_URL', 'sqlite:///data.sqlite'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PERMANENT_SESSION_LIFETIME': timedelta(hours=float(os.getenv('SESSION_HOURS', '8'))),
        'SESSION_REFRESH_EACH_REQUEST': False,
        'UPLOAD_FOLDER': os.getenv('UPLOAD_FOLDER', os.path.join(root_path, 'static', 'uploads')),
        'MAX_CONTENT_LENGTH': MAX_FILE_SIZE,
        'STRIPE_SECRET_KEY': os.getenv('STRIPE_SECRET_KEY', ''),
        'STRIPE_PUBLIC_KEY': os.getenv('STRIPE_PUBLIC_KEY', ''),
        'CHECKOUT_CURRENCY': os.getenv('CHECKOUT_CURRENCY', 'eur'),
        'CHECKOUT_SUCCESS_PATH': os.getenv('CHECKOUT_SUCCESS_PATH', '/success.html?session_id={CHECKOUT_SESSION_ID}'),
        'CHECKOUT_CANCEL_PATH': os.getenv('CHECKOUT_CANCEL_PATH', '/cancel.html'),
        'ALLOW_ADMIN_REGISTRATION': _env_flag('ALLOW_ADMIN_REGISTRATION', True),
        'DEFAULT_SITE_NAME': os.getenv('SITE_NAME', 'Ecommercio'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
        'CORS_ORIGINS': os.getenv('CORS_ORIGINS', '*'),
    }


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify(error=e.description), e.code

    @app.errorhandler(Exception)
    def unexpected_error(e):
        db.session.rollback()
        app.logger.exception('unhandled error on %s %s', request.method, request.path)
        return jsonify(error='Internal server error'), 500


def seed_defaults(app):
    if Setting.get_value('siteName') is None:
        Setting.put('siteName', app.config['DEFAULT_SITE_NAME'])
        db.session.commit()


def create_app(test_config=None):
    app = Flask(__name__, static_folder='static')
    app.config.from_mapping(default_config(app.root_path))
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db.init_app(app)
    with app.app_context():
        if db.engine.dialect.name == 'sqlite':
            event.listen(db.engine, 'connect', _sqlite_pragmas)
        db.create_all()
        seed_defaults(app)

    checkout.init_gateway(app)
    CORS(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}})

    app.before_request(auth.load_current_user)

    @app.after_request
    def add_security_headers(response):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.after_request
    def log_request(response):
        app.logger.info('%s %s %s', request.method, request.full_path.rstrip('?'), response.status_code)
        return response

    for module in (auth, catalog, storefront, admin, checkout):
        app.register_blueprint(module.bp)
    register_error_handlers(app)
    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    create_app().run(debug=True, port=int(os.getenv('PORT', 3000)))
