import time
from functools import wraps

from flask import Blueprint, current_app, g, jsonify, session
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import Conflict, Forbidden, Unauthorized
from werkzeug.security import check_password_hash, generate_password_hash

from models import db, Profile, User
from schemas import LoginRequest, ProfileRequest, RegisterRequest, load

bp = Blueprint('auth', __name__, url_prefix='/api')


def start_session(user):
    session.clear()
    session.permanent = True
    session.update(user.to_session())
    session['user_id'] = user.id
    session['issued_at'] = int(time.time())


def end_session():
    session.clear()


def _session_expired():
    issued = session.get('issued_at')
    if issued is None:
        return True
    lifetime = current_app.permanent_session_lifetime.total_seconds()
    return time.time() - issued > lifetime


def load_current_user():
    """Resolve the signed-in user for this request into ``g.user``.

    The cookie only names the user; ban and role are read fresh from the
    database so changes apply to sessions that are already open.
    """
    g.user = None
    user_id = session.get('user_id')
    if user_id is None:
        return
    if _session_expired():
        current_app.logger.info('session for user %s expired', user_id)
        end_session()
        return
    user = db.session.get(User, user_id)
    if user is None or user.banned:
        end_session()
        return
    if session.get('role') != user.role:
        session['role'] = user.role
    g.user = user


def login_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        if g.get('user') is None:
            raise Unauthorized('Unauthorized')
        return f(*args, **kwargs)
    return wrapped


def admin_required(f):
    @wraps(f)
    @login_required
    def wrapped(*args, **kwargs):
        if not g.user.is_admin:
            raise Unauthorized('Unauthorized')
        return f(*args, **kwargs)
    return wrapped


def username_taken(username):
    return User.query.filter_by(username=username).first() is not None


@bp.get('/session')
def current_session():
    user = g.get('user')
    return jsonify(user=user.to_session() if user else None)


@bp.post('/register')
def register():
    data = load(RegisterRequest)
    if username_taken(data.username):
        raise Conflict('Username already exists')
    role = data.role
    if role == 'admin' and not current_app.config['ALLOW_ADMIN_REGISTRATION']:
        role = 'user'
    # the very first account is always an admin
    if not User.query.filter_by(role='admin').first():
        role = 'admin'
    user = User(username=data.username, password_hash=generate_password_hash(data.password), role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent registration of the same name
        db.session.rollback()
        raise Conflict('Username already exists')
    current_app.logger.info('registered user %s (%s)', user.username, user.role)
    start_session(user)
    return jsonify(user=user.to_session()), 201


@bp.post('/login')
def login():
    data = load(LoginRequest)
    user = User.query.filter_by(username=data.username).first()
    if not user or not check_password_hash(user.password_hash, data.password):
        current_app.logger.warning('failed login for %r', data.username)
        raise Unauthorized('Invalid credentials')
    if user.banned:
        current_app.logger.warning('banned user %s tried to log in', user.username)
        raise Forbidden('Account is banned')
    start_session(user)
    return jsonify(user=user.to_session())


@bp.post('/logout')
def logout():
    end_session()
    return jsonify(ok=True)


@bp.get('/profile')
@login_required
def get_profile():
    profile = g.user.profile
    return jsonify(profile.to_dict() if profile else None)


@bp.post('/profile')
@login_required
def save_profile():
    data = load(ProfileRequest)
    profile = g.user.profile
    if profile is None:
        profile = Profile(user=g.user)
        db.session.add(profile)
    for field, value in data.model_dump().items():
        setattr(profile, field, value)
    db.session.commit()
    return jsonify(profile.to_dict())
