from flask import Blueprint, current_app, g, jsonify
from werkzeug.exceptions import BadRequest

from auth import admin_required
from models import db, User
from schemas import BanRequest, RoleRequest, load

bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _other_active_admins(user):
    return User.query.filter(User.role == 'admin', User.banned.is_(False), User.id != user.id).count()


@bp.get('/users')
@admin_required
def list_users():
    users = User.query.order_by(User.created_at, User.id).all()
    return jsonify([u.to_dict() for u in users])


@bp.post('/users/<int:uid>/ban')
@admin_required
def set_ban(uid):
    user = db.get_or_404(User, uid, description='User not found')
    data = load(BanRequest)
    if data.banned and user.is_admin and not user.banned and _other_active_admins(user) == 0:
        raise BadRequest('At least one admin is required')
    user.banned = data.banned
    db.session.commit()
    current_app.logger.info('%s %s user %s', g.user.username, 'banned' if data.banned else 'unbanned', user.username)
    return jsonify(user.to_dict())


@bp.post('/users/<int:uid>/role')
@admin_required
def set_role(uid):
    user = db.get_or_404(User, uid, description='User not found')
    data = load(RoleRequest)
    if data.role != 'admin' and user.is_admin and _other_active_admins(user) == 0:
        raise BadRequest('At least one admin is required')
    user.role = data.role
    db.session.commit()
    current_app.logger.info('%s set role of %s to %s', g.user.username, user.username, user.role)
    return jsonify(user.to_dict())
