from flask import Blueprint, current_app, g, jsonify
from werkzeug.exceptions import BadRequest

from auth import admin_required
from layout import LayoutEditor, LayoutError, compose_home, parse_layout
from models import db, Category, Product, Setting
from schemas import HomeLayoutRequest, SettingsRequest, load

bp = Blueprint('storefront', __name__, url_prefix='/api')


def _catalog():
    categories = Category.query.order_by(Category.name).all()
    products = Product.newest_first().all()
    return categories, products


@bp.get('/settings')
def get_settings():
    return jsonify(Setting.as_dict())


@bp.post('/settings')
@admin_required
def save_settings():
    data = load(SettingsRequest)
    changes = data.model_dump(exclude_unset=True)
    for key, value in changes.items():
        if value is None:
            raise BadRequest('%s: must not be null' % key)
    if changes.get('homeLayout'):
        try:
            parse_layout(changes['homeLayout'], strict=True)
        except LayoutError as e:
            raise BadRequest(str(e))
    for key, value in changes.items():
        Setting.put(key, value)
    db.session.commit()
    current_app.logger.info('%s updated settings: %s', g.user.username, ', '.join(sorted(changes)))
    return jsonify(ok=True)


@bp.get('/home')
def home():
    categories, products = _catalog()
    settings = Setting.as_dict()
    view = compose_home(products, categories, settings.get('homeLayout'))
    return jsonify(
        settings=settings,
        state=view.state,
        sections=[{'category': s.category.to_dict(), 'products': [p.to_dict() for p in s.products]}
                  for s in view.sections],
        products=[p.to_dict() for p in view.products],
    )


@bp.get('/admin/home-layout')
@admin_required
def get_home_layout():
    categories, products = _catalog()
    editor = LayoutEditor.from_setting(categories, products, Setting.get_value('homeLayout'))
    return jsonify(rows=editor.as_dict())


@bp.put('/admin/home-layout')
@admin_required
def save_home_layout():
    data = load(HomeLayoutRequest)
    categories, products = _catalog()
    editor = LayoutEditor(categories, products)
    try:
        editor.apply_rows(data.rows)
    except LayoutError as e:
        raise BadRequest(str(e))
    Setting.put('homeLayout', editor.serialize())
    db.session.commit()
    current_app.logger.info('%s saved the home layout (%d sections)', g.user.username, len(editor.to_entries()))
    return jsonify(rows=editor.as_dict())


@bp.delete('/admin/home-layout')
@admin_required
def reset_home_layout():
    Setting.put('homeLayout', '')
    db.session.commit()
    current_app.logger.info('%s reset the home layout', g.user.username)
    return jsonify(ok=True)
