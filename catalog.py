import os
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest, Conflict
from werkzeug.utils import safe_join, secure_filename

from auth import admin_required
from models import db, Category, Product
from schemas import CategoryRequest, ProductRequest, ProductUpdateRequest, load

bp = Blueprint('catalog', __name__, url_prefix='/api')

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
UPLOAD_URL_PREFIX = '/static/uploads/'


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def save_image(image):
    """Store an uploaded image and return its public URL."""
    if not allowed_file(image.filename):
        raise BadRequest('Invalid image format. Allowed types: %s.' % ', '.join(sorted(ALLOWED_EXTENSIONS)))
    filename = secure_filename(image.filename)
    base, ext = os.path.splitext(filename)
    filename = f"{base}_{int(datetime.utcnow().timestamp() * 1000)}{ext}"
    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    image.save(os.path.join(folder, filename))
    return UPLOAD_URL_PREFIX + filename


def remove_image(image_url):
    # only files we uploaded ourselves; external URLs are left alone
    if not image_url or not image_url.startswith(UPLOAD_URL_PREFIX):
        return
    path = safe_join(current_app.config['UPLOAD_FOLDER'], image_url[len(UPLOAD_URL_PREFIX):])
    if path is not None and os.path.isfile(path):
        os.remove(path)


def _check_category(category_id):
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise BadRequest('Unknown category')


def _name_taken(name, exclude_id=None):
    query = Category.query.filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def _commit_category():
    # the unique index settles concurrent writes the name check missed
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('Category already exists')


def _uploaded_image():
    image = request.files.get('image')
    if image and image.filename:
        return image
    return None


# Categories

@bp.get('/categories')
def list_categories():
    return jsonify([c.to_dict() for c in Category.query.order_by(Category.name).all()])


@bp.get('/categories/<int:cid>')
def get_category(cid):
    return jsonify(db.get_or_404(Category, cid, description='Category not found').to_dict())


@bp.post('/categories')
@admin_required
def create_category():
    data = load(CategoryRequest)
    if _name_taken(data.name):
        raise Conflict('Category already exists')
    c = Category(name=data.name)
    db.session.add(c)
    _commit_category()
    return jsonify(c.to_dict()), 201


@bp.put('/categories/<int:cid>')
@admin_required
def rename_category(cid):
    c = db.get_or_404(Category, cid, description='Category not found')
    data = load(CategoryRequest)
    if _name_taken(data.name, exclude_id=cid):
        raise Conflict('Category already exists')
    c.name = data.name
    _commit_category()
    return jsonify(c.to_dict())


@bp.delete('/categories/<int:cid>')
@admin_required
def delete_category(cid):
    c = db.get_or_404(Category, cid, description='Category not found')
    Product.query.filter_by(category_id=cid).update({'category_id': None})
    db.session.delete(c); db.session.commit()
    current_app.logger.info('deleted category %s', cid)
    return jsonify(ok=True)


# Products

@bp.get('/products')
def list_products():
    return jsonify([p.to_dict() for p in Product.newest_first().all()])


@bp.get('/products/<int:pid>')
def get_product(pid):
    return jsonify(db.get_or_404(Product, pid, description='Product not found').to_dict())


@bp.post('/products')
@admin_required
def create_product():
    data = load(ProductRequest)
    _check_category(data.category_id)
    p = Product(**data.model_dump())
    image = _uploaded_image()
    if image:
        p.image_url = save_image(image)
    db.session.add(p); db.session.commit()
    return jsonify(p.to_dict()), 201


@bp.put('/products/<int:pid>')
@admin_required
def update_product(pid):
    p = db.get_or_404(Product, pid, description='Product not found')
    data = load(ProductUpdateRequest)
    changes = data.model_dump(exclude_unset=True)
    if 'category_id' in changes:
        _check_category(changes['category_id'])
    for field in ('title', 'price_cents'):
        if field in changes and changes[field] is None:
            raise BadRequest('%s: must not be null' % field)
    old_image = p.image_url
    for field, value in changes.items():
        setattr(p, field, value)
    image = _uploaded_image()
    if image:
        p.image_url = save_image(image)
    db.session.commit()
    if p.image_url != old_image:
        remove_image(old_image)
    return jsonify(p.to_dict())


@bp.delete('/products/<int:pid>')
@admin_required
def delete_product(pid):
    p = db.get_or_404(Product, pid, description='Product not found')
    image_url = p.image_url
    db.session.delete(p); db.session.commit()
    remove_image(image_url)
    return jsonify(ok=True)
