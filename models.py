# models.py
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

ROLES = ('user', 'admin')

SETTING_KEYS = ('siteName', 'heroTitle', 'heroSubtitle', 'aboutText', 'contactText', 'footerText', 'homeLayout')


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(10), nullable=False, default='user')
    banned = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    profile = db.relationship('Profile', backref='user', uselist=False, lazy=True,
                              cascade='all, delete-orphan')

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_session(self):
        return {'id': self.id, 'username': self.username, 'role': self.role}

    def to_dict(self):
        data = {
            'id': self.id,
            'username': self.username,
            'role': self.role,
            'banned': self.banned,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        fields = self.profile.to_dict() if self.profile else dict.fromkeys(Profile.FIELDS)
        data.update(fields)
        return data


class Profile(db.Model):
    __tablename__ = 'profiles'
    FIELDS = ('first_name', 'last_name', 'birth_date', 'shipping_address', 'shipping_zip',
              'billing_address', 'billing_zip')

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    first_name = db.Column(db.String(80))
    last_name = db.Column(db.String(80))
    birth_date = db.Column(db.String(10))
    shipping_address = db.Column(db.String(255))
    shipping_zip = db.Column(db.String(20))
    billing_address = db.Column(db.String(255))
    billing_zip = db.Column(db.String(20))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {f: getattr(self, f) for f in self.FIELDS}


class Category(db.Model):
    __tablename__ = 'categories'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Product(db.Model):
    __tablename__ = 'products'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(255), default='')
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    category = db.relationship('Category', backref=db.backref('products', passive_deletes=True))

    __table_args__ = (db.CheckConstraint('price_cents >= 0', name='ck_products_price_nonnegative'),)

    @classmethod
    def newest_first(cls):
        return cls.query.order_by(cls.created_at.desc(), cls.id.desc())

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description or '',
            'price_cents': self.price_cents,
            'image_url': self.image_url or '',
            'category_id': self.category_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Setting(db.Model):
    __tablename__ = 'settings'
    key = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Text)

    @classmethod
    def as_dict(cls):
        return {s.key: s.value for s in cls.query.all()}

    @classmethod
    def get_value(cls, key, default=None):
        row = db.session.get(cls, key)
        return row.value if row is not None else default

    @classmethod
    def put(cls, key, value):
        # caller commits
        row = db.session.get(cls, key)
        if row is None:
            db.session.add(cls(key=key, value=value))
        else:
            row.value = value
