"""
Request bodies accepted by the API.

Each endpoint that takes input validates it through one of these models
before touching the database. Unknown fields are rejected unless a model
says otherwise.
"""

from typing import Annotated, List, Literal, Optional

from flask import request
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from werkzeug.exceptions import BadRequest


class Schema(BaseModel):
    model_config = ConfigDict(extra='forbid')


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# HTML forms post empty strings for untouched inputs
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalId = Annotated[Optional[int], BeforeValidator(_blank_to_none)]


# Auth

class RegisterRequest(Schema):
    username: str = Field(..., min_length=1, max_length=80)
    password: str = Field(..., min_length=1)
    role: Literal['user', 'admin'] = 'user'

    @field_validator('username')
    @classmethod
    def strip_username(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('must not be blank')
        return v


class LoginRequest(Schema):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator('username')
    @classmethod
    def strip_username(cls, v):
        return v.strip()


class ProfileRequest(Schema):
    first_name: OptionalText = Field(None, max_length=80)
    last_name: OptionalText = Field(None, max_length=80)
    birth_date: OptionalText = Field(None, pattern=r'^\d{4}-\d{2}-\d{2}$', description='YYYY-MM-DD')
    shipping_address: OptionalText = Field(None, max_length=255)
    shipping_zip: OptionalText = Field(None, max_length=20)
    billing_address: OptionalText = Field(None, max_length=255)
    billing_zip: OptionalText = Field(None, max_length=20)


# Settings

class SettingsRequest(Schema):
    siteName: Optional[str] = Field(None, max_length=120)
    heroTitle: Optional[str] = None
    heroSubtitle: Optional[str] = None
    aboutText: Optional[str] = None
    contactText: Optional[str] = None
    footerText: Optional[str] = None
    homeLayout: Optional[str] = None

    @field_validator('siteName')
    @classmethod
    def site_name_not_blank(cls, v):
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError('Invalid siteName')
        return v

    @model_validator(mode='after')
    def something_to_save(self):
        if not self.model_fields_set:
            raise ValueError('No settings given')
        return self


# Catalog

class CategoryRequest(Schema):
    name: str = Field(..., min_length=1, max_length=80)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('must not be blank')
        return v


class ProductRequest(Schema):
    title: str = Field(..., min_length=1, max_length=120)
    description: str = ''
    price_cents: int = Field(..., ge=0, description='Price in minor currency units')
    image_url: str = Field('', max_length=255)
    category_id: OptionalId = None


class ProductUpdateRequest(Schema):
    title: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    price_cents: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = Field(None, max_length=255)
    category_id: OptionalId = None


# Admin

class BanRequest(Schema):
    banned: bool


class RoleRequest(Schema):
    role: Literal['user', 'admin']


class LayoutRowRequest(Schema):
    category_id: int
    enabled: bool = True
    selection: Literal['all', 'none', 'subset'] = 'all'
    product_ids: List[int] = []


class HomeLayoutRequest(Schema):
    rows: List[LayoutRowRequest]


# Checkout

class CartLine(BaseModel):
    # the client cart also holds title/price snapshots; they are never used
    model_config = ConfigDict(extra='ignore')

    id: int
    quantity: int = 1

    @field_validator('quantity', mode='before')
    @classmethod
    def default_quantity(cls, v):
        return 1 if v is None else v


class CheckoutRequest(Schema):
    items: List[CartLine] = []


def _describe(exc):
    err = exc.errors()[0]
    loc = '.'.join(str(p) for p in err.get('loc', ()) if p != '__root__')
    msg = err.get('msg', 'Invalid payload')
    if msg.startswith('Value error, '):
        msg = msg[len('Value error, '):]
    return '%s: %s' % (loc, msg) if loc else msg


def load(schema, data=None):
    """Validate ``data`` (default: the current request body) against ``schema``.

    JSON bodies are preferred; form posts are accepted for the endpoints that
    take file uploads. Raises :class:`BadRequest` with a readable message.
    """
    if data is None:
        data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict() if request.form else {}
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise BadRequest(_describe(exc))
