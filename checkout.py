import logging
from dataclasses import dataclass

import stripe
from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest, InternalServerError

from models import Product, Setting
from schemas import CheckoutRequest, load

logger = logging.getLogger(__name__)

bp = Blueprint('checkout', __name__, url_prefix='/api')


class GatewayNotConfigured(InternalServerError):
    description = 'Stripe is not configured. Set STRIPE_SECRET_KEY'


class GatewayFailed(InternalServerError):
    description = 'Error creating checkout session'


class ProductUnavailable(InternalServerError):
    def __init__(self, product_id):
        super().__init__('Product not found: %s' % product_id)
        self.product_id = product_id


@dataclass
class PricedLine:
    product_id: int
    title: str
    description: str
    unit_amount: int
    quantity: int

    @property
    def amount(self):
        return self.unit_amount * self.quantity


class StripeGateway:
    """Creates Stripe Checkout Sessions with a fixed API key."""

    def __init__(self, api_key):
        self.api_key = api_key

    def create_session(self, line_items, success_url, cancel_url, metadata):
        cs = stripe.checkout.Session.create(
            api_key=self.api_key,
            mode='payment',
            payment_method_types=['card'],
            line_items=line_items,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        return cs.url


def init_gateway(app):
    key = app.config.get('STRIPE_SECRET_KEY')
    gateway = StripeGateway(key) if key else None
    app.extensions['payment_gateway'] = gateway
    if gateway is None:
        app.logger.warning('NOTE: configure STRIPE_PUBLIC_KEY and STRIPE_SECRET_KEY to enable checkout')
    return gateway


def price_cart(items):
    """Reprice client cart lines from the catalog.

    Every product is fetched in a single query; a missing id fails the whole
    cart. Quantities below one are raised to one.
    """
    ids = {line.id for line in items}
    products = {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()}
    lines = []
    for line in items:
        p = products.get(line.id)
        if p is None:
            raise ProductUnavailable(line.id)
        lines.append(PricedLine(p.id, p.title, p.description or '', p.price_cents, max(1, line.quantity)))
    return lines


def build_line_items(lines, currency):
    """Convert priced lines to Stripe Checkout line_items."""
    line_items = []
    for line in lines:
        product_data = {'name': line.title}
        if line.description:
            product_data['description'] = line.description
        line_items.append({
            'price_data': {
                'currency': currency,
                'unit_amount': line.unit_amount,
                'product_data': product_data,
            },
            'quantity': line.quantity,
        })
    return line_items


@bp.post('/create-checkout-session')
def create_checkout_session():
    data = load(CheckoutRequest)
    if not data.items:
        raise BadRequest('Cart is empty')
    lines = price_cart(data.items)

    gateway = current_app.extensions.get('payment_gateway')
    if gateway is None:
        raise GatewayNotConfigured()

    cfg = current_app.config
    base_url = request.host_url.rstrip('/')
    site_name = Setting.get_value('siteName', cfg['DEFAULT_SITE_NAME'])
    try:
        url = gateway.create_session(
            build_line_items(lines, cfg['CHECKOUT_CURRENCY']),
            success_url=base_url + cfg['CHECKOUT_SUCCESS_PATH'],
            cancel_url=base_url + cfg['CHECKOUT_CANCEL_PATH'],
            metadata={'siteName': site_name},
        )
    except stripe.StripeError:
        logger.exception('stripe rejected the checkout session')
        raise GatewayFailed()
    logger.info('checkout session created: %d lines, %d total', len(lines), sum(line.amount for line in lines))
    return jsonify(url=url)
