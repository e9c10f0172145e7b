import json
import logging
import math
import os
import socket
import sys
from typing import Any, Dict, Optional

import pytz
from dotenv import load_dotenv
from flask import Flask, jsonify, request

from data_paths import ensure_data_root
from services.cep import fetch_address_by_cep, format_cep, is_valid_cep
from services.checkout import (
    CheckoutError,
    build_item_dimensions,
    calculate_cart_subtotal,
    summarize_checkout,
)
from services.delivery import DEFAULT_TIMEZONE, attach_delivery_dates
from shipcostestimate import (
    DEFAULT_FREE_SHIPPING_THRESHOLD,
    ItemDimensions,
    ShippingError,
    estimate,
    is_eligible_for_free_shipping,
)

# Load environment variables from .env file
load_dotenv()

# --- App Initialization ---
DEFAULT_PORT = 5002

app = Flask(__name__)
app.json.sort_keys = False

DATA_DIR = ensure_data_root()
SETTINGS_FILE = DATA_DIR / 'settings.json'

DEFAULT_SETTINGS = {
    "store_name": "Your Store Name",
    "free_shipping_threshold": DEFAULT_FREE_SHIPPING_THRESHOLD,
    "timezone": DEFAULT_TIMEZONE,
}


def read_json_file(file_path):
    if not os.path.exists(file_path) or os.path.getsize(file_path) == 0:
        return {}
    with open(file_path, 'r') as f:
        try:
            return json.load(f)
        except json.JSONDecodeError:
            app.logger.error(f"JSONDecodeError for {file_path}")
            return {}

def write_json_file(file_path, data):
    with open(file_path, 'w') as f:
        json.dump(data, f, indent=4)


def _load_settings_dict() -> Dict[str, Any]:
    settings_blob = read_json_file(SETTINGS_FILE)
    return settings_blob if isinstance(settings_blob, dict) else {}


def _coerce_threshold(candidate: Any) -> Optional[float]:
    if isinstance(candidate, bool) or candidate in (None, ""):
        return None
    try:
        value = float(candidate)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) and value >= 0 else None


def _is_known_timezone(candidate: Any) -> bool:
    return isinstance(candidate, str) and candidate in pytz.all_timezones_set


def get_free_shipping_threshold(settings: Optional[Dict[str, Any]] = None) -> float:
    settings_dict = settings if settings is not None else _load_settings_dict()
    threshold = _coerce_threshold(settings_dict.get('free_shipping_threshold'))
    return threshold if threshold is not None else DEFAULT_FREE_SHIPPING_THRESHOLD


def get_timezone_name(settings: Optional[Dict[str, Any]] = None) -> str:
    settings_dict = settings if settings is not None else _load_settings_dict()
    timezone_name = settings_dict.get('timezone')
    if timezone_name and not _is_known_timezone(timezone_name):
        app.logger.warning("Ignoring unknown timezone %r in settings", timezone_name)
        return DEFAULT_TIMEZONE
    return timezone_name or DEFAULT_TIMEZONE


def get_shipping_settings(settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    settings_dict = settings if settings is not None else _load_settings_dict()
    return {
        "store_name": settings_dict.get('store_name', DEFAULT_SETTINGS['store_name']),
        "free_shipping_threshold": get_free_shipping_threshold(settings_dict),
        "timezone": get_timezone_name(settings_dict),
    }


def _error(message, status_code):
    return jsonify({"status": "error", "message": message}), status_code


if not SETTINGS_FILE.exists():
    write_json_file(SETTINGS_FILE, dict(DEFAULT_SETTINGS))


@app.route('/api/settings', methods=['GET'])
def get_settings():
    return jsonify(get_shipping_settings())


@app.route('/api/settings', methods=['POST'])
def update_settings():
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return _error("Request must be JSON", 400)

    settings = _load_settings_dict()
    if 'free_shipping_threshold' in payload:
        threshold = _coerce_threshold(payload['free_shipping_threshold'])
        if threshold is None:
            return _error("free_shipping_threshold must be a non-negative number", 400)
        settings['free_shipping_threshold'] = threshold
    if 'timezone' in payload:
        if not _is_known_timezone(payload['timezone']):
            return _error(f"Unknown timezone '{payload['timezone']}'", 400)
        settings['timezone'] = payload['timezone']
    if 'store_name' in payload:
        settings['store_name'] = str(payload['store_name'] or '').strip() or DEFAULT_SETTINGS['store_name']

    write_json_file(SETTINGS_FILE, settings)
    app.logger.info("Updated shipping settings: %s", sorted(payload.keys()))
    return jsonify({"status": "success", "settings": get_shipping_settings(settings)})


@app.route('/api/shipping/quote', methods=['POST'])
def quote_shipping():
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return _error("Request must be JSON", 400)

    cep = payload.get('cep') or payload.get('postalCode') or ''
    items_payload = payload.get('items')
    if not isinstance(items_payload, list) or not items_payload:
        return _error("items must be a non-empty list", 400)

    try:
        items = [ItemDimensions.from_mapping(item) for item in items_payload]
    except ShippingError as exc:
        return _error(str(exc), 400)

    result = estimate(cep, items)
    if not result.ok:
        return _error(str(result.error), 400)

    try:
        quotes = attach_delivery_dates(
            result.data,
            ship_date=payload.get('shipDate'),
            timezone_name=get_timezone_name(),
        )
    except ValueError as exc:
        return _error(str(exc), 400)

    return jsonify({"status": "success", "cep": format_cep(cep), "quotes": quotes})


@app.route('/api/shipping/free-shipping', methods=['GET'])
def check_free_shipping():
    raw_subtotal = request.args.get('subtotal', '')
    try:
        subtotal = float(raw_subtotal)
    except ValueError:
        return _error("subtotal must be a number", 400)
    if not math.isfinite(subtotal):
        return _error("subtotal must be a number", 400)

    threshold = get_free_shipping_threshold()
    return jsonify({
        "eligible": is_eligible_for_free_shipping(subtotal, threshold),
        "threshold": threshold,
        "remaining": max(0.0, round(threshold - subtotal, 2)),
    })


@app.route('/api/cep/<string:cep>', methods=['GET'])
def lookup_cep(cep):
    if not is_valid_cep(cep):
        return _error("Invalid postal code", 400)
    address = fetch_address_by_cep(cep)
    if address is None:
        return _error("Address not found for CEP", 404)
    return jsonify({"status": "success", "cep": format_cep(cep), "address": address.to_dict()})


@app.route('/api/checkout/summary', methods=['POST'])
def checkout_summary():
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return _error("Request must be JSON", 400)

    cart = payload.get('cart')
    if not isinstance(cart, list) or not cart:
        return _error("Cart is empty", 400)

    try:
        subtotal = calculate_cart_subtotal(cart)
        result = estimate(payload.get('cep') or '', build_item_dimensions(cart))
        if not result.ok:
            return _error(str(result.error), 400)
        summary = summarize_checkout(
            subtotal,
            result.data,
            selected_service=payload.get('selectedService'),
            discount=payload.get('discount') or 0,
            threshold=get_free_shipping_threshold(),
        )
    except CheckoutError as exc:
        return _error(str(exc), 400)
    except Exception as exc:  # pragma: no cover - defensive logging
        app.logger.exception("Failed to summarise checkout: %s", exc)
        return _error("Failed to calculate checkout totals.", 500)

    return jsonify({"status": "success", "summary": summary.to_dict()})


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('127.0.0.1', port)) == 0

def main():
    logging.basicConfig(level=logging.INFO)
    port = int(os.environ.get('STOREFRONT_PORT', DEFAULT_PORT))
    if is_port_in_use(port):
        print(f"Port {port} is already in use. Is another instance running?")
        sys.exit(1)
    print(f"Port {port} is free. Starting storefront shipping service.")
    app.run(host='0.0.0.0', port=port, debug=False)

if __name__ == '__main__':
    main()
