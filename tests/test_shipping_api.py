import json
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import app as storefront_app
from services.cep import Address

BOX = {"weight_grams": 300, "height_cm": 10, "width_cm": 20, "length_cm": 30}


@pytest.fixture(autouse=True)
def set_testing_flag():
    original = storefront_app.app.config.get('TESTING')
    storefront_app.app.config['TESTING'] = True
    try:
        yield
    finally:
        if original is None:
            storefront_app.app.config.pop('TESTING', None)
        else:
            storefront_app.app.config['TESTING'] = original


@pytest.fixture()
def settings_file(tmp_path, monkeypatch):
    path = tmp_path / 'settings.json'
    monkeypatch.setattr(storefront_app, 'SETTINGS_FILE', path)
    return path


@pytest.fixture()
def client(settings_file):
    return storefront_app.app.test_client()


def test_quote_returns_both_services_with_delivery_dates(client):
    response = client.post(
        '/api/shipping/quote',
        json={"cep": "38400000", "items": [BOX], "shipDate": "2026-10-19"},
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "success"
    assert payload["cep"] == "38400-000"
    assert payload["quotes"] == [
        {"service": "PAC", "name": "PAC - Correios", "price": 19.08, "days": 5, "estimatedDelivery": "2026-10-26"},
        {"service": "SEDEX", "name": "SEDEX - Correios", "price": 31.08, "days": 2, "estimatedDelivery": "2026-10-21"},
    ]


def test_quote_rejects_invalid_cep(client):
    response = client.post('/api/shipping/quote', json={"cep": "123", "items": [BOX]})

    assert response.status_code == 400
    assert response.get_json() == {"status": "error", "message": "Invalid postal code"}


@pytest.mark.parametrize(
    "body",
    [
        {"cep": "38400000"},
        {"cep": "38400000", "items": []},
        {"cep": "38400000", "items": [{"weight_grams": 300, "height_cm": 10}]},
        {"cep": "38400000", "items": ["box"]},
    ],
)
def test_quote_rejects_malformed_items(client, body):
    response = client.post('/api/shipping/quote', json=body)

    assert response.status_code == 400
    assert response.get_json()["status"] == "error"


def test_quote_rejects_bad_ship_date(client):
    response = client.post('/api/shipping/quote', json={"cep": "38400000", "items": [BOX], "shipDate": "someday"})

    assert response.status_code == 400


def test_quote_requires_json(client):
    response = client.post('/api/shipping/quote', data="not json", content_type='text/plain')

    assert response.status_code == 400


def test_free_shipping_uses_default_threshold(client):
    response = client.get('/api/shipping/free-shipping?subtotal=300')

    assert response.get_json() == {"eligible": True, "threshold": 299.0, "remaining": 0.0}


def test_free_shipping_uses_configured_threshold(client, settings_file):
    settings_file.write_text(json.dumps({"free_shipping_threshold": 400}))

    response = client.get('/api/shipping/free-shipping?subtotal=300')

    assert response.get_json() == {"eligible": False, "threshold": 400.0, "remaining": 100.0}


@pytest.mark.parametrize("subtotal", ["", "abc", "nan", "inf"])
def test_free_shipping_rejects_bad_subtotal(client, subtotal):
    response = client.get(f'/api/shipping/free-shipping?subtotal={subtotal}')

    assert response.status_code == 400


def test_cep_lookup(client, monkeypatch):
    looked_up = []

    def fake_fetch(cep):
        looked_up.append(cep)
        return Address(street="Avenida Paulista", neighborhood="Bela Vista", city="São Paulo", state="SP")

    monkeypatch.setattr(storefront_app, 'fetch_address_by_cep', fake_fetch)

    response = client.get('/api/cep/01310-100')

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["cep"] == "01310-100"
    assert payload["address"]["city"] == "São Paulo"
    assert looked_up == ["01310-100"]


def test_cep_lookup_not_found(client, monkeypatch):
    monkeypatch.setattr(storefront_app, 'fetch_address_by_cep', lambda cep: None)

    response = client.get('/api/cep/99999999')

    assert response.status_code == 404


def test_cep_lookup_rejects_invalid_cep(client, monkeypatch):
    def fail_fetch(cep):  # pragma: no cover - must not be called
        raise AssertionError("network lookup attempted")

    monkeypatch.setattr(storefront_app, 'fetch_address_by_cep', fail_fetch)

    response = client.get('/api/cep/1234')

    assert response.status_code == 400


def test_checkout_summary(client):
    cart = [{"product": dict(BOX, price=100), "quantity": 1}]

    response = client.post('/api/checkout/summary', json={"cep": "38400-000", "cart": cart})

    assert response.status_code == 200
    summary = response.get_json()["summary"]
    assert summary["subtotal"] == 100
    assert summary["shippingCost"] == 19.08
    assert summary["total"] == 119.08
    assert summary["freeShipping"] is False
    assert summary["selectedQuote"]["service"] == "PAC"


def test_checkout_summary_free_shipping(client):
    cart = [{"product": dict(BOX, price=150), "quantity": 2}]

    response = client.post(
        '/api/checkout/summary',
        json={"cep": "69000000", "cart": cart, "selectedService": "SEDEX", "discount": 20},
    )

    summary = response.get_json()["summary"]
    assert summary["freeShipping"] is True
    assert summary["shippingCost"] == 0
    assert summary["total"] == 280
    assert summary["selectedQuote"]["service"] == "SEDEX"


@pytest.mark.parametrize(
    "body",
    [
        {"cep": "38400000", "cart": []},
        {"cep": "123", "cart": [{"product": dict(BOX, price=10)}]},
        {"cep": "38400000", "cart": [{"product": dict(BOX, price=10)}], "selectedService": "LOGGI"},
        {"cep": "38400000", "cart": [{"product": dict(BOX, price=-10)}]},
    ],
)
def test_checkout_summary_rejects_bad_payloads(client, body):
    response = client.post('/api/checkout/summary', json=body)

    assert response.status_code == 400


def test_settings_round_trip(client, settings_file):
    response = client.post(
        '/api/settings',
        json={"free_shipping_threshold": "350", "timezone": "America/Manaus", "store_name": "Ateliê"},
    )

    assert response.status_code == 200
    assert response.get_json()["settings"] == {
        "store_name": "Ateliê",
        "free_shipping_threshold": 350.0,
        "timezone": "America/Manaus",
    }
    assert json.loads(settings_file.read_text())["free_shipping_threshold"] == 350.0

    current = client.get('/api/settings').get_json()
    assert current["timezone"] == "America/Manaus"


@pytest.mark.parametrize(
    "body",
    [
        {"free_shipping_threshold": -1},
        {"free_shipping_threshold": "lots"},
        {"timezone": "Nowhere/Special"},
        ["not", "a", "dict"],
    ],
)
def test_settings_rejects_invalid_values(client, body):
    response = client.post('/api/settings', json=body)

    assert response.status_code == 400


def test_corrupt_settings_fall_back_to_defaults(client, settings_file):
    settings_file.write_text("{not json")

    assert client.get('/api/settings').get_json() == {
        "store_name": "Your Store Name",
        "free_shipping_threshold": 299.0,
        "timezone": "America/Sao_Paulo",
    }


@pytest.mark.parametrize("height", ['"nan"', '"inf"', 'NaN', 'Infinity'])
def test_quote_rejects_non_finite_dimensions(client, height):
    body = (
        '{"cep": "38400000", "items": [{"weight_grams": 300, "height_cm": %s, '
        '"width_cm": 200, "length_cm": 300}]}' % height
    )

    response = client.post('/api/shipping/quote', data=body, content_type='application/json')

    assert response.status_code == 400
    assert response.get_json()["status"] == "error"


def test_checkout_summary_rejects_non_finite_dimensions(client):
    body = '{"cep": "38400000", "cart": [{"product": {"price": 10, "height_cm": NaN}}]}'

    response = client.post('/api/checkout/summary', data=body, content_type='application/json')

    assert response.status_code == 400


def test_json_sort_keys_disabled():
    assert storefront_app.app.json.sort_keys is False
