import pathlib
import sys

import pytest
import requests

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services import cep as cep_service
from services.cep import Address, clean_cep, fetch_address_by_cep, format_cep, is_valid_cep


class DummyResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class DummySession:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.mark.parametrize(
    "raw, cleaned, formatted, valid",
    [
        ("38400-000", "38400000", "38400-000", True),
        ("38400000", "38400000", "38400-000", True),
        (" 01.310-000 ", "01310000", "01310-000", True),
        ("384", "384", "384", False),
        ("384001", "384001", "38400-1", False),
        ("38400-0001234", "384000001234", "38400-000", False),
        (None, "", "", False),
    ],
)
def test_cep_helpers(raw, cleaned, formatted, valid):
    assert clean_cep(raw) == cleaned
    assert format_cep(raw) == formatted
    assert is_valid_cep(raw) is valid


def test_fetch_address_maps_viacep_fields():
    session = DummySession(
        DummyResponse(
            {
                "cep": "38400-000",
                "logradouro": "Avenida João Pinheiro",
                "complemento": "",
                "bairro": "Centro",
                "localidade": "Uberlândia",
                "uf": "MG",
            }
        )
    )

    address = fetch_address_by_cep("38400-000", session=session, timeout=2.5)

    assert address == Address(
        street="Avenida João Pinheiro",
        neighborhood="Centro",
        city="Uberlândia",
        state="MG",
    )
    assert session.calls == [("https://viacep.com.br/ws/38400000/json/", 2.5)]


def test_fetch_address_fills_missing_fields_with_blanks():
    session = DummySession(DummyResponse({"localidade": "Manaus", "uf": "AM", "logradouro": None}))

    address = fetch_address_by_cep("69000000", session=session)

    assert address.to_dict() == {"street": "", "neighborhood": "", "city": "Manaus", "state": "AM"}


def test_invalid_cep_skips_network():
    session = DummySession(DummyResponse({}))

    assert fetch_address_by_cep("1234", session=session) is None
    assert session.calls == []


@pytest.mark.parametrize("erro", [True, "true"])
def test_unknown_cep_returns_none(erro):
    session = DummySession(DummyResponse({"erro": erro}))

    assert fetch_address_by_cep("99999999", session=session) is None


@pytest.mark.parametrize(
    "outcome",
    [
        requests.ConnectionError("offline"),
        requests.Timeout("slow"),
        DummyResponse({}, status_code=500),
        DummyResponse(ValueError("not json")),
    ],
)
def test_lookup_failures_are_logged_and_return_none(outcome, caplog):
    session = DummySession(outcome)

    with caplog.at_level("WARNING", logger=cep_service.LOGGER.name):
        assert fetch_address_by_cep("38400000", session=session) is None

    assert "Error fetching CEP 38400000" in caplog.text


def test_default_http_client_is_requests(monkeypatch):
    calls = []

    def fake_get(url, timeout=None):
        calls.append(url)
        return DummyResponse({"localidade": "Porto Alegre", "uf": "RS"})

    monkeypatch.setattr(cep_service.requests, "get", fake_get)

    address = fetch_address_by_cep("90000-000")

    assert address.city == "Porto Alegre"
    assert calls == ["https://viacep.com.br/ws/90000000/json/"]
