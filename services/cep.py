"""CEP formatting helpers and ViaCEP address lookup."""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import requests

LOGGER = logging.getLogger(__name__)

VIACEP_URL_TEMPLATE = "https://viacep.com.br/ws/{cep}/json/"
DEFAULT_TIMEOUT_SECONDS = 5.0

_NON_DIGIT_PATTERN = re.compile(r"\D")

__all__ = [
    "Address",
    "clean_cep",
    "fetch_address_by_cep",
    "format_cep",
    "is_valid_cep",
]


@dataclass(frozen=True)
class Address:
    street: str
    neighborhood: str
    city: str
    state: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def clean_cep(value: Any) -> str:
    """Remove every formatting character from a CEP."""
    if value is None:
        return ""
    return _NON_DIGIT_PATTERN.sub("", str(value))


def format_cep(value: Any) -> str:
    """Format a CEP as ``00000-000``; partial input is formatted as far as it goes."""
    digits = clean_cep(value)
    if len(digits) <= 5:
        return digits
    return f"{digits[:5]}-{digits[5:8]}"


def is_valid_cep(value: Any) -> bool:
    return len(clean_cep(value)) == 8


def fetch_address_by_cep(
    cep: Any,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Optional[Address]:
    """Look up the street address for ``cep`` on ViaCEP.

    Returns ``None`` when the CEP is malformed, unknown to ViaCEP, or the
    service could not be reached. Malformed CEPs never hit the network.
    """

    cleaned = clean_cep(cep)
    if len(cleaned) != 8:
        return None

    http = session or requests
    url = VIACEP_URL_TEMPLATE.format(cep=cleaned)
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        LOGGER.warning("Error fetching CEP %s from ViaCEP: %s", cleaned, exc)
        return None

    if not isinstance(payload, dict) or payload.get("erro"):
        LOGGER.info("ViaCEP has no address for CEP %s", cleaned)
        return None

    return Address(
        street=payload.get("logradouro") or "",
        neighborhood=payload.get("bairro") or "",
        city=payload.get("localidade") or "",
        state=payload.get("uf") or "",
    )
