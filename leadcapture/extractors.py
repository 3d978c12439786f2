"""Pluggable image extractors that pre-fill contact fields from scans."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Callable, Dict, Mapping, Optional

import anyio.to_thread

CardRecognizer = Callable[[bytes], Mapping[str, str]]
QRDecoder = Callable[[bytes], str]

_WA_LINK = re.compile(r"wa\.me/(\+?\d+)")
_WA_PHONE_PARAM = re.compile(r"phone=(\+?\d+)")
_BARE_PHONE = re.compile(r"(\+?\d{10,15})")


class InvalidImageError(ValueError):
    """Raised when an upload is not an image."""


def parse_whatsapp_phone(text: str) -> str:
    """Pull a phone number out of WhatsApp QR text.

    Recognises ``wa.me/<number>`` links, ``phone=<number>`` query strings and
    finally any run of 10-15 digits. Text with no number is returned as is.
    """

    for pattern in (_WA_LINK, _WA_PHONE_PARAM, _BARE_PHONE):
        match = pattern.search(text)
        if match:
            phone = match.group(1)
            return phone if phone.startswith("+") else f"+{phone}"
    return text


class Extractor(ABC):
    """Base class for scan extractors.

    Subclasses implement :meth:`_extract_sync`; the blocking recognition
    backend runs on a worker thread so request handlers stay responsive.
    """

    kind: str = ""

    def validate(self, content_type: Optional[str]) -> None:
        if not content_type or not content_type.lower().startswith("image/"):
            raise InvalidImageError("Please select a valid image file")

    async def extract(self, image: bytes, content_type: Optional[str]) -> Dict[str, str]:
        self.validate(content_type)
        return await anyio.to_thread.run_sync(self._extract_sync, image)

    @abstractmethod
    def _extract_sync(self, image: bytes) -> Dict[str, str]:
        """Run the blocking recognition backend over ``image``."""


class BusinessCardExtractor(Extractor):
    kind = "business-card"

    # recognizer key -> contact field
    _FIELD_MAP = {
        "companyName": "company",
        "company": "company",
        "email": "email",
        "phone": "phone",
        "whatsapp": "whatsapp",
        "position": "position",
        "title": "position",
        "website": "website",
        "address": "address",
        "notes": "notes",
    }

    def __init__(self, recognizer: CardRecognizer) -> None:
        self._recognizer = recognizer

    def _extract_sync(self, image: bytes) -> Dict[str, str]:
        raw = self._recognizer(image)
        fields: Dict[str, str] = {}

        name = str(raw.get("name") or "").strip()
        if not name:
            parts = [str(raw.get(key) or "").strip() for key in ("firstName", "lastName")]
            name = " ".join(part for part in parts if part)
        if name:
            fields["name"] = name

        for source, target in self._FIELD_MAP.items():
            value = raw.get(source)
            if value and target not in fields:
                fields[target] = str(value).strip()
        return fields


class QRCodeExtractor(Extractor):
    kind = "whatsapp-qr"

    def __init__(self, decoder: QRDecoder) -> None:
        self._decoder = decoder

    def _extract_sync(self, image: bytes) -> Dict[str, str]:
        text = self._decoder(image).strip()
        return {
            "phone": parse_whatsapp_phone(text),
            "whatsappUrl": text,
            "contactMethod": "WhatsApp",
        }


__all__ = [
    "BusinessCardExtractor",
    "Extractor",
    "InvalidImageError",
    "QRCodeExtractor",
    "parse_whatsapp_phone",
]
