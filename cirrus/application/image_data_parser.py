"""
Image Data Parser

Architectural Intent:
- Decodes the two payloads a profile stores its images in: the plaintext
  image list and the secured source-name -> password map
- Merges each password into the template with the same source name

Security:
- The password payload arrives through the secure: parameter channel and is
  never logged or echoed in an error message; only counts are logged
"""

from __future__ import annotations
from typing import Any, Mapping, Optional
import json
import logging

from cirrus.domain.constants import IMAGES_DATA, PASSWORDS_DATA
from cirrus.domain.entities.cloud_image import CloudImageTemplate
from cirrus.domain.errors import ImageDataParseError

logger = logging.getLogger(__name__)


def _decode_images(payload: str) -> list[CloudImageTemplate]:
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ImageDataParseError(f"Image data is not valid JSON: {e.msg} at position {e.pos}") from e

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ImageDataParseError(
            f"Image data must be a JSON array, got {type(raw).__name__}"
        )

    images: list[CloudImageTemplate] = []
    seen: set[str] = set()
    for position, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ImageDataParseError(f"Image #{position} is not a JSON object")
        try:
            image = CloudImageTemplate.from_dict(entry)
        except (TypeError, ValueError) as e:
            raise ImageDataParseError(f"Image #{position} is invalid: {e}") from e
        if image.source_name in seen:
            raise ImageDataParseError(f"Duplicate image source name: {image.source_name}")
        seen.add(image.source_name)
        images.append(image)
    return images


def _decode_passwords(payload: Optional[str]) -> dict[str, Any]:
    if not payload:
        return {}
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError:
        # the decoder message quotes the payload, which is secret
        raise ImageDataParseError("Password data is not valid JSON") from None

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ImageDataParseError("Password data must be a JSON object")
    return raw


def parse_image_data(
    images_payload: Optional[str],
    passwords_payload: Optional[str] = None,
) -> list[CloudImageTemplate]:
    """Build image templates and attach their passwords.

    An empty or absent image list yields an empty list. A non-empty image
    list that cannot be decoded raises ImageDataParseError. Images without
    an entry in the password map are returned without a password.
    """
    if not images_payload or not images_payload.strip():
        return []

    images = _decode_images(images_payload)
    passwords = _decode_passwords(passwords_payload)

    result: list[CloudImageTemplate] = []
    attached = 0
    for image in images:
        password = passwords.get(image.source_name)
        if isinstance(password, str):
            image = image.with_password(password)
            attached += 1
        result.append(image)

    logger.debug(
        "Parsed %d image(s), %d with password", len(result), attached
    )
    return result


def parse_image_parameters(params: Mapping[str, str]) -> list[CloudImageTemplate]:
    """parse_image_data over a profile parameter map."""
    return parse_image_data(params.get(IMAGES_DATA), params.get(PASSWORDS_DATA))
