"""
Payload Decoder
===============

Turns the data URL returned by the in-browser export script into the image
itself: percent-decoded text for SVG, base64-decoded bytes for everything else.
"""

from typing import Union
from urllib.parse import quote, unquote
import base64
import binascii

from plotly_static.config.logging import get_logger
from plotly_static.core.errors import ParseError, RenderError
from plotly_static.models.schemas import ImageFormat

logger = get_logger(__name__)

ERROR_PREFIX = "ERROR:"


def decode(payload: str, format: ImageFormat, strict: bool = False) -> Union[bytes, str]:
    """
    Decode a browser payload for ``format``.

    Args:
        payload: ``<mime>,<data>`` for SVG, ``<mime>;base64,<data>`` otherwise,
            or the ``ERROR:<message>`` sentinel
        format: Format the caller asked for
        strict: Treat a MIME type mismatch as an error instead of a warning

    Raises:
        RenderError: If the payload is the in-browser error sentinel
        ParseError: If the payload is malformed
    """
    format = ImageFormat.parse(format)
    if payload.startswith(ERROR_PREFIX):
        raise RenderError(f"JavaScript error during export: {payload[len(ERROR_PREFIX):]}")

    if format.is_text:
        return _decode_plain(payload, format, strict)
    return _decode_encoded(payload, format, strict)


def _decode_plain(payload: str, format: ImageFormat, strict: bool) -> str:
    type_info, sep, data = payload.partition(",")
    if not sep:
        raise ParseError(f"Payload has invalid {format} data: missing ',' separator")
    check_type_info(type_info, format, strict)
    try:
        return unquote(data, encoding="utf-8", errors="strict")
    except UnicodeDecodeError as e:
        raise ParseError(f"Payload has invalid {format} data: {e}") from e


def _decode_encoded(payload: str, format: ImageFormat, strict: bool) -> bytes:
    type_info, sep, encoded = payload.partition(";")
    if not sep:
        raise ParseError(f"Payload has invalid {format} base64 data: missing ';' separator")
    check_type_info(type_info, format, strict)

    _, sep, data = encoded.partition(",")
    if not sep:
        raise ParseError(f"No valid {format} data found in payload: missing ',' separator")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParseError(f"Payload has invalid {format} base64 data: {e}") from e


def check_type_info(type_info: str, format: ImageFormat, strict: bool = False) -> None:
    """Compare the ``<type>/<subtype>`` prefix against the requested format."""
    _, sep, subtype = type_info.partition("/")
    if not sep:
        if strict:
            raise ParseError(f"Failed to extract image format from payload header '{type_info}'")
        logger.warning("Failed to extract image format from payload", type_info=type_info)
        return
    if format.value not in subtype:
        if strict:
            raise ParseError(f"Requested image format '{format}', got '{subtype}'")
        logger.warning("Image format mismatch", requested=str(format), received=subtype)


def encode(data: Union[bytes, str], format: ImageFormat) -> str:
    """Build the payload the browser would return for ``data``."""
    format = ImageFormat.parse(format)
    if format.is_text:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return f"data:{format.mime_type},{quote(data, safe='')}"
    if isinstance(data, str):
        data = data.encode("utf-8")
    return f"data:{format.mime_type};base64,{base64.b64encode(data).decode('ascii')}"
