"""
Value Serialization and Compression

Converts cached values to the text stored in Redis and back.

Serializers:
    JsonSerializer   - orjson, the default for structured values
    RawSerializer    - strings stored as-is (rendered pages, pre-encoded payloads)
    ModelSerializer  - pydantic TypeAdapter, decodes into a declared type

Compression:
    zlib + base64 behind COMPRESSION_MARKER, applied only above a size threshold.
    Payloads without the marker are returned untouched, so toggling compression
    on an existing key never corrupts a read.
"""

import base64
import binascii
import zlib
from typing import Any, Generic, Protocol, TypeVar

import orjson
from pydantic import TypeAdapter, ValidationError

from storefront_cache.core.config.constants import COMPRESSION_MARKER
from storefront_cache.core.exceptions import CacheSerializationError

T = TypeVar("T")


class CacheSerializer(Protocol):
    def dumps(self, value: Any) -> str:
        ...

    def loads(self, text: str) -> Any:
        ...


class JsonSerializer:
    """orjson-backed serializer (dataclasses, datetimes and UUIDs supported natively)."""

    def dumps(self, value: Any) -> str:
        try:
            return orjson.dumps(value).decode("utf-8")
        except TypeError as e:
            raise CacheSerializationError(
                f"Value of type {type(value).__name__} is not JSON serializable",
                details={"type": type(value).__name__},
            ) from e

    def loads(self, text: str) -> Any:
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise CacheSerializationError("Cached payload is not valid JSON") from e


class RawSerializer:
    """Stores strings verbatim."""

    def dumps(self, value: Any) -> str:
        return value if isinstance(value, str) else str(value)

    def loads(self, text: str) -> Any:
        return text


class ModelSerializer(Generic[T]):
    """
    Typed serializer for a declared value type.

    Usage:
        serializer = ModelSerializer(list[Product])
        products = await cache.get("products:featured", serializer=serializer)
    """

    def __init__(self, value_type: type[T] | Any):
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)

    def dumps(self, value: T) -> str:
        try:
            return self._adapter.dump_json(value).decode("utf-8")
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(f"Cannot encode value: {e}") from e

    def loads(self, text: str) -> T:
        try:
            return self._adapter.validate_json(text)
        except ValidationError as e:
            raise CacheSerializationError(
                "Cached payload does not match the declared type",
                details={"errors": e.error_count()},
            ) from e


JSON_SERIALIZER = JsonSerializer()
RAW_SERIALIZER = RawSerializer()


def compress_text(text: str, threshold: int) -> str:
    """Compress text longer than threshold; shorter payloads are returned unchanged."""
    if len(text) <= threshold:
        return text
    packed = base64.b64encode(zlib.compress(text.encode("utf-8"))).decode("ascii")
    return f"{COMPRESSION_MARKER}{packed}"


def decompress_text(text: str) -> str:
    if not text.startswith(COMPRESSION_MARKER):
        return text
    try:
        raw = base64.b64decode(text[len(COMPRESSION_MARKER):], validate=True)
        return zlib.decompress(raw).decode("utf-8")
    except (binascii.Error, zlib.error, UnicodeDecodeError) as e:
        raise CacheSerializationError("Compressed payload is corrupted") from e
