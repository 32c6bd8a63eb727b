# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Serialization and deserialization for cache values.

Encoded values carry a two-byte tag that fully determines how they are decoded:

- ``r:`` raw scalar text (None, booleans, integers, floats, strings)
- ``j:`` JSON (dicts, lists, dataclasses, pydantic models, ORM records)
- ``e:`` pickle, used only when JSON cannot represent the value

Structured records are stripped of internal/ORM-only attributes and
normalized (datetimes to ISO-8601, Decimal to float, UUID to str) before
JSON encoding. On the way back, a fixed allow-list of well-known field names
is restored to KnownField members; every other key stays a plain string.

Decoding never raises. Values that cannot be decoded are logged and returned
in the best available representation.
"""

import dataclasses
import io
import json
import logging
import pickle
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from .exceptions import SerializationError

logger = logging.getLogger(__name__)

RAW_TAG = b"r:"
JSON_TAG = b"j:"
TERM_TAG = b"e:"

# Attributes that mark an object as an ORM-mapped record
_ORM_MARKERS = ("_sa_instance_state", "__meta__")

# Globals the restricted unpickler is willing to resolve
_SAFE_GLOBALS: frozenset[tuple[str, str]] = frozenset(
    {
        ("builtins", "set"),
        ("builtins", "frozenset"),
        ("builtins", "complex"),
        ("builtins", "bytearray"),
        ("builtins", "range"),
        ("builtins", "slice"),
        ("datetime", "datetime"),
        ("datetime", "date"),
        ("datetime", "time"),
        ("datetime", "timedelta"),
        ("datetime", "timezone"),
        ("decimal", "Decimal"),
        ("fractions", "Fraction"),
        ("uuid", "UUID"),
        ("collections", "OrderedDict"),
        ("collections", "deque"),
    }
)


class KnownField(str, Enum):
    """
    Field names restored as symbolic keys when decoding JSON values.

    The set is closed on purpose: decoding never creates new identifiers, so
    untrusted payloads cannot grow it. Members are str subclasses and compare
    and hash equal to their plain-string values, so ``decoded["id"]`` and
    ``decoded[KnownField.ID]`` address the same entry.
    """

    ID = "id"
    USER_ID = "user_id"
    LESSON_ID = "lesson_id"
    ANALYSIS_ID = "analysis_id"
    INSTITUTION_ID = "institution_id"
    STATUS = "status"
    TYPE = "type"
    NAME = "name"
    TITLE = "title"
    SUBJECT = "subject"
    EMAIL = "email"
    INSERTED_AT = "inserted_at"
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"
    SCORE = "score"
    OVERALL_SCORE = "overall_score"
    CONFIDENCE_SCORE = "confidence_score"
    TOTAL = "total"
    COMPLETED = "completed"
    PROCESSING = "processing"
    PENDING = "pending"
    FAILED = "failed"
    CREDITS = "credits"
    BALANCE = "balance"

    def __str__(self) -> str:
        return self.value

    def __format__(self, format_spec: str) -> str:
        return self.value.__format__(format_spec)


_KNOWN_FIELDS: dict[str, KnownField] = {field.value: field for field in KnownField}


class _NotJSONRepresentable(Exception):
    """Internal signal that a value must take the pickle path."""


class _RestrictedUnpickler(pickle.Unpickler):
    """Unpickler that refuses to resolve anything outside _SAFE_GLOBALS."""

    def find_class(self, module: str, name: str) -> Any:
        if (module, name) in _SAFE_GLOBALS:
            return super().find_class(module, name)
        raise pickle.UnpicklingError(f"global '{module}.{name}' is forbidden")


def _parse_raw(text: str) -> Any:
    if text == "null":
        return None
    if text == "true":
        return True
    if text == "false":
        return False
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def _is_record(value: Any) -> bool:
    if isinstance(value, BaseModel):
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    return any(hasattr(value, marker) for marker in _ORM_MARKERS)


def _record_fields(value: Any) -> dict[str, Any]:
    """Public fields of a structured record, without ORM bookkeeping."""
    if isinstance(value, BaseModel):
        data = value.model_dump(mode="python")
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        data = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    else:
        data = dict(vars(value))
    return {
        key: item
        for key, item in data.items()
        if not key.startswith("_") and key not in _ORM_MARKERS
    }


def _restore_fields(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            _KNOWN_FIELDS.get(key, key): _restore_fields(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_restore_fields(item) for item in value]
    return value


class Serializer:
    """Encodes application values into tagged byte strings and back."""

    def encode(self, value: Any) -> bytes:
        """
        Encode a value for storage.

        Raises:
            SerializationError: If neither JSON nor pickle can represent the value.
        """
        if value is None or isinstance(value, (bool, int, float, str)):
            raw = self._encode_raw(value)
            if raw is not None:
                return raw

        if isinstance(value, (dict, list, tuple, str)) or _is_record(value):
            try:
                return JSON_TAG + self._dump_json(value)
            except (_NotJSONRepresentable, TypeError, ValueError, RecursionError) as e:
                logger.debug(
                    f"JSON encoding failed for {type(value).__name__}, using pickle: {e}"
                )

        return self._encode_term(value)

    def decode(self, data: bytes | str | None) -> Any:
        """Decode a stored value. Never raises."""
        if data is None:
            return None
        if isinstance(data, str):
            data = data.encode("utf-8", errors="surrogateescape")

        tag, payload = data[:2], data[2:]
        if tag == RAW_TAG:
            return self._decode_raw(payload)
        if tag == JSON_TAG:
            return self._decode_json(payload)
        if tag == TERM_TAG:
            return self._decode_term(payload)
        return self._decode_legacy(data)

    # ==========================================================================
    # Encoding
    # ==========================================================================

    def _encode_raw(self, value: Any) -> bytes | None:
        """Raw form of a scalar, or None when raw text would not round-trip."""
        if value is None:
            return RAW_TAG + b"null"
        if isinstance(value, bool):
            return RAW_TAG + (b"true" if value else b"false")
        try:
            if isinstance(value, int):
                return RAW_TAG + str(int(value)).encode("ascii")
            if isinstance(value, float):
                return RAW_TAG + repr(float(value)).encode("ascii")
            # Strings such as "42" or "null" would come back as another type
            if isinstance(_parse_raw(value), str):
                return RAW_TAG + value.encode("utf-8")
        except (ValueError, UnicodeEncodeError):
            pass
        return None

    def _dump_json(self, value: Any) -> bytes:
        normalized = self._normalize(value)
        return json.dumps(normalized, separators=(",", ":")).encode("utf-8")

    def _normalize(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, dict):
            normalized: dict[str, Any] = {}
            for key, item in value.items():
                # json.dumps would silently stringify other key types
                if not isinstance(key, str):
                    raise _NotJSONRepresentable(f"non-string key {key!r}")
                normalized[key] = self._normalize(item)
            return normalized
        if isinstance(value, (list, tuple)):
            return [self._normalize(item) for item in value]
        if isinstance(value, (datetime, date, time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, Enum):
            return self._normalize(value.value)
        if _is_record(value):
            return self._normalize(_record_fields(value))
        raise _NotJSONRepresentable(f"unsupported type {type(value).__name__}")

    def _encode_term(self, value: Any) -> bytes:
        try:
            return TERM_TAG + pickle.dumps(value, protocol=pickle.DEFAULT_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError, RecursionError) as e:
            raise SerializationError(
                f"Cannot encode value of type {type(value).__name__}: {e}"
            ) from e

    # ==========================================================================
    # Decoding
    # ==========================================================================

    def _decode_raw(self, payload: bytes) -> Any:
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Raw cache value is not valid UTF-8, returning bytes")
            return payload
        return _parse_raw(text)

    def _decode_json(self, payload: bytes) -> Any:
        try:
            return _restore_fields(json.loads(payload))
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
            logger.warning("Failed to decode JSON cache value, returning raw text")
            return payload.decode("utf-8", errors="replace")

    def _decode_term(self, payload: bytes) -> Any:
        try:
            return _RestrictedUnpickler(io.BytesIO(payload)).load()
        except Exception as e:
            logger.warning(f"Failed to decode pickled cache value, returning raw bytes: {e}")
            return payload

    def _decode_legacy(self, data: bytes) -> Any:
        try:
            return _restore_fields(json.loads(data))
        except (json.JSONDecodeError, UnicodeDecodeError):
            pass
        except RecursionError:
            logger.warning("Legacy cache value nests too deeply, returning raw bytes")
            return data
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data


__all__ = [
    "JSON_TAG",
    "RAW_TAG",
    "TERM_TAG",
    "KnownField",
    "Serializer",
]
