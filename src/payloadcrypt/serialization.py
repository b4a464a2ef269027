"""JSON serialization for request and response payloads."""

import dataclasses
import json
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from .types import FormatError


def _default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (bytes, bytearray)):
        raise TypeError("bytes are not JSON serializable; encode them first")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class JsonSerializer:
    """
    Compact JSON serializer with lenient decoding.

    Dataclass payloads are encoded as objects. When decoding into a dataclass,
    fields the backend sends that the dataclass does not declare are dropped.
    """

    def dumps(self, obj: Any) -> str:
        """Serialize a payload to compact JSON text."""
        try:
            return json.dumps(
                obj, default=_default, ensure_ascii=False, allow_nan=False, separators=(",", ":")
            )
        except (TypeError, ValueError) as e:
            raise FormatError(f"Payload is not JSON serializable: {e}") from e

    def loads(
        self,
        text: Union[str, bytes],
        model: Optional[Union[type, Callable[[Any], Any]]] = None,
    ) -> Any:
        """
        Parse JSON text, optionally into a target shape.

        Args:
            text: JSON text (bytes are decoded as UTF-8)
            model: A dataclass type, any callable taking the parsed value, or None

        Returns:
            The parsed value, or the model built from it

        Raises:
            FormatError: If the text is not JSON or does not fit the model
        """
        try:
            value = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FormatError(f"Invalid JSON: {e}") from e

        return self.convert(value, model)

    def convert(
        self,
        value: Any,
        model: Optional[Union[type, Callable[[Any], Any]]] = None,
    ) -> Any:
        """Build the target shape from an already parsed JSON value."""
        if model is None:
            return value

        if dataclasses.is_dataclass(model) and isinstance(model, type):
            return self._build_dataclass(model, value)

        try:
            return model(value)
        except (TypeError, ValueError) as e:
            raise FormatError(f"Cannot convert payload: {e}") from e

    def _build_dataclass(self, model: type, value: Any) -> Any:
        if not isinstance(value, dict):
            raise FormatError(f"Expected a JSON object for {model.__name__}, got {type(value).__name__}")

        known = {f.name for f in dataclasses.fields(model) if f.init}
        try:
            return model(**{k: v for k, v in value.items() if k in known})
        except TypeError as e:
            raise FormatError(f"Cannot build {model.__name__}: {e}") from e


_DEFAULT_SERIALIZER = JsonSerializer()


def default_serializer() -> JsonSerializer:
    """Return the shared JSON serializer."""
    return _DEFAULT_SERIALIZER
