"""Environment-backed settings for the engine, its clients and the API server."""

import logging
import os
from typing import Any, Callable, Mapping

_TRUE_VALUES = ("true", "1", "yes", "on")


class HelperConfig:
    """Typed access to settings stored in environment variables.

    Keys are case-insensitive and an empty value counts as unset. Values in
    ``overrides`` win over the process environment; the worker runner and the
    tests use them to configure an engine without touching ``os.environ``.
    """

    def __init__(self, logger: logging.Logger, overrides: Mapping[str, Any] | None = None) -> None:
        self._logger = logger
        self._overrides = {k.upper(): str(v) for k, v in (overrides or {}).items()}

    def _raw(self, key: str) -> str | None:
        value = self._overrides[key] if key in self._overrides else os.getenv(key)
        value = value.strip() if value is not None else None
        return value or None

    def _resolve(self, key: str, default: Any, parse: Callable[[str, str], Any]) -> Any:
        """Parse the value of ``key`` or fall back to ``default``.

        Raises:
            ValueError: If the key is unset without a default, or ``parse`` rejects the value.
        """
        key = key.upper()
        raw = self._raw(key)
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key}' is not set.")
            return default
        return parse(key, raw)

    def get_string_val(self, key: str, default: str | None = None) -> str:
        return self._resolve(key, default, lambda _, raw: raw)

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Integers stay ``int``; anything with a decimal point becomes ``float``."""
        def parse(key: str, raw: str) -> float | int:
            try:
                return float(raw) if "." in raw else int(raw)
            except ValueError:
                raise ValueError(f"Environment variable '{key}' is not a valid number: '{raw}'.")

        return self._resolve(key, default, parse)

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        return self._resolve(key, default, lambda _, raw: raw.lower() in _TRUE_VALUES)

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a bracketed list such as ``[qdrant]`` or ``[1,2,3]``.

        Raises:
            ValueError: If the value is not bracketed or an element does not convert to ``element_type``.
        """
        def parse(key: str, raw: str) -> list:
            if not (raw.startswith("[") and raw.endswith("]")):
                raise ValueError(
                    f"Environment variable '{key}' must look like '[a{separator}b{separator}...]', got '{raw}'."
                )
            elements = [part.strip() for part in raw[1:-1].split(separator) if part.strip()]
            try:
                return [element_type(element) for element in elements]
            except ValueError as e:
                raise ValueError(f"Environment variable '{key}' has an element that is not {element_type.__name__}: {e}")

        return self._resolve(key, default, parse)

    def get_logger(self) -> logging.Logger:
        return self._logger
