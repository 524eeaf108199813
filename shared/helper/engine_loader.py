"""Resolves an engine name from the settings to its client class.

Clients live in ``shared.clients.<package>.<engine>.<Prefix><Engine>``, e.g.
``shared.clients.rag.qdrant.RAGClientQdrant``. Adding an engine means adding
such a module; nothing needs to be registered.
"""

from typing import Any


def load_engine_class(package: str, prefix: str, engine: str) -> type[Any]:
    """
    Args:
        package (str): Client package below ``shared.clients``, e.g. "rag".
        prefix (str): Class name prefix, e.g. "RAGClient".
        engine (str): Engine name as configured, in any case.

    Raises:
        ValueError: If no module or class exists for the engine.
    """
    engine = engine.strip().lower()
    class_name = f"{prefix}{engine.capitalize()}"
    try:
        module = __import__(f"shared.clients.{package}.{engine}.{class_name}", fromlist=[class_name])
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Unsupported {package} engine '{engine}': {e}")
