import pytest

from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.helper.HelperConfig import HelperConfig
from shared.helper.engine_loader import load_engine_class


def test_overrides_win_over_environment(logger, monkeypatch):
    monkeypatch.setenv("VECTOR_CHUNK_SIZE", "500")
    config = HelperConfig(logger=logger, overrides={"vector_chunk_size": 800})
    assert config.get_number_val("VECTOR_CHUNK_SIZE") == 800
    assert HelperConfig(logger=logger).get_number_val("vector_chunk_size") == 500


def test_typed_values(logger):
    config = HelperConfig(logger=logger, overrides={
        "A_INT": "3",
        "A_FLOAT": "0.25",
        "A_BOOL": "Yes",
        "A_LIST": "[qdrant, , other]",
        "A_NUMS": "[1;2]",
        "A_BLANK": "  ",
    })
    assert config.get_number_val("A_INT") == 3 and isinstance(config.get_number_val("A_INT"), int)
    assert config.get_number_val("A_FLOAT") == 0.25
    assert config.get_bool_val("A_BOOL") is True
    assert config.get_list_val("A_LIST") == ["qdrant", "other"]
    assert config.get_list_val("A_NUMS", separator=";", element_type=int) == [1, 2]
    assert config.get_string_val("A_BLANK", default="fallback") == "fallback"
    assert config.get_logger() is logger


def test_invalid_values_raise(logger):
    config = HelperConfig(logger=logger, overrides={"A_NUM": "three", "A_LIST": "qdrant", "A_NUMS": "[1,x]"})
    with pytest.raises(ValueError):
        config.get_string_val("NOT_SET_ANYWHERE_XYZ")
    with pytest.raises(ValueError):
        config.get_number_val("A_NUM")
    with pytest.raises(ValueError):
        config.get_list_val("A_LIST")
    with pytest.raises(ValueError):
        config.get_list_val("A_NUMS", element_type=int)


def test_engine_loader():
    assert load_engine_class("rag", "RAGClient", " Qdrant ") is RAGClientQdrant
    with pytest.raises(ValueError):
        load_engine_class("rag", "RAGClient", "chroma")
