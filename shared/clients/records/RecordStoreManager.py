from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.engine_loader import load_engine_class


class RecordStoreManager:
    """Builds the record store adapter selected by ``RECORDS_ENGINE`` (default "memory")."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        engine = helper_config.get_string_val("RECORDS_ENGINE", default="memory")
        store_class = load_engine_class("records", "RecordStore", engine)
        self.store: RecordStoreInterface = store_class(helper_config=helper_config)
        self.logging.debug("Record store ready for engine %s", engine)

    def get_store(self) -> RecordStoreInterface:
        return self.store
