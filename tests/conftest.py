import pytest
from PyQt6.QtCore import QCoreApplication

from pomotrack import config
from pomotrack.data.storage import Storage
from pomotrack.logging_config import remove_file_handlers


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    data_dir = tmp_path / "home" / ".pomotrack"
    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "DB_PATH", data_dir / "pomotrack.db")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "pomotrack.log")
    yield data_dir
    remove_file_handlers()


@pytest.fixture
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def storage(tmp_path) -> Storage:
    storage = Storage(tmp_path / "app.db")
    storage.init_db()
    return storage
