from __future__ import annotations

import random

import pytest

from rustytablet.config import (
    build_config,
    default_config_dict,
    get_state_db_path,
    set_runtime_config,
)
from rustytablet.services.credentials import CREDENTIAL_NAMES
from rustytablet.storage import init_db
from rustytablet.strategy import StrategyStore


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.delenv("RT_DB_URL", raising=False)
    monkeypatch.delenv("RT_CRON_SECRET", raising=False)
    monkeypatch.delenv("RUSTYTABLET_MASTER_KEY", raising=False)
    monkeypatch.delenv("RUSTYTABLET_KEY_ID", raising=False)
    for name in CREDENTIAL_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RT_DATA_DIR", str(tmp_path / "data"))


@pytest.fixture
def runtime_cfg(tmp_path):
    cfg = default_config_dict()
    cfg["paths"]["data_dir"] = str(tmp_path / "data")
    cfg["paths"]["output_dir"] = str(tmp_path / "site" / "content" / "posts")
    cfg["paths"]["media_dir"] = str(tmp_path / "data" / "media")
    cfg["paths"]["state_db"] = str(tmp_path / "data" / "state.sqlite3")
    return cfg


@pytest.fixture
def conn(runtime_cfg):
    connection = init_db(get_state_db_path())
    set_runtime_config(connection, runtime_cfg)
    yield connection
    connection.close()


@pytest.fixture
def config(runtime_cfg):
    return build_config(runtime_cfg)


@pytest.fixture
def seeded(conn):
    StrategyStore(conn).seed()
    return conn


@pytest.fixture
def rng():
    return random.Random(1234)
