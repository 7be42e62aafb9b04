"""Configuration loading and logging setup."""

import logging
from pathlib import Path

from config.config import (DEFAULT_RPC_URL, HARDHAT_CHAIN_ID, LedgerConfig, NetworkConfig,
                           SystemConfig, load_config, save_config)
from utils.utils import format_duration, setup_logging


def test_defaults():
    config = SystemConfig()

    assert config.network.rpc_url == DEFAULT_RPC_URL
    assert config.network.mock_chains == {HARDHAT_CHAIN_ID: DEFAULT_RPC_URL}
    assert config.relayer.url is None
    assert config.ledger.min_duration == 3600
    assert (config.ledger.min_options, config.ledger.max_options) == (2, 10)
    assert config.authorization.duration_days == 365
    assert config.log_level == "INFO"


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    original = SystemConfig(
        network=NetworkConfig(rpc_url="http://node:8545", mock_chains={1337: "http://node:8545"}),
        ledger=LedgerConfig(addresses={11155111: '0x' + 'aa' * 20}, max_options=5),
        log_dir=tmp_path / "logs",
    )
    original.relayer.url = "https://relayer.example"

    save_config(original, path)
    loaded = load_config(path)

    assert loaded.network.rpc_url == "http://node:8545"
    assert loaded.network.mock_chains == {1337: "http://node:8545"}
    assert loaded.ledger.addresses == {11155111: '0x' + 'aa' * 20}
    assert loaded.ledger.max_options == 5
    assert loaded.relayer.url == "https://relayer.example"
    assert loaded.log_dir == tmp_path / "logs"


def test_chain_ids_written_as_strings_become_ints(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "network:\n"
        "  mock_chains:\n"
        "    '31337': http://localhost:8545\n"
        "ledger:\n"
        "  addresses:\n"
        "    '31337': '0x7777777777777777777777777777777777777777'\n"
    )

    config = load_config(path)

    assert config.network.mock_chains == {31337: "http://localhost:8545"}
    assert list(config.ledger.addresses) == [31337]


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "absent.yaml") == SystemConfig()


def test_unparseable_file_gives_defaults(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text("network: [unclosed\n")

    with caplog.at_level(logging.WARNING, logger="config.config"):
        config = load_config(path)

    assert config == SystemConfig()
    assert "Could not load config file" in caplog.text


def test_debug_mode_raises_log_level():
    assert SystemConfig(enable_debug_mode=True).log_level == "DEBUG"
    assert isinstance(SystemConfig(log_dir="elsewhere").log_dir, Path)


def test_setup_logging_writes_to_log_dir(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG", log_dir=tmp_path)
        logging.getLogger("veil.test").debug("hello from the test")
        for handler in root.handlers:
            handler.flush()

        logs = list(tmp_path.glob("*.log"))
        assert len(logs) == 1
        assert "hello from the test" in logs[0].read_text()
    finally:
        for handler in root.handlers:
            if handler not in saved_handlers:
                handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_format_duration():
    assert format_duration(45) == "45s"
    assert format_duration(90) == "1m 30s"
    assert format_duration(2 * 3600 + 300) == "2h 5m"
    assert format_duration(3 * 86400) == "3d 0h"
