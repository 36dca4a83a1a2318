import pytest
import logging
import os
from pathlib import Path
from colorama import Fore
from modules.logging_config import LoggingConfigurator, ColoredFormatter

def test_logger_creation(tmp_path):
    # Change CWD to tmp_path to avoid creating logs in project root
    old_cwd = os.getcwd()
    os.chdir(tmp_path)
    try:
        config = {'logging': {'level': 'DEBUG', 'log_to_file': True}}
        lc = LoggingConfigurator(config)
        lc.setup()

        logger = lc.get_logger('test_mod')
        logger.info("Test message")

        assert Path("logs/pipeline.log").exists()
        with open("logs/pipeline.log", 'r', encoding='utf-8') as f:
            assert "Test message" in f.read()
    finally:
        logging.shutdown()
        logging.getLogger().handlers = []
        os.chdir(old_cwd)

def test_custom_log_dir_and_console_only(tmp_path):
    try:
        config = {'logging': {'level': 'warning', 'log_to_file': False, 'log_dir': str(tmp_path / "custom")}}
        lc = LoggingConfigurator(config)
        lc.setup()

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert not (tmp_path / "custom").exists()
    finally:
        logging.getLogger().handlers = []

def test_colored_formatter_restores_levelname():
    formatter = ColoredFormatter('%(levelname)s %(message)s')
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)

    output = formatter.format(record)

    assert Fore.YELLOW in output
    assert record.levelname == "WARNING"
