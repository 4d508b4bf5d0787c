"""Configuration loading for hourbill.config module."""

import logging
from pathlib import Path

import pytest

from hourbill.config import (
    Config,
    LoggingConfig,
    RendererConfig,
    StorageConfig,
    TemplatesConfig,
    load_config,
)
from hourbill.logging_setup import log_timing, setup_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("HOURBILL_WEBDAV_PASSWORD", "HOURBILL_CHROMIUM_PATH", "HOURBILL_DB_PATH"):
        monkeypatch.delenv(var, raising=False)


class TestConfigDefaults:
    def test_default_db_path(self):
        assert Config().db_path == Path("data/hourbill.db")

    def test_default_renderer(self):
        cfg = RendererConfig()
        assert cfg.engine == "chromium"
        assert cfg.page_format == "A4"
        assert cfg.content_timeout == 30.0
        assert cfg.pdf_timeout == 60.0
        assert "--no-sandbox" in cfg.launch_args

    def test_launch_args_not_shared(self):
        a, b = RendererConfig(), RendererConfig()
        a.launch_args.append("--x")
        assert "--x" not in b.launch_args

    def test_default_storage(self):
        cfg = StorageConfig()
        assert cfg.backend == "local"
        assert cfg.local_path == "data/documents"
        assert cfg.root == "hourbill"

    def test_default_templates_are_bundled(self):
        assert TemplatesConfig() == TemplatesConfig(body="", header="", footer="", footer_inline="")

    def test_default_logging_config(self):
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.output == "console"
        assert cfg.rotate is True


class TestConfigLoading:
    def test_load_missing_file_returns_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nonexistent.toml")
        assert cfg == Config()

    def test_load_minimal_config(self, tmp_path):
        p = tmp_path / "config.toml"
        p.write_text('db_path = "mydb.sqlite"\n')
        cfg = load_config(p)
        assert cfg.db_path == Path("mydb.sqlite")

    def test_load_renderer_section(self, tmp_path):
        p = tmp_path / "config.toml"
        p.write_text(
            '[renderer]\n'
            'engine = "weasyprint"\n'
            'page_format = "Letter"\n'
            'pdf_timeout = 15\n'
            'launch_args = ["--headless=new"]\n'
        )
        cfg = load_config(p)
        assert cfg.renderer.engine == "weasyprint"
        assert cfg.renderer.page_format == "Letter"
        assert cfg.renderer.pdf_timeout == 15.0
        assert cfg.renderer.content_timeout == 30.0
        assert cfg.renderer.launch_args == ["--headless=new"]

    def test_load_storage_section(self, tmp_path):
        p = tmp_path / "config.toml"
        p.write_text(
            '[storage]\n'
            'backend = "webdav"\n'
            'url = "https://cloud.example.com"\n'
            'username = "bot"\n'
            'password = "secret123"\n'
            'root = "Invoices"\n'
        )
        cfg = load_config(p)
        assert cfg.storage.backend == "webdav"
        assert cfg.storage.url == "https://cloud.example.com"
        assert cfg.storage.username == "bot"
        assert cfg.storage.password == "secret123"
        assert cfg.storage.root == "Invoices"

    def test_load_templates_section(self, tmp_path):
        p = tmp_path / "config.toml"
        p.write_text(
            '[templates]\n'
            'body = "/srv/tpl/body.html"\n'
            'footer_inline = "<div>Page</div>"\n'
        )
        cfg = load_config(p)
        assert cfg.templates.body == "/srv/tpl/body.html"
        assert cfg.templates.header == ""
        assert cfg.templates.footer_inline == "<div>Page</div>"

    def test_load_logging_section(self, tmp_path):
        p = tmp_path / "config.toml"
        p.write_text(
            '[logging]\n'
            'level = "DEBUG"\n'
            'output = "both"\n'
            'file = "/var/log/hourbill.log"\n'
            'rotate = false\n'
            'max_size_mb = 50\n'
            'backup_count = 10\n'
        )
        cfg = load_config(p)
        assert cfg.logging.level == "DEBUG"
        assert cfg.logging.output == "both"
        assert cfg.logging.file == "/var/log/hourbill.log"
        assert cfg.logging.rotate is False
        assert cfg.logging.max_size_mb == 50
        assert cfg.logging.backup_count == 10


class TestEnvOverrides:
    def test_password_from_env(self, tmp_path, monkeypatch):
        p = tmp_path / "config.toml"
        p.write_text('[storage]\nbackend = "webdav"\npassword = "from-file"\n')
        monkeypatch.setenv("HOURBILL_WEBDAV_PASSWORD", "from-env")
        assert load_config(p).storage.password == "from-env"

    def test_chromium_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOURBILL_CHROMIUM_PATH", "/usr/bin/chromium")
        assert load_config(tmp_path / "none.toml").renderer.executable_path == "/usr/bin/chromium"

    def test_db_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOURBILL_DB_PATH", str(tmp_path / "env.db"))
        assert load_config(tmp_path / "none.toml").db_path == tmp_path / "env.db"

    def test_empty_env_ignored(self, tmp_path, monkeypatch):
        p = tmp_path / "config.toml"
        p.write_text('[storage]\npassword = "from-file"\n')
        monkeypatch.setenv("HOURBILL_WEBDAV_PASSWORD", "")
        assert load_config(p).storage.password == "from-file"


class TestSetupLogging:
    def test_console_handler(self):
        setup_logging(Config())
        logger = logging.getLogger("hourbill")
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1

    def test_verbose_forces_debug(self):
        setup_logging(Config(), verbose=True)
        assert logging.getLogger("hourbill").level == logging.DEBUG

    def test_second_call_is_noop(self):
        setup_logging(Config())
        setup_logging(Config(logging=LoggingConfig(level="DEBUG")))
        logger = logging.getLogger("hourbill")
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1

    def test_file_output(self, tmp_path):
        log_file = tmp_path / "logs" / "hourbill.log"
        setup_logging(Config(logging=LoggingConfig(output="file", file=str(log_file))))

        logging.getLogger("hourbill.pipeline").info("hello file")
        for handler in logging.getLogger("hourbill").handlers:
            handler.flush()

        assert "hello file" in log_file.read_text()

    def test_noisy_loggers_quieted(self):
        setup_logging(Config(), verbose=True)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_timing_events_logged(self, caplog):
        setup_logging(Config())
        with caplog.at_level("INFO", logger="hourbill"):
            log_timing("finished", "inv-1", 1.25)
            log_timing("started", "inv-2", None)
        assert "finished invoice=inv-1 elapsed=1.250s" in caplog.text
        assert "started invoice=inv-2" in caplog.text

    def test_timing_can_be_silenced(self, caplog):
        setup_logging(Config(logging=LoggingConfig(timing=False)))
        with caplog.at_level("INFO", logger="hourbill"):
            log_timing("finished", "inv-1", 1.0)
        assert "inv-1" not in caplog.text

    def test_load_timing_flag(self, tmp_path):
        p = tmp_path / "config.toml"
        p.write_text('[logging]\ntiming = false\n')
        assert load_config(p).logging.timing is False
