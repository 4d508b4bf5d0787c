"""Configuration loading for hourbill."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import tomli

logger = logging.getLogger("hourbill.config")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"           # INFO or DEBUG
    output: str = "console"       # console, file, or both
    file: str = ""                # log file path
    rotate: bool = True           # enable rotation
    max_size_mb: int = 10         # max file size before rotation
    backup_count: int = 5         # rotated files to keep
    timing: bool = True           # log pipeline timing events


@dataclass
class TemplatesConfig:
    """Invoice templates. Empty paths fall back to the bundled templates."""
    body: str = ""
    header: str = ""
    footer: str = ""         # footer template file
    footer_inline: str = ""  # footer markup given directly; wins over `footer`


@dataclass
class RendererConfig:
    engine: str = "chromium"        # chromium or weasyprint
    executable_path: str = ""       # Chromium binary; empty = driver default
    page_format: str = "A4"
    content_timeout: float = 30.0   # seconds to load page content
    pdf_timeout: float = 60.0       # seconds to serialize the PDF
    launch_args: list[str] = field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"],
    )


@dataclass
class StorageConfig:
    backend: str = "local"          # local or webdav
    local_path: str = "data/documents"
    url: str = ""                   # Nextcloud base URL for webdav
    username: str = ""
    password: str = ""
    root: str = "hourbill"          # folder under the user's WebDAV root
    timeout: float = 30.0


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path("data/hourbill.db"))
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    templates: TemplatesConfig = field(default_factory=TemplatesConfig)
    renderer: RendererConfig = field(default_factory=RendererConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from TOML file."""
    if config_path is None:
        # Look for config in standard locations
        candidates = [
            Path("config/config.toml"),
            Path.home() / ".config/hourbill/config.toml",
            Path("/etc/hourbill/config.toml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None or not config_path.exists():
        config = Config()
        _apply_env_overrides(config)
        return config

    with open(config_path, "rb") as f:
        data = tomli.load(f)

    config = Config()

    if "db_path" in data:
        config.db_path = Path(data["db_path"])

    if "logging" in data:
        log = data["logging"]
        config.logging = LoggingConfig(
            level=log.get("level", "INFO"),
            output=log.get("output", "console"),
            file=log.get("file", ""),
            rotate=log.get("rotate", True),
            max_size_mb=log.get("max_size_mb", 10),
            backup_count=log.get("backup_count", 5),
            timing=log.get("timing", True),
        )

    if "templates" in data:
        tpl = data["templates"]
        config.templates = TemplatesConfig(
            body=tpl.get("body", ""),
            header=tpl.get("header", ""),
            footer=tpl.get("footer", ""),
            footer_inline=tpl.get("footer_inline", ""),
        )

    if "renderer" in data:
        r = data["renderer"]
        extra = {}
        if "launch_args" in r:
            extra["launch_args"] = list(r["launch_args"])
        config.renderer = RendererConfig(
            engine=r.get("engine", "chromium"),
            executable_path=r.get("executable_path", ""),
            page_format=r.get("page_format", "A4"),
            content_timeout=float(r.get("content_timeout", 30.0)),
            pdf_timeout=float(r.get("pdf_timeout", 60.0)),
            **extra,
        )

    if "storage" in data:
        s = data["storage"]
        config.storage = StorageConfig(
            backend=s.get("backend", "local"),
            local_path=s.get("local_path", "data/documents"),
            url=s.get("url", ""),
            username=s.get("username", ""),
            password=s.get("password", ""),
            root=s.get("root", "hourbill"),
            timeout=float(s.get("timeout", 30.0)),
        )

    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: Config) -> None:
    # Environment variable overrides for secrets (allows EnvironmentFile= usage)
    _env_overrides = [
        ("HOURBILL_WEBDAV_PASSWORD", "storage", "password"),
        ("HOURBILL_CHROMIUM_PATH", "renderer", "executable_path"),
    ]
    for env_var, section, field_name in _env_overrides:
        val = os.environ.get(env_var)
        if val:
            setattr(getattr(config, section), field_name, val)
    if os.environ.get("HOURBILL_DB_PATH"):
        config.db_path = Path(os.environ["HOURBILL_DB_PATH"])
