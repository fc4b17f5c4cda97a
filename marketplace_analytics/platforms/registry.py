from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import yaml
from marketplace_analytics.schemas import Platform
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class LoginConfig:
    url:                Optional[str]  = None
    email_selectors:    List[str]      = field(default_factory=list)
    password_selectors: List[str]      = field(default_factory=list)
    submit_selectors:   List[str]      = field(default_factory=list)
    error_selectors:    List[str]      = field(default_factory=list)
    error_keywords:     List[str]      = field(default_factory=lambda: ["error", "incorrect", "wrong"])
    success_selectors:  List[str]      = field(default_factory=list)


@dataclass
class LandingConfig:
    login_url_markers:          List[str] = field(default_factory=list)
    checkpoint_url_markers:     List[str] = field(default_factory=list)
    password_field_means_login: bool      = False


@dataclass
class DashboardConfig:
    url_patterns:          List[str]     = field(default_factory=list)
    ready_selector:        Optional[str] = None
    item_link_selector:    Optional[str] = None
    action_button_pattern: Optional[str] = None
    row_keywords_pattern:  Optional[str] = None
    page_url_pattern:      Optional[str] = None
    max_pages:             int           = 1
    scroll_steps:          int           = 8


@dataclass
class PlatformConfig:
    key:                   str
    name:                  str
    enabled:               bool
    base_url:              str
    scraper_module:        Optional[str]          = None
    accepts_auth_override: bool                   = False
    cookie_domain:         Optional[str]          = None
    login:                 LoginConfig            = field(default_factory=LoginConfig)
    landing:               LandingConfig          = field(default_factory=LandingConfig)
    dashboard:             DashboardConfig        = field(default_factory=DashboardConfig)
    detail_selectors:      Dict[str, List[str]]   = field(default_factory=dict)
    request_delay_ms:      tuple                  = (1000, 1500)

    @property
    def platform(self) -> Platform:
        return Platform(self.key)


def _str_list(v) -> List[str]:
    if not v:
        return []
    if isinstance(v, str):
        return [v]
    return [str(x) for x in v]


def _load(raw: dict) -> PlatformConfig:
    login   = raw.get("login", {}) or {}
    landing = raw.get("landing", {}) or {}
    dash    = raw.get("dashboard", {}) or {}
    detail  = raw.get("detail", {}) or {}
    delay   = raw.get("request_delay_ms", [1000, 1500])

    login_cfg = LoginConfig(
        url=login.get("url"),
        email_selectors=_str_list(login.get("email_selectors")),
        password_selectors=_str_list(login.get("password_selectors")),
        submit_selectors=_str_list(login.get("submit_selectors")),
        error_selectors=_str_list(login.get("error_selectors")),
        success_selectors=_str_list(login.get("success_selectors")),
    )
    if login.get("error_keywords"):
        login_cfg.error_keywords = [k.lower() for k in _str_list(login["error_keywords"])]

    return PlatformConfig(
        key=raw["key"],
        name=raw.get("name", raw["key"]),
        enabled=raw.get("enabled", True),
        base_url=raw["base_url"],
        scraper_module=raw.get("scraper_module"),
        accepts_auth_override=bool(raw.get("accepts_auth_override", False)),
        cookie_domain=raw.get("cookie_domain"),
        login=login_cfg,
        landing=LandingConfig(
            login_url_markers=_str_list(landing.get("login_url_markers")),
            checkpoint_url_markers=_str_list(landing.get("checkpoint_url_markers")),
            password_field_means_login=bool(landing.get("password_field_means_login", False)),
        ),
        dashboard=DashboardConfig(
            url_patterns=_str_list(dash.get("url_patterns")),
            ready_selector=dash.get("ready_selector"),
            item_link_selector=dash.get("item_link_selector"),
            action_button_pattern=dash.get("action_button_pattern"),
            row_keywords_pattern=dash.get("row_keywords_pattern"),
            page_url_pattern=dash.get("page_url_pattern"),
            max_pages=int(dash.get("max_pages", 1)),
            scroll_steps=int(dash.get("scroll_steps", 8)),
        ),
        detail_selectors={
            metric: _str_list(sels)
            for metric, sels in (detail.get("selectors", {}) or {}).items()
        },
        request_delay_ms=(int(delay[0]), int(delay[1])),
    )


class PlatformRegistry:
    def __init__(self, configs_dir: str):
        self._dir     = configs_dir
        self._configs: Dict[str, PlatformConfig] = {}
        self.reload()

    def reload(self):
        self._configs.clear()
        if not os.path.isdir(self._dir):
            logger.warning("Configs dir not found: %s", self._dir)
            return
        for fname in sorted(os.listdir(self._dir)):
            if not fname.endswith(".yaml"):
                continue
            path = os.path.join(self._dir, fname)
            try:
                with open(path, encoding="utf-8") as f:
                    raw = yaml.safe_load(f)
                if raw and raw.get("key"):
                    cfg = _load(raw)
                    Platform(cfg.key)
                    self._configs[cfg.key] = cfg
                    logger.debug("Loaded platform: %s (%s)", cfg.key, cfg.name)
            except Exception as e:
                logger.error("Failed to load %s: %s", fname, e)
        logger.info("Registry: %d platforms loaded", len(self._configs))

    def all(self) -> List[PlatformConfig]:
        return list(self._configs.values())

    def get(self, key) -> Optional[PlatformConfig]:
        if isinstance(key, Platform):
            key = key.value
        return self._configs.get(key)


from marketplace_analytics.config import settings
platform_registry = PlatformRegistry(settings.platforms_dir)
