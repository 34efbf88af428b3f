from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_GRAPH_API_URL = "https://graph.facebook.com/v2.6/me/messages"


@dataclass(frozen=True)
class Settings:
    """Configuration container for the Messenger channel, knowledge base, and pacing."""
    app_secret: str
    validation_token: str
    page_access_token: str
    server_url: str
    graph_api_url: str
    knowledge_base_path: Path
    data_dir: Path
    reply_delay_ms: int
    reprompt_delay_ms: int
    max_quick_replies: int
    send_timeout_sec: float
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    mail_from: str
    log_level: str

    def missing_messenger_values(self) -> list[str]:
        """Purpose: List the Messenger credentials that are not configured.
        Inputs/Outputs: No inputs; returns env variable names that are empty.
        Side Effects / State: None.
        Dependencies: Used by create_app to report incomplete configuration.
        Failure Modes: None.
        If Removed: Startup cannot warn about a channel that will never deliver.
        Testing Notes: Build Settings with an empty token and check the name is listed.
        """
        # Map each credential to the variable that sets it.
        required = {
            "MESSENGER_APP_SECRET": self.app_secret,
            "MESSENGER_VALIDATION_TOKEN": self.validation_token,
            "MESSENGER_PAGE_ACCESS_TOKEN": self.page_access_token,
            "SERVER_URL": self.server_url,
        }
        return [name for name, value in required.items() if not value]


def load_settings(env: Optional[dict] = None) -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: Optional mapping used instead of os.environ; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses BASE_DIR for the packaged knowledge base and data directory.
    Failure Modes: Invalid integer env values (delays, limits, ports) raise ValueError.
    If Removed: App cannot configure the channel, stores, or pacing and fails at startup.
    Testing Notes: Pass a dict to verify defaults and overrides without touching os.environ.
    """
    # Resolve paths first, then build Settings from the remaining values.
    source = os.environ if env is None else env

    def get(name: str, default: str = "") -> str:
        return source.get(name, default) or default

    kb_path = get("KNOWLEDGE_BASE_PATH")
    if kb_path:
        knowledge_base_file = Path(kb_path)
    else:
        knowledge_base_file = (BASE_DIR / "data" / "knowledge_base.json").resolve()

    data_dir = get("DATA_DIR")
    data_path = Path(data_dir) if data_dir else (BASE_DIR / ".." / "var").resolve()

    return Settings(
        app_secret=get("MESSENGER_APP_SECRET"),
        validation_token=get("MESSENGER_VALIDATION_TOKEN"),
        page_access_token=get("MESSENGER_PAGE_ACCESS_TOKEN"),
        server_url=get("SERVER_URL"),
        graph_api_url=get("GRAPH_API_URL", DEFAULT_GRAPH_API_URL),
        knowledge_base_path=knowledge_base_file,
        data_dir=data_path,
        reply_delay_ms=int(get("REPLY_DELAY_MS", "500")),
        reprompt_delay_ms=int(get("REPROMPT_DELAY_MS", "1000")),
        max_quick_replies=int(get("MAX_QUICK_REPLIES", "13")),
        send_timeout_sec=float(get("SEND_TIMEOUT_SEC", "10")),
        smtp_host=get("SMTP_HOST"),
        smtp_port=int(get("SMTP_PORT", "587")),
        smtp_user=get("SMTP_USER"),
        smtp_password=get("SMTP_PASSWORD"),
        mail_from=get("MAIL_FROM") or get("SMTP_USER"),
        log_level=get("LOG_LEVEL", "INFO").upper(),
    )
