from __future__ import annotations

from pathlib import Path

import pytest

from wishchat.config import BASE_DIR, DEFAULT_GRAPH_API_URL, load_settings
from wishchat.utils import fold_text, mask_contact_value


def test_defaults():
    settings = load_settings({})
    assert settings.graph_api_url == DEFAULT_GRAPH_API_URL
    assert settings.knowledge_base_path == (BASE_DIR / "data" / "knowledge_base.json").resolve()
    assert settings.reply_delay_ms == 500
    assert settings.reprompt_delay_ms == 1000
    assert settings.max_quick_replies == 13
    assert settings.smtp_port == 587
    assert settings.log_level == "INFO"
    assert set(settings.missing_messenger_values()) == {
        "MESSENGER_APP_SECRET",
        "MESSENGER_VALIDATION_TOKEN",
        "MESSENGER_PAGE_ACCESS_TOKEN",
        "SERVER_URL",
    }


def test_overrides(tmp_path):
    settings = load_settings(
        {
            "KNOWLEDGE_BASE_PATH": str(tmp_path / "kb.json"),
            "DATA_DIR": str(tmp_path),
            "REPLY_DELAY_MS": "0",
            "SMTP_USER": "bot@example.com",
            "LOG_LEVEL": "debug",
        }
    )
    assert settings.knowledge_base_path == Path(tmp_path / "kb.json")
    assert settings.data_dir == Path(tmp_path)
    assert settings.reply_delay_ms == 0
    assert settings.mail_from == "bot@example.com"
    assert settings.log_level == "DEBUG"


def test_invalid_integer_raises():
    with pytest.raises(ValueError):
        load_settings({"REPLY_DELAY_MS": "soon"})


def test_fold_text():
    assert fold_text("  Welcome to Wishfin ") == fold_text("welcome to wishfin")
    assert fold_text("") == ""


@pytest.mark.parametrize("value, expected", [
    ("9876543210", "***210"),
    ("a@bcdefg.com", "***@bcdefg.com"),
    ("12", "***"),
    (None, ""),
])
def test_mask_contact_value(value, expected):
    assert mask_contact_value(value) == expected
