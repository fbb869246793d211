"""Shared test fixtures for Adphex."""

import pytest
from pydantic import SecretStr

from adphex.settings import Settings

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment="testing",
        debug=True,
        api_base_url="http://adphex.test",
        api_token=SecretStr("test-token"),
        user_id="user-1",
        demo_mode=False,
        demo_max_questions=3,
    )


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Mock get_settings() everywhere it was imported."""
    import adphex.chat.session
    import adphex.cli.commands.chat
    import adphex.client
    import adphex.logging_config
    from adphex import settings

    for module in (
        settings,
        adphex.client,
        adphex.chat.session,
        adphex.cli.commands.chat,
        adphex.logging_config,
    ):
        monkeypatch.setattr(module, "get_settings", lambda: test_settings)
    return test_settings
