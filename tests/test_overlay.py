"""Overlay handlers exercised without a GUI backend (toga-core only)."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

pytest.importorskip("toga")

from halodesk.exceptions import ConfigError  # noqa: E402
from halodesk.models import DEFAULT_VISION_MODEL  # noqa: E402
from halodesk.overlay import HaloDeskOverlay  # noqa: E402


def _settings_form(capabilities, *, key="", text="openrouter:x/text", vision="openrouter:x/vision"):
    return SimpleNamespace(
        capabilities=capabilities,
        settings_key_input=SimpleNamespace(value=key),
        settings_text_model_input=SimpleNamespace(value=text),
        settings_vision_model_input=SimpleNamespace(value=vision),
        main_window=SimpleNamespace(dialog=AsyncMock()),
        status_label=SimpleNamespace(text=""),
        on_cancel_settings=AsyncMock(),
    )


# ========================================================================
# Settings window
# ========================================================================


class TestSaveSettings:
    async def test_saves_trimmed_models_and_key(self, capabilities):
        app = _settings_form(capabilities, key=" sk-new ", text=" openrouter:x/text ")
        await HaloDeskOverlay.on_save_settings(app, None)

        saved = capabilities.config.saved[-1]
        assert saved.text_default_model == "openrouter:x/text"
        assert saved.vision_default_model == "openrouter:x/vision"
        assert capabilities.keys.key == "sk-new"
        assert app.status_label.text == "Settings saved."
        app.on_cancel_settings.assert_awaited_once()

    async def test_failed_save_leaves_loaded_config_untouched(self, capabilities):
        loaded = capabilities.config.get_config()
        app = _settings_form(capabilities)
        with (
            patch.object(capabilities.config, "set_config", side_effect=ConfigError("disk full")),
            patch("halodesk.overlay.toga.ErrorDialog", MagicMock()),
        ):
            await HaloDeskOverlay.on_save_settings(app, None)

        assert capabilities.config.get_config() is loaded
        assert loaded.vision_default_model == DEFAULT_VISION_MODEL
        app.main_window.dialog.assert_awaited_once()
        app.on_cancel_settings.assert_not_awaited()


# ========================================================================
# Shutdown
# ========================================================================


class TestExit:
    async def test_close_task_is_kept_and_closes_client(self):
        app = SimpleNamespace(client=SimpleNamespace(aclose=AsyncMock()), _close_task=None)
        assert HaloDeskOverlay.on_exit(app) is True

        assert isinstance(app._close_task, asyncio.Task)
        await app._close_task
        app.client.aclose.assert_awaited_once()
