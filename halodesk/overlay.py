"""Toga overlay window for HaloDesk.

The window is thin glue: every button calls a ``SessionOrchestrator``
method and ``_render`` mirrors ``SessionState`` back into the widgets.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from typing import Any

import toga
from toga.style import Pack
from toga.style.pack import COLUMN, ROW

from .capabilities import default_capabilities
from .client import RouterClient
from .config import Settings
from .conversation import REFINE_INSTRUCTIONS
from .exceptions import HaloDeskError
from .logs import configure_logging, logger
from .session import Phase, SessionOrchestrator, SessionState

FONT_SIZE_BODY = 11
FONT_SIZE_META = 10

COLOR_APP_BG = "#0E1218"
COLOR_PANEL_BG = "#151C26"
COLOR_ACCENT = "#5E9BFF"
COLOR_DANGER = "#E0707A"
COLOR_TEXT_PRIMARY = "#F6FAFF"
COLOR_TEXT_MUTED = "#9AA8BC"

PHASE_CAPTIONS = {
    Phase.IDLE: "Ready",
    Phase.STREAMING: "Streaming…",
    Phase.ERROR: "Failed",
}


class HaloDeskOverlay(toga.App):
    """Compact always-available prompt window."""

    def startup(self) -> None:
        """Resolve settings, wire the session and build the window."""
        self.settings = Settings.from_env()
        configure_logging(self.settings.log_path, self.settings.log_level)
        self.capabilities = default_capabilities(self.settings)
        self.client = RouterClient(
            self.settings.router_port,
            self.settings.router_host,
            timeout=self.settings.request_timeout,
        )
        self.session = SessionOrchestrator(self.client, self.capabilities, on_change=self._render)
        self.settings_window: toga.Window | None = None
        self.settings_key_input: toga.PasswordInput | None = None
        self.settings_text_model_input: toga.TextInput | None = None
        self.settings_vision_model_input: toga.TextInput | None = None
        self._close_task: asyncio.Task | None = None
        self._preset_ids_by_name = {preset.name: preset.id for preset in self.session.presets}

        self._build_ui()
        self._render(self.session.state)
        logger.info("[HaloDesk Overlay] Started against %s", self.client.base_url)
        self.main_window.show()

    def _button(self, label: str, handler: Any, *, accent: bool = False) -> toga.Button:
        return toga.Button(
            label,
            on_press=handler,
            style=Pack(
                flex=1,
                margin=(4, 4, 4, 4),
                background_color=COLOR_ACCENT if accent else COLOR_PANEL_BG,
                color="#FFFFFF" if accent else COLOR_TEXT_PRIMARY,
                font_size=FONT_SIZE_BODY,
            ),
        )

    def _build_ui(self) -> None:
        self.preset_select = toga.Selection(
            items=list(self._preset_ids_by_name),
            on_change=self.on_preset_change,
            style=Pack(flex=1, margin=(0, 4, 0, 0)),
        )
        self.model_label = toga.Label(
            "", style=Pack(font_size=FONT_SIZE_META, color=COLOR_TEXT_MUTED, margin=(0, 0, 0, 8))
        )
        header = toga.Box(style=Pack(direction=ROW, margin=(0, 0, 6, 0)))
        header.add(self.preset_select)
        header.add(self._button("Settings", self.on_open_settings))

        self.prompt_input = toga.MultilineTextInput(
            placeholder="Ask anything…",
            style=Pack(height=90, font_size=FONT_SIZE_BODY),
        )
        prompt_row = toga.Box(style=Pack(direction=ROW))
        self.send_button = self._button("Send", self.on_send, accent=True)
        self.regenerate_button = self._button("Regenerate", self.on_regenerate)
        prompt_row.add(self._button("Paste", self.on_paste))
        prompt_row.add(self.regenerate_button)
        prompt_row.add(self.send_button)

        self.image_label = toga.Label(
            "", style=Pack(flex=1, font_size=FONT_SIZE_META, color=COLOR_TEXT_MUTED)
        )
        image_row = toga.Box(style=Pack(direction=ROW, margin=(4, 0, 4, 0)))
        image_row.add(self._button("Capture screen", self.on_capture))
        image_row.add(self._button("Clear screenshot", self.on_clear_image))
        image_row.add(self.image_label)

        self.output_view = toga.MultilineTextInput(
            readonly=True,
            style=Pack(flex=1, font_size=FONT_SIZE_BODY),
        )

        self.refine_select = toga.Selection(
            items=list(REFINE_INSTRUCTIONS), style=Pack(flex=1, margin=(0, 4, 0, 0))
        )
        self.refine_button = self._button("Refine", self.on_refine)
        refine_row = toga.Box(style=Pack(direction=ROW, margin=(4, 0, 0, 0)))
        refine_row.add(self.refine_select)
        refine_row.add(self.refine_button)
        refine_row.add(self._button("Copy", self.on_copy))

        self.status_label = toga.Label(
            "", style=Pack(font_size=FONT_SIZE_META, color=COLOR_TEXT_MUTED, margin=(6, 0, 0, 0))
        )

        root = toga.Box(style=Pack(direction=COLUMN, margin=12, background_color=COLOR_APP_BG))
        root.add(header)
        root.add(self.prompt_input)
        root.add(prompt_row)
        root.add(image_row)
        root.add(self.model_label)
        root.add(self.output_view)
        root.add(refine_row)
        root.add(self.status_label)

        self.main_window = toga.MainWindow(title=self.formal_name, size=(520, 640))
        self.main_window.content = root

    def _render(self, state: SessionState) -> None:
        """Mirror session state into widgets."""
        self.output_view.value = state.output_text
        self.model_label.text = f"Model: {state.active_model}" if state.active_model else ""
        self.image_label.text = "Screenshot attached" if state.image is not None else ""
        self.regenerate_button.enabled = bool(state.last_user_text)
        self.refine_button.enabled = bool(state.output_text) and not state.is_streaming

        if state.error_message:
            self.status_label.text = state.error_message
            self.status_label.style.color = COLOR_DANGER
        else:
            self.status_label.text = state.notice or PHASE_CAPTIONS[state.phase]
            self.status_label.style.color = COLOR_TEXT_MUTED

    # -- handlers ------------------------------------------------------------

    async def on_preset_change(self, widget: toga.Widget) -> None:
        del widget
        name = str(self.preset_select.value or "")
        if name in self._preset_ids_by_name:
            self.session.select_preset(self._preset_ids_by_name[name])

    async def on_send(self, widget: toga.Widget) -> None:
        del widget
        await self.session.send(self.prompt_input.value or "")

    async def on_regenerate(self, widget: toga.Widget) -> None:
        del widget
        await self.session.regenerate()

    async def on_refine(self, widget: toga.Widget) -> None:
        del widget
        choice = str(self.refine_select.value or "")
        instruction = REFINE_INSTRUCTIONS.get(choice, choice)
        await self.session.refine(instruction, draft_text=self.prompt_input.value or "")

    async def on_capture(self, widget: toga.Widget) -> None:
        del widget
        # Hide the overlay so it is not part of its own screenshot.
        self.main_window.hide()
        try:
            await asyncio.sleep(0.2)
            self.session.capture_screen()
        finally:
            self.main_window.show()

    async def on_clear_image(self, widget: toga.Widget) -> None:
        del widget
        self.session.clear_image()

    async def on_paste(self, widget: toga.Widget) -> None:
        del widget
        text = self.session.read_clipboard()
        if text:
            self.prompt_input.value = text

    async def on_copy(self, widget: toga.Widget) -> None:
        del widget
        self.session.copy_output()

    async def on_open_settings(self, widget: toga.Widget) -> None:
        """Open the provider key / default model form."""
        del widget
        if self.settings_window is not None:
            with contextlib.suppress(Exception):
                self.settings_window.show()
                return
            self.settings_window = None

        config = self.capabilities.config.get_config()
        has_key = self.capabilities.keys.has_provider_key()
        self.settings_key_input = toga.PasswordInput(
            placeholder="Key stored" if has_key else "Provider API key",
            style=Pack(flex=1),
        )
        self.settings_text_model_input = toga.TextInput(
            value=config.text_default_model, style=Pack(flex=1)
        )
        self.settings_vision_model_input = toga.TextInput(
            value=config.vision_default_model, style=Pack(flex=1)
        )

        form = toga.Box(style=Pack(direction=COLUMN, margin=14, background_color=COLOR_PANEL_BG))
        for label, control in (
            ("API key", self.settings_key_input),
            ("Text model", self.settings_text_model_input),
            ("Vision model", self.settings_vision_model_input),
        ):
            row = toga.Box(style=Pack(direction=ROW, margin=(0, 0, 10, 0)))
            row.add(
                toga.Label(
                    label, style=Pack(width=100, color=COLOR_TEXT_PRIMARY, font_size=FONT_SIZE_BODY)
                )
            )
            row.add(control)
            form.add(row)

        buttons = toga.Box(style=Pack(direction=ROW, margin_top=8))
        buttons.add(self._button("Cancel", self.on_cancel_settings))
        buttons.add(self._button("Save", self.on_save_settings, accent=True))
        form.add(buttons)

        self.settings_window = toga.Window(title="HaloDesk Settings", size=(480, 220))
        self.settings_window.content = form
        self.settings_window.show()

    async def on_cancel_settings(self, widget: toga.Widget) -> None:
        del widget
        if self.settings_window is not None:
            self.settings_window.close()
        self.settings_window = None

    async def on_save_settings(self, widget: toga.Widget) -> None:
        del widget
        if (
            self.settings_key_input is None
            or self.settings_text_model_input is None
            or self.settings_vision_model_input is None
        ):
            return
        try:
            key = (self.settings_key_input.value or "").strip()
            if key:
                self.capabilities.keys.set_provider_key(key)
            config = dataclasses.replace(
                self.capabilities.config.get_config(),
                text_default_model=(self.settings_text_model_input.value or "").strip(),
                vision_default_model=(self.settings_vision_model_input.value or "").strip(),
            )
            self.capabilities.config.set_config(config)
        except HaloDeskError as exc:
            await self.main_window.dialog(toga.ErrorDialog("Settings not saved", str(exc)))
            return
        self.status_label.text = "Settings saved."
        await self.on_cancel_settings(None)

    def on_exit(self) -> bool:
        """Release the router connection pool on shutdown."""
        with contextlib.suppress(RuntimeError):
            self._close_task = asyncio.get_running_loop().create_task(self.client.aclose())
        return True


def main() -> HaloDeskOverlay:
    """Briefcase / CLI entrypoint."""
    return HaloDeskOverlay(formal_name="HaloDesk", app_id="com.halodesk.overlay")
