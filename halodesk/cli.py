"""
HaloDesk CLI: talk to the local router from a terminal and launch the overlay.

Registered as the `halodesk` console script via pyproject.toml.
"""

import asyncio
import dataclasses
import json

import click

from .capabilities import DesktopCapabilities, default_capabilities
from .client import RouterClient
from .config import Settings
from .conversation import PRESETS, REFINE_INSTRUCTIONS, resolve_refine_instruction
from .exceptions import HaloDeskError
from .logs import configure_logging
from .session import Phase, SessionOrchestrator, SessionState


def _build_client(settings: Settings) -> RouterClient:
    return RouterClient(
        settings.router_port, settings.router_host, timeout=settings.request_timeout
    )


def _build_capabilities(settings: Settings) -> DesktopCapabilities:
    return default_capabilities(settings)


class _ConsoleRenderer:
    """Prints only the newly streamed suffix of ``output_text`` on each state change."""

    def __init__(self) -> None:
        self._token = 0
        self._printed = 0

    def __call__(self, state: SessionState) -> None:
        if state.request_token != self._token:
            self._token = state.request_token
            self._printed = 0
        fresh = state.output_text[self._printed :]
        if fresh:
            click.echo(fresh, nl=False)
            self._printed = len(state.output_text)


def _finish_turn(state: SessionState) -> bool:
    """Print the turn's trailer; return False if the turn failed."""
    click.echo()
    if state.active_model:
        click.secho(f"[{state.active_model}]", fg="cyan", err=True)
    if state.error_message:
        click.secho(f"Error: {state.error_message}", fg="red", err=True)
        return False
    if state.phase is Phase.ERROR:
        return False
    return True


async def _run_ask(
    settings: Settings,
    prompt: str,
    preset_id: str,
    screenshot: bool,
    refinements: tuple[str, ...],
    copy: bool,
) -> bool:
    capabilities = _build_capabilities(settings)
    async with _build_client(settings) as client:
        session = SessionOrchestrator(client, capabilities, on_change=_ConsoleRenderer())
        session.select_preset(preset_id)
        if screenshot and session.capture_screen() is None:
            click.secho(session.state.notice, fg="red", err=True)
            return False

        if await session.send(prompt) is None:
            click.secho(session.state.notice, fg="yellow", err=True)
            return False
        ok = _finish_turn(session.state)

        for choice in refinements:
            if not ok:
                break
            instruction = resolve_refine_instruction(choice)
            click.secho(f"\n--- refine: {instruction}", fg="cyan", err=True)
            if await session.refine(instruction) is None:
                click.secho("Nothing to refine.", fg="yellow", err=True)
                return False
            ok = _finish_turn(session.state)

        if ok and copy:
            session.copy_output()
        return ok


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="halodesk")
@click.option(
    "--port", type=int, default=None, help="Router port (overrides HALODESK_ROUTER_PORT)."
)
@click.option("--log-level", default=None, help="Log level (debug, info, warning, ...).")
@click.option("-v", "--verbose", is_flag=True, help="Also log to stderr.")
@click.pass_context
def cli(ctx: click.Context, port: int | None, log_level: str | None, verbose: bool) -> None:
    """HaloDesk: desktop overlay client for the local HaloDesk router."""
    settings = Settings.from_env()
    if port is not None:
        settings = Settings(
            router_host=settings.router_host,
            router_port=port,
            data_dir=settings.data_dir,
            log_level=settings.log_level,
            request_timeout=settings.request_timeout,
        )
    configure_logging(settings.log_path, log_level or settings.log_level, stderr=verbose)
    ctx.obj = settings


# ── Chat ──────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("prompt")
@click.option(
    "--preset",
    "preset_id",
    type=click.Choice([preset.id for preset in PRESETS]),
    default=PRESETS[0].id,
    show_default=True,
    help="System prompt preset.",
)
@click.option("--screenshot", is_flag=True, help="Attach a capture of the primary display.")
@click.option(
    "--refine",
    "refinements",
    multiple=True,
    help=f"Refine the answer afterwards. One of {', '.join(REFINE_INSTRUCTIONS)} or free text.",
)
@click.option("--copy", is_flag=True, help="Copy the final answer to the clipboard.")
@click.pass_obj
def ask(
    settings: Settings,
    prompt: str,
    preset_id: str,
    screenshot: bool,
    refinements: tuple[str, ...],
    copy: bool,
) -> None:
    """Send PROMPT to the router and stream the answer. Use '-' to read the clipboard."""
    if prompt == "-":
        prompt = _build_capabilities(settings).clipboard.read_text() or ""
    ok = asyncio.run(_run_ask(settings, prompt, preset_id, screenshot, refinements, copy))
    if not ok:
        raise SystemExit(1)


@cli.command()
def presets() -> None:
    """List the available system prompt presets."""
    for preset in PRESETS:
        click.secho(f"{preset.id:<10}", fg="cyan", bold=True, nl=False)
        click.echo(f" {preset.name}")
        if preset.system_prompt:
            click.echo(f"           {preset.system_prompt}")


# ── Router ────────────────────────────────────────────────────────────────────


async def _fetch_health(settings: Settings) -> dict:
    async with _build_client(settings) as client:
        return await client.health()


@cli.command()
@click.pass_obj
def health(settings: Settings) -> None:
    """Check that the router is up."""
    data = asyncio.run(_fetch_health(settings))
    status = data.get("status", "unknown")
    color = "green" if status == "ok" else "yellow"
    click.secho(f"Router {status}", fg=color, bold=True)
    for key in ("version", "uptime_ms"):
        if key in data:
            click.echo(f"  {key}: {data[key]}")


@cli.command()
@click.pass_obj
def models(settings: Settings) -> None:
    """List models known to the router."""

    async def fetch():
        async with _build_client(settings) as client:
            return await client.list_models()

    listing = asyncio.run(fetch())
    click.echo(f"text default:   {listing.text_default}")
    click.echo(f"vision default: {listing.vision_default}")
    for model in listing.models:
        click.echo(f"  {model.id:<45} {model.label} ({model.capability})")


# ── Settings ──────────────────────────────────────────────────────────────────


@cli.command(name="set-key")
@click.option("--key", prompt="Provider API key", hide_input=True, help="Provider API key.")
@click.pass_obj
def set_key(settings: Settings, key: str) -> None:
    """Store the provider API key in the OS keychain."""
    _build_capabilities(settings).keys.set_provider_key(key)
    click.secho("Provider key stored.", fg="green")


@cli.group()
def config() -> None:
    """Show or edit the router configuration."""


@config.command(name="show")
@click.pass_obj
def config_show(settings: Settings) -> None:
    """Print the current configuration as JSON."""
    capabilities = _build_capabilities(settings)
    click.echo(json.dumps(capabilities.config.get_config().to_dict(), indent=2))
    has_key = capabilities.keys.has_provider_key()
    click.secho(
        f"provider key: {'configured' if has_key else 'missing'}",
        fg="green" if has_key else "yellow",
    )


@config.command(name="set-model")
@click.option("--text", "text_model", default=None, help="Default model for text prompts.")
@click.option("--vision", "vision_model", default=None, help="Default model for screenshots.")
@click.pass_obj
def config_set_model(settings: Settings, text_model: str | None, vision_model: str | None) -> None:
    """Change the default models."""
    if text_model is None and vision_model is None:
        raise click.UsageError("Pass --text and/or --vision.")
    store = _build_capabilities(settings).config
    changes = {}
    if text_model is not None:
        changes["text_default_model"] = text_model.strip()
    if vision_model is not None:
        changes["vision_default_model"] = vision_model.strip()
    store.set_config(dataclasses.replace(store.get_config(), **changes))
    click.secho("Configuration saved.", fg="green")


# ── Overlay ───────────────────────────────────────────────────────────────────


@cli.command()
def overlay() -> None:
    """Launch the desktop overlay window."""
    try:
        from .overlay import main as overlay_main
    except ImportError as exc:
        click.secho(f"Overlay unavailable: {exc}", fg="red", err=True)
        click.echo("Install the UI extra:  pip install 'halodesk[overlay]'", err=True)
        raise SystemExit(1) from exc
    overlay_main().main_loop()


# ── Entry point ───────────────────────────────────────────────────────────────


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except HaloDeskError as exc:
        click.secho(str(exc), fg="red", err=True)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    cli_entry()
