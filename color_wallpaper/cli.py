"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import random
import shlex
import time
from collections.abc import Iterator, Sequence
from functools import partial
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import track

from color_wallpaper.candidates import Candidate, LocalSource, RemoteSource, ScoredCandidate
from color_wallpaper.color_utils import MAX_DISTANCE, Color, parse_hex, to_hex
from color_wallpaper.config import WallhavenConfig, WallpaperConfig
from color_wallpaper.errors import SourceError, WallpaperError
from color_wallpaper.pipeline import Scorer, score_concurrent, score_staged
from color_wallpaper.selection import (
    ThresholdSearch,
    pick_first,
    pick_random,
    select_best_of_batch,
)
from color_wallpaper.system import detect_resolution, prepare_images_dir, set_wallpaper
from color_wallpaper.wallhaven import WallhavenClient

app = typer.Typer(
    name="color-wallpaper",
    help="Set a wallpaper whose average colour is closest to a given colour.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
logger = logging.getLogger("color_wallpaper")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
    )


def _resolve_target(color: str | None, random_pick: bool) -> Color | None:
    if random_pick:
        if color:
            logger.warning(
                "Randomness flag and colour are both specified. Randomness flag wins.",
            )
        return None
    if not color:
        raise typer.BadParameter("Colour is not specified.", param_hint="COLOR")
    try:
        return parse_hex(color)
    except ValueError as err:
        raise typer.BadParameter(str(err), param_hint="COLOR") from err


def _build_config(**kwargs) -> WallpaperConfig:
    try:
        return WallpaperConfig(**kwargs)
    except ValueError as err:
        raise typer.BadParameter(str(err)) from err


def _with_progress(scorer: Scorer) -> Scorer:
    def run(candidates: Sequence[Candidate]) -> Iterator[ScoredCandidate]:
        yield from track(
            scorer(candidates),
            total=len(candidates),
            description="Scoring",
            console=console,
            transient=True,
        )

    return run


def _report(scored: ScoredCandidate, elapsed: float) -> None:
    avg = to_hex(scored.avg_color) if scored.avg_color is not None else "n/a"
    console.print(
        f"  [green]✓[/green] {scored.candidate.id}  "
        f"[dim]average={avg}  distance={scored.distance:.2f}"
        f"  time={elapsed:.1f}s[/dim]"
    )


# Defaults come from WallpaperConfig - single source of truth
_DEFAULTS = WallpaperConfig()
_DEFAULT_SETTER = shlex.join(_DEFAULTS.setter)


# -- directory command -------------------------------------------------

@app.command()
def directory(
    path: Path = typer.Argument(
        ..., exists=True, file_okay=False, dir_okay=True, readable=True,
        help="Directory to take the wallpaper from",
    ),
    color: str | None = typer.Argument(
        None, help="Target colour, 'rrggbb' or '#rrggbb'",
    ),
    random_pick: bool = typer.Option(
        False, "--random", "-r", help="Set a random wallpaper, ignoring colour",
    ),
    max_items: int = typer.Option(
        _DEFAULTS.max_items, "--max-items", "-m", min=0,
        help="Max number of images to process (0 = all)",
    ),
    seed: int | None = typer.Option(
        _DEFAULTS.seed, "--seed", "-s", help="Random seed (None = random)",
    ),
    setter: str = typer.Option(
        _DEFAULT_SETTER, "--setter", help="Command that sets the wallpaper",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Pick the image in PATH closest to COLOR, or a random one."""
    _setup_logging(verbose)
    target = _resolve_target(color, random_pick)
    cfg = _build_config(
        target=target,
        max_items=max_items,
        seed=seed,
        setter=tuple(shlex.split(setter)),
    )
    rng = random.Random(cfg.seed)
    source = LocalSource(
        path, max_items=cfg.max_items, rng=rng, extensions=cfg.SUPPORTED_EXTENSIONS,
    )

    try:
        if cfg.target is None:
            batch = source.next_batch()
            if batch is None or not batch.candidates:
                console.print(f"[yellow]There are no image files in {path}[/yellow]")
                raise typer.Exit(0)
            chosen = pick_random(batch.candidates, rng).id
            console.print(chosen)
        else:
            w = cfg.workers
            console.print(Panel.fit(
                f"[bold]Searching image closest to {to_hex(cfg.target)}[/bold]\n"
                f"Directory: {path}  |  Max items: {cfg.max_items or 'all'}\n"
                f"Workers: decode={w.decode}  average={w.average}  distance={w.distance}",
                border_style="cyan",
            ))
            t0 = time.perf_counter()
            scorer = partial(score_staged, target=cfg.target, workers=cfg.workers)
            selection = select_best_of_batch(source, _with_progress(scorer))
            if selection is None:
                console.print(f"[yellow]There are no image files in {path}[/yellow]")
                raise typer.Exit(0)
            if selection.scored.failed:
                msg = "None of the images could be decoded"
                raise WallpaperError(msg)
            _report(selection.scored, time.perf_counter() - t0)
            chosen = selection.scored.candidate.id

        set_wallpaper(chosen, cfg.setter)
    except WallpaperError as err:
        logger.error("%s", err)
        raise typer.Exit(1) from err


# -- wallhaven command -------------------------------------------------

@app.command()
def wallhaven(
    color: str | None = typer.Argument(
        None, help="Target colour, 'rrggbb' or '#rrggbb'",
    ),
    random_pick: bool = typer.Option(
        False, "--random", "-r",
        help="True random: take the first thumb of a randomly sorted search",
    ),
    threshold: float = typer.Option(
        _DEFAULTS.threshold, "--threshold", "-t",
        help=f"Max allowed distance to the colour (0 < t <= {MAX_DISTANCE:.0f})",
    ),
    last_page: int = typer.Option(
        0, "--last-page", "-l", min=0, help="Last page to scan (0 = all pages)",
    ),
    resolution: str | None = typer.Option(
        None, "--resolution", help="Screen resolution WxH (default: xdpyinfo)",
    ),
    images_dir: Path = typer.Option(
        _DEFAULTS.images_root, "--images-dir", help="Downloads go to IMAGES_DIR/<resolution>",
    ),
    insecure: bool = typer.Option(
        False, "--insecure", help="Skip TLS certificate verification",
    ),
    setter: str = typer.Option(
        _DEFAULT_SETTER, "--setter", help="Command that sets the wallpaper",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Download a wallhaven.cc wallpaper closest to COLOR and set it."""
    _setup_logging(verbose)
    target = _resolve_target(color, random_pick)
    cfg = _build_config(
        target=target,
        # random mode never compares distances
        threshold=_DEFAULTS.threshold if random_pick else threshold,
        page_budget=last_page or None,
        images_root=images_dir,
        setter=tuple(shlex.split(setter)),
    )

    try:
        resolution = resolution or detect_resolution()
        dest_dir = prepare_images_dir(cfg.images_root, resolution)
        client = WallhavenClient(WallhavenConfig(resolution=resolution, verify=not insecure))
        source = RemoteSource(client)

        t0 = time.perf_counter()
        if cfg.target is None:
            batch = source.next_batch()
            console.print(f"Picking first thumb out of {len(batch)}.")
            preview = pick_first(batch.candidates).preview_ref
        else:
            console.print(Panel.fit(
                f"[bold]Searching wallhaven for {to_hex(cfg.target)}[/bold]\n"
                f"Resolution: {resolution}  |  Threshold: {cfg.threshold:.2f}\n"
                f"Last page: {cfg.page_budget or 'all'}",
                border_style="cyan",
            ))
            search = ThresholdSearch(
                source,
                partial(score_concurrent, target=cfg.target),
                cfg.threshold,
                cfg.page_budget,
            )
            selection = search.run()
            _report(selection.scored, time.perf_counter() - t0)
            preview = selection.scored.candidate.preview_ref

        if not preview:
            msg = "Could not find the thumb's preview link"
            raise SourceError(msg)
        src = client.resolve_full_image(preview)
        console.print(src)
        image_path = client.download(src, dest_dir)
        set_wallpaper(image_path, cfg.setter)
    except WallpaperError as err:
        logger.error("%s", err)
        raise typer.Exit(1) from err

    console.print(Panel.fit(
        f"[bold green]DONE[/bold green] - wallpaper saved to [bold]{image_path}[/bold]",
        border_style="green",
    ))


if __name__ == "__main__":
    app()
