"""Command-line interface for stitching saved frames or capturing the screen.

Usage:
    python -m scroll_stitch stitch part_0.png part_1.png part_2.png -o page.png
    python -m scroll_stitch capture 100 200 800 600 --output-dir captures
    python -m scroll_stitch debug-overlap part_0.png part_1.png -o scores.png
"""

import json
import logging
from concurrent import futures

import click
import numpy as np
from PIL import Image

from ._base import Region, ScrollStitchError
from ._capture import CaptureSettings
from ._compositor import END_OF_CONTENT_DEPTH, Compositor
from ._controller import Controller
from ._duplicates import is_duplicate
from ._frames import decode_frame
from ._header import crop_header, scan_static_header_height
from ._overlap import (
    BLOCK_FRACTION,
    MAX_SCORE_PER_SAMPLE,
    MIN_SCROLL_DELTA,
    OverlapSettings,
    block_difference_scores,
    block_geometry,
    find_overlap,
    full_search_range,
)
from ._rows import COLUMN_STRIDE


def overlap_options(f):
    f = click.option(
        "--max-score-per-sample",
        default=MAX_SCORE_PER_SAMPLE,
        help="Mean RGB difference per sample allowed for a block match (0-765)",
    )(f)
    f = click.option(
        "--min-scroll-delta",
        default=MIN_SCROLL_DELTA,
        help="Matches scrolling less than this many pixels are rejected",
    )(f)
    f = click.option(
        "--block-fraction",
        default=BLOCK_FRACTION,
        help="Fraction of the previous frame used as the reference block",
    )(f)
    return f


def build_compositor(
    max_score_per_sample,
    min_scroll_delta,
    block_fraction,
    end_of_content_depth,
    stop_at_end_of_content,
    detect_headers,
):
    settings = OverlapSettings(
        block_fraction=block_fraction,
        max_score_per_sample=max_score_per_sample,
        min_scroll_delta=min_scroll_delta,
    )
    return Compositor(
        overlap_settings=settings,
        end_of_content_depth=end_of_content_depth,
        stop_at_end_of_content=stop_at_end_of_content,
        detect_headers=detect_headers,
    )


@click.group()
@click.option("--verbose", "-v", count=True, help="Repeat for debug output")
def cli(verbose):
    """Capture and stitch scrolling screen content."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


@cli.command()
@click.argument("frames", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--output", "-o", required=True, help="Output image path")
@click.option("--plan", "plan_path", default=None, help="Write the stitch plan as JSON")
@overlap_options
@click.option(
    "--end-of-content-depth",
    default=END_OF_CONTENT_DEPTH,
    help="Unmatched frames past this index are treated as the end of the page",
)
@click.option(
    "--stop-at-end-of-content",
    is_flag=True,
    help="Stop stitching at the first unmatched frame past the depth",
)
@click.option("--no-headers", is_flag=True, help="Disable sticky header detection")
def stitch(
    frames,
    output,
    plan_path,
    max_score_per_sample,
    min_scroll_delta,
    block_fraction,
    end_of_content_depth,
    stop_at_end_of_content,
    no_headers,
):
    """Stitch saved frames, in the order given, into one tall image."""
    raw_frames = []
    for path in frames:
        with open(path, "rb") as file:
            raw = file.read()
        if raw_frames and is_duplicate(raw_frames[-1], raw):
            click.echo(f"Skipping {path}: identical to the previous frame")
            continue
        raw_frames.append(raw)

    compositor = build_compositor(
        max_score_per_sample,
        min_scroll_delta,
        block_fraction,
        end_of_content_depth,
        stop_at_end_of_content,
        not no_headers,
    )
    try:
        decoded = [decode_frame(raw, source_id=i) for i, raw in enumerate(raw_frames)]
        result = compositor.stitch(decoded)
    except ScrollStitchError as e:
        raise click.ClickException(str(e))

    Image.fromarray(np.ascontiguousarray(result.pixels)).save(output)
    if plan_path:
        with open(plan_path, "w") as file:
            json.dump(result.plan.as_dict(), file, indent=2)
    click.echo(
        f"Stitched {len(result.plan.entries)}/{len(decoded)} frames into "
        f"{result.width}x{result.height}: {output}"
    )
    if result.dropped_frames:
        click.echo(f"Dropped frames: {result.dropped_frames}")


@cli.command()
@click.argument("x", type=int)
@click.argument("y", type=int)
@click.argument("width", type=int)
@click.argument("height", type=int)
@click.option("--output-dir", default="captures", help="Where stitched captures are saved")
@click.option("--save-data-dir", default=None, help="Also save raw frames and the plan here")
@click.option("--max-iterations", default=CaptureSettings.max_iterations)
@click.option("--scroll-amount", default=CaptureSettings.scroll_amount)
@click.option("--scroll-delay", default=CaptureSettings.scroll_settle_delay)
@overlap_options
def capture(
    x,
    y,
    width,
    height,
    output_dir,
    save_data_dir,
    max_iterations,
    scroll_amount,
    scroll_delay,
    max_score_per_sample,
    min_scroll_delta,
    block_fraction,
):
    """Scroll-capture the screen region at X Y WIDTH HEIGHT. Ctrl-C stops early."""
    from .desktop import (
        FileArtifactStore,
        NullVisibility,
        PillowScreenCapturer,
        PyAutoGuiInput,
    )

    settings = CaptureSettings(
        max_iterations=max_iterations,
        scroll_amount=scroll_amount,
        scroll_settle_delay=scroll_delay,
    )
    compositor = build_compositor(
        max_score_per_sample,
        min_scroll_delta,
        block_fraction,
        END_OF_CONTENT_DEPTH,
        False,
        True,
    )
    with Controller(
        PillowScreenCapturer(),
        PyAutoGuiInput(),
        NullVisibility(),
        FileArtifactStore(output_dir),
        capture_settings=settings,
        compositor=compositor,
        save_data_directory=save_data_dir,
    ) as controller:
        future = controller.start_scroll_capture(Region(x, y, width, height))
        try:
            artifact_id = _wait(future)
        except KeyboardInterrupt:
            click.echo("Stopping after the current capture...")
            controller.request_abort()
            artifact_id = _wait(future)
    click.echo(f"Saved {artifact_id} in {output_dir}")


def _wait(future: futures.Future) -> str:
    try:
        return future.result()
    except ScrollStitchError as e:
        raise click.ClickException(str(e))


@cli.command("debug-overlap")
@click.argument("prev_image", type=click.Path(exists=True))
@click.argument("curr_image", type=click.Path(exists=True))
@click.option("--output", "-o", default="overlap_debug.png", help="Output plot path")
@click.option("--expected-delta", default=0, help="Inertia from a previous pair")
@overlap_options
def debug_overlap(
    prev_image,
    curr_image,
    output,
    expected_delta,
    max_score_per_sample,
    min_scroll_delta,
    block_fraction,
):
    """Plot the block difference score for every candidate row."""
    try:
        import matplotlib.pyplot as plt
    except ModuleNotFoundError as exc:
        raise click.ClickException(
            "matplotlib is required for plotting. Run pip install scroll-stitch[debug]."
        ) from exc

    with open(prev_image, "rb") as file:
        prev = decode_frame(file.read(), source_id=0)
    with open(curr_image, "rb") as file:
        curr = decode_frame(file.read(), source_id=1)

    settings = OverlapSettings(
        block_fraction=block_fraction,
        max_score_per_sample=max_score_per_sample,
        min_scroll_delta=min_scroll_delta,
    )
    header_height = scan_static_header_height(prev, curr)
    view = crop_header(curr, header_height)
    block_start_y, block_height = block_geometry(prev.height, block_fraction)
    candidates = full_search_range(view.height, block_height, settings.full_search_fraction)
    scores = block_difference_scores(prev, view, block_start_y, block_height, candidates)
    samples = len(range(0, min(prev.width, view.width), COLUMN_STRIDE)) * 3
    match = find_overlap(prev, view, expected_delta=expected_delta, settings=settings)

    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(candidates, scores / samples, linewidth=1)
    ax.axhline(max_score_per_sample, color="red", linestyle="--", label="ceiling")
    if match:
        ax.axvline(match.best_y, color="green", label=f"best y={match.best_y}")
    ax.set_xlabel("Candidate top row in current frame")
    ax.set_ylabel("Mean RGB difference per sample")
    ax.set_title(
        f"Block start y={block_start_y}, height={block_height}, header={header_height}px"
    )
    ax.legend()
    fig.tight_layout()
    fig.savefig(output, dpi=150)
    plt.close(fig)

    if match:
        click.echo(
            f"overlap={match.overlap}px delta={match.delta}px best_y={match.best_y} "
            f"score={match.score} inertia={match.used_inertia}"
        )
    else:
        click.echo("No match")
    click.echo(f"Plot written to {output}")


if __name__ == "__main__":
    cli()
