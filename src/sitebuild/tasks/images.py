"""Image optimisation task.

Raster images are re-encoded with Pillow's lossless optimisation flags, SVGs
are passed through. Results are stored in a content-keyed cache so an
unchanged image is only ever optimised once.
"""

from __future__ import annotations

import io
from pathlib import Path

from PIL import Image

from ..orchestrator import task
from ..orchestrator.cache import ContentCache, content_key
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger
from ..orchestrator.utils import expand


log = get_logger("tasks.images")

PILLOW_FORMATS = {"png": "PNG", "jpg": "JPEG", "jpeg": "JPEG", "gif": "GIF"}


def optimise_image(data: bytes, extension: str, interlaced: bool = True) -> bytes:
    """Return optimised bytes, or the input when it cannot be made smaller."""
    fmt = PILLOW_FORMATS.get(extension.lower())
    if fmt is None:
        return data
    out = io.BytesIO()
    with Image.open(io.BytesIO(data)) as img:
        if fmt == "PNG":
            img.save(out, format="PNG", optimize=True)
        elif fmt == "JPEG":
            img.save(
                out,
                format="JPEG",
                quality="keep",
                optimize=True,
                progressive=interlaced,
            )
        else:
            img.save(
                out,
                format="GIF",
                optimize=True,
                interlace=interlaced,
                save_all=getattr(img, "is_animated", False),
            )
    optimised = out.getvalue()
    return optimised if len(optimised) < len(data) else data


def image_sources(ctx: BuildContext) -> list[tuple[Path, Path]]:
    allowed = {f".{e}" for e in ctx.config.images.extensions}
    return [
        (src, rel)
        for src, rel in expand(ctx.config.root, ctx.config.paths.images)
        if src.suffix.lower() in allowed
    ]


@task(
    name="optimise-img",
    inputs=lambda c: [c.paths.images],
    outputs=lambda c: [c.paths.assets],
)
def optimise_img(ctx: BuildContext) -> None:
    cfg = ctx.config
    cache = ContentCache(cfg.cache_path / "images")
    assets = cfg.path("assets")
    options = {"interlaced": cfg.images.interlaced}
    saved = 0
    sources = image_sources(ctx)
    for src, rel in sources:
        data = src.read_bytes()
        ext = src.suffix.lstrip(".").lower()
        key = content_key(data, {**options, "ext": ext})
        optimised = cache.get_or_compute(
            key, lambda: optimise_image(data, ext, cfg.images.interlaced)
        )
        target = assets / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(optimised)
        saved += len(data) - len(optimised)
    log.info(
        "Optimised %d image(s) (%d cached), saved %d bytes",
        len(sources),
        cache.hits,
        saved,
    )
