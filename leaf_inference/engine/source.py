"""
Model Source
============
Fetch the TorchScript artifact from its configured location and turn it
into an eval-mode module.

``MODEL_URL`` may be an ``http(s)://`` URL (downloaded once into the cache
directory), a ``file://`` URL, or a plain filesystem path.  Artifacts can
embed their class list as a ``class_names.json`` extra file.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import torch
from torch import nn

from leaf_inference import config


logger = logging.getLogger("leaf_inference.source")

CLASS_NAMES_EXTRA = "class_names.json"


@dataclass
class LoadedModel:
    """A ready-to-run model plus whatever metadata the artifact carried."""

    module: nn.Module
    path: Path
    class_names: tuple[str, ...] | None = None


def _cache_path(url: str, cache_dir: Path) -> Path:
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    name = Path(urlparse(url).path).name or "model.pt"
    return cache_dir / f"{digest}_{name}"


def fetch_artifact(url: str, cache_dir: Path | None = None) -> Path:
    """
    Resolve ``url`` to a local file, downloading it if necessary.

    Raises
    ------
    FileNotFoundError
        If a local path does not exist.
    """
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        cache_dir = Path(cache_dir or config.MODEL_CACHE_DIR)
        target = _cache_path(url, cache_dir)
        if target.exists() and target.stat().st_size > 0:
            logger.info("Using cached model artifact %s", target.name)
            return target
        cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading model artifact from %s …", url)
        torch.hub.download_url_to_file(url, str(target), progress=False)
        return target

    path = Path(parsed.path if parsed.scheme == "file" else url)
    if not path.exists():
        raise FileNotFoundError(f"Model artifact not found at {path}")
    return path


def load_artifact(path: Path, device: str | None = None) -> LoadedModel:
    """Load a TorchScript artifact in eval mode on ``device``."""
    extra_files = {CLASS_NAMES_EXTRA: ""}
    module = torch.jit.load(
        str(path),
        map_location=torch.device(device or config.DEVICE),
        _extra_files=extra_files,
    )
    module.eval()

    class_names: tuple[str, ...] | None = None
    raw = extra_files.get(CLASS_NAMES_EXTRA)
    if raw:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        class_names = tuple(json.loads(raw))

    return LoadedModel(module=module, path=path, class_names=class_names)


def fetch_and_load(url: str, device: str | None = None, cache_dir: Path | None = None) -> LoadedModel:
    """Default fetcher used by the lifecycle manager."""
    path = fetch_artifact(url, cache_dir=cache_dir)
    return load_artifact(path, device=device)
