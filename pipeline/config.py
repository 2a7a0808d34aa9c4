"""
VerifierConfig: every tunable of the verification pipeline.

Values come from ``configs/verifier.yaml`` (or the file named by the
``VERIFIER_CONFIG`` environment variable, or an explicit path).  Missing
keys keep the defaults below; unknown keys and out-of-range values raise
``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from imaging.regions import Region

CONFIG_PATH = Path(__file__).parent.parent / "configs" / "verifier.yaml"
CONFIG_ENV = "VERIFIER_CONFIG"


@dataclass(frozen=True)
class BinarizeConfig:
    window_size: int = 25
    k: float = 0.2
    r: float = 128.0

    def validate(self) -> None:
        if self.window_size < 1 or self.window_size % 2 == 0:
            raise ValueError(f"binarize.window_size must be a positive odd number, got {self.window_size}")
        if self.r <= 0:
            raise ValueError("binarize.r must be positive")


@dataclass(frozen=True)
class LikeConfig:
    icon_box: Tuple[float, float, float, float] = (0.05, 0.47, 0.12, 0.55)  # x1, y1, x2, y2
    count_offset: Tuple[float, float] = (0.02, 0.15)   # right of the icon, relative to its x2
    dark_threshold: int = 80
    filled_min: float = 0.035
    outline_max: float = 0.020

    @property
    def icon_region(self) -> Region:
        return Region(*self.icon_box)

    def validate(self) -> None:
        Region(*self.icon_box)
        if not 0 <= self.dark_threshold <= 255:
            raise ValueError("like.dark_threshold must be within 0..255")
        if not 0.0 <= self.outline_max < self.filled_min <= 1.0:
            raise ValueError("like.outline_max must be below like.filled_min, both in [0, 1]")
        if self.count_offset[1] <= self.count_offset[0]:
            raise ValueError("like.count_offset must be (start, end) with end > start")


@dataclass(frozen=True)
class TextConfig:
    min_comments: int = 2
    min_replies: int = 2
    dedupe_texts: bool = False

    def validate(self) -> None:
        if self.min_comments < 0 or self.min_replies < 0:
            raise ValueError("text.min_comments / text.min_replies must be >= 0")


@dataclass(frozen=True)
class DuplicateConfig:
    hamming_threshold: int = 6
    phash_size: int = 16

    def validate(self) -> None:
        if self.hamming_threshold < 0:
            raise ValueError("duplicates.hamming_threshold must be >= 0")
        if self.phash_size < 2:
            raise ValueError("duplicates.phash_size must be >= 2")


@dataclass(frozen=True)
class RuntimeConfig:
    ocr_engine: str = "tesseract"
    ocr_lang: str = "eng"
    ocr_timeout: float = 6.0
    bundle_timeout: float = 20.0
    workers: int = 5
    max_side: int = 1280
    max_image_bytes: int = 10 * 1024 * 1024
    max_image_pixels: int = 40_000_000

    def validate(self) -> None:
        if self.ocr_engine not in ("tesseract", "paddle"):
            raise ValueError(f"runtime.ocr_engine must be 'tesseract' or 'paddle', got {self.ocr_engine!r}")
        if self.ocr_timeout <= 0 or self.bundle_timeout <= 0:
            raise ValueError("runtime timeouts must be positive")
        if self.ocr_timeout > self.bundle_timeout:
            raise ValueError("runtime.ocr_timeout cannot exceed runtime.bundle_timeout")
        if self.max_image_bytes < 1 or self.max_image_pixels < 1:
            raise ValueError("runtime image limits must be positive")
        if self.workers < 1:
            raise ValueError("runtime.workers must be >= 1")


@dataclass(frozen=True)
class VerifierConfig:
    binarize: BinarizeConfig = field(default_factory=BinarizeConfig)
    like: LikeConfig = field(default_factory=LikeConfig)
    text: TextConfig = field(default_factory=TextConfig)
    duplicates: DuplicateConfig = field(default_factory=DuplicateConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    def validate(self) -> "VerifierConfig":
        for f in fields(self):
            getattr(self, f.name).validate()
        return self

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VerifierConfig":
        data = dict(data or {})
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        sections = {}
        for f in fields(cls):
            default = f.default_factory()
            sections[f.name] = _merge_section(f.name, default, data.get(f.name) or {})
        return cls(**sections).validate()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            section = getattr(self, f.name)
            values = {}
            for sf in fields(section):
                value = getattr(section, sf.name)
                values[sf.name] = list(value) if isinstance(value, tuple) else value
            out[f.name] = values
        return out


def _merge_section(name: str, default: Any, overrides: Dict[str, Any]) -> Any:
    known = {f.name: f for f in fields(default)}
    unknown = set(overrides) - set(known)
    if unknown:
        raise ValueError(f"Unknown keys in config section {name!r}: {sorted(unknown)}")
    coerced = {}
    for key, value in overrides.items():
        current = getattr(default, key)
        if isinstance(current, tuple):
            value = tuple(float(v) for v in value)
            if len(value) != len(current):
                raise ValueError(f"{name}.{key} needs {len(current)} values")
        elif isinstance(current, bool):
            value = bool(value)
        elif isinstance(current, int):
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{name}.{key} must be an integer, got {value}")
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        coerced[key] = value
    return replace(default, **coerced)


def load_config(path: Optional[Union[str, Path]] = None) -> VerifierConfig:
    """
    Load the verifier configuration.

    Resolution order: explicit *path*, ``$VERIFIER_CONFIG``, then
    ``configs/verifier.yaml``.  If the default file is absent the built-in
    defaults are used; an explicitly requested file must exist.
    """
    explicit = path or os.environ.get(CONFIG_ENV)
    cfg_path = Path(explicit) if explicit else CONFIG_PATH
    if not cfg_path.exists():
        if explicit:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return VerifierConfig().validate()

    with open(cfg_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return VerifierConfig.from_dict(data)
