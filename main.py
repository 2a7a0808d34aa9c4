"""High-level API + CLI for the engagement screenshot verifier."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Mapping

from imaging.binarize import sauvola_binarize
from imaging.hashing import hex_hamming
from imaging.utils import decode_image_rgb, downscale, save_gray_png, to_gray_u8
from ocr.adapter import build_engine
from pipeline import (
    BundleValidationError,
    BundleVerifier,
    ImageRole,
    JsonHistoryStore,
    RecognitionError,
    load_config,
)
from pipeline.verifier import uploads_to_bundle

DEFAULT_HISTORY = Path("outputs/history.json")

logger = logging.getLogger("verifier")


class EngagementVerifierAPI:
    """High-level orchestration API usable from CLI or other Python code."""

    def __init__(self, config_path: str | Path | None = None, history_path: str | Path = DEFAULT_HISTORY):
        self.config = load_config(config_path)
        self.history_path = Path(history_path)
        self._verifier: BundleVerifier | None = None

    def _ensure_runtime(self) -> BundleVerifier:
        if self._verifier is None:
            rt = self.config.runtime
            self._verifier = BundleVerifier(
                ocr=build_engine(rt.ocr_engine, timeout=rt.ocr_timeout, lang=rt.ocr_lang),
                history=JsonHistoryStore(self.history_path),
                config=self.config,
            )
        return self._verifier

    def analyze_paths(self, paths_by_role: Mapping[str, str | Path]) -> dict[str, Any]:
        bundle = uploads_to_bundle(_read_uploads(paths_by_role), self.config)
        return self._ensure_runtime().analyze(bundle).to_dict()

    def submit_paths(self, user_id: str, link_id: str, paths_by_role: Mapping[str, str | Path]) -> dict[str, Any]:
        bundle = uploads_to_bundle(_read_uploads(paths_by_role), self.config)
        return self._ensure_runtime().submit(bundle, user_id=user_id, link_id=link_id).to_dict()

    def binarize_file(self, image_path: str | Path, out_path: str | Path) -> str:
        bz = self.config.binarize
        rgb = decode_image_rgb(Path(image_path).read_bytes())
        gray = to_gray_u8(downscale(rgb, self.config.runtime.max_side))
        bw = sauvola_binarize(gray, window_size=bz.window_size, k=bz.k, r=bz.r)
        return save_gray_png(bw, out_path)


def _read_uploads(paths_by_role: Mapping[str, str | Path]) -> dict[str, bytes]:
    uploads = {}
    for role, path in paths_by_role.items():
        p = Path(path)
        if not p.is_file():
            raise BundleValidationError(f"File for {role!r} not found: {p}", role=role)
        uploads[role] = p.read_bytes()
    return uploads


def _paths_from_args(args: argparse.Namespace) -> dict[str, str]:
    return {role.value: getattr(args, role.value) for role in ImageRole}


# -------------------- CLI commands --------------------

def cmd_analyze(args: argparse.Namespace) -> int:
    api = EngagementVerifierAPI(config_path=args.config)
    out = api.analyze_paths(_paths_from_args(args))
    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0 if out["verified"] else 1


def cmd_submit(args: argparse.Namespace) -> int:
    api = EngagementVerifierAPI(config_path=args.config, history_path=args.history)
    out = api.submit_paths(args.user, args.link, _paths_from_args(args))
    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0 if out["status"] == "accepted" else 1


def cmd_hamming(args: argparse.Namespace) -> int:
    print(hex_hamming(args.hash_a, args.hash_b))
    return 0


def cmd_binarize(args: argparse.Namespace) -> int:
    api = EngagementVerifierAPI(config_path=args.config)
    print(api.binarize_file(args.image, args.out))
    return 0


def _add_bundle_args(p: argparse.ArgumentParser) -> None:
    for role in ImageRole:
        p.add_argument(f"--{role.value}", required=True, help=f"Path to the {role.value} screenshot")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Engagement screenshot verifier")
    parser.add_argument("--config", default=None, help="YAML config (default: configs/verifier.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze_p = sub.add_parser("analyze", help="Run the verification decision on five screenshots")
    _add_bundle_args(analyze_p)

    submit_p = sub.add_parser("submit", help="Verify, duplicate-check and record a bundle for a user")
    submit_p.add_argument("--user", required=True, help="Submitting user id")
    submit_p.add_argument("--link", required=True, help="Target link id")
    submit_p.add_argument("--history", default=str(DEFAULT_HISTORY), help="JSON history file")
    _add_bundle_args(submit_p)

    hamming_p = sub.add_parser("hamming", help="Bit distance between two hex hashes")
    hamming_p.add_argument("hash_a")
    hamming_p.add_argument("hash_b")

    binarize_p = sub.add_parser("binarize", help="Write the Sauvola binarization of an image as PNG")
    binarize_p.add_argument("image")
    binarize_p.add_argument("out")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(name)s] %(levelname)s %(message)s",
    )

    commands = {
        "analyze": cmd_analyze,
        "submit": cmd_submit,
        "hamming": cmd_hamming,
        "binarize": cmd_binarize,
    }
    try:
        return commands[args.command](args)
    except BundleValidationError as exc:
        logger.error("invalid bundle: %s", exc)
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 2
    except RecognitionError as exc:
        logger.error("recognition failed, retry the submission: %s", exc)
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 3


if __name__ == "__main__":
    sys.exit(main())
