"""
CLI to run the complete battlebook pipeline end-to-end.

Usage:
    python scripts/run_full_pipeline.py \
        --input gettysburg.txt \
        --output gettysburg_story.yaml

    python scripts/run_full_pipeline.py --placeholder --mode plan-only
    python scripts/run_full_pipeline.py --input battle.txt --server http://localhost:3001
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from battlebook import (  # noqa: E402
    BackendClient,
    GenerationMode,
    GenerationSession,
    GenerationSettings,
    SessionSnapshot,
    StoryLifecycleManager,
)


class ProgressReporter:
    """
    Mirrors the generation session on the command line: log lines and a step bar.
    """

    def __init__(self) -> None:
        self._bar: tqdm | None = None
        self._log_seen = 0

    def on_snapshot(self, snapshot: SessionSnapshot) -> None:
        for entry in snapshot.log[self._log_seen:]:
            tqdm.write(entry.format())
        self._log_seen = len(snapshot.log)

        if self._bar is not None:
            target = round(snapshot.progress * self._bar.total)
            if target > self._bar.n:
                self._bar.update(target - self._bar.n)
            if snapshot.progress_text:
                self._bar.set_description(snapshot.progress_text[:45])

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "plan:ready":
                tqdm.write(f"Plan ready for {payload.get('name')} ({payload.get('pages', 0)} pages).")
                self._bar = tqdm(total=payload.get("total_steps", 1), desc="Battle book", unit="step")
                self._bar.update(1)
            case "run:failed":
                tqdm.write(f"Generation failed: {payload.get('error')}")
                self.close()
            case "run:complete":
                self.close()
                origin = "cache" if payload.get("cached") else "generation"
                tqdm.write(f"Story {payload.get('story_id')} ready (from {origin}).")

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate an illustrated battle storybook.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", help="Path to a text file describing the battle.")
    source.add_argument(
        "--placeholder",
        action="store_true",
        help="Use the built-in sample battle text.",
    )
    parser.add_argument(
        "--output",
        default="battlebook_story.yaml",
        help="Output YAML file for the generated story (default: battlebook_story.yaml).",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Optional YAML file with generation settings overrides.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in GenerationMode],
        default=None,
        help="Stop after the plan, after the base assets, or run everything.",
    )
    parser.add_argument(
        "--server",
        default=None,
        metavar="URL",
        help="Run against a battlebook backend instead of calling the providers in-process.",
    )
    parser.add_argument(
        "--save-log",
        action="store_true",
        help="Write the session log into the cache directory (or the backend) when done.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def load_settings(path: str | None, mode: str | None) -> GenerationSettings:
    settings = GenerationSettings.from_yaml(path) if path else GenerationSettings.from_env()
    if mode:
        settings = replace(settings, generation_mode=GenerationMode(mode))
    return settings


def build_manager(
    settings: GenerationSettings,
    session: GenerationSession,
    server_url: str | None,
) -> tuple[StoryLifecycleManager, BackendClient | None]:
    if server_url is None:
        return StoryLifecycleManager.from_settings(settings, session=session), None

    client = BackendClient(
        base_url=server_url,
        retry_policy=settings.retry_policy(),
        timeout=settings.request_timeout,
    )
    manager = StoryLifecycleManager(
        session=session,
        plan_service=client,
        image_service=client,
        story_store=client,
        settings=settings,
    )
    return manager, client


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.settings, args.mode)
    input_text = None if args.placeholder else Path(args.input).read_text(encoding="utf-8")

    session = GenerationSession()
    reporter = ProgressReporter()
    session.subscribe(reporter.on_snapshot)
    manager, client = build_manager(settings, session, args.server)

    try:
        story = manager.generate(
            input_text,
            use_placeholder=args.placeholder,
            progress_callback=reporter,
        )
    finally:
        reporter.close()

    snapshot = session.snapshot()
    if args.save_log:
        if client is not None:
            client.save_log(snapshot.log_filename, snapshot.log_content)
        else:
            settings.cache_dir.mkdir(parents=True, exist_ok=True)
            (settings.cache_dir / snapshot.log_filename).write_text(snapshot.log_content, encoding="utf-8")
        print(f"Saved session log as {snapshot.log_filename}")

    if story is None:
        print(f"No story produced: {snapshot.error or 'run was cancelled'}", file=sys.stderr)
        return 1

    output_path = Path(args.output)
    output_path.write_text(story.to_yaml(), encoding="utf-8")
    print(f"Saved story to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
