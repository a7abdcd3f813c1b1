#!/usr/bin/env python3
"""Validate the generated pages under ./content/.

Run after generate_speaking.py to check for common issues:
  python3 scripts/validate_build.py
"""
from __future__ import annotations

import re
import sys
from pathlib import Path

AUTO_START = "<!-- AUTO-GENERATED START -->"
AUTO_END = "<!-- AUTO-GENERATED END -->"

_ANCHOR_RE = re.compile(r"<a\s[^>]*>.*?</a>", re.DOTALL)


def check_page(path: Path, errors: list[str]) -> str:
    """Return the page text, recording structural problems in ``errors``."""
    if not path.exists():
        errors.append(f"Missing required file: {path}")
        return ""
    text = path.read_text(encoding="utf-8")

    if not text.startswith("---\n"):
        errors.append(f"{path}: missing front matter")
    if "title:" not in text.split(AUTO_START, 1)[0]:
        errors.append(f"{path}: front matter has no title")
    if AUTO_START not in text or AUTO_END not in text:
        errors.append(f"{path}: missing auto-generated markers")
    if 'href=""' in text:
        errors.append(f"{path}: empty link")
    return text


def check_watch_links(path: Path, text: str, errors: list[str]) -> int:
    count = 0
    for m in _ANCHOR_RE.finditer(text):
        anchor = m.group(0)
        if "Watch" not in anchor:
            continue
        count += 1
        if 'target="_blank"' not in anchor or 'rel="noopener noreferrer"' not in anchor:
            errors.append(f"{path}: Watch link does not open in a new tab: {anchor[:80]}")
    return count


def main(root: Path = Path(".")) -> int:
    content_dir = root / "content"
    if not content_dir.is_dir():
        print("FAIL: ./content/ directory not found. Run generate_speaking.py first.")
        return 1

    errors: list[str] = []
    warnings: list[str] = []

    # 1. Speaking page
    speaking = content_dir / "speaking" / "index.md"
    text = check_page(speaking, errors)
    watch_count = 0
    if text:
        if "## Past Talks" not in text:
            errors.append(f"{speaking}: missing Past Talks section")
        if "speaking-table" not in text:
            errors.append(f"{speaking}: missing table rendering")
        if "card-list" not in text:
            errors.append(f"{speaking}: missing card rendering")
        if "wide-only" not in text or "narrow-only" not in text:
            errors.append(f"{speaking}: renderings are not wrapped for the viewport switch")
        watch_count = check_watch_links(speaking, text, errors)
        if watch_count == 0:
            warnings.append(f"{speaking}: no Watch links found")

    # 2. Projects page is optional
    projects = content_dir / "projects" / "index.md"
    if projects.exists():
        text = check_page(projects, errors)
        if text and "card" not in text:
            warnings.append(f"{projects}: no project cards found")
    else:
        warnings.append(f"{projects}: not generated")

    # 3. Stylesheet carries the matching breakpoint
    css_path = root / "assets" / "style.css"
    if css_path.exists():
        css = css_path.read_text(encoding="utf-8")
        if "prefers-color-scheme: dark" not in css:
            errors.append("style.css: missing dark mode media query")
        if "min-width: 768px" not in css:
            errors.append("style.css: missing md breakpoint for the talk listing")
    else:
        errors.append("Missing required file: assets/style.css")

    # Report
    for w in warnings:
        print(f"  WARN: {w}")
    for e in errors:
        print(f"  FAIL: {e}")

    if errors:
        print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
        return 1

    print(f"  OK: speaking page validated ({watch_count} Watch links)")
    print(f"  OK: CSS dark mode and breakpoint present")
    if warnings:
        print(f"  {len(warnings)} warning(s)")
    print("\nAll checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
