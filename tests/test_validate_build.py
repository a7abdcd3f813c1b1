#!/usr/bin/env python3
"""Tests for scripts/validate_build.py"""
from __future__ import annotations

import shutil
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))
from generate_speaking import AUTO_END, AUTO_START, build_site
from validate_build import check_watch_links, main

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def site(tmp_path):
    (tmp_path / "content").mkdir()
    (tmp_path / "content" / "speaking.csv").write_text(
        "Date,Title,At,Country,City,Video URL\n"
        "2023-09-20,Vertical Slice Architecture,Brisbane Full Stack UG,Australia,Brisbane,"
        "https://www.youtube.com/watch?v=dMgj1MdwrRE\n"
        "2099-01-01,Future Talk,Online Conf,Online,,\n",
        encoding="utf-8",
    )
    (tmp_path / "assets").mkdir()
    shutil.copy(REPO_ROOT / "assets" / "style.css", tmp_path / "assets" / "style.css")
    return tmp_path


class TestValidateBuild:
    def test_missing_content_dir(self, tmp_path, capsys):
        assert main(tmp_path) == 1
        assert "FAIL" in capsys.readouterr().out

    def test_generated_site_passes(self, site, capsys):
        build_site(site, date(2024, 1, 1))
        assert main(site) == 0
        out = capsys.readouterr().out
        assert "All checks passed." in out
        assert "Watch links" in out

    def test_missing_speaking_page(self, site, capsys):
        assert main(site) == 1
        assert "Missing required file" in capsys.readouterr().out

    def test_missing_breakpoint(self, site, capsys):
        build_site(site, date(2024, 1, 1))
        css = site / "assets" / "style.css"
        css.write_text(css.read_text().replace("min-width: 768px", "min-width: 40em"))
        assert main(site) == 1
        assert "breakpoint" in capsys.readouterr().out

    def test_missing_markers(self, site, capsys):
        build_site(site, date(2024, 1, 1))
        page = site / "content" / "speaking" / "index.md"
        page.write_text(page.read_text().replace(AUTO_START, "").replace(AUTO_END, ""))
        assert main(site) == 1
        assert "auto-generated markers" in capsys.readouterr().out


class TestCheckWatchLinks:
    def test_flags_same_tab_link(self):
        errors: list = []
        count = check_watch_links(Path("page.md"), '<a href="https://youtu.be/x">Watch</a>', errors)
        assert count == 1
        assert errors

    def test_accepts_new_tab_link(self):
        errors: list = []
        text = '<a href="https://youtu.be/x" target="_blank" rel="noopener noreferrer">Watch</a>'
        assert check_watch_links(Path("page.md"), text, errors) == 1
        assert errors == []

    def test_ignores_other_links(self):
        errors: list = []
        assert check_watch_links(Path("page.md"), '<a href="/about/">About</a>', errors) == 0
