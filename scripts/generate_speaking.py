#!/usr/bin/env python3
from __future__ import annotations

import csv
import html
import logging
import re
import sys
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse


log = logging.getLogger("generate_speaking")

AUTO_START = "<!-- AUTO-GENERATED START -->"
AUTO_END = "<!-- AUTO-GENERATED END -->"

NOTES_START = "<!-- NOTES START (you can edit freely) -->"
NOTES_END = "<!-- NOTES END -->"

SPEAKING_CSV = Path("content") / "speaking.csv"
PROJECTS_CSV = Path("content") / "projects.csv"
OUT_DIR = Path("content")

# Same breakpoint as the media query in assets/style.css
WIDE_MIN_WIDTH_PX = 768

LAYOUT_TABLE = "table"
LAYOUT_CARDS = "cards"

TABLE_COLUMNS = ("When", "Talk", "At", "Where", "Video")
LOCATION_SEP = " | "

SITE_METADATA: Dict[str, str] = {
    "title": "Portfolio & Blog",
    "description": "Notes on software architecture, .NET and side projects",
    # no canonical URL is emitted until this is set
    "site_url": "",
    "language": "en-us",
    "locale": "en_US",
}

SPEAKING_DESCRIPTION = "Conferences & user groups I speak at"
PROJECTS_DESCRIPTION = "Things I have built along the way"


class TalkDataError(ValueError):
    """A talk or project record that cannot be used as authored."""


def _norm(s: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (s or "").strip())


def _norm_lines(s: Optional[str]) -> str:
    # like _norm, but keeps intentional line breaks
    lines = [_norm(line) for line in (s or "").strip().splitlines()]
    return "\n".join(line for line in lines if line)


def _optional(s: Optional[str]) -> Optional[str]:
    s = _norm(s)
    return s or None


def _parse_iso_date(s: str) -> Optional[date]:
    s = _norm(s)
    if not s:
        return None
    # Accept YYYY-MM-DD
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        pass
    # Accept YYYYMMDD
    try:
        return datetime.strptime(s, "%Y%m%d").date()
    except ValueError:
        return None


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        parsed = _parse_iso_date(value)
        if parsed is not None:
            return parsed
    raise TalkDataError(f"unparseable date: {value!r}")


def _yaml_escape(s: Optional[str]) -> str:
    # conservative quoted YAML
    s = (s or "").replace('"', '\\"')
    return f'"{s}"'


def _read_csv(path: Path) -> Tuple[List[str], List[Dict[str, str]]]:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        rows: List[Dict[str, str]] = []
        for r in reader:
            rows.append({k: (v if v is not None else "") for k, v in r.items() if k is not None})
        return list(reader.fieldnames or []), rows


def _get(row: Mapping[str, Any], *keys: str) -> str:
    for k in keys:
        if k in row:
            return row.get(k, "") or ""
    return ""


@dataclass(frozen=True)
class TalkEntry:
    date: date
    title: str
    at: str
    country: str
    city: Optional[str] = None
    video_url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _coerce_date(self.date))
        missing = [name for name in ("title", "at", "country") if not _norm(getattr(self, name))]
        if missing:
            raise TalkDataError(f"missing required field(s): {', '.join(missing)}")
        # a malformed link is dropped once here, not on every rendering
        if self.video_url is not None and safe_href(self.video_url) is None:
            object.__setattr__(self, "video_url", None)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "TalkEntry":
        """Build an entry from a CSV row or a plain dict.

        Blank ``City``/``Video URL`` cells mean the field is absent.
        """
        return cls(
            date=row.get("date", _get(row, "Date")),
            title=_norm_lines(_get(row, "title", "Title")),
            at=_norm(_get(row, "at", "At", "Event")),
            country=_norm(_get(row, "country", "Country")),
            city=_optional(_get(row, "city", "City")),
            video_url=_optional(_get(row, "videoUrl", "video_url", "Video URL", "Video")),
        )

    @property
    def location(self) -> str:
        return location_text(self)


@dataclass(frozen=True)
class ProjectEntry:
    title: str
    description: str = ""
    img_src: Optional[str] = None
    href: Optional[str] = None

    def __post_init__(self) -> None:
        if not _norm(self.title):
            raise TalkDataError("missing required field(s): title")


class TalkPartition(NamedTuple):
    upcoming: Tuple[TalkEntry, ...]
    past: Tuple[TalkEntry, ...]


def load_talks(csv_path: Path) -> Tuple[TalkEntry, ...]:
    """Load every talk row; duplicates are kept in file order.

    All rows are validated before anything is returned. A single
    TalkDataError lists every bad row so none is dropped quietly.
    """
    _, rows = _read_csv(csv_path)
    talks: List[TalkEntry] = []
    problems: List[str] = []

    # line 1 is the header
    for line_no, r in enumerate(rows, start=2):
        try:
            talks.append(TalkEntry.from_mapping(r))
        except TalkDataError as exc:
            problems.append(f"{csv_path.name}:{line_no}: {exc}")

    if problems:
        raise TalkDataError("\n".join(problems))
    log.info("loaded %d talks from %s", len(talks), csv_path)
    return tuple(talks)


def load_projects(csv_path: Path) -> Tuple[ProjectEntry, ...]:
    _, rows = _read_csv(csv_path)
    projects: List[ProjectEntry] = []
    problems: List[str] = []

    for line_no, r in enumerate(rows, start=2):
        try:
            projects.append(
                ProjectEntry(
                    title=_norm(_get(r, "Title")),
                    description=_norm_lines(_get(r, "Description")),
                    img_src=_optional(_get(r, "Image", "Image Src")),
                    href=_optional(_get(r, "Href", "Link")),
                )
            )
        except TalkDataError as exc:
            problems.append(f"{csv_path.name}:{line_no}: {exc}")

    if problems:
        raise TalkDataError("\n".join(problems))
    return tuple(projects)


def _reference_day(now: Union[date, datetime]) -> date:
    # A bare ISO date is midnight UTC, so aware instants compare in UTC.
    if isinstance(now, datetime):
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()
    if isinstance(now, date):
        return now
    raise TypeError(f"now must be a date or datetime, not {type(now).__name__}")


def partition_talks(
    entries: Iterable[Union[TalkEntry, Mapping[str, Any]]],
    now: Union[date, datetime],
) -> TalkPartition:
    """Split talks into upcoming (soonest first) and past (most recent first).

    An entry dated on ``now``'s day is past. Equal dates keep their input
    order in both groups. The input is never modified.
    """
    today = _reference_day(now)
    items: List[TalkEntry] = []
    for e in entries:
        if not isinstance(e, TalkEntry):
            e = TalkEntry.from_mapping(e)
        items.append(e)

    upcoming = sorted((t for t in items if t.date > today), key=lambda t: t.date)
    # reverse=True keeps equal keys in their original order
    past = sorted((t for t in items if t.date <= today), key=lambda t: t.date, reverse=True)
    return TalkPartition(upcoming=tuple(upcoming), past=tuple(past))


def select_layout(viewport_width: int) -> str:
    if viewport_width < 0:
        raise ValueError(f"viewport width must be >= 0, got {viewport_width}")
    return LAYOUT_TABLE if viewport_width >= WIDE_MIN_WIDTH_PX else LAYOUT_CARDS


def location_text(entry: TalkEntry) -> str:
    if entry.city:
        return f"{entry.country}{LOCATION_SEP}{entry.city}"
    return entry.country


def card_description(entry: TalkEntry) -> str:
    return LOCATION_SEP.join([entry.date.isoformat(), entry.at, location_text(entry)])


def _escape(text: Optional[str]) -> str:
    return html.escape(text or "", quote=True)


_MD_ENTITIES = {"*": "&#42;", "_": "&#95;", "`": "&#96;"}


def _escape_text(text: Optional[str]) -> str:
    # pandoc reads text inside HTML blocks as Markdown
    escaped = _escape(text)
    for ch, entity in _MD_ENTITIES.items():
        escaped = escaped.replace(ch, entity)
    return escaped


def _escape_lines(text: Optional[str]) -> str:
    return "<br>".join(_escape_text(line) for line in (text or "").split("\n"))


def safe_href(url: Optional[str]) -> Optional[str]:
    """Return ``url`` if it is an absolute http(s) link, else None."""
    if url is None:
        return None
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        parsed = None
    if parsed is None or parsed.scheme not in {"http", "https"} or not parsed.netloc or " " in url:
        log.warning("dropping malformed link %r", url)
        return None
    return url


def _is_external(href: str) -> bool:
    return urlparse(href).scheme in {"http", "https"}


def _site_href(href: Optional[str]) -> Optional[str]:
    # project links may be site-relative ("/blog/x") as well as external
    if href is None:
        return None
    if href.startswith("/") and not href.startswith("//"):
        return href
    return safe_href(href)


def _link(href: str, label_html: str, css_class: str = "", aria_label: str = "") -> str:
    attrs = [f'href="{_escape(href)}"']
    if css_class:
        attrs.append(f'class="{css_class}"')
    if aria_label:
        attrs.append(f'aria-label="{_escape(aria_label)}"')
    if _is_external(href):
        attrs.append('target="_blank" rel="noopener noreferrer"')
    return f"<a {' '.join(attrs)}>{label_html}</a>"


def watch_link(url: Optional[str]) -> str:
    href = safe_href(url)
    if href is None:
        return ""
    return _link(href, "Watch", css_class="watch-link")


def render_card(
    title: str,
    description: str,
    href: Optional[str] = None,
    link_text: str = "",
    img_src: Optional[str] = None,
    title_class: str = "",
) -> str:
    """Render one card: optional image, title, multi-line description, link."""
    href = _site_href(href)
    label = f"Link to {title}"
    title_html = _escape_lines(title)

    parts: List[str] = ['<div class="card">']
    img_src = _site_href(img_src)
    if img_src:
        img = f'<img class="card-img" src="{_escape(img_src)}" alt="{_escape(title)}" loading="lazy">'
        parts.append(_link(href, img, aria_label=label) if href else img)
    parts.append('<div class="card-body">')
    cls = f"card-title {title_class}".strip()
    if href:
        parts.append(f'<h3 class="{cls}">{_link(href, title_html, aria_label=label)}</h3>')
    else:
        parts.append(f'<h3 class="{cls}">{title_html}</h3>')
    if description:
        parts.append(f'<p class="card-desc">{_escape_lines(description)}</p>')
    if href:
        parts.append(_link(href, f"{_escape_text(link_text or 'Learn more')} &rarr;", css_class="card-link", aria_label=label))
    parts.append("</div>")  # card-body
    parts.append("</div>")  # card
    return "\n".join(parts)


def render_talk_card(entry: TalkEntry) -> str:
    return render_card(
        title=entry.title,
        description=card_description(entry),
        href=safe_href(entry.video_url),
        link_text="Watch",
    )


def render_talk_row(entry: TalkEntry) -> str:
    cells = [
        f'<th scope="row" class="nowrap">{entry.date.isoformat()}</th>',
        f"<td>{_escape_lines(entry.title)}</td>",
        f'<td class="nowrap">{_escape_text(entry.at)}</td>',
        f'<td class="nowrap">{_escape_text(entry.location)}</td>',
        f'<td class="nowrap">{watch_link(entry.video_url)}</td>',
    ]
    return "<tr>" + "".join(cells) + "</tr>"


def render_talk_table(entries: Sequence[TalkEntry]) -> str:
    head = "".join(f'<th scope="col">{c}</th>' for c in TABLE_COLUMNS)
    parts: List[str] = ['<table class="speaking-table">']
    parts.append(f"<thead><tr>{head}</tr></thead>")
    parts.append("<tbody>")
    parts.extend(render_talk_row(t) for t in entries)
    parts.append("</tbody>")
    parts.append("</table>")
    return "\n".join(parts)


def render_talk_cards(entries: Sequence[TalkEntry]) -> str:
    parts: List[str] = ['<div class="card-list">']
    parts.extend(render_talk_card(t) for t in entries)
    parts.append("</div>")
    return "\n".join(parts)


def render_talk_section(entries: Sequence[TalkEntry], layout: str) -> str:
    """Render ``entries`` in the given layout, keeping their order."""
    if layout == LAYOUT_TABLE:
        return render_talk_table(entries)
    if layout == LAYOUT_CARDS:
        return render_talk_cards(entries)
    raise ValueError(f"unknown layout {layout!r}")


def render_responsive_section(entries: Sequence[TalkEntry]) -> str:
    # both renderings ship; the stylesheet shows one per viewport
    return "\n".join(
        [
            '<div class="wide-only">',
            render_talk_section(entries, LAYOUT_TABLE),
            "</div>",
            '<div class="narrow-only">',
            render_talk_section(entries, LAYOUT_CARDS),
            "</div>",
        ]
    )


def build_speaking_page(talks: Sequence[TalkEntry], now: Union[date, datetime]) -> str:
    upcoming, past = partition_talks(talks, now)
    log.info("speaking: %d upcoming, %d past", len(upcoming), len(past))

    blocks: List[str] = []
    blocks.append("# Speaking\n")
    blocks.append(f'<p class="page-lede">{_escape_text(SPEAKING_DESCRIPTION)}</p>\n')

    if upcoming:
        blocks.append("## Upcoming Talks\n")
        blocks.append(render_responsive_section(upcoming))
        blocks.append("")

    blocks.append("## Past Talks\n")
    blocks.append(render_responsive_section(past))
    if not past:
        blocks.append("\n_No past talks listed._")
    return "\n".join(blocks)


def render_projects_html(projects: Sequence[ProjectEntry]) -> str:
    if not projects:
        return "<p><em>No projects listed.</em></p>"
    parts: List[str] = ['<div class="card-grid">']
    for p in projects:
        parts.append(render_card(p.title, p.description, href=p.href, img_src=p.img_src))
    parts.append("</div>")
    return "\n".join(parts)


def build_projects_page(projects: Sequence[ProjectEntry]) -> str:
    return "\n".join(
        [
            "# Projects\n",
            f'<p class="page-lede">{_escape_text(PROJECTS_DESCRIPTION)}</p>\n',
            render_projects_html(projects),
        ]
    )


def page_metadata(title: str, description: str = "", path: str = "/") -> Dict[str, Any]:
    """Front matter for a generated page, titled like ``Speaking | <site>``."""
    site_title = SITE_METADATA["title"]
    base = SITE_METADATA["site_url"].rstrip("/")
    slug = path.strip("/")
    fm: Dict[str, Any] = {
        "title": title,
        "page_title": f"{title} | {site_title}" if title != site_title else site_title,
        "description": description or SITE_METADATA["description"],
        "og_type": "website",
        "locale": SITE_METADATA["locale"],
        "lang": SITE_METADATA["language"],
        "generated": "true",
    }
    if base:
        fm["canonical"] = f"{base}/{slug}/" if slug else f"{base}/"
    return fm


def read_existing_notes(md_path: Path) -> str:
    if not md_path.exists():
        return (
            f"{NOTES_START}\n"
            f"(Add your notes here. This block will be preserved when regenerating.)\n"
            f"{NOTES_END}\n"
        )
    txt = md_path.read_text(encoding="utf-8")
    m = re.search(
        re.escape(NOTES_START) + r"(.*?)" + re.escape(NOTES_END),
        txt,
        flags=re.DOTALL,
    )
    if not m:
        # Markers removed by hand: start a fresh notes block.
        return (
            f"{NOTES_START}\n"
            f"(Add your notes here. This block will be preserved when regenerating.)\n"
            f"{NOTES_END}\n"
        )
    return f"{NOTES_START}{m.group(1)}{NOTES_END}\n"


def write_md_with_preserved_notes(md_path: Path, front_matter: Dict[str, Any], auto_block: str) -> None:
    md_path.parent.mkdir(parents=True, exist_ok=True)
    notes_block = read_existing_notes(md_path)

    fm_lines = ["---"]
    for k, v in front_matter.items():
        if isinstance(v, list):
            fm_lines.append(f"{k}:")
            for item in v:
                fm_lines.append(f"  - {_yaml_escape(str(item))}")
        elif v is None or v == "":
            fm_lines.append(f"{k}: {_yaml_escape('')}")
        else:
            fm_lines.append(f"{k}: {_yaml_escape(str(v))}")
    fm_lines.append("---\n")

    content = (
        "\n".join(fm_lines)
        + notes_block
        + "\n"
        + f"{AUTO_START}\n"
        + auto_block.rstrip()
        + "\n"
        + f"{AUTO_END}\n"
    )
    md_path.write_text(content, encoding="utf-8")
    log.info("wrote %s", md_path)


def build_site(repo_root: Path, now: Union[date, datetime]) -> None:
    talks = load_talks(repo_root / SPEAKING_CSV)
    write_md_with_preserved_notes(
        repo_root / OUT_DIR / "speaking" / "index.md",
        page_metadata("Speaking", SPEAKING_DESCRIPTION, "/speaking"),
        build_speaking_page(talks, now),
    )

    projects_csv = repo_root / PROJECTS_CSV
    if projects_csv.exists():
        write_md_with_preserved_notes(
            repo_root / OUT_DIR / "projects" / "index.md",
            page_metadata("Projects", PROJECTS_DESCRIPTION, "/projects"),
            build_projects_page(load_projects(projects_csv)),
        )
    else:
        log.warning("%s not found, skipping projects page", projects_csv)


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    repo_root = Path(".").resolve()
    try:
        build_site(repo_root, datetime.now(timezone.utc))
    except TalkDataError as exc:
        for problem in str(exc).splitlines():
            log.error("%s", problem)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
