"""HTML cleanup applied around the pandoc conversion in both directions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from html import escape
import posixpath
import re

from bs4 import BeautifulSoup, Tag

from helpsync.core.metadata import strip_comment_block
from helpsync.core.sources import RESOURCES_DIR


LINK_PLACEHOLDER = "@@@link@@@"

_EXTERNAL_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*:|//|www\.|#)", re.IGNORECASE)
_CLOSING_SPACE_RE = re.compile(r"\s*<\s*/")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass(slots=True)
class PreparedPage:
    """Help page body ready for conversion plus links set aside from code."""

    html: str
    stored_links: list[str] = field(default_factory=list)


def is_external(link: str) -> bool:
    return bool(_EXTERNAL_RE.match(link.strip()))


def _split_fragment(link: str) -> tuple[str, str]:
    path, hash_sign, fragment = link.partition("#")
    return path, f"{hash_sign}{fragment}"


def _relative(target: str, start_file: str) -> str:
    start = posixpath.dirname(start_file) or "."
    return posixpath.relpath(target, start)


def _resolve(link: str, page: str) -> str:
    base = posixpath.dirname(page.replace("\\", "/"))
    return posixpath.normpath(posixpath.join(base, link.replace("\\", "/")))


def prepare_help_page(
    html: str,
    *,
    page_key: str,
    md_paths: Mapping[str, str],
    resources_dir: str = RESOURCES_DIR,
) -> PreparedPage:
    """Reduce a compiled help page to its authored content.

    ``md_paths`` maps case-folded page urls to the Markdown path generated for
    them; links between pages are retargeted to those paths and images to
    ``resources_dir``. Links inside ``<pre>`` blocks are replaced by a
    placeholder because the converter drops them.
    """
    soup = BeautifulSoup(_CLOSING_SPACE_RE.sub("</", html), "html.parser")
    own_md = md_paths.get(page_key.casefold(), page_key)

    main = soup.find("div", id="mainSection") or soup.body or soup
    for footer in main.find_all("div", class_="footer"):
        footer.decompose()

    for pre in main.find_all("pre"):
        previous = pre.find_previous_sibling()
        if previous is None or previous.name != "p":
            pre.insert_before(soup.new_tag("p"))

    stored: list[str] = []
    for anchor in main.find_all("a"):
        href = anchor.get("href")
        if href and not is_external(href):
            path, fragment = _split_fragment(href)
            target = md_paths.get(_resolve(path, page_key).casefold())
            if target is not None:
                anchor["href"] = _relative(target, own_md) + fragment
        if anchor.find_parent("pre") is not None:
            stored.append(str(anchor))
            anchor.string = LINK_PLACEHOLDER

    for image in main.find_all("img"):
        source = image.get("src")
        if not source or is_external(source):
            continue
        classes = " ".join(image.get("class") or []).lower()
        style = (image.get("style") or "").replace(" ", "").lower()
        if "toggle" in classes or "display:none" in style:
            image.decompose()
            continue
        name = posixpath.basename(source.replace("\\", "/"))
        image["src"] = _relative(f"{resources_dir}/{name}", own_md)

    heading = ""
    title_span = soup.find("span", id="nsrTitle")
    if isinstance(title_span, Tag):
        title_span.name = "h1"
        if title_span.find_parent(id="mainSection") is None:
            heading = str(title_span)

    for span in main.find_all("span", class_="copyCode"):
        if span.find_next_sibling() is not None or span.parent is None or span.parent.name != "th":
            span.decompose()

    body = main.decode_contents() if isinstance(main, Tag) else str(main)
    content = f"<body>{heading}{body}</body>"
    content = _BLANK_RUN_RE.sub("\n\n", content.replace("\r\n", "\n"))
    return PreparedPage(html=content, stored_links=stored)


def finish_markdown(markdown: str, stored_links: Sequence[str] = ()) -> str:
    """Restore protected links and keep line breaks as hard breaks."""
    for link in stored_links:
        markdown = markdown.replace(LINK_PLACEHOLDER, link, 1)

    lines: list[str] = []
    in_fence = False
    for line in markdown.replace("\r\n", "\n").split("\n"):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            lines.append(line)
            continue
        if (
            in_fence
            or not line.strip()
            or line.endswith(("|", ">", "  "))
            or line.lstrip().startswith("#")
        ):
            lines.append(line)
        else:
            lines.append(f"{line}  ")
    return "\n".join(lines).rstrip() + "\n"


def prepare_markdown(text: str) -> str:
    """Remove the trailing metadata comment block before conversion."""
    return strip_comment_block(text)


def render_help_page(
    body_html: str,
    *,
    title: str,
    metadata_island: str,
    page_key: str | None = None,
    page_urls: Mapping[str, str] | None = None,
) -> str:
    """Wrap a converted body in a complete help page.

    Pages are written flat while assets keep their place in the tree, so
    relative links resolve against ``page_key``. ``page_urls`` maps
    case-folded Markdown paths to page urls for links between topics.
    """
    soup = BeautifulSoup(body_html, "html.parser")
    if page_key is not None:
        urls = page_urls or {}
        for anchor in soup.find_all("a"):
            href = anchor.get("href")
            if not href or is_external(href):
                continue
            path, fragment = _split_fragment(href)
            resolved = _resolve(path, page_key)
            anchor["href"] = urls.get(resolved.casefold(), resolved) + fragment
        for image in soup.find_all("img"):
            source = image.get("src")
            if source and not is_external(source):
                image["src"] = _resolve(source, page_key)
    return (
        "<html>\n<head>\n"
        '<meta http-equiv="Content-Type" content="text/html; charset=utf-8"/>\n'
        f"<title>{escape(title)}</title>\n"
        f"{metadata_island}\n"
        "</head>\n<body>\n"
        f"{str(soup).strip()}\n"
        "</body>\n</html>\n"
    )


__all__ = [
    "LINK_PLACEHOLDER",
    "RESOURCES_DIR",
    "PreparedPage",
    "finish_markdown",
    "is_external",
    "prepare_help_page",
    "prepare_markdown",
    "render_help_page",
]
