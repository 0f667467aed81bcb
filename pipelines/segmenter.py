"""Heading-aware segmentation of documentation pages.

Turns a rendered HTML page into an ordered list of chunks, one per h1-h4
section. A section runs from its heading up to the next sibling heading of
the same or a shallower level; deeper headings stay inside the section.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Set

from bs4 import BeautifulSoup
from bs4.element import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from .models import Chunk

logger = logging.getLogger(__name__)

# Regions that never carry documentation content
NON_CONTENT_SELECTOR = ".nav, .footer, .navigation, .breadcrumb, script, style, .sidebar, .toc"
CONTENT_ROOT_SELECTOR = "#content, #main-content, .content, .main, main, article"
SECTION_HEADINGS = ["h1", "h2", "h3", "h4"]

BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "form", "header", "hr", "li", "main",
    "nav", "ol", "p", "pre", "section", "table", "tbody", "thead", "tfoot",
    "tr", "ul",
}
CELL_TAGS = {"td", "th"}
_SKIPPED_NODES = (Comment, Declaration, Doctype, ProcessingInstruction)


def heading_level(node) -> Optional[int]:
    """Return 1-6 for heading tags, None for everything else."""
    if isinstance(node, Tag) and re.fullmatch(r"h[1-6]", node.name or ""):
        return int(node.name[1])
    return None


def clean_text(text: str) -> str:
    """Normalize whitespace while keeping paragraph breaks.

    Whitespace runs inside a paragraph collapse to one space; any run that
    contains a blank line becomes exactly one blank line.
    """
    paragraphs = re.split(r"\n\s*\n", text)
    cleaned = (re.sub(r"\s+", " ", p).strip() for p in paragraphs)
    return "\n\n".join(p for p in cleaned if p)


def slugify_heading(text: str) -> str:
    anchor = re.sub(r"[^\w\s-]", "", text.lower())
    return re.sub(r"\s+", "_", anchor.strip())


def base_id(href: str) -> str:
    return href.replace(".html", "", 1)


def _render(node, out: List[str]) -> None:
    if isinstance(node, _SKIPPED_NODES):
        return
    if isinstance(node, NavigableString):
        out.append(str(node))
        return
    if not isinstance(node, Tag):
        return

    name = node.name
    if name == "br":
        out.append("\n")
        return

    level = heading_level(node)
    if level:
        title = node.get_text(" ", strip=True)
        out.append(f"\n\n{'#' * level} {title}\n\n")
        return

    if name in CELL_TAGS:
        out.append(" ")

    block = name in BLOCK_TAGS
    if block:
        out.append("\n\n")
    if name == "li":
        out.append("- ")
    for child in node.children:
        _render(child, out)
    if block:
        out.append("\n\n")


def render_text(nodes: Iterable) -> str:
    """Render a sequence of nodes to normalized plain text."""
    out: List[str] = []
    for node in nodes:
        _render(node, out)
    return clean_text("".join(out))


def find_content_root(soup: BeautifulSoup) -> Tag:
    """Strip non-content regions and return the main content element."""
    for element in soup.select(NON_CONTENT_SELECTOR):
        element.decompose()

    root = soup.select_one(CONTENT_ROOT_SELECTOR)
    if root is None:
        root = soup.body
    return root if root is not None else soup


def section_nodes(heading: Tag) -> List:
    """Return the heading plus the siblings that belong to its section."""
    threshold = heading_level(heading)
    nodes = [heading]
    for sibling in heading.next_siblings:
        if not isinstance(sibling, Tag):
            continue
        level = heading_level(sibling)
        if level is not None and level <= threshold:
            break
        nodes.append(sibling)
    return nodes


class ContentSegmenter:
    """Splits one HTML page into heading-bounded chunks."""

    def __init__(self, page_names: Optional[Dict[str, str]] = None):
        """
        Args:
            page_names: Mapping of href to display name used for ``page_name``
        """
        self.page_names = page_names or {}

    def page_name_for(self, href: str) -> str:
        return self.page_names.get(href) or base_id(href)

    def segment(self, html: str, href: str) -> List[Chunk]:
        soup = BeautifulSoup(html, "html.parser")
        root = find_content_root(soup)
        page_name = self.page_name_for(href)

        headings = root.find_all(SECTION_HEADINGS)
        chunks: List[Chunk] = []
        used_ids: Set[str] = set()

        for index, heading in enumerate(headings):
            content = render_text(section_nodes(heading))
            if not content:
                continue
            chunk_id = self._unique_id(self._heading_id(href, heading, index), used_ids)
            chunks.append(Chunk(id=chunk_id, page_name=page_name, href=href, full_content=content))

        if not chunks:
            content = render_text(root.children)
            if content:
                chunks.append(Chunk(
                    id=f"{base_id(href)}#chunk_0",
                    page_name=page_name,
                    href=href,
                    full_content=content,
                ))

        logger.debug(f"Segmented {href} into {len(chunks)} chunks ({len(headings)} headings)")
        return chunks

    @staticmethod
    def _heading_id(href: str, heading: Tag, index: int) -> str:
        slug = slugify_heading(heading.get_text().strip())
        if not slug:
            return f"{base_id(href)}#chunk_{index}"
        return f"{base_id(href)}#{slug}"

    @staticmethod
    def _unique_id(candidate: str, used_ids: Set[str]) -> str:
        chunk_id = candidate
        suffix = 2
        while chunk_id in used_ids:
            chunk_id = f"{candidate}_{suffix}"
            suffix += 1
        used_ids.add(chunk_id)
        return chunk_id


def parse_and_chunk(html: str, href: str, page_name: Optional[str] = None) -> List[Chunk]:
    """Convenience function to segment a single page."""
    names = {href: page_name} if page_name else None
    return ContentSegmenter(names).segment(html, href)
