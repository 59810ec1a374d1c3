#!/usr/bin/env python3
"""Bundle the Font Awesome stylesheet into self-contained CSS.

Reads `all.css` from the fontawesome-free npm package and drops the legacy
`FontAwesome` / `Font Awesome 5` compatibility faces and every `.ttf`
source. The regular/solid/brands webfonts are inlined as base64 data URIs,
and a regular and a minified bundle are written side by side.

Run from the project root after `npm install`:

    python scripts/bundle_fontawesome.py
    python scripts/bundle_fontawesome.py --input vendor/all.css --output dist/fa.css --output-min dist/fa.min.css

Requirements:
  pip install fonttools brotli tinycss2 rcssmin httpx
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import io
import mimetypes
import re
import struct
import sys
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Iterable, Iterator
from urllib.parse import unquote, urlsplit

import httpx
import rcssmin
import tinycss2
from fontTools.ttLib import TTLibError
from fontTools.ttLib.sfnt import SFNTReader
from tinycss2.ast import (
    CurlyBracketsBlock,
    FunctionBlock,
    ParenthesesBlock,
    SquareBracketsBlock,
    StringToken,
    URLToken,
)


INPUT_CSS_PATH = Path("./node_modules/@fortawesome/fontawesome-free/css/all.css")
OUTPUT_CSS_PATH = Path("./all.css")
OUTPUT_CSS_PATH_MINIFIED = Path("./all.min.css")

# Path fragment that marks the stylesheet as the Font Awesome package CSS.
FONTAWESOME_MARKER = "fontawesome"

# Webfonts that stay in the bundle; every other font reference is left as is.
NECESSARY_FONTS = ("fa-regular-400", "fa-solid-900", "fa-brands-400")

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CONTENT_TYPES = {
    ".woff2": "font/woff2",
    ".woff": "font/woff",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",
    ".svg": "image/svg+xml",
}

LEGACY_FAMILY = r"""(?P<quote>['"])(?:FontAwesome|Font Awesome 5 [^'";]*)(?P=quote)"""
UNWANTED_FONT_FACE_RE = re.compile(r"@font-face[^{]*\{[^}]*" + LEGACY_FAMILY + r"[^}]*\}")
UNWANTED_FONT_FAMILY_RE = re.compile(
    r"font-family\s*:\s*" + LEGACY_FAMILY + r"[^;}]*(?:;\s*|(?=\}))"
)

TTF_SOURCE = r"url\([^)]*\.ttf[^)]*\)(?:\s*format\([^)]*\))?"
# "..., url(x.ttf) format('truetype')" and "url(x.ttf) format('truetype'), ..."
EXCLUDE_TRAILING_TTF_RE = re.compile(r"\s*,\s*" + TTF_SOURCE)
EXCLUDE_TTF_RE = re.compile(TTF_SOURCE + r"\s*,?\s*")


# Source text of a single url(...) reference, matched at the tokenizer position.
URL_REFERENCE_RE = re.compile(
    r"""url\(\s*(?:"(?P<double>(?:[^"\\\n]|\\.)*)"|'(?P<single>(?:[^'\\\n]|\\.)*)'|(?:[^'"()\\\s]|\\.)*)\s*\)""",
    re.IGNORECASE | re.DOTALL,
)
NEWLINE_RE = re.compile(r"\r\n|[\r\n\f]")


Processor = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class ResourceRef:
    url: str
    is_local: bool

    @classmethod
    def from_url(cls, url: str) -> ResourceRef:
        return cls(url, not url.startswith(("http", "//")))

    @property
    def name(self) -> str:
        """URL path without query string or fragment (`font.eot?#iefix` -> `font.eot`)."""
        return unquote(urlsplit(self.url).path)


@dataclass(frozen=True)
class UrlReference:
    start: int
    end: int
    url: str
    quote: str


def is_fontawesome_css(path: Path) -> bool:
    return FONTAWESOME_MARKER in str(path)


def filter_fontawesome_css(css: str) -> str:
    """Strip legacy font faces, their font-family declarations and `.ttf` sources.

    Works on raw text, so unusual formatting (multi-line values, escapes)
    can slip through.
    """
    filtered = UNWANTED_FONT_FACE_RE.sub("", css)
    filtered = UNWANTED_FONT_FAMILY_RE.sub("", filtered)
    filtered = EXCLUDE_TRAILING_TTF_RE.sub("", filtered)
    filtered = EXCLUDE_TTF_RE.sub("", filtered)
    return filtered


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 0:
        raise ValueError(f"Size must be non-negative, got {num_bytes}")
    if num_bytes == 0:
        return "0B"

    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {SIZE_UNITS[index]}"


def sniff_font_type(data: bytes) -> str | None:
    """Detect TTF/OTF/WOFF/WOFF2 payloads from the sfnt header."""
    try:
        reader = SFNTReader(io.BytesIO(data))
    except (TTLibError, struct.error):
        return None
    if reader.flavor in ("woff", "woff2"):
        return f"font/{reader.flavor}"
    return "font/otf" if reader.sfntVersion == "OTTO" else "font/ttf"


def guess_content_type(ref: ResourceRef, data: bytes) -> str:
    name = ref.name
    suffix = PurePosixPath(name).suffix.lower()
    if suffix in CONTENT_TYPES:
        return CONTENT_TYPES[suffix]

    guessed, _ = mimetypes.guess_type(name, strict=False)
    if guessed:
        return guessed
    return sniff_font_type(data) or DEFAULT_CONTENT_TYPE


def to_data_uri(content_type: str, data: bytes) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def should_inline(url: str, fontawesome: bool) -> bool:
    if not url or url.startswith(("data:", "#")):
        return False
    if fontawesome and not any(font in url for font in NECESSARY_FONTS):
        return False
    return True


async def fetch_resource(ref: ResourceRef, base_dir: Path, client: httpx.AsyncClient) -> bytes:
    if ref.is_local:
        path = (base_dir / ref.name).resolve()
        return await asyncio.to_thread(path.read_bytes)

    target = f"https:{ref.url}" if ref.url.startswith("//") else ref.url
    response = await client.get(target)
    response.raise_for_status()
    return response.content


async def resolve_resource(url: str, base_dir: Path, client: httpx.AsyncClient) -> str | None:
    """Return a data URI for `url`, or None to keep the original reference."""
    ref = ResourceRef.from_url(url)
    try:
        data = await fetch_resource(ref, base_dir, client)
        return to_data_uri(guess_content_type(ref, data), data)
    except Exception as exc:  # noqa: BLE001
        print(f"Error bundling resource {url}: {exc}", file=sys.stderr)
        return None


def iter_url_nodes(nodes: Iterable, in_block: bool = False) -> Iterator[URLToken | FunctionBlock]:
    """Yield `url(...)` nodes that sit inside declaration blocks.

    At-rule preludes (`@import url(...)`) are outside any block and are skipped.
    """
    for node in nodes:
        if isinstance(node, URLToken):
            if in_block:
                yield node
        elif isinstance(node, FunctionBlock):
            if node.lower_name == "url":
                if in_block and any(isinstance(arg, StringToken) for arg in node.arguments):
                    yield node
            else:
                yield from iter_url_nodes(node.arguments, in_block)
        elif isinstance(node, CurlyBracketsBlock):
            yield from iter_url_nodes(node.content, True)
        elif isinstance(node, (ParenthesesBlock, SquareBracketsBlock)):
            yield from iter_url_nodes(node.content, in_block)


def url_value(node: URLToken | FunctionBlock) -> str:
    if isinstance(node, URLToken):
        return node.value
    return next(arg.value for arg in node.arguments if isinstance(arg, StringToken))


def line_offsets(css: str) -> list[int]:
    """Start offset of every line, splitting lines the way the CSS tokenizer does."""
    return [0] + [match.end() for match in NEWLINE_RE.finditer(css)]


def find_url_references(css: str) -> list[UrlReference]:
    """Locate inlinable `url(...)` references in the source text, in document order."""
    starts = line_offsets(css)
    references: list[UrlReference] = []
    for node in iter_url_nodes(tinycss2.parse_component_value_list(css)):
        offset = starts[node.source_line - 1] + node.source_column - 1
        match = URL_REFERENCE_RE.match(css, offset)
        if match is None:
            continue
        if match.group("double") is not None:
            quote = '"'
        elif match.group("single") is not None:
            quote = "'"
        else:
            quote = ""
        references.append(UrlReference(match.start(), match.end(), url_value(node), quote))
    return references


async def inline_resources(css: str, source_path: Path, client: httpx.AsyncClient) -> str:
    """Replace `url(...)` references with base64 data URIs.

    Local references resolve against the stylesheet's directory. In the
    Font Awesome stylesheet only NECESSARY_FONTS are inlined. Failed
    references keep their original URL. Text outside the replaced
    references is returned unchanged.
    """
    fontawesome = is_fontawesome_css(source_path)
    base_dir = source_path.parent

    references = find_url_references(css)
    urls = sorted({ref.url for ref in references if should_inline(ref.url, fontawesome)})

    resolved = await asyncio.gather(*(resolve_resource(url, base_dir, client) for url in urls))
    data_uris = dict(zip(urls, resolved))

    chunks: list[str] = []
    position = 0
    for ref in references:
        data_uri = data_uris.get(ref.url)
        if data_uri is None:
            continue
        chunks.append(css[position:ref.start])
        chunks.append(f"url({ref.quote}{data_uri}{ref.quote})")
        position = ref.end
    chunks.append(css[position:])
    return "".join(chunks)


def minify_css(css: str) -> str:
    # The Font Awesome license header is a /*! ... */ comment and must survive.
    return rcssmin.cssmin(css, keep_bang_comments=True)


async def run_pipeline(css: str, processors: list[Processor]) -> str:
    for processor in processors:
        css = await processor(css)
    return css


async def bundle_css(
    input_path: Path,
    output_path: Path,
    minify: bool = False,
    client: httpx.AsyncClient | None = None,
) -> None:
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as owned_client:
            await bundle_css(input_path, output_path, minify, owned_client)
        return

    css = await asyncio.to_thread(input_path.read_text, encoding="utf-8")
    if is_fontawesome_css(input_path):
        css = filter_fontawesome_css(css)

    async def inline_step(text: str) -> str:
        return await inline_resources(text, input_path, client)

    async def minify_step(text: str) -> str:
        return minify_css(text)

    processors: list[Processor] = [inline_step]
    if minify:
        processors.append(minify_step)

    result = await run_pipeline(css, processors)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    await asyncio.to_thread(output_path.write_text, result, encoding="utf-8")

    size = format_file_size(len(result.encode("utf-8")))
    kind = "minified" if minify else "regular"
    print(f"CSS output ({kind}) saved to {output_path} ({size})")


async def bundle_all(input_path: Path, output_path: Path, output_path_minified: Path) -> int:
    results = await asyncio.gather(
        bundle_css(input_path, output_path, minify=False),
        bundle_css(input_path, output_path_minified, minify=True),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, BaseException)]
    for exc in failures:
        print(f"Build failed: {exc!r}", file=sys.stderr)
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Bundle Font Awesome CSS with inlined webfonts (regular + minified)."
    )
    parser.add_argument("--input", type=Path, default=INPUT_CSS_PATH, help="Source stylesheet")
    parser.add_argument("--output", type=Path, default=OUTPUT_CSS_PATH, help="Regular bundle path")
    parser.add_argument(
        "--output-min",
        type=Path,
        default=OUTPUT_CSS_PATH_MINIFIED,
        help="Minified bundle path",
    )
    args = parser.parse_args(argv)

    return asyncio.run(bundle_all(args.input, args.output, args.output_min))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
