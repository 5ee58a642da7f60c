"""Artifact store: file-block extraction, merging, preview bundling and export."""

import io
import re
import zipfile
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from nexbuilder.db.models import Project, ProjectFile

FILE_BLOCK_PATTERN = re.compile(
    r"<file\s+path\s*=\s*[\"']([^\"']+)[\"']\s*>(.*?)</file\s*>",
    re.DOTALL,
)

LANGUAGES = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "javascript",
    ".tsx": "javascript",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".json": "json",
    ".md": "markdown",
    ".py": "python",
}

PLACEHOLDER_PAGE = (
    "<html><body style=\"color:white; background:#0f172a; font-family:sans-serif; "
    "display:flex; justify-content:center; align-items:center; height:100vh;\">"
    "<h1>No index.html found</h1></body></html>"
)


def infer_language(path: str) -> str:
    return LANGUAGES.get(PurePosixPath(path).suffix.lower(), "plaintext")


def extract_files(text: str) -> list[ProjectFile]:
    """Pull ``<file path="...">...</file>`` blocks out of a response, in order."""
    files = []
    for match in FILE_BLOCK_PATTERN.finditer(text):
        path = match.group(1).strip()
        files.append(
            ProjectFile(path=path, content=match.group(2).strip(), language=infer_language(path))
        )
    return files


def merge_files(
    existing: Iterable[ProjectFile],
    incoming: Iterable[ProjectFile],
) -> tuple[ProjectFile, ...]:
    """Last writer wins per path: overwrite in place, append new paths."""
    merged = list(existing)
    positions = {f.path: i for i, f in enumerate(merged)}
    for new_file in incoming:
        index = positions.get(new_file.path)
        if index is None:
            positions[new_file.path] = len(merged)
            merged.append(new_file)
        else:
            merged[index] = new_file
    return tuple(merged)


def file_listing(files: Iterable[ProjectFile]) -> str:
    """Render the ``Existing Files:`` block handed to the executor."""
    lines = [f"- {f.path}" for f in files]
    if not lines:
        return ""
    return "Existing Files:\n" + "\n".join(lines)


def get_file(project: Project, path: str) -> ProjectFile | None:
    for f in project.files:
        if f.path == path:
            return f
    return None


# ── Preview ──────────────────────────────────────────────────────────────────


def _asset_ref(path: str) -> str:
    return r"[\"'](?:\./|/)?" + re.escape(path) + r"[\"']"


def bundle_preview(files: Iterable[ProjectFile], head_script: str | None = None) -> str:
    """Inline stylesheets and scripts into index.html for a single-page preview.

    ``head_script`` is injected first in ``<head>`` so it runs before any
    project code.
    """
    files = list(files)
    index = next((f for f in files if f.path.endswith("index.html")), None)
    if index is None:
        page = PLACEHOLDER_PAGE
    else:
        page = index.content
        for css in (f for f in files if f.path.endswith(".css")):
            style = f"<style>{css.content}</style>"
            link = re.compile(r"<link[^>]*href=" + _asset_ref(css.path) + r"[^>]*>")
            if link.search(page):
                page = link.sub(lambda _m: style, page, count=1)
            else:
                page = _insert_before(page, "</head>", style)
        for js in (f for f in files if f.path.endswith(".js")):
            script = f"<script>{js.content}</script>"
            tag = re.compile(r"<script[^>]*src=" + _asset_ref(js.path) + r"[^>]*>\s*</script>")
            if tag.search(page):
                page = tag.sub(lambda _m: script, page, count=1)
            else:
                page = _insert_before(page, "</body>", script)

    if head_script:
        snippet = f"<script>{head_script}</script>"
        head = re.search(r"<head[^>]*>", page, re.IGNORECASE)
        if head:
            page = page[: head.end()] + snippet + page[head.end():]
        else:
            page = snippet + page
    return page


def _insert_before(page: str, marker: str, snippet: str) -> str:
    at = page.lower().find(marker)
    if at < 0:
        return page + snippet
    return page[:at] + snippet + page[at:]


# ── Export ───────────────────────────────────────────────────────────────────


def archive_name(project: Project) -> str:
    return re.sub(r"\s+", "_", project.name.strip() or "project") + ".zip"


def export_zip(project: Project) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for f in project.files:
            zf.writestr(f.path, f.content)
    return buffer.getvalue()


def write_files(project: Project, directory: Path) -> list[Path]:
    """Write every artifact under ``directory``. Paths may not escape it."""
    root = directory.resolve()
    written = []
    for f in project.files:
        target = (root / f.path).resolve()
        if not target.is_relative_to(root):
            raise ValueError(f"Refusing to write outside export directory: {f.path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f.content, encoding="utf-8")
        written.append(target)
    return written
