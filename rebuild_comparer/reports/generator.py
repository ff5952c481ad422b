"""Group function comparisons by source path and write the report tree (index, diffs, HTML rows)."""

import html
import re
from pathlib import Path, PurePosixPath

from rebuild_comparer.config import Settings
from rebuild_comparer.errors import ComparerIOError
from rebuild_comparer.hexfmt import hex_addr
from rebuild_comparer.models import UNKNOWN_SOURCE, CompareResult, DiffTag, FunctionReport, PathReport

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')


def _source_parts(file: str) -> tuple[str, ...]:
    # PDBs built on Windows carry backslash paths
    return PurePosixPath(file.replace("\\", "/")).parts


def _common_dir(paths: list[tuple[str, ...]]) -> int:
    """Length of the directory prefix shared by all paths."""
    if not paths:
        return 0
    dirs = [p[:-1] for p in paths]
    n = 0
    for group in zip(*dirs):
        if len(set(group)) != 1:
            break
        n += 1
    return n


def _aggregate(node: PathReport) -> tuple[float, int]:
    """Fill counts bottom-up; returns (sum of ratios, function count) for the subtree."""
    ratio_sum = sum(f.match_ratio for f in node.functions)
    total = len(node.functions)
    matching = sum(1 for f in node.functions if f.compare_result is not None and f.compare_result.is_match)
    for child in node.children:
        child_sum, child_total = _aggregate(child)
        ratio_sum += child_sum
        total += child_total
        matching += child.num_matching_fns
    node.total_fns = total
    node.num_matching_fns = matching
    node.match_ratio = ratio_sum / total if total else 0.0
    return ratio_sum, total


def structure_report_data(reports: list[FunctionReport]) -> PathReport:
    """
    Build the per-path tree: one node per directory level and source file,
    with the common path prefix removed. Functions without a known source
    file are grouped under UNKNOWN.
    """
    known = [_source_parts(r.file) for r in reports if r.file and r.file != UNKNOWN_SOURCE]
    strip = _common_dir(known)

    root = PathReport(path="root")
    index: dict[tuple[str, ...], PathReport] = {(): root}
    for r in reports:
        if r.file and r.file != UNKNOWN_SOURCE:
            parts = _source_parts(r.file)[strip:]
        else:
            parts = (UNKNOWN_SOURCE,)
        for depth in range(1, len(parts) + 1):
            key = parts[:depth]
            if key not in index:
                node = PathReport(path="/".join(key))
                index[key[:-1]].children.append(node)
                index[key] = node
        index[parts].functions.append(r)

    for node in index.values():
        node.children.sort(key=lambda c: c.path)
    _aggregate(root)
    return root


def page_name(fn_name: str) -> str:
    return _UNSAFE_CHARS.sub("_", fn_name)


def render_diff_html(result: CompareResult) -> str:
    """Side-by-side table rows: equal lines in both columns, deletions left, insertions right."""
    rows: list[str] = []
    for line in result.diff_lines:
        text = html.escape(line.text)
        if line.tag is DiffTag.EQUAL:
            rows.append(f"<tr><td>{text}</td><td>{text}</td></tr>")
        elif line.tag is DiffTag.DELETE:
            rows.append(f'<tr><td class="code-delete">{text}</td><td></td></tr>')
        else:
            rows.append(f'<tr><td></td><td class="code-insert">{text}</td></tr>')
    return "<table>\n" + "\n".join(rows) + "\n</table>\n"


def _opt_hex(value: int | None) -> str:
    return hex_addr(value) if value is not None else "-"


def render_index(root: PathReport) -> str:
    lines: list[str] = []

    def walk(node: PathReport, depth: int) -> None:
        pad = "  " * depth
        lines.append(
            f"{pad}{node.path}: {node.match_ratio * 100:.1f}% "
            f"({node.num_matching_fns}/{node.total_fns} functions matching)"
        )
        for f in node.functions:
            status = f"{f.match_ratio * 100:.1f}%" if f.compare_result else f"error: {f.error}"
            lines.append(
                f"{pad}  {f.fn_name} orig={_opt_hex(f.orig_addr)}/{_opt_hex(f.orig_size)} "
                f"new={_opt_hex(f.new_addr)}/{_opt_hex(f.new_size)} {status}"
            )
        for child in node.children:
            walk(child, depth + 1)

    walk(root, 0)
    return "\n".join(lines) + "\n"


def write_report(root: PathReport, out_dir: Path | None = None, settings: Settings | None = None) -> Path:
    """Write index.txt plus one .diff and one .html page per compared function."""
    settings = settings or Settings()
    out_dir = out_dir or settings.report_dir
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / "index.txt").write_text(render_index(root), encoding="utf-8")
        pending = [root]
        while pending:
            node = pending.pop()
            pending.extend(node.children)
            for f in node.functions:
                if f.compare_result is None:
                    continue
                name = page_name(f.fn_name)
                (out_dir / f"{name}.diff").write_text(f.compare_result.unified_diff, encoding="utf-8")
                (out_dir / f"{name}.html").write_text(render_diff_html(f.compare_result), encoding="utf-8")
    except OSError as e:
        raise ComparerIOError(str(out_dir), e) from e
    return out_dir
