"""Report tree: path grouping, aggregates and on-disk output."""

import pytest

from rebuild_comparer.analyzers.compare import diff_texts
from rebuild_comparer.models import UNKNOWN_SOURCE, FunctionReport
from rebuild_comparer.reports import page_name, render_diff_html, render_index, structure_report_data, write_report


def _report(name: str, file: str, orig: str = "ret\n", new: str = "ret\n") -> FunctionReport:
    return FunctionReport(fn_name=name, file=file, new_addr=0x10, new_size=1, orig_addr=0x401000, orig_size=1,
                          compare_result=diff_texts(orig, new))


def test_windows_paths_are_grouped_without_common_prefix() -> None:
    root = structure_report_data(
        [
            _report("a", "C:\\game\\src\\unit\\unit.cpp"),
            _report("b", "C:\\game\\src\\unit\\move.cpp", new="nop\n"),
            _report("c", "C:\\game\\src\\main.cpp"),
        ]
    )
    assert root.path == "root"
    assert [c.path for c in root.children] == ["main.cpp", "unit"]
    unit = root.children[1]
    assert [c.path for c in unit.children] == ["unit/move.cpp", "unit/unit.cpp"]
    assert unit.total_fns == 2
    assert unit.num_matching_fns == 1
    assert unit.match_ratio == pytest.approx(0.5)
    assert root.total_fns == 3
    assert root.num_matching_fns == 2


def test_unknown_source_grouped_separately() -> None:
    root = structure_report_data([_report("a", "src/a.cpp"), _report("x", UNKNOWN_SOURCE), _report("y", "")])
    names = {c.path: c for c in root.children}
    assert set(names) == {UNKNOWN_SOURCE, "a.cpp"}
    assert [f.fn_name for f in names[UNKNOWN_SOURCE].functions] == ["x", "y"]


def test_failed_functions_count_as_non_matching() -> None:
    failed = FunctionReport(fn_name="broken", file="src/a.cpp", error="boom")
    root = structure_report_data([_report("ok", "src/a.cpp"), failed])
    assert root.total_fns == 2
    assert root.num_matching_fns == 1
    assert root.match_ratio == pytest.approx(0.5)


def test_empty_report() -> None:
    root = structure_report_data([])
    assert root.total_fns == 0
    assert root.match_ratio == 0.0


def test_page_name_replaces_unsafe_characters() -> None:
    assert page_name("Unit::Move") == "Unit__Move"
    assert page_name('a<b>"c|d?*') == "a_b__c_d__"


def test_render_diff_html_escapes_and_marks_sides() -> None:
    html_text = render_diff_html(diff_texts("mov eax, <imm4>\nret\n", "nop\nret\n"))
    assert "mov eax, &lt;imm4&gt;" in html_text
    assert '<td class="code-delete">mov eax, &lt;imm4&gt;</td><td></td>' in html_text
    assert '<td></td><td class="code-insert">nop</td>' in html_text
    assert "<tr><td>ret</td><td>ret</td></tr>" in html_text


def test_render_index_lists_functions() -> None:
    failed = FunctionReport(fn_name="broken", file="src/a.cpp", error="boom")
    text = render_index(structure_report_data([_report("ok", "src/a.cpp"), failed]))
    assert text.splitlines()[0] == "root: 50.0% (1/2 functions matching)"
    assert "ok orig=0x401000/0x1 new=0x10/0x1 100.0%" in text
    assert "broken orig=-/- new=-/- error: boom" in text


def test_write_report(tmp_path) -> None:
    failed = FunctionReport(fn_name="broken", file="src/a.cpp", error="boom")
    root = structure_report_data([_report("Unit::Move", "src/unit.cpp", new="nop\n"), failed])
    out = write_report(root, tmp_path / "report")
    assert out == tmp_path / "report"
    assert (out / "index.txt").is_file()
    assert "-ret" in (out / "Unit__Move.diff").read_text(encoding="utf-8")
    assert (out / "Unit__Move.html").read_text(encoding="utf-8").startswith("<table>")
    assert not (out / "broken.diff").exists()
