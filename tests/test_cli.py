import json
from pathlib import Path

from typer.testing import CliRunner

from skool.cli import app

runner = CliRunner()


def make_course_dir(group_dir: Path) -> Path:
    lesson_dir = group_dir / "My Course" / "1-Start" / "1-Hello"
    lesson_dir.mkdir(parents=True)
    (lesson_dir / "index.html").write_text("<html></html>", encoding="utf-8")
    (group_dir / "My Course" / ".course.json").write_text(
        json.dumps({"courseName": "My Course", "groupName": "Group", "modules": [], "updatedAt": "2026-02-02T00:00:00"}),
        encoding="utf-8",
    )
    return group_dir / "My Course"


def test_regenerate_index_command(tmp_path: Path) -> None:
    course_dir = make_course_dir(tmp_path)

    result = runner.invoke(app, ["regenerate-index", str(course_dir)])

    assert result.exit_code == 0
    assert 'href="1-Start/1-Hello/index.html"' in (course_dir / "index.html").read_text(encoding="utf-8")
    group_index = (tmp_path / "index.html").read_text(encoding="utf-8")
    assert 'href="My Course/index.html"' in group_index


def test_regenerate_group_index_command(tmp_path: Path) -> None:
    make_course_dir(tmp_path)

    result = runner.invoke(app, ["regenerate-group-index", str(tmp_path)])

    assert result.exit_code == 0
    assert (tmp_path / "index.html").exists()


def test_regenerate_group_index_command_missing_dir(tmp_path: Path) -> None:
    result = runner.invoke(app, ["regenerate-group-index", str(tmp_path / "missing")])

    assert result.exit_code == 1


def test_download_rejects_lesson_mode_without_id() -> None:
    result = runner.invoke(app, ["download", "https://www.skool.com/acme/classroom/abcd", "--mode", "lesson"])

    assert result.exit_code == 1


def test_regenerate_index_command_missing_dir(tmp_path: Path) -> None:
    result = runner.invoke(app, ["regenerate-index", str(tmp_path / "missing")])

    assert result.exit_code == 1
