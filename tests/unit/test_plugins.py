"""Unit tests for the built-in task executors and their dry-run diffs."""

import json
from pathlib import Path
from typing import Any

import pytest

from scaffolder.core.errors import PluginConfigurationError, TaskExecutionError
from scaffolder.core.models import TaskDefinition
from scaffolder.plugins import content, files, system
from scaffolder.plugins.diff import unified_diff
from scaffolder.plugins.registry import ExecutionOptions
from scaffolder.plugins.templates import CONDITION_NOT_MET, render_jinja


def _task(task_type: str, source_url: str | None = None, **config: Any) -> TaskDefinition:
    return TaskDefinition.model_validate(
        {"id": "t", "type": task_type, "config": config, "$sourceUrl": source_url}
    )


@pytest.fixture
def options(tmp_path: Path) -> ExecutionOptions:
    return ExecutionOptions(working_dir=tmp_path)


class TestWriteAndCreate:
    """Tests for write, create and append."""

    @pytest.mark.asyncio
    async def test_write_interpolates(self, tmp_path: Path, options) -> None:
        """Test write renders the inline template into the file."""
        task = _task("write", file="{{name}}/README.md", template="# {{name}}\n")
        await files.execute_write(task, {"name": "demo"}, options)
        assert (tmp_path / "demo" / "README.md").read_text() == "# demo\n"

    @pytest.mark.asyncio
    async def test_write_requires_existing_file_when_asked(self, options) -> None:
        """Test allowCreate=false refuses to create the file."""
        task = _task("write", file="missing.txt", template="x", allowCreate=False)
        with pytest.raises(FileNotFoundError):
            await files.execute_write(task, {}, options)

    @pytest.mark.asyncio
    async def test_write_both_templates(self, options) -> None:
        """Test both template sources are rejected at execution time."""
        task = _task("write", file="a.txt", template="x", templateFile="t.txt")
        with pytest.raises(PluginConfigurationError):
            await files.execute_write(task, {}, options)

    @pytest.mark.asyncio
    async def test_template_file_relative_to_document(self, tmp_path: Path, options) -> None:
        """Test templateFile resolves against the task's document."""
        (tmp_path / "templates").mkdir()
        (tmp_path / "templates" / "license.txt").write_text("MIT {{owner}}")
        source = str(tmp_path / "templates" / "scaffold.json")
        task = _task("write", source_url=source, file="LICENSE", templateFile="license.txt")

        await files.execute_write(task, {"owner": "ACME"}, options)
        assert (tmp_path / "LICENSE").read_text() == "MIT ACME"

    @pytest.mark.asyncio
    async def test_jinja_template_file(self, tmp_path: Path, options) -> None:
        """Test .j2 template files render with jinja2."""
        (tmp_path / "list.j2").write_text("{% for i in items %}{{ i }};{% endfor %}")
        task = _task("write", file="out.txt", templateFile="list.j2")
        await files.execute_write(task, {"items": [1, 2]}, options)
        assert (tmp_path / "out.txt").read_text() == "1;2;"

    @pytest.mark.asyncio
    async def test_create_skips_existing(self, tmp_path: Path, options) -> None:
        """Test create leaves an existing file alone."""
        (tmp_path / "keep.txt").write_text("original")
        task = _task("create", file="keep.txt", template="new")
        assert await files.execute_create(task, {}, options) is None
        assert (tmp_path / "keep.txt").read_text() == "original"
        assert "would skip" in await files.create_diff(task, {}, options)

    @pytest.mark.asyncio
    async def test_append_adds_newline(self, tmp_path: Path, options) -> None:
        """Test append separates content from a file without a trailing newline."""
        (tmp_path / ".gitignore").write_text("node_modules")
        task = _task("append", file=".gitignore", content="dist/\n")
        await files.execute_append(task, {}, options)
        assert (tmp_path / ".gitignore").read_text() == "node_modules\ndist/\n"

    @pytest.mark.asyncio
    async def test_condition_skips(self, tmp_path: Path, options) -> None:
        """Test config.condition gates both execution and diff."""
        task = _task("write", file="a.txt", template="x", condition="useA")
        assert await files.execute_write(task, {"useA": False}, options) is None
        assert not (tmp_path / "a.txt").exists()
        assert await files.write_diff(task, {"useA": False}, options) == CONDITION_NOT_MET

    @pytest.mark.asyncio
    async def test_write_diff_does_not_touch_disk(self, tmp_path: Path, options) -> None:
        """Test the diff of a new file shows its content without creating it."""
        task = _task("write", file="new.txt", template="hello")
        diff = await files.write_diff(task, {}, options)
        assert diff.startswith("Create new.txt")
        assert "+hello" in diff
        assert not (tmp_path / "new.txt").exists()


class TestFileOperations:
    """Tests for delete, rename, move, copy and mkdir."""

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path: Path, options) -> None:
        """Test files and directories are removed and missing paths ignored."""
        (tmp_path / "dir" / "sub").mkdir(parents=True)
        (tmp_path / "file.txt").write_text("x")
        task = _task("delete", paths=["dir", "file.txt", "ghost"])

        assert "Would delete directory: dir" in files.delete_diff(task, {}, options)
        removed = await files.execute_delete(task, {}, options)
        assert len(removed) == 2
        assert not (tmp_path / "dir").exists()
        assert not (tmp_path / "file.txt").exists()

    @pytest.mark.asyncio
    async def test_rename_and_move(self, tmp_path: Path, options) -> None:
        """Test rename in place and move into new directories."""
        (tmp_path / "a.txt").write_text("x")
        await files.execute_rename(_task("rename", **{"from": "a.txt", "to": "b.txt"}), {}, options)
        await files.execute_move(_task("move", **{"from": "b.txt", "to": "nested/c.txt"}), {}, options)
        assert (tmp_path / "nested" / "c.txt").read_text() == "x"

    @pytest.mark.asyncio
    async def test_missing_source_is_skipped(self, options) -> None:
        """Test relocating a missing source does nothing."""
        task = _task("copy", **{"from": "ghost", "to": "x"})
        assert await files.execute_copy(task, {}, options) is None
        assert "would skip" in files.copy_diff(task, {}, options)

    @pytest.mark.asyncio
    async def test_copy_directory(self, tmp_path: Path, options) -> None:
        """Test directories are copied recursively."""
        (tmp_path / "src" / "pkg").mkdir(parents=True)
        (tmp_path / "src" / "pkg" / "m.py").write_text("x = 1")
        await files.execute_copy(_task("copy", **{"from": "src", "to": "dst"}), {}, options)
        assert (tmp_path / "dst" / "pkg" / "m.py").read_text() == "x = 1"

    @pytest.mark.asyncio
    async def test_mkdir(self, tmp_path: Path, options) -> None:
        """Test mkdir creates parents and reports existing directories."""
        task = _task("mkdir", path="a/{{name}}")
        assert files.mkdir_diff(task, {"name": "b"}, options) == "Would create directory: a/b"
        await files.execute_mkdir(task, {"name": "b"}, options)
        assert (tmp_path / "a" / "b").is_dir()
        assert files.mkdir_diff(task, {"name": "b"}, options) == "Directory already exists: a/b"


class TestContentEditing:
    """Tests for regex-replace, replace-in-file and update-json."""

    @pytest.mark.asyncio
    async def test_regex_replace(self, tmp_path: Path, options) -> None:
        """Test the g flag and $1 group references."""
        (tmp_path / "v.txt").write_text("v1 v2")
        task = _task("regex-replace", file="v.txt", pattern=r"v(\d)", replacement="ver$1", flags="g")
        await content.execute_regex_replace(task, {}, options)
        assert (tmp_path / "v.txt").read_text() == "ver1 ver2"

    @pytest.mark.asyncio
    async def test_regex_replace_first_only(self, tmp_path: Path, options) -> None:
        """Test that without g only the first match is replaced."""
        (tmp_path / "v.txt").write_text("a a")
        task = _task("regex-replace", file="v.txt", pattern="a", replacement="{{to}}")
        await content.execute_regex_replace(task, {"to": "b"}, options)
        assert (tmp_path / "v.txt").read_text() == "b a"

    @pytest.mark.asyncio
    async def test_replace_in_file(self, tmp_path: Path, options) -> None:
        """Test every replacement pair is applied and a missing file is skipped."""
        (tmp_path / "r.txt").write_text("foo bar foo")
        task = _task(
            "replace-in-file",
            file="r.txt",
            replacements=[{"find": "foo", "replace": "{{x}}"}, {"find": "bar", "replace": "baz"}],
        )
        await content.execute_replace_in_file(task, {"x": "qux"}, options)
        assert (tmp_path / "r.txt").read_text() == "qux baz qux"

        missing = _task("replace-in-file", file="none.txt", replacements=[{"find": "a"}])
        assert await content.execute_replace_in_file(missing, {}, options) is None

    @pytest.mark.asyncio
    async def test_update_json(self, tmp_path: Path, options) -> None:
        """Test dotted keys are set with interpolated values."""
        (tmp_path / "package.json").write_text(json.dumps({"name": "old", "scripts": {}}))
        task = _task(
            "update-json",
            file="package.json",
            updates={"name": "{{projectName}}", "scripts.test": "pytest"},
        )

        diff = await content.update_json_diff(task, {"projectName": "demo"}, options)
        assert '+  "name": "demo",' in diff
        await content.execute_update_json(task, {"projectName": "demo"}, options)
        data = json.loads((tmp_path / "package.json").read_text())
        assert data == {"name": "demo", "scripts": {"test": "pytest"}}

    @pytest.mark.asyncio
    async def test_update_json_missing_file(self, options) -> None:
        """Test updating a missing file fails."""
        with pytest.raises(FileNotFoundError):
            await content.execute_update_json(_task("update-json", file="x.json", updates={}), {}, options)


class TestSystem:
    """Tests for exec, exec-file and git-init."""

    @pytest.mark.asyncio
    async def test_exec(self, tmp_path: Path, options) -> None:
        """Test commands run in the working directory with interpolation."""
        task = _task("exec", command="echo {{word}} > out.txt")
        await system.execute_exec(task, {"word": "hi"}, options)
        assert (tmp_path / "out.txt").read_text().strip() == "hi"

    @pytest.mark.asyncio
    async def test_exec_failure(self, options) -> None:
        """Test a non-zero exit raises TaskExecutionError."""
        with pytest.raises(TaskExecutionError) as exc_info:
            await system.execute_exec(_task("exec", command="exit 4"), {}, options)
        assert exc_info.value.returncode == 4

    def test_exec_diff(self, tmp_path: Path, options) -> None:
        """Test the exec preview names the command and directory."""
        diff = system.exec_diff(_task("exec", command="make {{target}}"), {"target": "all"}, options)
        assert "Command: make all" in diff
        assert f"Working directory: {tmp_path}" in diff

    def test_git_init_diff(self, options) -> None:
        """Test the git-init preview lists each step."""
        task = _task("git-init", initialCommit=True, message="Init {{name}}")
        diff = system.git_init_diff(task, {"name": "demo"}, options)
        assert diff == 'Would initialize git repository\nWould create initial commit: "Init demo"'


class TestDiffHelpers:
    """Tests for diff and jinja helpers."""

    def test_unified_diff(self) -> None:
        """Test the diff uses a/ and b/ prefixes."""
        diff = unified_diff("README.md", "a\n", "b\n")
        assert diff.splitlines()[:2] == ["--- a/README.md", "+++ b/README.md"]
        assert unified_diff("same.txt", "x", "x") == "No changes to same.txt"

    def test_render_jinja_undefined(self) -> None:
        """Test undefined jinja names render empty."""
        assert render_jinja("[{{ missing }}]", {}) == "[]"
