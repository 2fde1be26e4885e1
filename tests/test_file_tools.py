#!/usr/bin/env python3
"""Tests for the filesystem tools."""

import dataclasses
import os

import pytest

from taskpilot.tools import file_ops
from taskpilot.tools.errors import AccessDenied, ResourceExceeded, ToolNotFound, ToolValidationError


def limited(config, **overrides):
    return dataclasses.replace(config, **overrides)


class TestReadWrite:
    def test_write_then_read(self, workspace, agent_config):
        message = file_ops.write_file(workspace, agent_config, "src/app.py", "print('hi')\n")
        assert message == "File written: src/app.py"
        assert (workspace.root / "src" / "app.py").read_text() == "print('hi')\n"
        assert file_ops.read_file(workspace, agent_config, "src/app.py") == "print('hi')\n"

    def test_overwrite(self, workspace, agent_config):
        file_ops.write_file(workspace, agent_config, "a.txt", "one")
        file_ops.write_file(workspace, agent_config, "a.txt", "two")
        assert file_ops.read_file(workspace, agent_config, "a.txt") == "two"

    def test_read_missing(self, workspace, agent_config):
        with pytest.raises(ToolNotFound):
            file_ops.read_file(workspace, agent_config, "missing.txt")

    def test_read_directory(self, workspace, agent_config):
        (workspace.root / "pkg").mkdir()
        with pytest.raises(ToolValidationError):
            file_ops.read_file(workspace, agent_config, "pkg")

    def test_read_size_cap(self, workspace, agent_config):
        (workspace.root / "big.txt").write_text("x" * 20)
        with pytest.raises(ResourceExceeded) as exc_info:
            file_ops.read_file(workspace, limited(agent_config, max_file_bytes=10), "big.txt")
        assert exc_info.value.limit == 10

    def test_read_truncates_output(self, workspace, agent_config):
        (workspace.root / "long.txt").write_text("abcdefghij")
        content = file_ops.read_file(workspace, limited(agent_config, read_return_limit=4), "long.txt")
        assert content.startswith("abcd\n")
        assert "truncated, 6 more characters" in content

    def test_write_size_cap(self, workspace, agent_config):
        with pytest.raises(ResourceExceeded):
            file_ops.write_file(workspace, limited(agent_config, max_write_bytes=3), "a.txt", "four")
        assert not (workspace.root / "a.txt").exists()

    def test_write_outside_workspace(self, workspace, agent_config):
        with pytest.raises(AccessDenied):
            file_ops.write_file(workspace, agent_config, "../escape.txt", "x")

    def test_write_onto_directory(self, workspace, agent_config):
        (workspace.root / "pkg").mkdir()
        with pytest.raises(ToolValidationError):
            file_ops.write_file(workspace, agent_config, "pkg", "x")


class TestListFiles:
    def test_empty_directory(self, workspace, agent_config):
        assert file_ops.list_files(workspace, agent_config) == "(empty directory)"

    def test_typed_sorted_entries(self, workspace, agent_config):
        (workspace.root / "sub").mkdir()
        (workspace.root / "a.txt").write_text("a")
        (workspace.root / "sub" / "nested.txt").write_text("n")

        assert file_ops.list_files(workspace, agent_config, ".") == "[FILE] a.txt\n[DIR] sub"
        assert file_ops.list_files(workspace, agent_config, "sub") == "[FILE] nested.txt"

    def test_entry_cap(self, workspace, agent_config):
        for name in ("a", "b", "c"):
            (workspace.root / name).write_text(name)
        output = file_ops.list_files(workspace, limited(agent_config, list_limit=2), ".")
        assert output.splitlines() == ["[FILE] a", "[FILE] b", "... (1 more entries not shown)"]

    def test_missing_directory(self, workspace, agent_config):
        with pytest.raises(ToolNotFound):
            file_ops.list_files(workspace, agent_config, "nope")

    def test_not_a_directory(self, workspace, agent_config):
        (workspace.root / "f.txt").write_text("x")
        with pytest.raises(ToolValidationError):
            file_ops.list_files(workspace, agent_config, "f.txt")


class TestCreateDelete:
    def test_create_nested_directory(self, workspace, agent_config):
        assert file_ops.create_directory(workspace, agent_config, "a/b/c") == "Directory created: a/b/c"
        assert (workspace.root / "a" / "b" / "c").is_dir()

    def test_create_over_file(self, workspace, agent_config):
        (workspace.root / "f").write_text("x")
        with pytest.raises(ToolValidationError):
            file_ops.create_directory(workspace, agent_config, "f")

    def test_delete_file(self, workspace, agent_config):
        (workspace.root / "f.txt").write_text("x")
        assert file_ops.delete_file(workspace, agent_config, "f.txt") == "File deleted: f.txt"
        assert not (workspace.root / "f.txt").exists()

    def test_delete_directory_tree(self, workspace, agent_config):
        (workspace.root / "build" / "lib").mkdir(parents=True)
        (workspace.root / "build" / "lib" / "x.o").write_text("x")
        assert file_ops.delete_file(workspace, agent_config, "build") == "Directory deleted: build"
        assert not (workspace.root / "build").exists()

    @pytest.mark.parametrize("path", [".", "./"])
    def test_refuses_to_delete_root(self, workspace, agent_config, path):
        with pytest.raises(AccessDenied, match="workspace root"):
            file_ops.delete_file(workspace, agent_config, path)
        assert workspace.root.is_dir()

    def test_delete_cap(self, workspace, agent_config):
        big = workspace.root / "big"
        big.mkdir()
        for i in range(5):
            (big / f"{i}.txt").write_text(str(i))

        with pytest.raises(ResourceExceeded):
            file_ops.delete_file(workspace, limited(agent_config, max_delete_files=2), "big")
        assert len(os.listdir(big)) == 5

    def test_delete_missing(self, workspace, agent_config):
        with pytest.raises(ToolNotFound):
            file_ops.delete_file(workspace, agent_config, "ghost.txt")

    def test_delete_symlink_removes_link_only(self, workspace, agent_config):
        (workspace.root / "real").mkdir()
        (workspace.root / "real" / "keep.txt").write_text("keep")
        os.symlink(workspace.root / "real", workspace.root / "alias")

        assert file_ops.delete_file(workspace, agent_config, "alias") == "File deleted: alias"
        assert (workspace.root / "real" / "keep.txt").exists()


@pytest.fixture
def project(workspace):
    files = {
        "src/app.py": "import os\nprint('TODO here')\n",
        "src/util.py": "def helper():\n    return 1\n",
        "README.md": "# TODO list\n",
        "node_modules/lib/index.py": "TODO",
    }
    for rel, text in files.items():
        target = workspace.root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
    return workspace


class TestSearchFiles:
    def test_glob_by_name(self, project, agent_config):
        output = file_ops.search_files(project, agent_config, "**/*.py")
        assert output.splitlines() == ["src/app.py", "src/util.py"]

    def test_content_search(self, project, agent_config):
        output = file_ops.search_files(project, agent_config, "**/*", content="TODO")
        assert output == "README.md:\n  1: # TODO list\n\nsrc/app.py:\n  2: print('TODO here')"

    def test_matches_per_file_cap(self, project, agent_config):
        (project.root / "many.txt").write_text("hit\n" * 10)
        output = file_ops.search_files(project, limited(agent_config, matches_per_file=2), "many.txt", content="hit")
        assert output == "many.txt:\n  1: hit\n  2: hit"

    def test_line_preview_is_truncated(self, project, agent_config):
        (project.root / "wide.txt").write_text("needle" + "x" * 300)
        output = file_ops.search_files(project, agent_config, "wide.txt", content="needle")
        assert output.splitlines()[1] == "  1: " + ("needle" + "x" * 300)[:100]

    def test_result_cap(self, project, agent_config):
        output = file_ops.search_files(project, limited(agent_config, search_result_limit=1), "**/*.py")
        assert output.splitlines() == ["src/app.py", "... (1 more files not shown)"]

    def test_no_results(self, project, agent_config):
        assert file_ops.search_files(project, agent_config, "**/*.rs") == "No files found"
        assert file_ops.search_files(project, agent_config, "**/*.py", content="nothing") == "No matches found"

    @pytest.mark.parametrize("pattern", ["../*", "/etc/*", "src/../../*"])
    def test_pattern_cannot_escape(self, project, agent_config, pattern):
        with pytest.raises(AccessDenied):
            file_ops.search_files(project, agent_config, pattern)

    def test_symlinked_file_outside_is_skipped(self, project, agent_config, tmp_path):
        outside = tmp_path / "outside.py"
        outside.write_text("TODO secret")
        os.symlink(outside, project.root / "src" / "leak.py")

        output = file_ops.search_files(project, agent_config, "**/*.py", content="TODO")
        assert "leak.py" not in output
        assert "secret" not in output
