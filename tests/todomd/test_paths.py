import tempfile
from pathlib import Path

import pytest

import todomd.paths as paths
from todomd.errors import PathTraversalError


class TestConventionalLocations:
    def test_beads_dir_override(self) -> None:
        root = Path("/tmp/project")
        assert paths.beads_dir(root) == root / ".beads"
        assert paths.beads_dir(root, "store") == root / "store"
        assert paths.beads_dir(root, Path("/srv/beads")) == Path("/srv/beads")

    def test_template_paths(self) -> None:
        directory = Path(".mdx")
        assert paths.template_path(directory, "todo").name == "TODO.mdx"
        assert paths.preset_path(directory, "../../evil").parent.name == "presets"

    def test_config_path(self) -> None:
        assert paths.config_path(Path("/p")) == Path("/p/todo.config.json")


class TestSanitizeComponent:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("../../../etc/passwd", "etc-passwd"),
            ("a\x00b", "ab"),
            ("..\\..\\win", "win"),
            ("--edge--", "edge"),
            ("plain-id", "plain-id"),
        ],
    )
    def test_removes_unsafe_parts(self, raw: str, expected: str) -> None:
        assert paths.sanitize_component(raw) == expected


class TestEnsureWithin:
    def test_accepts_nested_paths(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            resolved = paths.ensure_within(root, Path("a/b.md"))
            assert resolved == root.resolve() / "a" / "b.md"

    @pytest.mark.parametrize("candidate", ["../outside.md", "a/../../x.md", "/etc"])
    def test_rejects_escapes(self, candidate: str) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(PathTraversalError) as excinfo:
                paths.ensure_within(Path(temp_dir), Path(candidate))
            assert excinfo.value.code == "path_traversal"

    def test_root_itself_is_strict(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            with pytest.raises(PathTraversalError):
                paths.ensure_within(root, root)
            assert paths.ensure_within(root, root, strict=False) == root.resolve()

    def test_rejects_symlink_escape(self) -> None:
        with (
            tempfile.TemporaryDirectory() as temp_dir,
            tempfile.TemporaryDirectory() as other,
        ):
            root = Path(temp_dir)
            (root / "link").symlink_to(other, target_is_directory=True)
            with pytest.raises(PathTraversalError):
                paths.ensure_within(root, Path("link/file.md"))
