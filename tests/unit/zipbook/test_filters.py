import pytest

from zipbook.config import ExclusionRules, normalize_extension
from zipbook.file_manipulation import is_excluded_folder, should_exclude


@pytest.mark.unit
def test_should_exclude_matches_folder_segment_anywhere() -> None:
    rules = ExclusionRules(folders=["node_modules"])

    assert should_exclude("node_modules/pkg/index.js", rules)
    assert should_exclude("web/node_modules/pkg/index.js", rules)
    assert not should_exclude("src/node_modules_backup/index.js", rules)


@pytest.mark.unit
def test_should_exclude_matches_extension_case_insensitively() -> None:
    rules = ExclusionRules(extensions=["PNG", ".Jpg"])

    assert should_exclude("assets/logo.PNG", rules)
    assert should_exclude("assets/photo.jpg", rules)
    assert not should_exclude("assets/logo.png.txt", rules)
    assert not should_exclude("Makefile", rules)


@pytest.mark.unit
def test_should_exclude_without_rules_keeps_everything() -> None:
    rules = ExclusionRules()

    assert not should_exclude("src/a.js", rules)
    assert not should_exclude(".git/config", rules)


@pytest.mark.unit
def test_excluded_folder_excludes_its_whole_subtree() -> None:
    rules = ExclusionRules(folders=["dist"])
    paths = ["dist", "dist/a.js", "dist/x/y/z.css", "app/dist/b.js"]

    assert all(is_excluded_folder(p, rules) for p in paths)
    assert all(should_exclude(p, rules) for p in paths[1:])


@pytest.mark.unit
def test_folder_rules_are_trimmed_of_slashes() -> None:
    rules = ExclusionRules(folders=[" build/ ", "/.git", ""])

    assert rules.folders == frozenset({"build", ".git"})


@pytest.mark.unit
def test_from_presets_merges_explicit_rules() -> None:
    rules = ExclusionRules.from_presets(["vendor", "images"], folders=["coverage"], extensions=["lock"])

    assert {"node_modules", ".git", "coverage"} <= rules.folders
    assert {".png", ".svg", ".lock"} <= rules.extensions


@pytest.mark.unit
def test_from_presets_rejects_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown exclusion preset"):
        ExclusionRules.from_presets(["nope"])


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [("png", ".png"), (".PNG", ".png"), ("  .Md ", ".md"), ("", "")],
)
def test_normalize_extension(raw: str, expected: str) -> None:
    assert normalize_extension(raw) == expected
