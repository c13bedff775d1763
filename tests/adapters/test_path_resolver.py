from __future__ import annotations

from pathlib import Path

from dbman.adapters.path_resolvers.default import CONFIG_OVERRIDE_ENV, DefaultSourceLocator


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("connections: {}\n", encoding="utf-8")
    return path


def test_layers_in_merge_order(tmp_path: Path) -> None:
    project = tmp_path / "work"
    home = tmp_path / "home"
    _touch(project / ".dbman.yaml")
    _touch(project / ".dbman.json")
    _touch(home / ".dbman.yml")
    locator = DefaultSourceLocator(cwd=project, home=home, env={})
    layers = locator.layers()
    assert [layer for layer, _ in layers] == ["project", "user"]
    assert [Path(path).name for path in layers[0][1]] == [".dbman.yaml", ".dbman.json"]
    assert [Path(path).name for path in layers[1][1]] == [".dbman.yml"]


def test_missing_files_are_not_listed(tmp_path: Path) -> None:
    locator = DefaultSourceLocator(cwd=tmp_path / "work", home=tmp_path / "home", env={})
    assert locator.layers() == [("project", []), ("user", [])]


def test_same_directory_is_read_once(tmp_path: Path) -> None:
    _touch(tmp_path / ".dbman.yaml")
    locator = DefaultSourceLocator(cwd=tmp_path, home=tmp_path, env={})
    layers = dict(locator.layers())
    assert len(layers["project"]) == 1
    assert layers["user"] == []


def test_override_replaces_home_files(tmp_path: Path) -> None:
    _touch(tmp_path / "home" / ".dbman.yaml")
    override = _touch(tmp_path / "elsewhere" / "team.yaml")
    env = {CONFIG_OVERRIDE_ENV: str(override)}
    locator = DefaultSourceLocator(cwd=tmp_path / "work", home=tmp_path / "home", env=env)
    assert list(locator.user()) == [str(override)]
    assert locator.user_target() == str(override)


def test_user_target_prefers_existing_home_file(tmp_path: Path) -> None:
    home = tmp_path / "home"
    locator = DefaultSourceLocator(cwd=tmp_path, home=home, env={})
    assert locator.user_target() == str(home / ".dbman.yaml")
    _touch(home / ".dbman.yml")
    assert locator.user_target() == str(home / ".dbman.yml")
