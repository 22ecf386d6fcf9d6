import pytest

import start_webapp


def test_check_requirements_lists_trait_categories(traits_dir, tmp_path, monkeypatch, capsys):
    assets = tmp_path / "assets"
    assets.mkdir()
    monkeypatch.setattr(start_webapp, "TRAITS_DIR", traits_dir)
    monkeypatch.setattr(start_webapp, "ASSETS_DIR", assets)

    assert start_webapp.check_requirements()
    out = capsys.readouterr().out
    assert "traits/bg: 3 PNG" in out
    assert "traits/top: 1 PNG" in out


def test_check_requirements_without_traits(tmp_path, monkeypatch):
    monkeypatch.setattr(start_webapp, "TRAITS_DIR", tmp_path / "missing")
    assert not start_webapp.check_requirements()


def test_main_stops_before_server_when_checks_fail(tmp_path, monkeypatch):
    monkeypatch.setattr(start_webapp, "TRAITS_DIR", tmp_path / "missing")
    monkeypatch.setattr(start_webapp, "start_server", lambda **kwargs: pytest.fail("server should not start"))

    assert start_webapp.main(["--no-reload"]) == 1
