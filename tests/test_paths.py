from ddisign import paths


def test_base_path_override(tmp_path, monkeypatch):
    monkeypatch.setenv("DDISIGN_BASE_PATH", str(tmp_path / "state"))
    assert paths.ddisign_base_path() == str(tmp_path / "state")
    assert paths.ddisign_logs_dir() == str(tmp_path / "state" / "logs")


def test_base_path_default(monkeypatch, tmp_path):
    monkeypatch.delenv("DDISIGN_BASE_PATH", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert paths.ddisign_base_path() == str((tmp_path / ".ddisign").resolve())


def test_xcode_and_tss_overrides(monkeypatch):
    monkeypatch.delenv("DDISIGN_XCODE", raising=False)
    monkeypatch.delenv("DDISIGN_TSS_URL", raising=False)
    assert paths.default_xcode_path() == "/Applications/Xcode.app"
    assert paths.tss_url() == paths.DEFAULT_TSS_URL
    monkeypatch.setenv("DDISIGN_XCODE", "/Applications/Xcode-beta.app")
    monkeypatch.setenv("DDISIGN_TSS_URL", "https://tss.example/controller")
    assert paths.default_xcode_path() == "/Applications/Xcode-beta.app"
    assert paths.tss_url() == "https://tss.example/controller"
