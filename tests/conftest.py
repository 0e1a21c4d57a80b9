import os

import pytest


@pytest.fixture(autouse=True)
def restore_environ():
    """Keep global environment stable across CLI invocations."""
    original = os.environ.copy()
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(original)


@pytest.fixture()
def temp_config_dir(tmp_path, monkeypatch):
    """Put ccman data and every tool's config in a temp home directory."""
    import platform

    home_dir = tmp_path / "home"
    home_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("CCMAN_ROOT", str(home_dir))

    # For Windows, also patch Path.home() to return our temp home
    if platform.system() == "Windows":
        from pathlib import Path
        monkeypatch.setattr(Path, "home", lambda: home_dir)

    return home_dir


def make_provider(provider_id="p1", name="A", base_url="https://x", api_key="k1",
                  created_at=100, last_modified=None, **extra):
    from ccman.config import ProviderRecord

    data = {
        "id": provider_id,
        "name": name,
        "baseUrl": base_url,
        "apiKey": api_key,
        "createdAt": created_at,
    }
    if last_modified is not None:
        data["lastModified"] = last_modified
    data.update(extra)
    return ProviderRecord.model_validate(data)
