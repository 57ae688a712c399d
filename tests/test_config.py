"""
Tests for configuration loading and backend construction.
"""
import pytest

from pkg.todo.config import Config, ConfigError, ENV_OVERRIDES, build_backend
from pkg.todo.local import LocalAuth, SQLiteDocumentStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TODOLANES_CONFIG", raising=False)
    for env in ENV_OVERRIDES:
        monkeypatch.delenv(env, raising=False)


def write_yaml(tmp_path, text):
    path = tmp_path / "todolanes.yaml"
    path.write_text(text)
    return str(path)


def test_load_from_yaml(tmp_path):
    path = write_yaml(tmp_path, (
        "backend: local\n"
        f"db_path: {tmp_path / 'todo.db'}\n"
        "port: 4000\n"
        "secret_key: s3cret\n"
    ))
    cfg = Config.load(path)
    assert cfg.backend == "local"
    assert cfg.db_path == str(tmp_path / "todo.db")
    assert cfg.port == 4000
    assert cfg.secret_key == "s3cret"
    assert cfg.request_timeout is None


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = write_yaml(tmp_path, "backend: local\nsecret_key: from-file\n")
    monkeypatch.setenv("TODOLANES_SECRET_KEY", "from-env")
    monkeypatch.setenv("TODOLANES_DB", str(tmp_path / "env.db"))
    cfg = Config.load(path)
    assert cfg.secret_key == "from-env"
    assert cfg.db_path == str(tmp_path / "env.db")


def test_config_path_from_env(tmp_path, monkeypatch):
    path = write_yaml(tmp_path, "port: 5050\nsecret_key: x\n")
    monkeypatch.setenv("TODOLANES_CONFIG", path)
    assert Config.load().port == 5050


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        Config.load(str(tmp_path / "nope.yaml"))


def test_non_mapping_rejected(tmp_path):
    path = write_yaml(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigError):
        Config.load(path)


def test_unknown_keys_ignored(tmp_path):
    path = write_yaml(tmp_path, "secret_key: x\ncolour: blue\n")
    cfg = Config.load(path)
    assert not hasattr(cfg, "colour")


def test_secret_key_generated_when_missing(tmp_path):
    cfg = Config.load(write_yaml(tmp_path, "backend: local\n"))
    assert len(cfg.secret_key) == 64


class TestValidate:

    def test_unknown_backend(self):
        with pytest.raises(ConfigError) as exc:
            Config(backend="mongo").validate()
        assert "mongo" in str(exc.value)

    def test_firebase_needs_credentials(self):
        with pytest.raises(ConfigError) as exc:
            Config(backend="firebase", firebase_api_key="key").validate()
        assert "firebase_project_id" in str(exc.value)

    def test_max_clients_positive(self):
        with pytest.raises(ConfigError):
            Config(max_clients=0).validate()

    def test_backend_name_normalized(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TODOLANES_BACKEND", " Firebase ")
        monkeypatch.setenv("FIREBASE_API_KEY", "key")
        monkeypatch.setenv("FIREBASE_PROJECT_ID", "demo")
        cfg = Config.load(write_yaml(tmp_path, "secret_key: x\n"))
        assert cfg.backend == "firebase"


def test_build_local_backend(tmp_path):
    cfg = Config(db_path=str(tmp_path / "todo.db"), secret_key="x").resolve()
    auth, store = build_backend(cfg)
    assert isinstance(auth, LocalAuth)
    assert isinstance(store, SQLiteDocumentStore)
    assert store.auth is auth

    other_auth, _ = build_backend(cfg)
    assert other_auth is not auth


def test_build_firebase_backend():
    from pkg.todo.firebase import FirebaseAuth, FirestoreStore

    cfg = Config(backend="firebase", firebase_api_key="key", firebase_project_id="demo",
                 request_timeout=5, secret_key="x")
    auth, store = build_backend(cfg)
    assert isinstance(auth, FirebaseAuth)
    assert isinstance(store, FirestoreStore)
    assert store.timeout == 5
    assert "/projects/demo/" in store.base_url
