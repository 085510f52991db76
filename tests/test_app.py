import pytest

from app import create_app


def test_create_app_requires_secret_key(monkeypatch, log_dir):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app({"SQLALCHEMY_DATABASE_URI": "sqlite://", "LOG_DIR": log_dir})


def test_secret_key_read_from_environment(monkeypatch, log_dir):
    monkeypatch.setenv("SECRET_KEY", "from-env")
    app = create_app({"SQLALCHEMY_DATABASE_URI": "sqlite://", "LOG_DIR": log_dir})
    assert app.config["SECRET_KEY"] == "from-env"
