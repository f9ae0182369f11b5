import logging

import pytest
from jose import jwt

from auth import CredentialService, JWT_ALG
from config import Settings, setup_logging
from errors import ConfigurationError, TokenExpired, TokenInvalid


@pytest.fixture
def credentials():
    return CredentialService("test-secret", bcrypt_rounds=4)


def test_hash_and_verify(credentials):
    hashed = credentials.hash_password("hunter22")
    assert hashed != "hunter22"
    assert credentials.verify_password("hunter22", hashed)
    assert not credentials.verify_password("hunter23", hashed)


def test_verify_never_raises_on_garbage_hash(credentials):
    assert credentials.verify_password("hunter22", "not-a-bcrypt-hash") is False
    assert credentials.verify_password("hunter22", "") is False


def test_token_pair_claims(credentials):
    token, refresh = credentials.issue_token_pair("a@b.com", "Ada", "Lovelace", "64b000000000000000000001")

    claims = credentials.validate_token(token)
    assert claims["email"] == "a@b.com"
    assert claims["first_name"] == "Ada"
    assert claims["last_name"] == "Lovelace"
    assert claims["user_id"] == "64b000000000000000000001"

    access_exp = claims["exp"]
    refresh_exp = credentials.validate_token(refresh, token_type="refresh")["exp"]
    assert abs(refresh_exp - access_exp - (168 - 24) * 3600) <= 1


def test_refresh_token_is_not_an_access_token(credentials):
    _, refresh = credentials.issue_token_pair("a@b.com", "Ada", "Lovelace", "64b000000000000000000001")
    with pytest.raises(TokenInvalid):
        credentials.validate_token(refresh)


def test_expired_token(credentials):
    token = credentials.create_token({"user_id": "x"}, -1, "access")
    with pytest.raises(TokenExpired):
        credentials.validate_token(token)


def test_wrong_signature(credentials):
    forged = jwt.encode({"user_id": "x", "type": "access"}, "other-secret", algorithm=JWT_ALG)
    with pytest.raises(TokenInvalid):
        credentials.validate_token(forged)


def test_malformed_token(credentials):
    with pytest.raises(TokenInvalid):
        credentials.validate_token("not.a.token")


def test_settings_require_secret(monkeypatch, tmp_path):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        Settings.from_env(str(tmp_path / "missing.env"))


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SECRET_KEY", "s3cret")
    monkeypatch.setenv("DATABASE_NAME", "Shop")
    monkeypatch.setenv("DB_TIMEOUT_MS", "7000")
    settings = Settings.from_env(str(tmp_path / "missing.env"))
    assert settings.secret_key == "s3cret"
    assert settings.database_name == "Shop"
    assert settings.db_timeout_ms == 7000


def test_settings_load_env_file(monkeypatch, tmp_path):
    # set-then-delete so the values load_dotenv writes are undone afterwards
    for name in ("SECRET_KEY", "DATABASE_NAME", "PORT"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    monkeypatch.setenv("PORT", "9100")
    env_file = tmp_path / ".env"
    env_file.write_text("SECRET_KEY=from-file\nDATABASE_NAME=FileShop\nPORT=7000\n")

    settings = Settings.from_env(str(env_file))
    assert settings.secret_key == "from-file"
    assert settings.database_name == "FileShop"
    # process environment wins over the file
    assert settings.port == 9100


def test_setup_logging_adds_one_handler():
    root = logging.getLogger()
    saved, saved_level = list(root.handlers), root.level
    for h in saved:
        root.removeHandler(h)
    try:
        setup_logging("DEBUG")
        setup_logging("WARNING")
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved:
            root.addHandler(h)
        root.setLevel(saved_level)
