"""
Unit tests for encrypted Setting fields.

Tests cover:
- Encrypted storage with plaintext reads
- Sticky encryption and explicit opt-out
- Encrypting an existing value
- Type restrictions and missing keys
- Inheritance by child nodes and exported schemas
"""

import pytest

from cfgtree.encryption import EncryptionConfig
from cfgtree.environment import EnvironmentContext
from cfgtree.errors import EncryptionError, SettingTypeError
from cfgtree.setting import Setting

KEY = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def gateway(monkeypatch):
    """Gateway reading its key from CFGTREE_ENCRYPTION_KEY."""
    monkeypatch.setenv("CFGTREE_ENCRYPTION_KEY", KEY)
    return EncryptionConfig().key_provider("env")


@pytest.fixture
def settings(gateway):
    """Node with encryption enabled."""
    return Setting(encryption=gateway, context=EnvironmentContext("test"))


class TestEncryptedFields:
    """Tests for fields declared with encrypted=True."""

    def test_plaintext_reads(self, settings):
        """Every read path returns plaintext."""
        settings.config("password", "secret123", encrypted=True)

        assert settings.password == "secret123"
        assert settings["password"] == "secret123"
        assert settings.get("password") == "secret123"
        assert settings.to_dict() == {"password": "secret123"}

    def test_stored_as_ciphertext(self, settings):
        """The stored value is not the plaintext."""
        settings.config("password", "secret123", encrypted=True)

        stored = settings._values["password"]
        assert stored != "secret123"
        assert settings.encryption.decrypt(stored) == "secret123"

    def test_encryption_is_sticky(self, settings):
        """Later writes stay encrypted."""
        settings.config("password", "first", encrypted=True)
        settings.password = "second"

        assert settings.is_encrypted("password")
        assert settings._values["password"] != "second"
        assert settings.password == "second"

    def test_explicit_opt_out(self, settings):
        """encrypted=False stores plaintext again."""
        settings.config("password", "first", encrypted=True)
        settings.config("password", "plain", encrypted=False)

        assert not settings.is_encrypted("password")
        assert settings._values["password"] == "plain"

    def test_encrypt_existing_value(self, settings):
        """encrypted=True without a value encrypts the current one."""
        settings.config("token", "abc")
        settings.config("token", encrypted=True)

        assert settings.is_encrypted("token")
        assert settings._values["token"] != "abc"
        assert settings.token == "abc"

    def test_non_string_rejected(self, settings):
        """Only strings can be encrypted."""
        with pytest.raises(SettingTypeError, match="encrypted values must be strings"):
            settings.config("pin", 1234, encrypted=True)
        assert "pin" not in settings

    def test_type_still_checked(self, settings):
        """Declared types apply to encrypted values too."""
        settings.config("api_key", "k", type="str", encrypted=True)

        with pytest.raises(SettingTypeError):
            settings.config("api_key", "x", type="int")

    def test_encrypted_schema(self, settings):
        """encrypted_schema reports flags per field, nested."""
        settings.config("password", "p", encrypted=True).config(user="u")
        settings.configure("db", lambda db: db.config("secret", "s", encrypted=True))

        assert settings.encrypted_schema() == {
            "password": True,
            "user": False,
            "db": {"secret": True},
        }

    def test_child_inherits_gateway(self, settings):
        """Children encrypt with the parent's gateway."""
        child = settings.configure("db", lambda db: db.config("password", "s", encrypted=True))

        assert child.encryption is settings.encryption
        assert settings.db.password == "s"

    def test_load_with_encrypted_fields(self, settings):
        """load_from_dict honours encrypted_fields."""
        settings.load_from_dict(
            {"db": {"password": "s", "host": "h"}},
            encrypted_fields={"db": {"password": True}},
        )

        assert settings.db.is_encrypted("password")
        assert not settings.db.is_encrypted("host")
        assert settings.to_dict() == {"db": {"password": "s", "host": "h"}}


class TestMissingKeys:
    """Tests for encryption without usable keys."""

    def test_no_gateway(self):
        """Encrypted declarations need a gateway."""
        node = Setting(context=EnvironmentContext("test"))

        with pytest.raises(EncryptionError, match="No key provider configured"):
            node.config("password", "x", encrypted=True)
        assert "password" not in node

    def test_key_removed_after_write(self, settings, monkeypatch):
        """Reads fail loudly once the key is gone."""
        settings.config("password", "x", encrypted=True)
        monkeypatch.delenv("CFGTREE_ENCRYPTION_KEY")

        with pytest.raises(EncryptionError):
            settings.password

    def test_use_encryption_propagates(self, gateway):
        """use_encryption installs the gateway on existing children."""
        node = Setting(context=EnvironmentContext("test"))
        node.configure("db")

        node.use_encryption(gateway)
        node.db.config("password", "x", encrypted=True)

        assert node.db.password == "x"
