"""Tests for credential encryption, resolution and injection."""

import json

import pytest
from cryptography.fernet import Fernet

from mcpchain.credentials.encryption import (
    CredentialCipher,
    CredentialDecryptionError,
    generate_key,
    get_fernet,
)
from mcpchain.credentials.resolver import (
    AuthRequiredError,
    CredentialRecord,
    CredentialResolver,
    InMemoryCredentialStore,
    ResolvedCredential,
    inject_env,
    substitute_placeholders,
)


@pytest.fixture
def key():
    return generate_key()


@pytest.fixture
def cipher(key):
    return CredentialCipher(key)


def resolver_for(cipher, *records):
    return CredentialResolver(InMemoryCredentialStore(list(records)), cipher)


class TestCredentialCipher:
    """Test cases for Fernet-backed field encryption."""

    def test_encrypt_decrypt(self, cipher):
        token = cipher.encrypt_fields({"API_KEY": "abc123", "REGION": "eu"})

        assert "abc123" not in token
        assert cipher.decrypt_fields(token) == {"API_KEY": "abc123", "REGION": "eu"}

    def test_missing_key(self):
        with pytest.raises(RuntimeError, match="CREDENTIAL_ENCRYPTION_KEY"):
            get_fernet(None)

    def test_invalid_token(self, cipher):
        with pytest.raises(CredentialDecryptionError):
            cipher.decrypt_fields("not-a-token")

    def test_token_from_other_key(self, cipher):
        other = CredentialCipher(generate_key())
        with pytest.raises(CredentialDecryptionError):
            cipher.decrypt_fields(other.encrypt_fields({"A": "1"}))

    def test_non_object_plaintext(self, key, cipher):
        token = Fernet(key.encode()).encrypt(b"[1, 2]").decode()
        with pytest.raises(CredentialDecryptionError, match="not a JSON object"):
            cipher.decrypt_fields(token)

    def test_null_values_become_empty(self, key, cipher):
        token = Fernet(key.encode()).encrypt(b'{"API_KEY": null}').decode()
        assert cipher.decrypt_fields(token) == {"API_KEY": ""}


class TestCredentialResolver:
    """Test cases for stored payload decoding and verification."""

    @pytest.mark.asyncio
    async def test_token_payload(self, cipher):
        token = cipher.encrypt_fields({"GITHUB_TOKEN": "ghp_abc"})
        resolver = resolver_for(cipher, CredentialRecord("u1", "github", token, verified=True))

        credential = await resolver.get_auth("u1", "github")

        assert credential.fields == {"GITHUB_TOKEN": "ghp_abc"}
        assert credential.verified is True
        assert credential.is_usable

    @pytest.mark.asyncio
    async def test_wrapped_token_payload(self, cipher):
        token = cipher.encrypt_fields({"API_KEY": "k"})
        resolver = resolver_for(
            cipher,
            CredentialRecord("u1", "cmc", {"encrypted": token, "version": 1}, verified=True),
        )

        credential = await resolver.get_auth("u1", "cmc")

        assert credential.fields == {"API_KEY": "k"}

    @pytest.mark.asyncio
    async def test_legacy_plain_dict(self, cipher):
        resolver = resolver_for(
            cipher, CredentialRecord("u1", "cmc", {"API_KEY": "legacy", "EXTRA": None}, True)
        )

        credential = await resolver.get_auth("u1", "cmc")

        assert credential.fields == {"API_KEY": "legacy", "EXTRA": ""}
        assert credential.empty_fields == ["EXTRA"]
        assert not credential.is_usable

    @pytest.mark.asyncio
    async def test_legacy_json_string_without_cipher(self):
        resolver = resolver_for(
            None, CredentialRecord("u1", "cmc", json.dumps({"API_KEY": "plain"}), True)
        )

        credential = await resolver.get_auth("u1", "cmc")

        assert credential.fields == {"API_KEY": "plain"}

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_not_verified(self, cipher):
        resolver = resolver_for(cipher, CredentialRecord("u1", "cmc", "garbage", verified=True))

        credential = await resolver.get_auth("u1", "cmc")

        assert credential.fields == {}
        assert credential.verified is False

    @pytest.mark.asyncio
    async def test_unverified_record(self, cipher):
        token = cipher.encrypt_fields({"API_KEY": "k"})
        resolver = resolver_for(cipher, CredentialRecord("u1", "cmc", token, verified=False))

        credential = await resolver.get_auth("u1", "cmc")

        assert credential.verified is False
        with pytest.raises(AuthRequiredError):
            await resolver.require_auth("u1", "cmc")

    @pytest.mark.asyncio
    async def test_missing_record(self, cipher):
        resolver = resolver_for(cipher)

        assert await resolver.get_auth("u1", "github") is None
        with pytest.raises(AuthRequiredError) as exc_info:
            await resolver.require_auth("u1", "github")

        assert exc_info.value.missing_fields == []
        assert str(exc_info.value) == (
            "User authentication not found or not verified for MCP github"
        )

    @pytest.mark.asyncio
    async def test_empty_field_reported(self, cipher):
        token = cipher.encrypt_fields({"API_KEY": "", "SECRET": "s"})
        resolver = resolver_for(cipher, CredentialRecord("u1", "exchange", token, verified=True))

        with pytest.raises(AuthRequiredError) as exc_info:
            await resolver.require_auth("u1", "exchange")

        assert exc_info.value.missing_fields == ["API_KEY"]
        assert "missing: API_KEY" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_records_are_per_user(self, cipher):
        token = cipher.encrypt_fields({"API_KEY": "k"})
        resolver = resolver_for(cipher, CredentialRecord("alice", "cmc", token, verified=True))

        assert await resolver.get_auth("bob", "cmc") is None

    def test_repr_hides_values(self):
        credential = ResolvedCredential({"API_KEY": "super-secret"}, verified=True)

        assert "super-secret" not in repr(credential)
        assert "API_KEY" in repr(credential)


class TestInjectEnv:
    """Test cases for filling a service env template from credentials."""

    def test_fills_empty_values_only(self):
        credential = ResolvedCredential({"API_KEY": "user-key", "REGION": "us"}, True)

        env = inject_env({"API_KEY": "", "REGION": "eu"}, credential)

        assert env == {"API_KEY": "user-key", "REGION": "eu"}

    def test_template_not_modified(self):
        template = {"API_KEY": ""}
        inject_env(template, ResolvedCredential({"API_KEY": "k"}, True))

        assert template == {"API_KEY": ""}

    def test_alias_lookup(self):
        credential = ResolvedCredential({"apiKey": "aliased"}, True)

        env = inject_env({"COINMARKETCAP_API_KEY": ""}, credential, {"COINMARKETCAP_API_KEY": "apiKey"})

        assert env == {"COINMARKETCAP_API_KEY": "aliased"}

    def test_direct_name_preferred_over_alias(self):
        credential = ResolvedCredential({"TOKEN": "direct", "token": "alias"}, True)

        env = inject_env({"TOKEN": ""}, credential, {"TOKEN": "token"})

        assert env == {"TOKEN": "direct"}

    def test_disallowed_variables_skipped(self):
        credential = ResolvedCredential({"PATH": "/evil", "LD_PRELOAD": "x.so"}, True)

        env = inject_env({"PATH": "", "LD_PRELOAD": ""}, credential)

        assert env == {"PATH": "", "LD_PRELOAD": ""}

    def test_notion_token_wrapped_as_headers(self):
        credential = ResolvedCredential({"OPENAPI_MCP_HEADERS": "secret_abc"}, True)

        env = inject_env({"OPENAPI_MCP_HEADERS": ""}, credential)

        assert json.loads(env["OPENAPI_MCP_HEADERS"]) == {
            "Authorization": "Bearer secret_abc",
            "Notion-Version": "2022-06-28",
        }

    def test_notion_json_headers_kept(self):
        headers = '{"Authorization": "Bearer x", "Notion-Version": "2025-01-01"}'
        credential = ResolvedCredential({"OPENAPI_MCP_HEADERS": headers}, True)

        env = inject_env({"OPENAPI_MCP_HEADERS": ""}, credential)

        assert env["OPENAPI_MCP_HEADERS"] == headers

    def test_no_credential(self):
        assert inject_env({"API_KEY": ""}, None) == {"API_KEY": ""}


class TestSubstitutePlaceholders:
    """Test cases for {{VAR}} substitution."""

    def test_nested_values(self):
        value = {
            "headers": {"Authorization": "Bearer {{TOKEN}}"},
            "args": ["{{TOKEN}}", 3, None],
        }

        result = substitute_placeholders(value, {"TOKEN": "t0k"})

        assert result == {"headers": {"Authorization": "Bearer t0k"}, "args": ["t0k", 3, None]}

    def test_unknown_and_empty_names_left_untouched(self):
        result = substitute_placeholders("{{MISSING}} {{EMPTY}}", {"EMPTY": ""})

        assert result == "{{MISSING}} {{EMPTY}}"
