"""Testes para RotationList, open_token e CookieRotator."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from cookie_rotator import (
    AllKeysExhausted,
    ConfigurationError,
    CookieRotator,
    DerivationParams,
    DerivedKey,
    HashPrimitive,
    Mode,
    RotationList,
    RotatorConfig,
    VerificationError,
    derive,
    open_token,
    seal_token,
)

LEGACY = DerivationParams(
    salt=b"saltA", iterations=1000, hash_primitive=HashPrimitive.SHA1, output_length=32
)
CURRENT = DerivationParams(
    salt=b"saltB", iterations=1000, hash_primitive=HashPrimitive.SHA256, output_length=32
)


@pytest.fixture
def keys():
    old_key = derive("s3cr3t", LEGACY, label="old")
    new_key = derive("s3cr3t", CURRENT, label="new")
    return new_key, old_key


def _config(**kwargs):
    defaults = dict(
        secret="s3cr3t",
        schemes={
            "v1": {"hash": "sha1", "iterations": 1000},
            "v2": {"hash": "sha256", "iterations": 1000},
        },
        active_version="v2",
    )
    defaults.update(kwargs)
    return RotatorConfig(**defaults)


def test_scenario_legacy_signed_token_opens_with_index_one(keys):
    """Testa o cenário de migração: token assinado com a chave legada."""
    new_key, old_key = keys

    token = seal_token({"uid": 42}, RotationList([old_key]), Mode.SIGNED)
    result = open_token(token, RotationList([new_key, old_key]), Mode.SIGNED)

    assert result.payload == {"uid": 42}
    assert result.matched_index == 1
    assert result.key_label == "old"
    assert result.needs_upgrade


@pytest.mark.parametrize("mode", [Mode.SIGNED, Mode.ENCRYPTED])
def test_rotation_correctness(keys, mode):
    """Testa que token da chave antiga abre com [new, old] no índice 1."""
    new_key, old_key = keys

    token = seal_token("payload", RotationList([old_key]), mode)
    result = open_token(token, RotationList([new_key, old_key]), mode)

    assert result.payload == "payload"
    assert result.matched_index == 1


@pytest.mark.parametrize("mode", [Mode.SIGNED, Mode.ENCRYPTED])
def test_payload_with_metadata_key_opens(keys, mode):
    """Testa que payloads com a chave reservada de metadados abrem normalmente."""
    new_key, old_key = keys

    token = seal_token({"_rails": 1}, RotationList([new_key]), mode)
    result = open_token(token, RotationList([new_key, old_key]), mode)

    assert result.payload == {"_rails": 1}
    assert result.matched_index == 0
    assert result.expires_at is None


@pytest.mark.parametrize("mode", [Mode.SIGNED, Mode.ENCRYPTED])
def test_rotation_precedence(keys, mode):
    """Testa que a primeira chave válida vence."""
    new_key, _ = keys
    duplicate = DerivedKey(key=new_key.key, label="duplicate")

    token = seal_token("payload", RotationList([new_key]), mode)
    result = open_token(token, RotationList([new_key, duplicate]), mode)

    assert result.matched_index == 0
    assert result.key_label == "new"
    assert not result.needs_upgrade


@pytest.mark.parametrize("mode", [Mode.SIGNED, Mode.ENCRYPTED])
def test_exhaustion(keys, mode):
    """Testa que chave fora da lista resulta em AllKeysExhausted."""
    new_key, old_key = keys
    stranger = derive("outro-segredo", CURRENT, label="stranger")

    token = seal_token("payload", RotationList([stranger]), mode)

    with pytest.raises(AllKeysExhausted) as exc_info:
        open_token(token, RotationList([new_key, old_key]), mode)

    assert exc_info.value.tried == 2
    assert isinstance(exc_info.value, VerificationError)
    assert new_key.key.hex() not in str(exc_info.value)


@pytest.mark.parametrize("mode", [Mode.SIGNED, Mode.ENCRYPTED])
def test_tamper_detection_single_bit_flips(keys, mode):
    """Testa que inverter qualquer bit do token o invalida."""
    new_key, old_key = keys
    rotation = RotationList([new_key, old_key])
    token = seal_token({"uid": 42}, RotationList([old_key]), mode)

    for position in range(len(token)):
        for bit in range(8):
            tampered = bytearray(token)
            tampered[position] ^= 1 << bit
            with pytest.raises(AllKeysExhausted):
                open_token(bytes(tampered), rotation, mode)


def test_open_token_accepts_str_mode_and_token(keys):
    """Testa que modo e token podem ser strings."""
    new_key, _ = keys
    rotation = RotationList([new_key])
    token = seal_token([1, 2], rotation, "encrypted")

    assert open_token(token.decode("ascii"), rotation, "encrypted").payload == [1, 2]


def test_open_token_signed_digest_must_match(keys):
    """Testa que o digest do verificador faz parte do formato."""
    new_key, _ = keys
    rotation = RotationList([new_key])
    token = seal_token("x", rotation, Mode.SIGNED, digest="sha256")

    assert open_token(token, rotation, Mode.SIGNED, digest="sha256").payload == "x"
    with pytest.raises(AllKeysExhausted):
        open_token(token, rotation, Mode.SIGNED)


def test_open_token_encrypted_skips_keys_with_invalid_aes_length(keys):
    """Testa que chave de tamanho inválido para AES é apenas pulada."""
    new_key, _ = keys
    signing_only = DerivedKey(key=b"s" * 64, label="signing")
    token = seal_token("x", RotationList([new_key]), Mode.ENCRYPTED)

    result = open_token(token, RotationList([signing_only, new_key]), Mode.ENCRYPTED)
    assert result.matched_index == 1


def test_open_token_purpose_and_expiry(keys):
    """Testa metadados de propósito e expiração na rotação."""
    new_key, old_key = keys
    rotation = RotationList([new_key, old_key])
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = seal_token(
        "x",
        RotationList([old_key]),
        Mode.ENCRYPTED,
        purpose="cookie.session",
        expires_at=now + timedelta(days=1),
    )

    result = open_token(token, rotation, Mode.ENCRYPTED, purpose="cookie.session", now=now)
    assert result.matched_index == 1
    assert result.expires_at == now + timedelta(days=1)

    with pytest.raises(AllKeysExhausted):
        open_token(token, rotation, Mode.ENCRYPTED, purpose="cookie.other", now=now)
    with pytest.raises(AllKeysExhausted):
        open_token(token, rotation, Mode.ENCRYPTED, purpose="cookie.session",
                   now=datetime(2026, 1, 3))


def test_rotation_list_is_immutable(keys):
    """Testa que with_fallback retorna uma nova lista."""
    new_key, old_key = keys
    rotation = RotationList([new_key])
    extended = rotation.with_fallback(old_key)

    assert len(rotation) == 1
    assert len(extended) == 2
    assert extended.current is new_key
    assert extended[1] is old_key
    assert list(extended) == [new_key, old_key]
    assert "old" in repr(extended)


def test_rotation_list_validation():
    """Testa erros de construção da RotationList."""
    with pytest.raises(ConfigurationError, match="pelo menos uma chave"):
        RotationList([])
    with pytest.raises(ConfigurationError, match="Esperado DerivedKey"):
        RotationList([b"raw-bytes"])


def test_cookie_rotator_builds_lists_in_rotation_order():
    """Testa derivação e ordem das chaves do CookieRotator."""
    rotator = CookieRotator(_config())

    signed = rotator.rotation_list(Mode.SIGNED)
    encrypted = rotator.rotation_list(Mode.ENCRYPTED)

    assert [key.label for key in signed] == ["v2:signed", "v1:signed"]
    assert [key.label for key in encrypted] == ["v2:encrypted", "v1:encrypted"]
    assert len(signed[0]) == 64
    assert len(encrypted[0]) == 32
    assert rotator.get_active_version() == "v2"
    assert rotator.get_all_versions() == ["v2", "v1"]


def test_cookie_rotator_keys_match_independent_derivation():
    """Testa que cada modo usa seu próprio salt e tamanho."""
    rotator = CookieRotator(_config())

    legacy_encrypted = derive(
        "s3cr3t",
        DerivationParams(
            salt=b"authenticated encrypted cookie",
            iterations=1000,
            hash_primitive=HashPrimitive.SHA1,
            output_length=32,
        ),
    )
    legacy_signed = derive(
        "s3cr3t",
        DerivationParams(
            salt=b"signed cookie",
            iterations=1000,
            hash_primitive=HashPrimitive.SHA1,
            output_length=64,
        ),
    )

    assert rotator.rotation_list(Mode.ENCRYPTED)[1].key == legacy_encrypted.key
    assert rotator.rotation_list(Mode.SIGNED)[1].key == legacy_signed.key


def test_cookie_rotator_scenario_with_per_scheme_salts():
    """Testa o cenário de migração via CookieRotator com salts por esquema."""
    config = _config(
        schemes={
            "v1": {"hash": "sha1", "signed_salt": "saltA", "signed_key_length": 32},
            "v2": {"hash": "sha256", "signed_salt": "saltB", "signed_key_length": 32},
        }
    )
    rotator = CookieRotator(config)
    old_key = derive("s3cr3t", LEGACY)

    token = seal_token({"uid": 42}, RotationList([old_key]), Mode.SIGNED)
    result = rotator.open(token, Mode.SIGNED)

    assert result.payload == {"uid": 42}
    assert result.matched_index == 1


@pytest.mark.parametrize("mode", [Mode.SIGNED, Mode.ENCRYPTED])
def test_cookie_rotator_encode_uses_active_scheme(mode):
    """Testa que novos tokens usam a chave do esquema ativo."""
    rotator = CookieRotator(_config())

    token = rotator.encode({"uid": 7}, mode)
    result = rotator.open(token, mode)

    assert result.payload == {"uid": 7}
    assert result.matched_index == 0
    assert result.key_label == f"v2:{mode.value}"


def test_cookie_rotator_refresh_upgrades_legacy_token():
    """Testa reemissão de token aberto por chave legada."""
    legacy = CookieRotator(_config(active_version="v1"))
    current = CookieRotator(_config())
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=2)

    old_token = legacy.encode({"uid": 42}, Mode.ENCRYPTED, expires_at=expires_at)
    payload, new_token = current.refresh(old_token, Mode.ENCRYPTED)

    assert payload == {"uid": 42}
    assert new_token is not None
    result = current.open(new_token, Mode.ENCRYPTED)
    assert result.matched_index == 0
    assert abs(result.expires_at - expires_at) < timedelta(milliseconds=1)

    # Token já atual não é reemitido
    assert current.refresh(new_token, Mode.ENCRYPTED) == ({"uid": 42}, None)


def test_cookie_rotator_refresh_exhausted():
    """Testa refresh com token inválido."""
    rotator = CookieRotator(_config())

    with pytest.raises(AllKeysExhausted):
        rotator.refresh(b"lixo", Mode.SIGNED)


def test_cookie_rotator_encode_with_expires_in():
    """Testa expiração relativa."""
    rotator = CookieRotator(_config())
    token = rotator.encode("x", Mode.SIGNED, expires_in=timedelta(minutes=5))

    assert rotator.open(token, Mode.SIGNED).payload == "x"
    with pytest.raises(AllKeysExhausted):
        rotator.open(token, Mode.SIGNED, now=datetime.now(timezone.utc) + timedelta(hours=1))


def test_cookie_rotator_statistics():
    """Testa estatísticas de uso."""
    legacy = CookieRotator(_config(active_version="v1"))
    rotator = CookieRotator(_config())

    old_token = legacy.encode("a", Mode.SIGNED)
    token = rotator.encode("b", Mode.SIGNED)
    rotator.open(token, Mode.SIGNED)
    rotator.open(old_token, Mode.SIGNED)
    with pytest.raises(AllKeysExhausted):
        rotator.open(b"invalid", Mode.SIGNED)

    assert rotator.get_statistics() == {
        "encodes": 1,
        "opens": 2,
        "fallbacks": 1,
        "failures": 1,
    }


def test_cookie_rotator_audit_callback():
    """Testa callback de auditoria."""
    audit_log = []

    def callback(event, metadata):
        audit_log.append((event, metadata))

    legacy = CookieRotator(_config(active_version="v1"))
    rotator = CookieRotator(_config(audit_callback=callback))

    rotator.open(legacy.encode("a", Mode.ENCRYPTED), Mode.ENCRYPTED)
    with pytest.raises(AllKeysExhausted):
        rotator.open(b"invalid", Mode.ENCRYPTED)

    assert audit_log == [
        ("fallback", {"mode": "encrypted", "index": 1, "key": "v1:encrypted"}),
        ("exhausted", {"mode": "encrypted"}),
    ]


def test_cookie_rotator_audit_callback_exception(caplog):
    """Testa que exceções no callback de auditoria são tratadas."""
    def callback(event, metadata):
        raise RuntimeError("audit fail")

    caplog.set_level(logging.WARNING)
    rotator = CookieRotator(_config(audit_callback=callback))
    rotator.encode("data", Mode.SIGNED)

    assert "Erro no callback de auditoria" in caplog.text


def test_cookie_rotator_logs_without_key_material(caplog):
    """Testa que os logs não expõem chaves nem segredo."""
    caplog.set_level(logging.DEBUG)
    legacy = CookieRotator(_config(active_version="v1"))
    rotator = CookieRotator(_config())

    rotator.open(legacy.encode("a", Mode.SIGNED), Mode.SIGNED)

    assert "Rotação de cookies configurada" in caplog.text
    assert "chave legada v1:signed" in caplog.text
    assert "s3cr3t" not in caplog.text
    for key in rotator.rotation_list(Mode.SIGNED):
        assert key.key.hex() not in caplog.text


def test_cookie_rotator_custom_logger():
    """Testa uso de logger customizado."""
    logger = logging.getLogger("test_logger")
    rotator = CookieRotator(_config(logger=logger))

    assert rotator._logger == logger


def test_cookie_rotator_invalid_encrypted_key_length():
    """Testa erro fatal quando a chave de criptografia não serve para AES."""
    config = _config(schemes={"v1": {"hash": "sha1", "encrypted_key_length": 20}},
                     active_version="v1")

    with pytest.raises(ConfigurationError, match="Chave de criptografia da versão 'v1'"):
        CookieRotator(config)
