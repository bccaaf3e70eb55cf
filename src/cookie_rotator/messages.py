"""Codecs de mensagens assinadas e criptografadas.

Formatos (tokens ASCII, partes separadas por ``--``):

- Assinado: ``base64(json)--hex(HMAC(chave, base64(json)))``
- Criptografado (AES-GCM): ``base64(ciphertext)--base64(nonce)--base64(tag)``

Metadados opcionais (propósito e expiração) envolvem o payload em
``{"_rails": {"message": base64(json), "exp": iso8601, "pur": propósito}}``,
compatível com o formato de cookies com metadados do Rails.

NOTA DE SEGURANÇA: nunca registrar em log payloads, tokens ou chaves.
"""

import base64
import binascii
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hmac
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.constant_time import bytes_eq

from .errors import ConfigurationError
from .kdf import HashPrimitive

SEPARATOR = "--"
NONCE_SIZE = 12  # 96-bit
TAG_SIZE = 16
AES_KEY_SIZES = (16, 24, 32)

_METADATA_KEY = "_rails"


class InvalidMessage(Exception):
    """Falha ao abrir uma mensagem com uma chave específica.

    Uso interno: o laço de rotação converte estas falhas em tentativas da
    próxima chave.
    """

    pass


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: str) -> bytes:
    """Decodifica base64 padrão rejeitando codificações não canônicas."""
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidMessage("base64 inválido") from exc
    if _b64encode(raw) != data:
        raise InvalidMessage("base64 não canônico")
    return raw


def _as_text(token: Union[str, bytes]) -> str:
    if isinstance(token, str):
        if not token.isascii():
            raise InvalidMessage("token não é ASCII")
        return token
    if isinstance(token, (bytes, bytearray)):
        try:
            return bytes(token).decode("ascii")
        except UnicodeDecodeError as exc:
            raise InvalidMessage("token não é ASCII") from exc
    raise InvalidMessage(f"tipo de token não suportado: {type(token)}")


def _format_time(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _parse_time(value: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidMessage("expiração inválida") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def resolve_expiry(
    expires_at: Optional[datetime] = None,
    expires_in: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Resolve ``expires_at``/``expires_in`` em um instante UTC absoluto."""
    if expires_at is not None and expires_in is not None:
        raise ValueError("Informe expires_at ou expires_in, não ambos")
    if expires_in is not None:
        return (now or datetime.now(timezone.utc)) + expires_in
    if expires_at is not None and expires_at.tzinfo is None:
        return expires_at.replace(tzinfo=timezone.utc)
    return expires_at


def _looks_like_envelope(value: Any) -> bool:
    return isinstance(value, dict) and len(value) == 1 and _METADATA_KEY in value


def serialize_payload(
    value: Any,
    purpose: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> bytes:
    """Serializa o payload em JSON, com envelope de metadados se necessário.

    Um valor que já tem a forma do envelope (``{"_rails": ...}``) é sempre
    envelopado, senão seria lido como metadados na abertura.
    """
    data = orjson.dumps(value)
    if purpose is None and expires_at is None and not _looks_like_envelope(value):
        return data

    envelope = {
        _METADATA_KEY: {
            "message": _b64encode(data),
            "exp": _format_time(expires_at) if expires_at is not None else None,
            "pur": purpose,
        }
    }
    return orjson.dumps(envelope)


def deserialize_payload(
    data: bytes,
    purpose: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Any, Optional[datetime]]:
    """Desserializa o payload e valida propósito/expiração.

    Returns:
        Tuple[Any, Optional[datetime]]: (valor, expiração)

    Raises:
        InvalidMessage: JSON inválido, propósito divergente ou token expirado
    """
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise InvalidMessage("JSON inválido") from exc

    if not _looks_like_envelope(parsed):
        if purpose is not None:
            raise InvalidMessage("propósito ausente")
        return parsed, None

    metadata = parsed[_METADATA_KEY]
    if not isinstance(metadata, dict) or not isinstance(metadata.get("message"), str):
        raise InvalidMessage("metadados inválidos")

    if metadata.get("pur") != purpose:
        raise InvalidMessage("propósito divergente")

    expires_at = None
    if metadata.get("exp") is not None:
        expires_at = _parse_time(metadata["exp"])
        if expires_at <= (now or datetime.now(timezone.utc)):
            raise InvalidMessage("token expirado")

    try:
        value = orjson.loads(_b64decode(metadata["message"]))
    except orjson.JSONDecodeError as exc:
        raise InvalidMessage("JSON interno inválido") from exc
    return value, expires_at


class MessageVerifier:
    """Assina e verifica mensagens com HMAC (integridade, sem sigilo)."""

    def __init__(self, key: bytes, digest: Union[str, HashPrimitive] = HashPrimitive.SHA1):
        if not key:
            raise ConfigurationError("Chave de assinatura não pode ser vazia")
        self._key = bytes(key)
        self._digest = HashPrimitive.parse(digest)

    def _generate_digest(self, data: str) -> str:
        mac = hmac.HMAC(self._key, self._digest.algorithm())
        mac.update(data.encode("ascii"))
        return mac.finalize().hex()

    def generate(
        self,
        value: Any,
        purpose: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> bytes:
        data = _b64encode(serialize_payload(value, purpose, expires_at))
        return f"{data}{SEPARATOR}{self._generate_digest(data)}".encode("ascii")

    def verify(
        self,
        token: Union[str, bytes],
        purpose: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Any, Optional[datetime]]:
        """Verifica o token e retorna (valor, expiração).

        Raises:
            InvalidMessage: Assinatura inválida ou estrutura malformada
        """
        text = _as_text(token)
        data, sep, digest = text.rpartition(SEPARATOR)
        if not sep or not data or not digest:
            raise InvalidMessage("estrutura de mensagem assinada inválida")

        expected = self._generate_digest(data)
        if not bytes_eq(expected.encode("ascii"), digest.encode("ascii")):
            raise InvalidMessage("assinatura inválida")

        return deserialize_payload(_b64decode(data), purpose, now)


class MessageEncryptor:
    """Criptografia autenticada AES-GCM (sigilo e integridade)."""

    def __init__(self, key: bytes):
        if len(key) not in AES_KEY_SIZES:
            raise ConfigurationError(
                f"Chave AES-GCM deve ter {AES_KEY_SIZES} bytes, recebido: {len(key)}"
            )
        self._cipher = AESGCM(bytes(key))

    def encrypt_and_sign(
        self,
        value: Any,
        purpose: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> bytes:
        plaintext = serialize_payload(value, purpose, expires_at)
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._cipher.encrypt(nonce, plaintext, None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        parts = (_b64encode(ciphertext), _b64encode(nonce), _b64encode(tag))
        return SEPARATOR.join(parts).encode("ascii")

    def decrypt_and_verify(
        self,
        token: Union[str, bytes],
        purpose: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Any, Optional[datetime]]:
        """Descriptografa o token e retorna (valor, expiração).

        Raises:
            InvalidMessage: Tag inválida ou estrutura malformada
        """
        parts = _as_text(token).split(SEPARATOR)
        if len(parts) != 3:
            raise InvalidMessage("estrutura de mensagem criptografada inválida")

        ciphertext, nonce, tag = (_b64decode(part) for part in parts)
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise InvalidMessage("nonce ou tag com tamanho inválido")

        try:
            plaintext = self._cipher.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise InvalidMessage("falha de autenticação") from exc

        return deserialize_payload(plaintext, purpose, now)
