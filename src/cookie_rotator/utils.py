"""Funções auxiliares para o CookieRotator."""

import base64
import binascii
import hashlib
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, TextIO, Union

from dotenv import dotenv_values


ENV_CHECKSUM_KEY = "COOKIE_ROTATOR_ENV_CHECKSUM"

_HEX_PREFIX = "hex:"
_BASE64_PREFIX = "base64:"
_DIGITS = re.compile(r"(\d+)")


def compute_env_checksum(values: Mapping[str, str]) -> str:
    """Calcula checksum SHA256 determinístico para um mapeamento .env."""
    items = []
    for key in sorted(values):
        if key == ENV_CHECKSUM_KEY:
            continue
        value = values.get(key)
        if value is None:
            continue
        items.append(f"{key}={value}")
    payload = "\n".join(items).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def parse_env_stream(stream: TextIO) -> Dict[str, str]:
    """Parseia um stream .env usando python-dotenv."""
    data = dotenv_values(stream=stream)
    return {key: value for key, value in data.items() if value is not None}


def parse_env_file(path: Path) -> Dict[str, str]:
    """Parseia um arquivo .env usando python-dotenv."""
    with path.open("r", encoding="utf-8", errors="strict") as f:
        return parse_env_stream(f)


def normalize_salt(salt: Any) -> bytes:
    """Converte salt para bytes sem adivinhar o formato.

    Um único byte de diferença no salt gera uma chave completamente
    diferente, então strings são tratadas como UTF-8 literal. Salts binários
    precisam de prefixo explícito:

    - bytes (retorna direto)
    - ``"hex:73616c74"``
    - ``"base64:c2FsdA=="``
    - qualquer outra string é codificada em UTF-8

    Args:
        salt: Salt em qualquer formato suportado

    Returns:
        bytes: Salt convertido para bytes

    Raises:
        TypeError: Se salt não for str ou bytes
        ValueError: Se o conteúdo hex/base64 prefixado for inválido

    Examples:
        >>> normalize_salt(b"salt")
        b'salt'
        >>> normalize_salt("hex:73616c74")
        b'salt'
        >>> normalize_salt("base64:c2FsdA==")
        b'salt'
        >>> normalize_salt("signed cookie")
        b'signed cookie'
    """
    if isinstance(salt, (bytes, bytearray)):
        return bytes(salt)

    if not isinstance(salt, str):
        raise TypeError(f"Salt deve ser str ou bytes, recebido: {type(salt)}")

    if salt.startswith(_HEX_PREFIX):
        return bytes.fromhex(salt[len(_HEX_PREFIX):])

    if salt.startswith(_BASE64_PREFIX):
        try:
            return base64.b64decode(salt[len(_BASE64_PREFIX):], validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Salt base64 inválido: {exc}") from exc

    return salt.encode("utf-8")


def normalize_secret(secret: Union[str, bytes, bytearray]) -> bytes:
    """Converte o segredo mestre para bytes.

    Strings são usadas como UTF-8 literal (um secret_key_base em hex é
    usado como texto, não decodificado).
    """
    if isinstance(secret, (bytes, bytearray)):
        return bytes(secret)
    if isinstance(secret, str):
        return secret.encode("utf-8")
    raise TypeError(f"Segredo deve ser str ou bytes, recebido: {type(secret)}")


def normalize_version(version: str) -> str:
    """Normaliza versão para lowercase para compatibilidade cross-platform.

    Examples:
        >>> normalize_version("V1")
        'v1'
    """
    return version.strip().strip("\"'").lower() if version else version


def version_sort_key(version: str) -> List[Any]:
    """Chave de ordenação natural ("v10" vem depois de "v2")."""
    return [int(part) if part.isdigit() else part for part in _DIGITS.split(version)]
