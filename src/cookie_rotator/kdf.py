"""Derivação de chaves com PBKDF2-HMAC."""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Dict, Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import ConfigurationError
from .utils import normalize_secret

logger = logging.getLogger(__name__)

# Comprimentos padrão: chave de assinatura HMAC e chave AES-256-GCM
DEFAULT_SIGNED_KEY_LENGTH = 64
DEFAULT_ENCRYPTED_KEY_LENGTH = 32
DEFAULT_ITERATIONS = 1000


class HashPrimitive(Enum):
    """Função hash usada pelo HMAC interno do PBKDF2 (e pelo verificador)."""

    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"

    @classmethod
    def parse(cls, value: Union[str, "HashPrimitive"]) -> "HashPrimitive":
        """Converte nomes como "SHA256", "sha-256" ou "sha1" no enum.

        Raises:
            ConfigurationError: Se o hash não for suportado
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ConfigurationError(f"Hash deve ser str, recebido: {type(value)}")
        normalized = value.strip().lower().replace("-", "").replace("_", "")
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(
                f"Hash não suportado: '{value}'. "
                f"Suportados: {[member.value for member in cls]}"
            ) from None

    def algorithm(self) -> hashes.HashAlgorithm:
        """Retorna a instância de algoritmo do cryptography."""
        return _ALGORITHMS[self]()


_ALGORITHMS = {
    HashPrimitive.SHA1: hashes.SHA1,
    HashPrimitive.SHA256: hashes.SHA256,
    HashPrimitive.SHA384: hashes.SHA384,
    HashPrimitive.SHA512: hashes.SHA512,
}


@dataclass(frozen=True)
class DerivationParams:
    """Parâmetros imutáveis que determinam totalmente uma chave derivada.

    Hash e tamanho de saída não têm padrão: cada chave declara os seus.

    Attributes:
        salt: Salt da derivação (pode ser vazio, mas deve bater exatamente
              com a configuração original)
        hash_primitive: Hash usado pelo HMAC do PBKDF2
        output_length: Tamanho da chave em bytes (> 0)
        iterations: Número de iterações PBKDF2 (>= 1)
        salt_hash: Hash SHA256 do salt para validação de integridade (opcional)
    """

    salt: bytes
    hash_primitive: HashPrimitive
    output_length: int
    iterations: int = DEFAULT_ITERATIONS
    salt_hash: Optional[str] = None

    def __post_init__(self) -> None:
        """Valida parâmetros após inicialização."""
        if isinstance(self.salt, bytearray):
            object.__setattr__(self, "salt", bytes(self.salt))
        if not isinstance(self.salt, bytes):
            raise ConfigurationError(f"Salt deve ser bytes, recebido: {type(self.salt)}")

        object.__setattr__(self, "hash_primitive", HashPrimitive.parse(self.hash_primitive))

        # bool é subclasse de int, mas True não é uma contagem válida
        if not isinstance(self.iterations, int) or isinstance(self.iterations, bool):
            raise ConfigurationError(f"Iterações devem ser int, recebido: {type(self.iterations)}")
        if self.iterations < 1:
            raise ConfigurationError(f"Iterações devem ser >= 1, recebido: {self.iterations}")

        if not isinstance(self.output_length, int) or isinstance(self.output_length, bool):
            raise ConfigurationError(
                f"Tamanho da chave deve ser int, recebido: {type(self.output_length)}"
            )
        if self.output_length <= 0:
            raise ConfigurationError(
                f"Tamanho da chave deve ser > 0, recebido: {self.output_length}"
            )

        if self.salt_hash is not None and not isinstance(self.salt_hash, str):
            raise ConfigurationError(
                f"Hash do salt deve ser str, recebido: {type(self.salt_hash)}"
            )
        if self.salt_hash:
            computed = hashlib.sha256(self.salt).hexdigest()
            if computed != self.salt_hash.lower():
                raise ConfigurationError(
                    f"Integridade do salt comprometida. "
                    f"Hash esperado: {self.salt_hash}, calculado: {computed}"
                )


@dataclass(frozen=True)
class DerivedKey:
    """Chave derivada e um rótulo legível (nunca o material da chave)."""

    key: bytes
    label: str = ""

    def __repr__(self) -> str:
        return f"DerivedKey(label={self.label!r}, length={len(self.key)})"

    def __len__(self) -> int:
        return len(self.key)


def derive(secret: Union[str, bytes], params: DerivationParams, label: str = "") -> DerivedKey:
    """Deriva uma chave com PBKDF2-HMAC.

    Função pura: os mesmos (secret, params) produzem sempre os mesmos bytes,
    o que mantém decifráveis os cookies já emitidos.

    Args:
        secret: Segredo mestre (str é usado como UTF-8)
        params: Parâmetros de derivação
        label: Rótulo opcional para a chave (e.g. "v1:signed")

    Returns:
        DerivedKey com ``params.output_length`` bytes

    Raises:
        ConfigurationError: Se os parâmetros forem inválidos para PBKDF2
    """
    try:
        kdf = PBKDF2HMAC(
            algorithm=params.hash_primitive.algorithm(),
            length=params.output_length,
            salt=params.salt,
            iterations=params.iterations,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Parâmetros de derivação inválidos: {exc}") from exc

    return DerivedKey(key=kdf.derive(normalize_secret(secret)), label=label)


class KeyGenerator:
    """Gerador de chaves com cache para um segredo mestre fixo.

    O cache é thread-safe e indexado pelos parâmetros de derivação, então
    cada combinação é calculada uma única vez por processo.
    """

    def __init__(self, secret: Union[str, bytes]):
        self._secret = normalize_secret(secret)
        if not self._secret:
            raise ConfigurationError("Segredo mestre não pode ser vazio")
        self._cache: Dict[DerivationParams, bytes] = {}
        self._lock = RLock()

    def generate(self, params: DerivationParams, label: str = "") -> DerivedKey:
        """Deriva (ou recupera do cache) a chave para ``params``."""
        with self._lock:
            if params in self._cache:
                return DerivedKey(key=self._cache[params], label=label)

        derived = derive(self._secret, params, label=label)
        logger.debug(
            "Chave derivada: label=%s hash=%s iterations=%d length=%d",
            label,
            params.hash_primitive.value,
            params.iterations,
            params.output_length,
        )

        with self._lock:
            self._cache[params] = derived.key

        return derived

    def clear_cache(self) -> None:
        """Limpa o cache de chaves derivadas."""
        with self._lock:
            self._cache.clear()
