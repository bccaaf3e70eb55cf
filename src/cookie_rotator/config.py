"""Configurações e dataclasses para o CookieRotator."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Self, Union

from .errors import ConfigurationError
from .kdf import (
    DEFAULT_ENCRYPTED_KEY_LENGTH,
    DEFAULT_ITERATIONS,
    DEFAULT_SIGNED_KEY_LENGTH,
    DerivationParams,
    HashPrimitive,
)
from .utils import (
    ENV_CHECKSUM_KEY,
    compute_env_checksum,
    normalize_salt,
    normalize_secret,
    normalize_version,
    parse_env_file,
    version_sort_key,
)

DEFAULT_SIGNED_SALT = "signed cookie"
DEFAULT_ENCRYPTED_SALT = "authenticated encrypted cookie"

# Prefixos das variáveis por versão de esquema (formato PREFIXO__<versão>)
_HASH_PREFIX = "COOKIE_KDF_HASH"
_ITERATIONS_PREFIX = "COOKIE_KDF_ITERATIONS"
_SIGNED_LENGTH_PREFIX = "COOKIE_SIGNED_KEY_LENGTH"
_ENCRYPTED_LENGTH_PREFIX = "COOKIE_ENCRYPTED_KEY_LENGTH"
_SIGNED_SALT_PREFIX = "COOKIE_SIGNED_SALT"
_ENCRYPTED_SALT_PREFIX = "COOKIE_ENCRYPTED_SALT"


@dataclass(frozen=True)
class KeyScheme:
    """Esquema de derivação imutável e validado de uma versão.

    Um esquema define como as chaves de assinatura e de criptografia são
    derivadas do segredo mestre. Cada modo tem seu próprio salt e tamanho
    de chave, configurados de forma independente.

    Attributes:
        version: Nome da versão (e.g., "v1", "v2")
        signed: Parâmetros de derivação da chave de assinatura
        encrypted: Parâmetros de derivação da chave de criptografia
    """

    version: str
    signed: DerivationParams
    encrypted: DerivationParams


@dataclass
class RotatorConfig:
    """Configuração do CookieRotator.

    Attributes:
        secret: Segredo mestre da aplicação (secret_key_base)
        schemes: Dicionário de versões e seus parâmetros de derivação
                 Formato: {version: {hash, iterations?, signed_key_length?,
                 encrypted_key_length?, signed_salt?, encrypted_salt?}}
        active_version: Esquema usado para emitir novos tokens
        signed_salt: Salt padrão da chave de assinatura
        encrypted_salt: Salt padrão da chave de criptografia
        signed_salt_hash: Hash SHA256 do salt de assinatura (opcional)
        encrypted_salt_hash: Hash SHA256 do salt de criptografia (opcional)
        verify_salt_integrity: Se deve validar hash dos salts (padrão: True)
        signed_digest: Hash do HMAC das mensagens assinadas (padrão: sha1)
        audit_callback: Callback opcional para auditoria de eventos
        logger: Logger opcional para mensagens (usa logging padrão se None)
    """

    secret: Union[str, bytes]
    schemes: Dict[str, Dict[str, Any]]
    active_version: str
    signed_salt: Union[str, bytes] = DEFAULT_SIGNED_SALT
    encrypted_salt: Union[str, bytes] = DEFAULT_ENCRYPTED_SALT
    signed_salt_hash: Optional[str] = None
    encrypted_salt_hash: Optional[str] = None
    verify_salt_integrity: bool = True
    signed_digest: Union[str, HashPrimitive] = HashPrimitive.SHA1
    audit_callback: Optional[Callable] = None
    logger: Optional[Any] = None  # logging.Logger

    def __post_init__(self) -> None:
        """Valida configuração após inicialização."""
        try:
            self.secret = normalize_secret(self.secret)
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
        if not self.secret:
            raise ConfigurationError("Segredo mestre não pode ser vazio")

        if not self.schemes:
            raise ConfigurationError("Pelo menos um esquema de chaves deve ser configurado")

        schemes = {}
        for version, scheme_config in self.schemes.items():
            version = normalize_version(version)
            if not isinstance(scheme_config, Mapping):
                raise ConfigurationError(
                    f"Configuração da versão '{version}' deve ser um dicionário"
                )
            schemes[version] = dict(scheme_config)
        self.schemes = schemes
        self.active_version = normalize_version(self.active_version)

        if self.active_version not in self.schemes:
            raise ConfigurationError(
                f"Versão ativa '{self.active_version}' não existe nos esquemas configurados. "
                f"Versões disponíveis: {list(self.schemes.keys())}"
            )

        self.signed_salt = self._salt(self.signed_salt, "signed_salt")
        self.encrypted_salt = self._salt(self.encrypted_salt, "encrypted_salt")
        self.signed_digest = HashPrimitive.parse(self.signed_digest)

        # Valida cada esquema construindo seus parâmetros
        for version in self.schemes:
            self.scheme(version)

    @staticmethod
    def _salt(value: Any, name: str) -> bytes:
        try:
            return normalize_salt(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Salt inválido em '{name}': {exc}") from exc

    @staticmethod
    def _int(value: Any, name: str) -> int:
        if isinstance(value, bool):
            raise ConfigurationError(f"'{name}' deve ser inteiro, recebido: {value!r}")
        # int() truncaria 1000.7 para 1000
        if isinstance(value, float) and not value.is_integer():
            raise ConfigurationError(f"'{name}' deve ser inteiro, recebido: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"'{name}' deve ser inteiro, recebido: {value!r}") from exc

    def scheme(self, version: str) -> KeyScheme:
        """Constrói o KeyScheme validado de uma versão.

        Raises:
            ConfigurationError: Se a versão não existir ou for inválida
        """
        version = normalize_version(version)
        if version not in self.schemes:
            raise ConfigurationError(
                f"Versão '{version}' não encontrada. "
                f"Versões disponíveis: {list(self.schemes.keys())}"
            )

        config = self.schemes[version]
        if "hash" not in config:
            raise ConfigurationError(f"Configuração da versão '{version}' deve conter 'hash'")

        hash_primitive = HashPrimitive.parse(config["hash"])
        iterations = self._int(config.get("iterations", DEFAULT_ITERATIONS), f"{version}.iterations")

        # Salts por esquema sobrescrevem os globais; os hashes globais só
        # valem para os salts globais
        signed_salt = self.signed_salt
        signed_hash = self.signed_salt_hash
        if config.get("signed_salt") is not None:
            signed_salt = self._salt(config["signed_salt"], f"{version}.signed_salt")
            signed_hash = config.get("signed_salt_hash")

        encrypted_salt = self.encrypted_salt
        encrypted_hash = self.encrypted_salt_hash
        if config.get("encrypted_salt") is not None:
            encrypted_salt = self._salt(config["encrypted_salt"], f"{version}.encrypted_salt")
            encrypted_hash = config.get("encrypted_salt_hash")

        if not self.verify_salt_integrity:
            signed_hash = encrypted_hash = None

        return KeyScheme(
            version=version,
            signed=DerivationParams(
                salt=signed_salt,
                iterations=iterations,
                hash_primitive=hash_primitive,
                output_length=self._int(
                    config.get("signed_key_length", DEFAULT_SIGNED_KEY_LENGTH),
                    f"{version}.signed_key_length",
                ),
                salt_hash=signed_hash,
            ),
            encrypted=DerivationParams(
                salt=encrypted_salt,
                iterations=iterations,
                hash_primitive=hash_primitive,
                output_length=self._int(
                    config.get("encrypted_key_length", DEFAULT_ENCRYPTED_KEY_LENGTH),
                    f"{version}.encrypted_key_length",
                ),
                salt_hash=encrypted_hash,
            ),
        )

    def rotation_order(self) -> List[str]:
        """Versões na ordem de tentativa: ativa primeiro, depois as demais."""
        return [self.active_version] + [v for v in self.schemes if v != self.active_version]

    @classmethod
    def from_environment(cls, **kwargs: Any) -> Self:
        """Cria configuração a partir de variáveis de ambiente.

        Formato esperado:
            SECRET_KEY_BASE=...
            COOKIE_KDF_HASH__v1=sha1
            COOKIE_KDF_ITERATIONS__v1=1000 (opcional)
            COOKIE_KDF_HASH__v2=sha256
            ACTIVE_COOKIE_SCHEME=v2 (opcional com um único esquema)

        Args:
            **kwargs: Argumentos adicionais para RotatorConfig

        Returns:
            RotatorConfig configurado a partir do ambiente

        Raises:
            ConfigurationError: Se configuração for inválida ou incompleta
        """
        return cls._from_mapping(os.environ, **kwargs)

    @classmethod
    def from_file(cls, filename: str, **kwargs: Any) -> Self:
        """Cria configuração a partir de um arquivo .env.

        Se o arquivo contiver COOKIE_ROTATOR_ENV_CHECKSUM, o checksum é
        validado antes de qualquer chave ser derivada.

        Args:
            filename: Caminho do arquivo .env
            **kwargs: Argumentos adicionais para RotatorConfig

        Returns:
            RotatorConfig configurado a partir do arquivo

        Raises:
            FileNotFoundError: Se o arquivo não existir
            ConfigurationError: Se configuração for inválida ou incompleta
        """
        env_path = Path(filename)
        if not env_path.exists():
            raise FileNotFoundError(f"Arquivo .env não encontrado: {filename}")

        data = parse_env_file(env_path)
        checksum = data.get(ENV_CHECKSUM_KEY)
        if checksum:
            computed = compute_env_checksum(data)
            if computed != checksum:
                raise ConfigurationError("Checksum do arquivo .env inválido")

        return cls._from_mapping(data, **kwargs)

    @classmethod
    def _from_mapping(
        cls,
        mapping: Mapping[str, str],
        secret_key: str = "SECRET_KEY_BASE",
        active_version_key: str = "ACTIVE_COOKIE_SCHEME",
        **kwargs: Any,
    ) -> Self:
        """Cria configuração a partir de um mapeamento de variáveis."""
        secret = mapping.get(secret_key)
        if not secret:
            raise ConfigurationError(f"Segredo mestre não configurado ({secret_key})")

        def lookup(prefix: str, version: str) -> Optional[str]:
            # Busca case-insensitive pela versão
            wanted = f"{prefix}__{version}".upper()
            for k in mapping:
                if k.upper() == wanted:
                    return mapping[k] or None
            return None

        schemes: Dict[str, Dict[str, Any]] = {}
        for env_key in mapping:
            if not env_key.startswith(f"{_HASH_PREFIX}__"):
                continue
            version = normalize_version(env_key.split("__", 1)[1])
            hash_name = mapping.get(env_key)
            if not hash_name:
                continue

            scheme: Dict[str, Any] = {"hash": hash_name}
            optional = {
                "iterations": _ITERATIONS_PREFIX,
                "signed_key_length": _SIGNED_LENGTH_PREFIX,
                "encrypted_key_length": _ENCRYPTED_LENGTH_PREFIX,
                "signed_salt": _SIGNED_SALT_PREFIX,
                "encrypted_salt": _ENCRYPTED_SALT_PREFIX,
            }
            for field, prefix in optional.items():
                value = lookup(prefix, version)
                if value is not None:
                    scheme[field] = value
            schemes[version] = scheme

        if not schemes:
            raise ConfigurationError(
                f"Nenhum esquema de chaves encontrado no ambiente. "
                f"Formato esperado: {_HASH_PREFIX}__<version>=<hash>"
            )

        # Mais recente primeiro
        schemes = {
            v: schemes[v] for v in sorted(schemes, key=version_sort_key, reverse=True)
        }

        active_version = mapping.get(active_version_key)
        if not active_version:
            # Se houver apenas um esquema, usa-o
            if len(schemes) == 1:
                active_version = next(iter(schemes.keys()))
            else:
                raise ConfigurationError(
                    f"Versão ativa não configurada ({active_version_key}) "
                    f"e há múltiplos esquemas disponíveis"
                )

        optional_globals = {
            "signed_salt": "COOKIE_SIGNED_SALT",
            "encrypted_salt": "COOKIE_ENCRYPTED_SALT",
            "signed_salt_hash": "COOKIE_SIGNED_SALT_HASH",
            "encrypted_salt_hash": "COOKIE_ENCRYPTED_SALT_HASH",
            "signed_digest": "COOKIE_SIGNED_DIGEST",
        }
        for field, env_name in optional_globals.items():
            if mapping.get(env_name) and field not in kwargs:
                kwargs[field] = mapping[env_name]

        return cls(secret=secret, schemes=schemes, active_version=active_version, **kwargs)
