"""CookieRotator - Abertura de cookies com rotação de chaves."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import Lock
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .config import RotatorConfig
from .errors import AllKeysExhausted, ConfigurationError
from .kdf import DerivedKey, HashPrimitive, KeyGenerator
from .messages import (
    AES_KEY_SIZES,
    InvalidMessage,
    MessageEncryptor,
    MessageVerifier,
    resolve_expiry,
)


class AtomicCounter:
    """Thread-safe counter for statistics tracking."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = Lock()

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def value(self) -> int:
        with self._lock:
            return self._value


class Mode(Enum):
    """Modo criptográfico do token."""

    SIGNED = "signed"
    ENCRYPTED = "encrypted"


class RotationList:
    """Lista imutável de chaves, da mais nova (preferida) à mais antiga.

    Construída uma vez na inicialização e compartilhada sem lock entre
    quaisquer chamadores concorrentes. ``with_fallback`` não altera a lista:
    retorna uma nova com a chave acrescentada ao final.
    """

    __slots__ = ("_keys",)

    def __init__(self, keys: Iterable[DerivedKey]):
        keys = tuple(keys)
        if not keys:
            raise ConfigurationError("RotationList precisa de pelo menos uma chave")
        for key in keys:
            if not isinstance(key, DerivedKey):
                raise ConfigurationError(f"Esperado DerivedKey, recebido: {type(key)}")
        self._keys = keys

    @property
    def current(self) -> DerivedKey:
        """Chave preferida, usada para emitir novos tokens."""
        return self._keys[0]

    def with_fallback(self, key: DerivedKey) -> "RotationList":
        return RotationList(self._keys + (key,))

    def __iter__(self) -> Iterator[DerivedKey]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __getitem__(self, index: int) -> DerivedKey:
        return self._keys[index]

    def __repr__(self) -> str:
        return f"RotationList({[key.label for key in self._keys]})"


@dataclass(frozen=True)
class OpenResult:
    """Resultado de uma abertura bem-sucedida.

    Attributes:
        payload: Valor contido no token
        matched_index: Índice da chave que abriu o token (0 = atual)
        key_label: Rótulo da chave que abriu o token
        expires_at: Expiração gravada no token, se houver
    """

    payload: Any
    matched_index: int
    key_label: str
    expires_at: Optional[datetime] = None

    @property
    def needs_upgrade(self) -> bool:
        """True quando uma chave legada abriu o token."""
        return self.matched_index > 0


def _open_with(
    key: DerivedKey,
    token: Union[str, bytes],
    mode: Mode,
    digest: HashPrimitive,
    purpose: Optional[str],
    now: Optional[datetime],
) -> Tuple[Any, Optional[datetime]]:
    if mode is Mode.SIGNED:
        return MessageVerifier(key.key, digest).verify(token, purpose, now)
    try:
        encryptor = MessageEncryptor(key.key)
    except ConfigurationError as exc:
        # Chave com tamanho inválido para AES-GCM nunca abre o token
        raise InvalidMessage(str(exc)) from exc
    return encryptor.decrypt_and_verify(token, purpose, now)


def open_token(
    token: Union[str, bytes],
    keys: RotationList,
    mode: Mode,
    *,
    digest: Union[str, HashPrimitive] = HashPrimitive.SHA1,
    purpose: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OpenResult:
    """Abre um token tentando cada chave em ordem estrita.

    A primeira chave que abre o token encerra a busca; sucesso criptográfico
    com uma chave é conclusivo. Falhas de assinatura, tag ou estrutura de
    uma chave apenas passam para a próxima.

    Args:
        token: Token assinado ou criptografado
        keys: Chaves candidatas, da mais nova à mais antiga
        mode: Mode.SIGNED ou Mode.ENCRYPTED
        digest: Hash do HMAC (apenas modo assinado)
        purpose: Propósito esperado nos metadados (opcional)
        now: Instante de referência para expiração (padrão: agora, UTC)

    Returns:
        OpenResult com o payload e o índice da chave usada

    Raises:
        AllKeysExhausted: Se nenhuma chave abrir o token
    """
    mode = Mode(mode)
    digest = HashPrimitive.parse(digest)
    if now is not None and now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    for index, key in enumerate(keys):
        try:
            payload, expires_at = _open_with(key, token, mode, digest, purpose, now)
        except InvalidMessage:
            continue
        return OpenResult(
            payload=payload, matched_index=index, key_label=key.label, expires_at=expires_at
        )

    raise AllKeysExhausted(len(keys))


def seal_token(
    value: Any,
    keys: RotationList,
    mode: Mode,
    *,
    digest: Union[str, HashPrimitive] = HashPrimitive.SHA1,
    purpose: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> bytes:
    """Emite um token com a chave atual (``keys[0]``)."""
    mode = Mode(mode)
    key = keys.current
    if mode is Mode.SIGNED:
        return MessageVerifier(key.key, digest).generate(value, purpose, expires_at)
    return MessageEncryptor(key.key).encrypt_and_sign(value, purpose, expires_at)


class CookieRotator:
    """Rotacionador de chaves de cookies assinados e criptografados.

    Esta classe fornece:
    - Derivação PBKDF2 das chaves de cada esquema (atual e legados)
    - Uma RotationList imutável por modo, esquema ativo primeiro
    - Emissão de tokens sempre com a chave atual
    - Abertura com fallback para chaves legadas
    - Reemissão (refresh) de tokens abertos por chaves legadas
    - Auditoria configurável via callbacks
    - Estatísticas de uso

    Após a construção nada é alterado além dos contadores, então uma única
    instância pode ser compartilhada entre threads.

    Attributes:
        config: Configuração do rotacionador
    """

    def __init__(self, config: RotatorConfig):
        """Inicializa o CookieRotator derivando todas as chaves.

        Args:
            config: Configuração do rotacionador

        Raises:
            ConfigurationError: Se alguma derivação for inválida
        """
        self.config = config
        self._logger = config.logger or logging.getLogger(__name__)
        self._generator = KeyGenerator(config.secret)
        self._versions = config.rotation_order()

        # Estatísticas (thread-safe atomic counters)
        self._stats = {
            "encodes": AtomicCounter(),
            "opens": AtomicCounter(),
            "fallbacks": AtomicCounter(),
            "failures": AtomicCounter(),
        }

        self._lists = self._build_rotation_lists()

        self._logger.info(
            f"Rotação de cookies configurada: ativa={config.active_version}, "
            f"versões={self._versions}"
        )

    def _build_rotation_lists(self) -> Dict[Mode, RotationList]:
        """Deriva as chaves de todos os esquemas, na ordem de rotação."""
        signed: List[DerivedKey] = []
        encrypted: List[DerivedKey] = []

        for version in self._versions:
            scheme = self.config.scheme(version)
            signed.append(self._generator.generate(scheme.signed, label=f"{version}:signed"))

            encrypted_key = self._generator.generate(
                scheme.encrypted, label=f"{version}:encrypted"
            )
            if len(encrypted_key) not in AES_KEY_SIZES:
                raise ConfigurationError(
                    f"Chave de criptografia da versão '{version}' deve ter {AES_KEY_SIZES} bytes, "
                    f"configurado: {len(encrypted_key)}"
                )
            encrypted.append(encrypted_key)

        return {Mode.SIGNED: RotationList(signed), Mode.ENCRYPTED: RotationList(encrypted)}

    def rotation_list(self, mode: Mode) -> RotationList:
        """Retorna a RotationList do modo."""
        return self._lists[Mode(mode)]

    def get_active_version(self) -> str:
        return self.config.active_version

    def get_all_versions(self) -> List[str]:
        """Retorna as versões na ordem de tentativa."""
        return list(self._versions)

    def encode(
        self,
        value: Any,
        mode: Mode = Mode.ENCRYPTED,
        *,
        purpose: Optional[str] = None,
        expires_in: Optional[timedelta] = None,
        expires_at: Optional[datetime] = None,
    ) -> bytes:
        """Emite um token com a chave do esquema ativo.

        Args:
            value: Valor serializável em JSON
            mode: Modo do token (padrão: criptografado)
            purpose: Propósito gravado nos metadados (opcional)
            expires_in: Validade relativa (opcional)
            expires_at: Expiração absoluta (opcional)

        Returns:
            bytes: Token ASCII

        Examples:
            >>> token = rotator.encode({"uid": 42}, Mode.SIGNED)
        """
        mode = Mode(mode)
        token = seal_token(
            value,
            self._lists[mode],
            mode,
            digest=self.config.signed_digest,
            purpose=purpose,
            expires_at=resolve_expiry(expires_at, expires_in),
        )

        self._stats["encodes"].increment()
        self._audit("encode", {"mode": mode.value, "version": self.get_active_version()})

        return token

    def open(
        self,
        token: Union[str, bytes],
        mode: Mode = Mode.ENCRYPTED,
        *,
        purpose: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OpenResult:
        """Abre um token tentando as chaves da mais nova à mais antiga.

        Este método não reescreve o token; ``OpenResult.needs_upgrade``
        indica ao chamador que ele deve reemiti-lo (ver ``refresh``).

        Raises:
            AllKeysExhausted: Se nenhuma chave abrir o token
        """
        mode = Mode(mode)
        try:
            result = open_token(
                token,
                self._lists[mode],
                mode,
                digest=self.config.signed_digest,
                purpose=purpose,
                now=now,
            )
        except AllKeysExhausted:
            self._stats["failures"].increment()
            self._audit("exhausted", {"mode": mode.value})
            raise

        self._stats["opens"].increment()
        if result.needs_upgrade:
            self._stats["fallbacks"].increment()
            self._logger.debug(
                f"Token {mode.value} aberto com chave legada {result.key_label} "
                f"(índice {result.matched_index})"
            )
            self._audit(
                "fallback",
                {"mode": mode.value, "index": result.matched_index, "key": result.key_label},
            )

        return result

    def refresh(
        self,
        token: Union[str, bytes],
        mode: Mode = Mode.ENCRYPTED,
        *,
        purpose: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Any, Optional[bytes]]:
        """Abre o token e o reemite com a chave atual se necessário.

        Returns:
            Tuple[Any, Optional[bytes]]: (payload, novo token ou None se o
            token já usa a chave atual). A expiração original é preservada.

        Raises:
            AllKeysExhausted: Se nenhuma chave abrir o token
        """
        result = self.open(token, mode, purpose=purpose, now=now)
        if not result.needs_upgrade:
            return result.payload, None

        new_token = self.encode(
            result.payload, mode, purpose=purpose, expires_at=result.expires_at
        )
        return result.payload, new_token

    def _audit(self, event: str, metadata: dict) -> None:
        """Registra evento de auditoria se callback configurado."""
        if self.config.audit_callback:
            try:
                self.config.audit_callback(event, metadata)
            except Exception as e:
                self._logger.warning(f"Erro no callback de auditoria: {e}")

    def get_statistics(self) -> dict:
        """Retorna estatísticas de uso.

        Examples:
            >>> stats = rotator.get_statistics()
            >>> print(f"Fallbacks: {stats['fallbacks']}")
        """
        return {name: counter.value() for name, counter in self._stats.items()}
