"""CookieRotator - Rotação de chaves para cookies assinados e criptografados.

Este pacote fornece:
- Derivação de chaves PBKDF2-HMAC com hash, salt, iterações e tamanho configuráveis
- Listas de rotação imutáveis (chave atual primeiro, legadas como fallback)
- Verificação HMAC e criptografia autenticada AES-GCM
- Reemissão de tokens abertos por chaves legadas
- Configuração via ambiente ou arquivo .env
"""

from .config import KeyScheme, RotatorConfig
from .errors import AllKeysExhausted, ConfigurationError, CookieRotatorError, VerificationError
from .kdf import DerivationParams, DerivedKey, HashPrimitive, KeyGenerator, derive
from .rotator import CookieRotator, Mode, OpenResult, RotationList, open_token, seal_token
from .utils import normalize_salt, normalize_version

__version__ = "0.1.0"

__all__ = [
    # Classes principais
    "CookieRotator",
    "RotationList",
    "OpenResult",
    "Mode",
    "open_token",
    "seal_token",
    # Derivação
    "DerivationParams",
    "DerivedKey",
    "HashPrimitive",
    "KeyGenerator",
    "derive",
    # Configuração
    "RotatorConfig",
    "KeyScheme",
    # Erros
    "CookieRotatorError",
    "ConfigurationError",
    "VerificationError",
    "AllKeysExhausted",
    # Utilidades
    "normalize_salt",
    "normalize_version",
]
