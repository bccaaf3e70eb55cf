"""Exemplo de migração de esquema de derivação (SHA1 -> SHA256) para cookies."""

import logging

from cookie_rotator import AllKeysExhausted, CookieRotator, Mode, RotatorConfig

# Configurar logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SECRET_KEY_BASE = "exemplo-secret-key-base-nao-use-em-producao"


def main():
    """Demonstra leitura de cookies legados e reemissão com a chave nova."""

    print("\n=== Cookie Rotator - Migração SHA1 -> SHA256 ===\n")

    # 1. Aplicação antiga: apenas o esquema legado (PBKDF2-SHA1)
    print("1. Emitindo cookies com o esquema legado v1 (SHA1)...")
    legacy = CookieRotator(
        RotatorConfig(
            secret=SECRET_KEY_BASE,
            schemes={"v1": {"hash": "sha1", "iterations": 1000}},
            active_version="v1",
            logger=logger,
        )
    )
    old_signed = legacy.encode({"uid": 42}, Mode.SIGNED)
    old_encrypted = legacy.encode({"uid": 42, "cart": [1, 2, 3]}, Mode.ENCRYPTED)
    print(f"   Assinado:      {old_signed[:40]!r}...")
    print(f"   Criptografado: {old_encrypted[:40]!r}...")

    # 2. Aplicação nova: v2 ativo, v1 mantido como fallback
    print("\n2. Subindo com v2 (SHA256) ativo e v1 como fallback...")
    rotator = CookieRotator(
        RotatorConfig(
            secret=SECRET_KEY_BASE,
            schemes={
                "v2": {"hash": "sha256", "iterations": 1000},
                "v1": {"hash": "sha1", "iterations": 1000},
            },
            active_version="v2",
            logger=logger,
        )
    )
    print(f"   Ordem de tentativa: {rotator.get_all_versions()}")

    # 3. Cookies antigos continuam válidos
    print("\n3. Abrindo cookies antigos...")
    for mode, token in ((Mode.SIGNED, old_signed), (Mode.ENCRYPTED, old_encrypted)):
        result = rotator.open(token, mode)
        print(
            f"   ✓ {mode.value}: {result.payload} "
            f"(chave {result.key_label}, reemitir={result.needs_upgrade})"
        )

    # 4. Reemissão com a chave atual
    print("\n4. Reemitindo cookies abertos por chave legada...")
    payload, new_token = rotator.refresh(old_encrypted, Mode.ENCRYPTED)
    print(f"   Novo token: {new_token[:40]!r}...")
    result = rotator.open(new_token, Mode.ENCRYPTED)
    print(f"   ✓ Aberto com {result.key_label}: {payload}")

    # 5. Token adulterado
    print("\n5. Token adulterado...")
    tampered = bytearray(old_signed)
    tampered[0] ^= 0x01
    try:
        rotator.open(bytes(tampered), Mode.SIGNED)
    except AllKeysExhausted as exc:
        print(f"   ✓ Rejeitado: {exc}")

    # 6. Estatísticas finais
    print("\n6. Estatísticas finais:")
    for key, value in rotator.get_statistics().items():
        print(f"   {key}: {value}")

    print("\n=== Fim do exemplo de rotação ===\n")


if __name__ == "__main__":
    main()
