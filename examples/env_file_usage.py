"""Exemplo de uso de RotatorConfig.from_file()."""

from pathlib import Path

from cookie_rotator import CookieRotator, Mode, RotatorConfig
from cookie_rotator.utils import ENV_CHECKSUM_KEY, compute_env_checksum


def main() -> None:
    """Demonstra carga de configuracao via arquivo .env com checksum."""
    env_path = Path("example_cookies.env")

    values = {
        "SECRET_KEY_BASE": "exemplo-secret-key-base",
        "COOKIE_KDF_HASH__v1": "sha1",
        "COOKIE_KDF_HASH__v2": "sha256",
        "COOKIE_KDF_ITERATIONS__v1": "1000",
        "COOKIE_KDF_ITERATIONS__v2": "1000",
        "ACTIVE_COOKIE_SCHEME": "v2",
    }
    values[ENV_CHECKSUM_KEY] = compute_env_checksum(values)

    # 1) Gravar o arquivo de exemplo
    env_path.write_text("".join(f'{k}="{v}"\n' for k, v in values.items()))
    print(f"Configuracao salva em: {env_path}")

    # 2) Carregar a configuracao do arquivo (checksum validado)
    config = RotatorConfig.from_file(str(env_path))
    rotator = CookieRotator(config)
    print(f"Versoes: {rotator.get_all_versions()} (ativa: {rotator.get_active_version()})")

    # 3) Emitir e abrir um cookie com proposito
    token = rotator.encode({"uid": 1}, Mode.ENCRYPTED, purpose="cookie._session")
    result = rotator.open(token, Mode.ENCRYPTED, purpose="cookie._session")
    print(f"Payload: {result.payload} (chave {result.key_label})")

    # Cleanup do arquivo de exemplo
    if env_path.exists():
        env_path.unlink()


if __name__ == "__main__":
    main()
