"""Exceções do CookieRotator."""


class CookieRotatorError(Exception):
    """Erro base do rotacionador de chaves de cookies."""

    pass


class ConfigurationError(CookieRotatorError, ValueError):
    """Parâmetros de derivação ou configuração inválidos.

    Fatal na inicialização: um rotacionador mal configurado quebra a
    autenticação de todos os usuários, então o processo não deve subir.
    """

    pass


class VerificationError(CookieRotatorError):
    """Token não pôde ser verificado/descriptografado."""

    pass


class AllKeysExhausted(VerificationError):
    """Nenhuma chave candidata abriu o token.

    O chamador deve tratar o token como inválido (sessão não autenticada).
    Não carrega detalhes sobre as chaves nem sobre as falhas individuais.
    """

    def __init__(self, tried: int) -> None:
        super().__init__(f"Token inválido: nenhuma das {tried} chave(s) conseguiu abri-lo")
        self.tried = tried
