# medicloud-backend/errors.py

"""Exceções de domínio. Os handlers em main.py convertem cada uma em resposta HTTP."""


class GenerationFailed(Exception):
    """A chamada ao modelo de IA falhou ou não retornou conteúdo."""


class InvalidTransition(Exception):
    """Transição de status de laudo não permitida."""

    def __init__(self, status_atual: str, acao: str, detalhe: str = ""):
        self.status_atual = status_atual
        self.acao = acao
        mensagem = f"Não é possível {acao} um laudo com status '{status_atual}'."
        if detalhe:
            mensagem = f"{mensagem} {detalhe}"
        super().__init__(mensagem)


class StoreUnavailable(Exception):
    """Banco de dados (Firestore) não configurado ou inacessível."""


class AuthFailure(Exception):
    """Erro retornado pelo provedor de identidade (Firebase Authentication)."""

    INVALID_EMAIL = "invalid-email"
    WEAK_PASSWORD = "weak-password"
    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    INVALID_CREDENTIAL = "invalid-credential"
    CONFIGURATION_MISSING = "configuration-missing"
    PERMISSION_DENIED = "permission-denied"
    NETWORK_UNAVAILABLE = "network-unavailable"

    MENSAGENS = {
        INVALID_EMAIL: "O formato do e-mail é inválido.",
        WEAK_PASSWORD: "A senha é muito fraca. Use pelo menos 6 caracteres.",
        EMAIL_ALREADY_IN_USE: "Este e-mail já está em uso por outra conta.",
        INVALID_CREDENTIAL: "E-mail ou senha inválidos.",
        CONFIGURATION_MISSING: "A autenticação não está configurada neste projeto.",
        PERMISSION_DENIED: "Permissão negada pelo provedor de identidade.",
        NETWORK_UNAVAILABLE: "Não foi possível conectar ao provedor de identidade.",
    }

    def __init__(self, kind: str, mensagem: str = ""):
        self.kind = kind
        super().__init__(mensagem or self.MENSAGENS.get(kind, "Erro de autenticação."))
