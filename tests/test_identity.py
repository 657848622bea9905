import pytest
import requests
from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

import config
import identity
from errors import AuthFailure


class RespostaFalsa:
    def __init__(self, status_code, corpo):
        self.status_code = status_code
        self._corpo = corpo

    def json(self):
        return self._corpo


@pytest.fixture
def chave_web(monkeypatch):
    monkeypatch.setattr(config, "FIREBASE_WEB_API_KEY", "chave-teste")


def test_login_retorna_tokens(chave_web, monkeypatch):
    chamadas = []

    def post(url, params=None, json=None, timeout=None):
        chamadas.append((url, params, json))
        return RespostaFalsa(200, {"localId": "uid-1", "idToken": "id-tok", "refreshToken": "ref-tok", "expiresIn": "3600"})

    monkeypatch.setattr(requests, "post", post)
    resultado = identity.entrar("ana@clinica.com.br", "segredo123")

    assert resultado == {"uid": "uid-1", "id_token": "id-tok", "refresh_token": "ref-tok", "expires_in": 3600}
    url, params, corpo = chamadas[0]
    assert url == identity.SIGN_IN_URL
    assert params == {"key": "chave-teste"}
    assert corpo["returnSecureToken"] is True


@pytest.mark.parametrize("codigo,kind", [
    ("INVALID_LOGIN_CREDENTIALS", AuthFailure.INVALID_CREDENTIAL),
    ("EMAIL_NOT_FOUND", AuthFailure.INVALID_CREDENTIAL),
    ("INVALID_EMAIL", AuthFailure.INVALID_EMAIL),
    ("USER_DISABLED", AuthFailure.PERMISSION_DENIED),
    ("CONFIGURATION_NOT_FOUND", AuthFailure.CONFIGURATION_MISSING),
    ("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled", AuthFailure.INVALID_CREDENTIAL),
])
def test_login_mapeia_codigos_de_erro(chave_web, monkeypatch, codigo, kind):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: RespostaFalsa(400, {"error": {"message": codigo}}))
    with pytest.raises(AuthFailure) as exc_info:
        identity.entrar("ana@clinica.com.br", "errada")
    assert exc_info.value.kind == kind


def test_login_sem_rede(chave_web, monkeypatch):
    def post(*args, **kwargs):
        raise requests.exceptions.ConnectionError("sem rede")

    monkeypatch.setattr(requests, "post", post)
    with pytest.raises(AuthFailure) as exc_info:
        identity.entrar("ana@clinica.com.br", "segredo123")
    assert exc_info.value.kind == AuthFailure.NETWORK_UNAVAILABLE


def test_login_sem_chave_web(monkeypatch):
    monkeypatch.setattr(config, "FIREBASE_WEB_API_KEY", "")
    with pytest.raises(AuthFailure) as exc_info:
        identity.entrar("ana@clinica.com.br", "segredo123")
    assert exc_info.value.kind == AuthFailure.CONFIGURATION_MISSING


@pytest.mark.parametrize("erro,kind", [
    (auth.EmailAlreadyExistsError("existe", None, None), AuthFailure.EMAIL_ALREADY_IN_USE),
    (ValueError("Invalid password string. Password must be a string at least 6 characters long."), AuthFailure.WEAK_PASSWORD),
    (ValueError('Malformed email address string: "ana@".'), AuthFailure.INVALID_EMAIL),
    (firebase_exceptions.PermissionDeniedError("negado"), AuthFailure.PERMISSION_DENIED),
    (firebase_exceptions.UnavailableError("fora do ar"), AuthFailure.NETWORK_UNAVAILABLE),
])
def test_criar_conta_mapeia_erros_do_admin_sdk(monkeypatch, erro, kind):
    def create_user(**kwargs):
        raise erro

    monkeypatch.setattr(auth, "create_user", create_user)
    with pytest.raises(AuthFailure) as exc_info:
        identity.criar_conta("ana@clinica.com.br", "123", "Ana")
    assert exc_info.value.kind == kind


def test_verificar_token_invalido(monkeypatch):
    def verify_id_token(token):
        raise ValueError("Token malformado")

    monkeypatch.setattr(auth, "verify_id_token", verify_id_token)
    with pytest.raises(AuthFailure) as exc_info:
        identity.verificar_token("abc")
    assert exc_info.value.kind == AuthFailure.INVALID_CREDENTIAL


def test_verificar_token_valido(monkeypatch):
    monkeypatch.setattr(auth, "verify_id_token", lambda token: {"uid": "medico-1"})
    assert identity.verificar_token("abc") == "medico-1"


def test_remover_conta_inexistente_nao_falha(monkeypatch):
    def delete_user(uid):
        raise auth.UserNotFoundError("não existe")

    monkeypatch.setattr(auth, "delete_user", delete_user)
    identity.remover_conta("fantasma")
