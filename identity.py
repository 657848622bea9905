# medicloud-backend/identity.py

"""
Operações no provedor de identidade (Firebase Authentication).

Criação/remoção de contas e verificação de tokens usam o Admin SDK.
O login por e-mail/senha não existe no Admin SDK, então usa o endpoint REST
do Identity Toolkit com a chave web do projeto (FIREBASE_WEB_API_KEY).
"""

import logging
from typing import Dict

import requests
from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

import config
from errors import AuthFailure

logger = logging.getLogger(__name__)

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
REQUEST_TIMEOUT_SECONDS = 10

# Códigos de erro do Identity Toolkit -> tipos de AuthFailure
_ERROS_LOGIN = {
    "INVALID_EMAIL": AuthFailure.INVALID_EMAIL,
    "EMAIL_NOT_FOUND": AuthFailure.INVALID_CREDENTIAL,
    "INVALID_PASSWORD": AuthFailure.INVALID_CREDENTIAL,
    "INVALID_LOGIN_CREDENTIALS": AuthFailure.INVALID_CREDENTIAL,
    "USER_DISABLED": AuthFailure.PERMISSION_DENIED,
    "OPERATION_NOT_ALLOWED": AuthFailure.CONFIGURATION_MISSING,
    "CONFIGURATION_NOT_FOUND": AuthFailure.CONFIGURATION_MISSING,
    "API_KEY_INVALID": AuthFailure.CONFIGURATION_MISSING,
}


def _traduzir_erro_admin(e: Exception) -> AuthFailure:
    if isinstance(e, auth.EmailAlreadyExistsError):
        return AuthFailure(AuthFailure.EMAIL_ALREADY_IN_USE)
    if isinstance(e, auth.ConfigurationNotFoundError):
        return AuthFailure(AuthFailure.CONFIGURATION_MISSING)
    if isinstance(e, firebase_exceptions.PermissionDeniedError):
        return AuthFailure(AuthFailure.PERMISSION_DENIED)
    if isinstance(e, firebase_exceptions.UnavailableError):
        return AuthFailure(AuthFailure.NETWORK_UNAVAILABLE)
    if isinstance(e, ValueError):
        # O Admin SDK valida os argumentos localmente e levanta ValueError
        mensagem = str(e).lower()
        if "password" in mensagem:
            return AuthFailure(AuthFailure.WEAK_PASSWORD)
        if "email" in mensagem:
            return AuthFailure(AuthFailure.INVALID_EMAIL)
    return AuthFailure(AuthFailure.NETWORK_UNAVAILABLE, f"Erro inesperado no provedor de identidade: {e}")


def criar_conta(email: str, senha: str, nome: str) -> str:
    """Cria a conta no Firebase Authentication e retorna o UID."""
    try:
        user_record = auth.create_user(email=email, password=senha, display_name=nome)
    except (ValueError, firebase_exceptions.FirebaseError) as e:
        logger.warning(f"Falha ao criar conta para {email}: {e}")
        raise _traduzir_erro_admin(e) from e
    logger.info(f"Conta criada no Firebase Auth: {user_record.uid}")
    return user_record.uid


def remover_conta(uid: str):
    try:
        auth.delete_user(uid)
    except auth.UserNotFoundError:
        logger.warning(f"Conta {uid} não existe no Firebase Auth; nada a remover.")
    except firebase_exceptions.FirebaseError as e:
        raise _traduzir_erro_admin(e) from e


def verificar_token(id_token: str) -> str:
    """Valida o ID Token do Firebase e retorna o UID."""
    try:
        decoded_token = auth.verify_id_token(id_token)
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
        raise AuthFailure(AuthFailure.INVALID_CREDENTIAL, f"Token inválido ou expirado: {e}") from e
    except firebase_exceptions.FirebaseError as e:
        raise _traduzir_erro_admin(e) from e
    return decoded_token["uid"]


def entrar(email: str, senha: str) -> Dict:
    """Login por e-mail e senha. Retorna os tokens emitidos pelo Firebase."""
    if not config.FIREBASE_WEB_API_KEY:
        raise AuthFailure(AuthFailure.CONFIGURATION_MISSING)

    try:
        response = requests.post(
            SIGN_IN_URL,
            params={"key": config.FIREBASE_WEB_API_KEY},
            json={"email": email, "password": senha, "returnSecureToken": True},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"Erro de rede no login: {e}")
        raise AuthFailure(AuthFailure.NETWORK_UNAVAILABLE) from e

    if response.status_code != 200:
        try:
            codigo = response.json().get("error", {}).get("message", "")
        except ValueError:
            codigo = ""
        # Algumas mensagens vêm como "CODIGO : detalhe"
        codigo = codigo.split(":")[0].strip()
        kind = _ERROS_LOGIN.get(codigo, AuthFailure.INVALID_CREDENTIAL)
        logger.info(f"Login recusado para {email}: {codigo or response.status_code}")
        raise AuthFailure(kind)

    data = response.json()
    return {
        "uid": data["localId"],
        "id_token": data["idToken"],
        "refresh_token": data["refreshToken"],
        "expires_in": int(data.get("expiresIn", 3600)),
    }


def sair(uid: str):
    """Revoga os refresh tokens: as sessões existentes expiram com o ID Token atual."""
    try:
        auth.revoke_refresh_tokens(uid)
    except firebase_exceptions.FirebaseError as e:
        raise _traduzir_erro_admin(e) from e
    logger.info(f"Sessões do usuário {uid} revogadas.")
