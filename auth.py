# medicloud-backend/auth.py

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
import schemas
import crud
import identity
from database import get_db
from errors import AuthFailure

# auto_error=False: a ausência do token é tratada abaixo com mensagem própria
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_current_user_firebase(token: str = Depends(oauth2_scheme), db = Depends(get_db)) -> schemas.UsuarioProfile:
    """
    Decodifica o ID Token do Firebase, busca o perfil correspondente no Firestore
    e retorna como schema Pydantic.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de autenticação não fornecido."
        )
    try:
        firebase_uid = identity.verificar_token(token)
    except AuthFailure as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    usuario_doc = crud.buscar_usuario_por_uid(db, firebase_uid)

    # Identidade autenticada sem perfil não ganha nenhum papel implícito
    if not usuario_doc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Perfil de usuário não encontrado em nosso sistema."
        )

    return schemas.UsuarioProfile(**usuario_doc)


def get_current_admin_user(current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)) -> schemas.UsuarioProfile:
    """
    Verifica se o usuário atual é administrador (papel salvo ou UID na lista ADMIN_UIDS).
    """
    if current_user.role != schemas.Role.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado: esta operação requer privilégios de Administrador."
        )
    return current_user
