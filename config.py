# medicloud-backend/config.py

import os
import logging
from typing import List, Set

from dotenv import load_dotenv

from errors import StoreUnavailable

# Carrega o .env da raiz do projeto (variáveis já definidas no ambiente têm prioridade)
load_dotenv()

logger = logging.getLogger(__name__)

# --- Firebase / Firestore ---
GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "")
# Nome do segredo no Secret Manager com o JSON da conta de serviço.
# Se vazio, usa as credenciais padrão da aplicação (ADC).
FIREBASE_CREDENTIALS_SECRET = os.getenv("FIREBASE_CREDENTIALS_SECRET", "")
# Chave web do projeto, usada no login por e-mail/senha (Identity Toolkit)
FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY", "")

# --- IA (Gemini) ---
# Prioriza GOOGLE_API_KEY, mas aceita GEMINI_API_KEY como alternativa
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY") or ""
GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-1.5-flash")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.0-flash-preview-image-generation")

# --- Aplicação ---
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Sao_Paulo")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


def _parse_lista(valor: str) -> List[str]:
    return [item.strip() for item in valor.split(",") if item.strip()]


# Lista de UIDs do Firebase com papel de administrador forçado.
# A decisão é sempre pela identidade (uid), nunca pelo nome exibido.
ADMIN_UIDS: Set[str] = set(_parse_lista(os.getenv("ADMIN_UIDS", "")))


def get_cors_origins() -> List[str]:
    origens = _parse_lista(CORS_ORIGINS)
    return origens or ["*"]


def is_admin_uid(uid: str) -> bool:
    return uid in ADMIN_UIDS


def verificar_configuracao():
    """
    Verifica a configuração mínima para o banco e a autenticação.
    Chamada no startup: sem projeto configurado a aplicação não deve subir.
    """
    if not GCP_PROJECT_ID:
        raise StoreUnavailable(
            "A variável de ambiente GCP_PROJECT_ID não está configurada. "
            "Não é possível conectar ao Firestore nem ao Firebase Authentication."
        )

    if not FIREBASE_WEB_API_KEY:
        logger.warning("FIREBASE_WEB_API_KEY não configurada. O login por e-mail/senha não funcionará.")
    if not GOOGLE_API_KEY:
        logger.warning("Nenhuma GOOGLE_API_KEY ou GEMINI_API_KEY definida. Os recursos de IA não funcionarão.")
    if not ADMIN_UIDS:
        logger.info("ADMIN_UIDS vazio: apenas o papel salvo no perfil define administradores.")
