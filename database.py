# medicloud-backend/database.py (Versão para Firestore)

import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud import secretmanager

import config
from errors import StoreUnavailable

logger = logging.getLogger(__name__)

# Variável global para armazenar a instância do cliente do Firestore
db_client = None


def _carregar_credenciais():
    """
    Busca o JSON da conta de serviço no Secret Manager quando FIREBASE_CREDENTIALS_SECRET
    estiver definido; caso contrário usa as credenciais padrão do ambiente (Cloud Run, gcloud).
    """
    if not config.FIREBASE_CREDENTIALS_SECRET:
        return credentials.ApplicationDefault()

    client = secretmanager.SecretManagerServiceClient()
    name = f"projects/{config.GCP_PROJECT_ID}/secrets/{config.FIREBASE_CREDENTIALS_SECRET}/versions/latest"
    response = client.access_secret_version(request={"name": name})
    cred_json = json.loads(response.payload.data.decode("UTF-8"))
    logger.info(f"Credenciais do Firebase lidas do Secret Manager (projeto {cred_json.get('project_id')}).")
    return credentials.Certificate(cred_json)


def initialize_firebase_app():
    """
    Inicializa o Firebase Admin SDK e o cliente do Firestore.
    Esta função deve ser chamada na inicialização da aplicação FastAPI.
    """
    global db_client
    config.verificar_configuracao()

    # Evita reinicialização se o app recarregar (comum em desenvolvimento)
    if not firebase_admin._apps:
        try:
            logger.info("Inicializando Firebase Admin SDK...")
            cred = _carregar_credenciais()
            firebase_admin.initialize_app(cred, {"projectId": config.GCP_PROJECT_ID})
            logger.info("Firebase Admin SDK inicializado com sucesso.")
        except Exception as e:
            logger.error(f"ERRO CRÍTICO ao inicializar o Firebase: {e}")
            raise StoreUnavailable(f"Não foi possível inicializar o Firebase: {e}") from e

    db_client = firestore.client()
    logger.info("Cliente do Firestore inicializado.")


def get_db():
    """
    Dependência do FastAPI que fornece o cliente do Firestore já inicializado.
    """
    if db_client is None:
        raise StoreUnavailable(
            "A conexão com o banco de dados não foi estabelecida. Verifique a configuração do Firebase."
        )
    yield db_client
