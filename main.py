# medicloud-backend/main.py

import asyncio
import logging
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, status, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from firebase_admin import firestore

import config
import crud
import database
import identity
import ia_flows
import schemas
from auth import get_current_user_firebase, get_current_admin_user
from change_notifier import COLECOES_OBSERVAVEIS, get_notifier
from database import initialize_firebase_app, get_db
from errors import AuthFailure, GenerationFailed, InvalidTransition, StoreUnavailable
from gemini_client import get_gemini_client

# --- Configuração da Aplicação ---
app = FastAPI(
    title="MediCloud Docs API",
    description="Backend da clínica: laudos médicos com apoio de IA, agendamentos e perfis, usando Firebase e Firestore.",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Status HTTP por tipo de falha do provedor de identidade
_STATUS_AUTH_FAILURE = {
    AuthFailure.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    AuthFailure.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    AuthFailure.EMAIL_ALREADY_IN_USE: status.HTTP_400_BAD_REQUEST,
    AuthFailure.INVALID_CREDENTIAL: status.HTTP_401_UNAUTHORIZED,
    AuthFailure.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    AuthFailure.CONFIGURATION_MISSING: status.HTTP_503_SERVICE_UNAVAILABLE,
    AuthFailure.NETWORK_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# --- Evento de Startup ---
@app.on_event("startup")
def startup_event():
    """Inicializa a conexão com o Firebase ao iniciar a aplicação."""
    initialize_firebase_app()

# =================================================================================
# HANDLERS DE EXCEÇÕES DE DOMÍNIO
# =================================================================================

@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"Banco de dados indisponível em {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.exception_handler(AuthFailure)
async def auth_failure_handler(request: Request, exc: AuthFailure):
    status_code = _STATUS_AUTH_FAILURE.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "kind": exc.kind})


@app.exception_handler(GenerationFailed)
async def generation_failed_handler(request: Request, exc: GenerationFailed):
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@app.get("/")
def root():
    return {"mensagem": "API MediCloud Docs funcionando", "versao": app.version}


@app.get("/health", tags=["Sistema"])
def health():
    return {"status": "ok", "firestore": database.db_client is not None}

# =================================================================================
# ENDPOINTS DE AUTENTICAÇÃO
# =================================================================================

@app.post("/auth/registro", response_model=schemas.UsuarioProfile, status_code=status.HTTP_201_CREATED, tags=["Autenticação"])
def registrar(dados: schemas.UsuarioRegistro, db: firestore.client = Depends(get_db)):
    """Cria a conta no Firebase Authentication e o perfil do médico (papel 'doctor')."""
    return crud.registrar_usuario(db, dados)


@app.post("/auth/login", response_model=schemas.LoginResponse, tags=["Autenticação"])
def login(dados: schemas.LoginRequest):
    """Login por e-mail e senha. O id_token retornado vai no header Authorization: Bearer."""
    return identity.entrar(dados.email, dados.senha)


@app.post("/auth/logout", tags=["Autenticação"])
def logout(current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)):
    identity.sair(current_user.uid)
    return {"mensagem": "Sessão encerrada com sucesso."}

# =================================================================================
# ENDPOINTS DE PERFIL
# =================================================================================

@app.get("/me", response_model=schemas.UsuarioProfile, tags=["Perfil"])
def get_meu_perfil(current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)):
    return current_user


@app.patch("/me", response_model=schemas.UsuarioProfile, tags=["Perfil"])
def update_meu_perfil(
    update_data: schemas.PerfilUpdate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Atualiza especialidade, CRM e a imagem da assinatura do usuário logado."""
    perfil = crud.atualizar_perfil(db, current_user.uid, update_data)
    if not perfil:
        raise HTTPException(status_code=404, detail="Perfil de usuário não encontrado.")
    return perfil


@app.get("/medicos", response_model=List[schemas.UsuarioProfile], tags=["Perfil"])
def listar_medicos(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Lista os médicos disponíveis para agendamento."""
    return crud.listar_medicos(db)

# =================================================================================
# ENDPOINTS DE ADMINISTRAÇÃO DE USUÁRIOS
# =================================================================================

@app.get("/admin/usuarios", response_model=List[schemas.UsuarioProfile], tags=["Admin - Usuários"])
def admin_listar_usuarios(
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    """(Admin) Lista todos os usuários em ordem alfabética."""
    return crud.listar_usuarios(db)


@app.patch("/admin/usuarios/{uid}/role", response_model=schemas.UsuarioProfile, tags=["Admin - Usuários"])
def admin_atualizar_role(
    uid: str,
    role_data: schemas.RoleUpdateRequest,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    """(Admin) Altera o papel de um usuário entre 'admin' e 'doctor'."""
    usuario = crud.atualizar_role(db, uid, role_data.role, admin.uid)
    if not usuario:
        raise HTTPException(status_code=404, detail="Usuário não encontrado.")
    return usuario


@app.delete("/admin/usuarios/{uid}", status_code=status.HTTP_204_NO_CONTENT, tags=["Admin - Usuários"])
def admin_deletar_usuario(
    uid: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    """(Admin) Remove o perfil e a conta do usuário."""
    if uid == admin.uid:
        raise HTTPException(status_code=400, detail="Um administrador não pode excluir a própria conta.")
    try:
        if not crud.deletar_usuario(db, uid, admin.uid):
            raise HTTPException(status_code=404, detail="Usuário não encontrado.")
    except (HTTPException, AuthFailure):
        raise
    except Exception as e:
        logger.error(f"Erro ao excluir o usuário {uid}: {e}")
        raise HTTPException(status_code=500, detail="Erro interno ao excluir o usuário.")
    return None

# =================================================================================
# ENDPOINTS DE AGENDAMENTOS
# =================================================================================

@app.get("/agendamentos", response_model=List[schemas.AgendamentoResponse], tags=["Agendamentos"])
def listar_agendamentos(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_agendamentos(db)


@app.get("/agendamentos/hoje", response_model=List[schemas.AgendamentoResponse], tags=["Agendamentos"])
def listar_agendamentos_de_hoje(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Agendamentos do dia corrente no fuso da clínica (APP_TIMEZONE)."""
    return crud.listar_agendamentos_do_dia(db, crud.hoje_local())


@app.get("/agendamentos/horarios", response_model=schemas.HorariosResponse, tags=["Agendamentos"])
def listar_horarios(current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)):
    return {"horarios": crud.HORARIOS_DISPONIVEIS}


@app.post("/agendamentos", response_model=schemas.AgendamentoResponse, status_code=status.HTTP_201_CREATED, tags=["Agendamentos"])
def criar_agendamento(
    agendamento_data: schemas.AgendamentoCreate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    return crud.criar_agendamento(db, agendamento_data)


@app.patch("/agendamentos/{agendamento_id}/status", response_model=schemas.AgendamentoResponse, tags=["Agendamentos"])
def atualizar_status_agendamento(
    agendamento_id: str,
    status_data: schemas.AgendamentoStatusUpdate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Altera o status do agendamento. Não há restrição de transição entre os status."""
    agendamento = crud.atualizar_status_agendamento(db, agendamento_id, status_data.status)
    if not agendamento:
        raise HTTPException(status_code=404, detail="Agendamento não encontrado.")
    return agendamento

# =================================================================================
# ENDPOINTS DE LAUDOS
# =================================================================================

def _laudo_ou_404(laudo: Optional[schemas.Laudo]) -> schemas.Laudo:
    if laudo is None:
        raise HTTPException(status_code=404, detail="Laudo não encontrado.")
    return laudo


@app.get("/laudos", response_model=List[schemas.Laudo], tags=["Laudos"])
def listar_laudos(
    status_laudo: Optional[schemas.StatusLaudo] = Query(None, alias="status", description="Filtra por status: Rascunho, Pendente, Aprovado ou Rejeitado."),
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_laudos(db, status_laudo)


@app.post("/laudos", response_model=schemas.Laudo, status_code=status.HTTP_201_CREATED, tags=["Laudos"])
def criar_laudo(
    laudo_data: schemas.LaudoCreate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db),
    modelo=Depends(get_gemini_client)
):
    """Cria o laudo como 'Rascunho' (ou já 'Pendente', com submeter=true)."""
    try:
        return crud.criar_laudo(db, laudo_data, current_user, modelo)
    except (HTTPException, InvalidTransition, StoreUnavailable):
        raise
    except Exception as e:
        logger.error(f"Erro ao criar laudo para '{laudo_data.nome_paciente}': {e}")
        raise HTTPException(status_code=500, detail="Erro interno ao criar o laudo.")


@app.get("/laudos/{laudo_id}", response_model=schemas.Laudo, tags=["Laudos"])
def get_laudo(
    laudo_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    return _laudo_ou_404(crud.buscar_laudo(db, laudo_id))


@app.put("/laudos/{laudo_id}", response_model=schemas.Laudo, tags=["Laudos"])
def update_laudo(
    laudo_id: str,
    update_data: schemas.LaudoUpdate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Edita conteúdo, anotações ou imagem. Só é permitido enquanto o laudo é 'Rascunho'."""
    return _laudo_ou_404(crud.atualizar_laudo(db, laudo_id, update_data))


@app.post("/laudos/{laudo_id}/submeter", response_model=schemas.Laudo, tags=["Laudos"])
def submeter_laudo(
    laudo_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db),
    modelo=Depends(get_gemini_client)
):
    """Envia o rascunho para aprovação (Rascunho -> Pendente) e gera a imagem ilustrativa."""
    return _laudo_ou_404(crud.submeter_laudo(db, laudo_id, modelo))


@app.post("/laudos/{laudo_id}/revisar", response_model=schemas.Laudo, tags=["Laudos"])
def revisar_laudo(
    laudo_id: str,
    revisao: schemas.RevisaoLaudoRequest,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    """(Admin) Aprova ou rejeita um laudo 'Pendente'."""
    return _laudo_ou_404(crud.revisar_laudo(db, laudo_id, revisao.decisao, admin))


@app.post("/laudos/{laudo_id}/assinar", response_model=schemas.Laudo, tags=["Laudos"])
def assinar_laudo(
    laudo_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Assina um laudo 'Aprovado' ainda não assinado, em nome do usuário logado."""
    return _laudo_ou_404(crud.assinar_laudo(db, laudo_id, current_user))


@app.delete("/laudos/{laudo_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Laudos"])
def deletar_laudo(
    laudo_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """(Admin ou autor do laudo) Exclui um laudo."""
    laudo = _laudo_ou_404(crud.buscar_laudo(db, laudo_id))
    eh_autor = laudo.autor is not None and laudo.autor.uid == current_user.uid
    if current_user.role != schemas.Role.ADMIN and not eh_autor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado: apenas o autor do laudo ou um Administrador pode excluí-lo."
        )
    if not crud.deletar_laudo(db, laudo_id):
        raise HTTPException(status_code=404, detail="Laudo não encontrado.")
    logger.info(f"Laudo {laudo_id} excluído por {current_user.uid}.")
    return None

# =================================================================================
# ENDPOINTS DE IA
# =================================================================================

@app.post("/ia/rascunho", response_model=schemas.RascunhoActionResponse, response_model_exclude_none=True, tags=["IA"])
def ia_gerar_rascunho(
    entrada: schemas.GerarRascunhoInput,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    modelo=Depends(get_gemini_client)
):
    """Gera o rascunho do laudo. Falhas do modelo voltam como {"error": ...}."""
    return ia_flows.gerar_rascunho_action(entrada, modelo)


@app.post("/ia/resumo", response_model=schemas.ResumoActionResponse, response_model_exclude_none=True, tags=["IA"])
def ia_resumir(
    entrada: schemas.ResumirDetalhesInput,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    modelo=Depends(get_gemini_client)
):
    """Reescreve detalhes técnicos em linguagem acessível ao paciente."""
    return ia_flows.resumir_action(entrada, modelo)


@app.post("/ia/imagem", response_model=schemas.GerarImagemOutput, tags=["IA"])
def ia_gerar_imagem(
    entrada: schemas.GerarImagemInput,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    modelo=Depends(get_gemini_client)
):
    """Imagem ilustrativa para exames de imagem. Sem imagem, retorna imageUrl nulo."""
    return ia_flows.gerar_imagem_laudo(entrada, modelo)

# =================================================================================
# PAINEL
# =================================================================================

@app.get("/dashboard/estatisticas", response_model=schemas.EstatisticasPainel, tags=["Painel"])
def get_estatisticas_painel(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.estatisticas_painel(db, crud.hoje_local())
    except Exception as e:
        logger.error(f"Erro ao calcular estatísticas do painel: {e}")
        raise HTTPException(status_code=500, detail="Erro interno ao calcular as estatísticas.")

# =================================================================================
# ATUALIZAÇÕES EM TEMPO REAL
# =================================================================================

async def _encerrar_envio(envio: asyncio.Task, colecao: str, uid: str):
    """Cancela a tarefa de envio e registra a falha, se ela terminou com erro."""
    envio.cancel()
    resultado, = await asyncio.gather(envio, return_exceptions=True)
    if isinstance(resultado, Exception):
        logger.error(f"Erro ao enviar snapshot da coleção '{colecao}' ({uid}): {resultado}")


@app.websocket("/ws/{colecao}")
async def websocket_colecao(
    websocket: WebSocket,
    colecao: str,
    token: str = Query(""),
    db: firestore.client = Depends(get_db)
):
    """
    Envia o snapshot ordenado da coleção ao conectar e a cada nova escrita.
    O ID Token do Firebase vai na query string (?token=...).
    """
    if colecao not in COLECOES_OBSERVAVEIS:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        uid = await run_in_threadpool(identity.verificar_token, token)
    except AuthFailure:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # Mesma regra das rotas HTTP: a lista de usuários é restrita a administradores
    perfil = await run_in_threadpool(crud.buscar_usuario_por_uid, db, uid)
    if not perfil or (colecao == crud.COLECAO_USUARIOS and perfil.get("role") != schemas.Role.ADMIN.value):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    fila: asyncio.Queue = asyncio.Queue()

    # publish() roda na thread do endpoint que fez a escrita
    def ao_publicar(_colecao, snapshot):
        loop.call_soon_threadsafe(fila.put_nowait, snapshot)

    unsubscribe = get_notifier().subscribe(colecao, ao_publicar)

    async def enviar_snapshots():
        while True:
            dados = await fila.get()
            await websocket.send_json({"colecao": colecao, "dados": dados})

    envio = None
    try:
        inicial = await run_in_threadpool(crud.snapshot_colecao, db, colecao)
        await websocket.send_json({"colecao": colecao, "dados": inicial})
        envio = asyncio.create_task(enviar_snapshots())
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket da coleção '{colecao}' desconectado ({uid}).")
    finally:
        unsubscribe()
        if envio is not None:
            await _encerrar_envio(envio, colecao, uid)
