# medicloud-backend/crud.py

import schemas
import config
import identity
import ia_flows
import laudo_lifecycle
from datetime import datetime, date, time, timedelta
from zoneinfo import ZoneInfo
from typing import Optional, List, Dict

from fastapi import HTTPException
from firebase_admin import firestore
import logging

from change_notifier import get_notifier
from schemas import StatusLaudo, StatusAgendamento

# Setup do logger para este módulo
logger = logging.getLogger(__name__)

COLECAO_USUARIOS = "usuarios"
COLECAO_AGENDAMENTOS = "agendamentos"
COLECAO_LAUDOS = "laudos"

# Horários oferecidos no agendamento (intervalos de 30 minutos, com pausa para almoço)
HORARIOS_DISPONIVEIS = [
    "08:00", "08:30", "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
    "13:00", "13:30", "14:00", "14:30", "15:00", "15:30", "16:00", "16:30", "17:00",
]

# =================================================================================
# NOTIFICAÇÃO DE MUDANÇAS
# =================================================================================

def snapshot_colecao(db: firestore.client, colecao: str) -> List[Dict]:
    if colecao == COLECAO_USUARIOS:
        return listar_usuarios(db)
    if colecao == COLECAO_AGENDAMENTOS:
        return [schemas.AgendamentoResponse(**a).model_dump(mode="json") for a in listar_agendamentos(db)]
    if colecao == COLECAO_LAUDOS:
        return [l.model_dump(mode="json") for l in listar_laudos(db)]
    return []


def _publicar(db: firestore.client, colecao: str):
    """Publica o snapshot ordenado da coleção para quem estiver assinando."""
    notifier = get_notifier()
    if not notifier.has_subscribers(colecao):
        return
    try:
        notifier.publish(colecao, snapshot_colecao(db, colecao))
    except Exception as e:
        # A escrita já foi feita; falha na notificação não deve desfazê-la
        logger.error(f"Erro ao publicar snapshot da coleção '{colecao}': {e}")

# =================================================================================
# FUNÇÕES DE USUÁRIOS
# =================================================================================

def _doc_para_usuario(doc) -> Dict:
    data = doc.to_dict() or {}
    data["uid"] = doc.id
    # Papel de administrador definido pela lista de UIDs da configuração
    if config.is_admin_uid(doc.id):
        data["role"] = schemas.Role.ADMIN.value
    return data


def buscar_usuario_por_uid(db: firestore.client, uid: str) -> Optional[Dict]:
    """Busca o perfil do usuário pelo Firebase UID (ID do documento em 'usuarios')."""
    doc = db.collection(COLECAO_USUARIOS).document(uid).get()
    if not doc.exists:
        return None
    return _doc_para_usuario(doc)


def criar_perfil_usuario(db: firestore.client, uid: str, dados: schemas.UsuarioRegistro) -> Dict:
    perfil = {
        "nome": dados.nome,
        "email": dados.email,
        "especialidade": dados.especialidade,
        "crm": dados.crm,
        "role": schemas.Role.DOCTOR.value,
        "assinatura": None,
    }
    db.collection(COLECAO_USUARIOS).document(uid).set(perfil)
    logger.info(f"Perfil criado para o usuário {uid}.")
    _publicar(db, COLECAO_USUARIOS)
    return buscar_usuario_por_uid(db, uid)


def registrar_usuario(db: firestore.client, dados: schemas.UsuarioRegistro) -> Dict:
    """
    Cria a conta no provedor de identidade e o perfil no Firestore.
    Se o perfil não puder ser gravado, a conta recém-criada é removida.
    """
    uid = identity.criar_conta(dados.email, dados.senha, dados.nome)
    try:
        return criar_perfil_usuario(db, uid, dados)
    except Exception as e:
        logger.error(f"Erro ao criar perfil do usuário {uid}, removendo a conta: {e}")
        identity.remover_conta(uid)
        raise


def atualizar_perfil(db: firestore.client, uid: str, update_data: schemas.PerfilUpdate) -> Optional[Dict]:
    """Atualiza especialidade, CRM e/ou assinatura do próprio usuário."""
    user_ref = db.collection(COLECAO_USUARIOS).document(uid)
    if not user_ref.get().exists:
        return None

    campos = update_data.model_dump(exclude_unset=True)
    if campos:
        user_ref.set(campos, merge=True)
        logger.info(f"Perfil do usuário {uid} atualizado: {sorted(campos)}")
        _publicar(db, COLECAO_USUARIOS)
    return buscar_usuario_por_uid(db, uid)


def listar_usuarios(db: firestore.client) -> List[Dict]:
    query = db.collection(COLECAO_USUARIOS).order_by("nome", direction=firestore.Query.ASCENDING)
    return [_doc_para_usuario(doc) for doc in query.stream()]


def listar_medicos(db: firestore.client) -> List[Dict]:
    """Lista os usuários com papel 'doctor' (usado na escolha do médico do agendamento)."""
    query = db.collection(COLECAO_USUARIOS).where("role", "==", schemas.Role.DOCTOR.value)
    medicos = [_doc_para_usuario(doc) for doc in query.stream()]
    medicos.sort(key=lambda u: u.get("nome", ""))
    return medicos


def atualizar_role(db: firestore.client, uid: str, novo_role: schemas.Role, autor_uid: str) -> Optional[Dict]:
    user_ref = db.collection(COLECAO_USUARIOS).document(uid)
    if not user_ref.get().exists:
        return None

    user_ref.update({"role": novo_role.value})
    logger.info(f"Admin {autor_uid} alterou o papel do usuário {uid} para '{novo_role.value}'.")
    _publicar(db, COLECAO_USUARIOS)
    return buscar_usuario_por_uid(db, uid)


def deletar_usuario(db: firestore.client, uid: str, autor_uid: str) -> bool:
    """
    Remove a conta do Firebase Authentication e depois o perfil do Firestore.
    Se a remoção da conta falhar, o perfil é mantido.
    """
    user_ref = db.collection(COLECAO_USUARIOS).document(uid)
    if not user_ref.get().exists:
        return False

    identity.remover_conta(uid)
    user_ref.delete()
    logger.info(f"Admin {autor_uid} excluiu o usuário {uid}.")
    _publicar(db, COLECAO_USUARIOS)
    return True

# =================================================================================
# FUNÇÕES DE AGENDAMENTOS
# =================================================================================

def _doc_para_agendamento(doc) -> Dict:
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return data


def criar_agendamento(db: firestore.client, agendamento_data: schemas.AgendamentoCreate) -> Dict:
    """Cria um agendamento com status 'Agendada', guardando o nome do médico no próprio registro."""
    medico = buscar_usuario_por_uid(db, agendamento_data.medico_uid)
    if not medico:
        raise HTTPException(status_code=404, detail="Médico selecionado não encontrado.")

    agendamento_dict = {
        "nome_paciente": agendamento_data.nome_paciente,
        "medico_uid": agendamento_data.medico_uid,
        "medico_nome": medico.get("nome", ""),
        "data": agendamento_data.data.isoformat(),
        "horario": agendamento_data.horario,
        "status": StatusAgendamento.AGENDADA.value,
    }

    doc_ref = db.collection(COLECAO_AGENDAMENTOS).document()
    doc_ref.set(agendamento_dict)
    agendamento_dict["id"] = doc_ref.id

    logger.info(
        f"Agendamento {doc_ref.id} criado: {agendamento_dict['data']} {agendamento_dict['horario']} "
        f"com {agendamento_dict['medico_nome']}."
    )
    _publicar(db, COLECAO_AGENDAMENTOS)
    return agendamento_dict


def listar_agendamentos(db: firestore.client) -> List[Dict]:
    query = db.collection(COLECAO_AGENDAMENTOS) \
        .order_by("data", direction=firestore.Query.DESCENDING) \
        .order_by("horario", direction=firestore.Query.ASCENDING)
    return [_doc_para_agendamento(doc) for doc in query.stream()]


def listar_agendamentos_do_dia(db: firestore.client, dia: date) -> List[Dict]:
    query = db.collection(COLECAO_AGENDAMENTOS) \
        .where("data", "==", dia.isoformat()) \
        .order_by("horario", direction=firestore.Query.ASCENDING)
    return [_doc_para_agendamento(doc) for doc in query.stream()]


def atualizar_status_agendamento(db: firestore.client, agendamento_id: str, novo_status: StatusAgendamento) -> Optional[Dict]:
    """
    Sobrescreve o status do agendamento. Qualquer status pode ir para qualquer outro
    (diferente do laudo, que tem transições restritas).
    """
    agendamento_ref = db.collection(COLECAO_AGENDAMENTOS).document(agendamento_id)
    snapshot = agendamento_ref.get()
    if not snapshot.exists:
        return None

    status_anterior = (snapshot.to_dict() or {}).get("status")
    agendamento_ref.update({"status": novo_status.value})
    logger.info(f"Agendamento {agendamento_id}: status '{status_anterior}' -> '{novo_status.value}'.")
    _publicar(db, COLECAO_AGENDAMENTOS)
    return _doc_para_agendamento(agendamento_ref.get())

# =================================================================================
# FUNÇÕES DE LAUDOS
# =================================================================================

def _doc_para_laudo(doc) -> schemas.Laudo:
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return schemas.Laudo(**data)


def _salvar_laudo(db: firestore.client, laudo: schemas.Laudo) -> schemas.Laudo:
    """Grava o registro completo (sobrescrita), identificado pelo id."""
    dados = laudo.model_dump(exclude={"id"})
    dados["status"] = laudo.status.value
    db.collection(COLECAO_LAUDOS).document(laudo.id).set(dados)
    _publicar(db, COLECAO_LAUDOS)
    return laudo


def buscar_laudo(db: firestore.client, laudo_id: str) -> Optional[schemas.Laudo]:
    doc = db.collection(COLECAO_LAUDOS).document(laudo_id).get()
    if not doc.exists:
        return None
    return _doc_para_laudo(doc)


def _submeter_com_imagem(laudo: schemas.Laudo, modelo=None) -> schemas.Laudo:
    """Submete o laudo e anexa a imagem ilustrativa gerada no servidor (ou None)."""
    submetido = laudo_lifecycle.submeter(laudo)
    imagem = ia_flows.gerar_imagem_laudo(
        schemas.GerarImagemInput(reportType=laudo.tipo_laudo, notes=laudo.anotacoes or ""),
        modelo,
    )
    return submetido.model_copy(update={"imagem_url": imagem.imageUrl})


def criar_laudo(db: firestore.client, laudo_data: schemas.LaudoCreate, autor: schemas.UsuarioProfile, modelo=None) -> schemas.Laudo:
    """Cria o laudo como rascunho; com submeter=True ele já segue para aprovação."""
    doc_ref = db.collection(COLECAO_LAUDOS).document()
    laudo = schemas.Laudo(
        id=doc_ref.id,
        paciente_id=laudo_data.paciente_id,
        nome_paciente=laudo_data.nome_paciente,
        tipo_laudo=laudo_data.tipo_laudo,
        data=datetime.now(ZoneInfo("UTC")),
        status=StatusLaudo.RASCUNHO,
        conteudo=laudo_data.conteudo,
        anotacoes=laudo_data.anotacoes,
        autor=autor.como_doctor_info(),
    )
    if laudo_data.submeter:
        laudo = _submeter_com_imagem(laudo, modelo)

    _salvar_laudo(db, laudo)
    logger.info(f"Laudo {laudo.id} criado por {autor.uid} com status '{laudo.status.value}'.")
    return laudo


def listar_laudos(db: firestore.client, status: Optional[StatusLaudo] = None) -> List[schemas.Laudo]:
    """Lista os laudos do mais recente para o mais antigo, opcionalmente filtrando por status."""
    colecao = db.collection(COLECAO_LAUDOS)
    if status is None:
        query = colecao.order_by("data", direction=firestore.Query.DESCENDING)
        return [_doc_para_laudo(doc) for doc in query.stream()]

    # Filtro sem order_by para não exigir índice composto; a ordenação é feita aqui
    query = colecao.where("status", "==", status.value)
    laudos = [_doc_para_laudo(doc) for doc in query.stream()]
    laudos.sort(key=lambda l: l.data, reverse=True)
    return laudos


def atualizar_laudo(db: firestore.client, laudo_id: str, update_data: schemas.LaudoUpdate) -> Optional[schemas.Laudo]:
    laudo = buscar_laudo(db, laudo_id)
    if laudo is None:
        return None
    atualizado = laudo_lifecycle.atualizar_conteudo(laudo, update_data)
    return _salvar_laudo(db, atualizado)


def submeter_laudo(db: firestore.client, laudo_id: str, modelo=None) -> Optional[schemas.Laudo]:
    laudo = buscar_laudo(db, laudo_id)
    if laudo is None:
        return None
    submetido = _submeter_com_imagem(laudo, modelo)
    logger.info(f"Laudo {laudo_id} enviado para aprovação.")
    return _salvar_laudo(db, submetido)


def revisar_laudo(
    db: firestore.client,
    laudo_id: str,
    decisao: schemas.DecisaoRevisao,
    revisor: schemas.UsuarioProfile,
) -> Optional[schemas.Laudo]:
    laudo = buscar_laudo(db, laudo_id)
    if laudo is None:
        return None
    revisado = laudo_lifecycle.revisar(laudo, decisao, revisor.como_doctor_info())
    logger.info(f"Laudo {laudo_id} revisado por {revisor.uid}: '{revisado.status.value}'.")
    return _salvar_laudo(db, revisado)


def assinar_laudo(db: firestore.client, laudo_id: str, signatario: schemas.UsuarioProfile) -> Optional[schemas.Laudo]:
    laudo = buscar_laudo(db, laudo_id)
    if laudo is None:
        return None
    assinado = laudo_lifecycle.assinar(laudo, signatario.nome)
    logger.info(f"Laudo {laudo_id} assinado por {signatario.uid}.")
    return _salvar_laudo(db, assinado)


def deletar_laudo(db: firestore.client, laudo_id: str) -> bool:
    laudo_ref = db.collection(COLECAO_LAUDOS).document(laudo_id)
    if not laudo_ref.get().exists:
        return False
    laudo_ref.delete()
    logger.info(f"Laudo {laudo_id} excluído.")
    _publicar(db, COLECAO_LAUDOS)
    return True

# =================================================================================
# FUNÇÕES DO PAINEL
# =================================================================================

def _inicio_do_mes(dia: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(dia.replace(day=1), time.min, tzinfo=tz)


def estatisticas_painel(db: firestore.client, hoje: date) -> Dict[str, int]:
    """Conta os agendamentos do dia e os laudos criados no mês corrente."""
    agendamentos_hoje = len(list(
        db.collection(COLECAO_AGENDAMENTOS).where("data", "==", hoje.isoformat()).stream()
    ))

    tz = ZoneInfo(config.APP_TIMEZONE)
    inicio = _inicio_do_mes(hoje, tz)
    inicio_proximo = _inicio_do_mes((inicio + timedelta(days=32)).date(), tz)
    laudos_mes = len(list(
        db.collection(COLECAO_LAUDOS)
        .where("data", ">=", inicio)
        .where("data", "<", inicio_proximo)
        .stream()
    ))

    return {"agendamentos_hoje": agendamentos_hoje, "laudos_mes": laudos_mes}


def hoje_local() -> date:
    return datetime.now(ZoneInfo(config.APP_TIMEZONE)).date()
