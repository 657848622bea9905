# medicloud-backend/schemas.py

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime, date
from typing import Optional, List
from enum import Enum

# =================================================================================
# ENUMS
# =================================================================================

class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"


class StatusAgendamento(str, Enum):
    AGENDADA = "Agendada"
    ATENDIDA = "Atendida"
    ADIADA = "Adiada"
    CANCELADA = "Cancelada"


class StatusLaudo(str, Enum):
    RASCUNHO = "Rascunho"
    PENDENTE = "Pendente"
    APROVADO = "Aprovado"
    REJEITADO = "Rejeitado"


class DecisaoRevisao(str, Enum):
    APROVAR = "Aprovado"
    REJEITAR = "Rejeitado"

# =================================================================================
# SCHEMAS DE USUÁRIOS
# =================================================================================

class DoctorInfo(BaseModel):
    """Cópia dos dados do médico gravada no laudo (autor ou aprovador)."""
    uid: str
    nome: str
    especialidade: str = ""
    crm: Optional[str] = None
    assinatura: Optional[str] = Field(None, description="Imagem da assinatura (data URI), armazenada como blob opaco.")


class UsuarioProfile(BaseModel):
    uid: str = Field(..., description="Firebase UID, também usado como ID do documento em 'usuarios'.")
    nome: str
    email: EmailStr
    especialidade: str = ""
    crm: Optional[str] = None
    role: Role = Role.DOCTOR
    assinatura: Optional[str] = Field(None, description="Imagem da assinatura (data URI).")

    def como_doctor_info(self) -> DoctorInfo:
        return DoctorInfo(
            uid=self.uid,
            nome=self.nome,
            especialidade=self.especialidade,
            crm=self.crm,
            assinatura=self.assinatura,
        )


class UsuarioRegistro(BaseModel):
    nome: str = Field(..., min_length=2, description="Nome completo do médico.")
    # O formato do e-mail e a força da senha são validados pelo provedor de identidade
    email: str
    senha: str
    especialidade: str = ""
    crm: Optional[str] = None


class PerfilUpdate(BaseModel):
    especialidade: Optional[str] = None
    crm: Optional[str] = None
    assinatura: Optional[str] = Field(None, description="Imagem da assinatura em data URI (PNG).")


class RoleUpdateRequest(BaseModel):
    role: Role = Field(..., description="O novo papel do usuário ('admin' ou 'doctor').")


class LoginRequest(BaseModel):
    email: str
    senha: str


class LoginResponse(BaseModel):
    uid: str
    id_token: str
    refresh_token: str
    expires_in: int

# =================================================================================
# SCHEMAS DE AGENDAMENTOS
# =================================================================================

class AgendamentoCreate(BaseModel):
    nome_paciente: str = Field(..., min_length=2)
    medico_uid: str
    data: date
    horario: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="Horário no formato HH:MM.")


class AgendamentoResponse(BaseModel):
    id: str
    nome_paciente: str
    medico_uid: str
    medico_nome: str
    data: date
    horario: str
    status: StatusAgendamento


class AgendamentoStatusUpdate(BaseModel):
    status: StatusAgendamento

# =================================================================================
# SCHEMAS DE LAUDOS
# =================================================================================

class Laudo(BaseModel):
    id: str
    paciente_id: Optional[str] = None
    nome_paciente: str
    tipo_laudo: str
    data: datetime
    status: StatusLaudo = StatusLaudo.RASCUNHO
    conteudo: str = ""
    anotacoes: Optional[str] = None
    autor: Optional[DoctorInfo] = None
    aprovador: Optional[DoctorInfo] = None
    revisado_em: Optional[datetime] = None
    assinado_por: Optional[str] = None
    assinado_em: Optional[datetime] = None
    imagem_url: Optional[str] = None

    @property
    def assinado(self) -> bool:
        return self.assinado_por is not None


class LaudoCreate(BaseModel):
    paciente_id: Optional[str] = None
    nome_paciente: str = Field(..., min_length=2)
    tipo_laudo: str = Field(..., min_length=2)
    conteudo: str = ""
    anotacoes: Optional[str] = None
    submeter: bool = Field(False, description="Cria o laudo e já o envia para aprovação (gera a imagem ilustrativa).")


class LaudoUpdate(BaseModel):
    conteudo: Optional[str] = None
    anotacoes: Optional[str] = None

    @field_validator("conteudo")
    @classmethod
    def conteudo_nao_nulo(cls, v):
        # Omitir o campo mantém o conteúdo atual; null explícito não é aceito
        if v is None:
            raise ValueError("O conteúdo do laudo não pode ser nulo.")
        return v


class RevisaoLaudoRequest(BaseModel):
    decisao: DecisaoRevisao

# =================================================================================
# SCHEMAS DOS FLUXOS DE IA
# =================================================================================

class GerarRascunhoInput(BaseModel):
    patientName: str = Field(..., description="O nome do paciente.")
    reportType: str = Field(..., description="O tipo de laudo médico a ser gerado.")
    notes: str = Field(..., description="Anotações do médico para gerar o laudo.")

    @field_validator("patientName", "reportType", "notes")
    @classmethod
    def nao_vazio(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("O campo não pode ficar em branco.")
        return v


class GerarRascunhoOutput(BaseModel):
    reportDraft: str = Field(..., description="O rascunho gerado do laudo médico.")


class ResumirDetalhesInput(BaseModel):
    technicalDetails: str = Field(..., description="Os detalhes médicos técnicos a serem resumidos.")


class ResumirDetalhesOutput(BaseModel):
    patientFriendlySummary: str = Field(..., description="Resumo amigável para o paciente.")


class GerarImagemInput(BaseModel):
    reportType: str = Field(..., description="O tipo de laudo, ex: Raio-X de Tórax.")
    notes: str = Field("", description="Anotações médicas para dar contexto à imagem.")


class GerarImagemOutput(BaseModel):
    imageUrl: Optional[str] = Field(None, description="A imagem gerada como data URI.")


class RascunhoActionResponse(BaseModel):
    draft: Optional[str] = None
    error: Optional[str] = None


class ResumoActionResponse(BaseModel):
    summary: Optional[str] = None
    error: Optional[str] = None

# =================================================================================
# SCHEMAS DO PAINEL
# =================================================================================

class EstatisticasPainel(BaseModel):
    agendamentos_hoje: int
    laudos_mes: int


class HorariosResponse(BaseModel):
    horarios: List[str]
