# medicloud-backend/ia_flows.py

"""
Fluxos de IA do laudo médico.

- gerar_rascunho_laudo: transforma anotações do médico em um rascunho de laudo.
- resumir_detalhes_tecnicos: reescreve texto técnico em linguagem acessível ao paciente.
- gerar_imagem_laudo: gera uma imagem ilustrativa para tipos de exame de imagem.

Os dois primeiros levantam GenerationFailed; as actions no fim do arquivo convertem
essa falha em {"error": ...}. A imagem nunca levanta: qualquer falha vira imageUrl=None.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

import schemas
from errors import GenerationFailed
from gemini_client import get_gemini_client

logger = logging.getLogger(__name__)

# =================================================================================
# PROMPTS
# =================================================================================

PROMPT_RASCUNHO_LAUDO = """Você é um assistente de IA especialista em redigir laudos médicos em Português do Brasil.

Sua tarefa é gerar um rascunho de laudo médico detalhado, bem estruturado e inteiramente em Português do Brasil (pt-BR). Utilize APENAS as informações fornecidas. Não invente nomes de médicos ou outras informações.

Informações para o Laudo:
- Nome do Paciente: {patientName}
- Tipo de Laudo: {reportType}
- Anotações do Médico: {notes}

Retorne somente o texto do laudo, formal e seguindo o padrão de laudos médicos brasileiros."""

PROMPT_RESUMO_PACIENTE = """Você é um especialista médico habilidoso em explicar detalhes médicos técnicos para pacientes de uma forma fácil de entender, em Português do Brasil.

Reescreva os seguintes detalhes técnicos em uma linguagem simples e clara.

Detalhes Técnicos: {technicalDetails}

Retorne somente o texto reescrito, sem comentários adicionais."""

PROMPT_IMAGEM_LAUDO = """Crie uma imagem médica ilustrativa e estilizada que represente um laudo de "{reportType}".
A imagem deve ser limpa, profissional e adequada para um documento médico. Não inclua texto, números ou legendas na imagem.
Use as seguintes anotações como contexto para o conteúdo da imagem, se relevante: "{notes}".
O estilo deve ser mais um diagrama ou ilustração do que uma foto real, com um fundo limpo e neutro.

Exemplos de estilo:
- Para 'Eletrocardiograma (ECG)': Ondas de um exame de ECG, com os complexos P, QRS e T claramente visíveis, mas de forma estilizada.
- Para 'Raio-X de fratura': Uma imagem estilizada de um osso com uma fratura claramente visível.
- Para 'Ressonância Magnética do cérebro': Uma representação artística das varreduras cerebrais.
- Para 'Eletroencefalograma': Ondas cerebrais estilizadas (alfa, beta, etc.).
- Para 'Endoscopia': Uma ilustração limpa do trato gastrointestinal.
- Para 'Ultrassom' ou 'Ecografia': Uma imagem estilizada em tons de cinza, semelhante a uma ultrassonografia, mostrando a área relevante."""

# Tipos de laudo que recebem imagem ilustrativa (comparação sem diferenciar maiúsculas)
PALAVRAS_CHAVE_IMAGEM = (
    "raio-x",
    "radiografia",
    "ressonância",
    "tomografia",
    "ultrassom",
    "ecocardiograma",
    "eletrocardiograma",
    "ecg",
    "eletroencefalograma",
    "eeg",
    "endoscopia",
    "dermatológico",
)

# =================================================================================
# RASCUNHO E RESUMO
# =================================================================================

def _chamar_modelo_texto(modelo, prompt: str, mensagem_falha: str) -> str:
    try:
        texto = modelo.gerar_texto(prompt)
    except GenerationFailed:
        raise
    except Exception as e:
        logger.error(f"Erro na chamada ao modelo de IA: {e}")
        raise GenerationFailed(mensagem_falha) from e

    if not texto or not texto.strip():
        raise GenerationFailed(mensagem_falha)
    return texto


def gerar_rascunho_laudo(entrada: schemas.GerarRascunhoInput, modelo=None) -> schemas.GerarRascunhoOutput:
    """Monta o prompt com os três campos e retorna o texto do modelo sem alterações."""
    modelo = modelo or get_gemini_client()
    prompt = PROMPT_RASCUNHO_LAUDO.format(
        patientName=entrada.patientName,
        reportType=entrada.reportType,
        notes=entrada.notes,
    )
    texto = _chamar_modelo_texto(modelo, prompt, "A IA não conseguiu gerar um rascunho de laudo válido.")
    logger.info(f"Rascunho de laudo gerado para o tipo '{entrada.reportType}' ({len(texto)} caracteres).")
    return schemas.GerarRascunhoOutput(reportDraft=texto)


def resumir_detalhes_tecnicos(entrada: schemas.ResumirDetalhesInput, modelo=None) -> schemas.ResumirDetalhesOutput:
    if not entrada.technicalDetails.strip():
        return schemas.ResumirDetalhesOutput(patientFriendlySummary="")
    modelo = modelo or get_gemini_client()
    prompt = PROMPT_RESUMO_PACIENTE.format(technicalDetails=entrada.technicalDetails)
    texto = _chamar_modelo_texto(modelo, prompt, "A IA não conseguiu gerar um resumo válido.")
    return schemas.ResumirDetalhesOutput(patientFriendlySummary=texto)

# =================================================================================
# IMAGEM ILUSTRATIVA
# =================================================================================

class MotivoAusencia(str, Enum):
    SEM_PALAVRA_CHAVE = "sem_palavra_chave"
    FALHA_MODELO = "falha_modelo"
    RESPOSTA_SEM_IMAGEM = "resposta_sem_imagem"


@dataclass(frozen=True)
class ImagemAusente:
    motivo: MotivoAusencia
    detalhe: str = ""


def precisa_imagem(report_type: str) -> bool:
    tipo = report_type.casefold()
    return any(palavra in tipo for palavra in PALAVRAS_CHAVE_IMAGEM)


def _resolver_imagem(entrada: schemas.GerarImagemInput, modelo) -> Union[str, ImagemAusente]:
    if not precisa_imagem(entrada.reportType):
        return ImagemAusente(MotivoAusencia.SEM_PALAVRA_CHAVE)

    try:
        prompt = PROMPT_IMAGEM_LAUDO.format(reportType=entrada.reportType, notes=entrada.notes)
        url = (modelo or get_gemini_client()).gerar_imagem(prompt)
    except Exception as e:
        return ImagemAusente(MotivoAusencia.FALHA_MODELO, str(e))

    if not url:
        return ImagemAusente(MotivoAusencia.RESPOSTA_SEM_IMAGEM)
    return url


def gerar_imagem_laudo(entrada: schemas.GerarImagemInput, modelo=None) -> schemas.GerarImagemOutput:
    """
    Gera a imagem ilustrativa do laudo. Nunca levanta exceção: a ausência de imagem
    é um resultado válido, seja pela regra de palavras-chave ou por falha do modelo.
    """
    resultado = _resolver_imagem(entrada, modelo)
    if isinstance(resultado, str):
        logger.info(f"Imagem ilustrativa gerada para o laudo '{entrada.reportType}'.")
        return schemas.GerarImagemOutput(imageUrl=resultado)

    if resultado.motivo == MotivoAusencia.SEM_PALAVRA_CHAVE:
        logger.info(f"Tipo de laudo '{entrada.reportType}' não requer imagem ilustrativa.")
    else:
        logger.warning(
            f"Imagem ilustrativa indisponível para '{entrada.reportType}' "
            f"({resultado.motivo.value}): {resultado.detalhe}"
        )
    return schemas.GerarImagemOutput(imageUrl=None)

# =================================================================================
# ACTIONS (validação de entrada + conversão de falhas em {"error": ...})
# =================================================================================

def gerar_rascunho_action(dados: Union[schemas.GerarRascunhoInput, Dict[str, Any]], modelo=None) -> Dict[str, Optional[str]]:
    try:
        entrada = dados if isinstance(dados, schemas.GerarRascunhoInput) else schemas.GerarRascunhoInput.model_validate(dados)
    except ValidationError:
        return {"error": "Dados de entrada inválidos."}

    try:
        resultado = gerar_rascunho_laudo(entrada, modelo)
    except GenerationFailed as e:
        logger.error(f"Falha ao gerar o rascunho: {e}")
        return {"error": str(e) or "Falha ao gerar o rascunho."}
    return {"draft": resultado.reportDraft}


def resumir_action(dados: Union[schemas.ResumirDetalhesInput, Dict[str, Any]], modelo=None) -> Dict[str, Optional[str]]:
    try:
        entrada = dados if isinstance(dados, schemas.ResumirDetalhesInput) else schemas.ResumirDetalhesInput.model_validate(dados)
    except ValidationError:
        return {"error": "Dados de entrada inválidos."}

    # Sem texto, não há o que resumir: evita uma chamada desnecessária ao modelo
    if not entrada.technicalDetails.strip():
        return {"summary": ""}

    try:
        resultado = resumir_detalhes_tecnicos(entrada, modelo)
    except GenerationFailed as e:
        logger.error(f"Falha ao gerar o resumo: {e}")
        return {"error": str(e) or "Falha ao gerar o resumo."}
    return {"summary": resultado.patientFriendlySummary}
