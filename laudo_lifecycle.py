# medicloud-backend/laudo_lifecycle.py

"""
Regras de transição do laudo médico.

    Rascunho --submeter--> Pendente --revisar--> Aprovado --assinar--> (assinado)
                                          \\----> Rejeitado

Rejeitado e Aprovado assinado são estados finais. As funções não tocam no banco:
recebem um laudo e devolvem uma cópia atualizada, ou levantam InvalidTransition
deixando o original intacto. A persistência fica em crud.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

import schemas
from errors import InvalidTransition
from schemas import StatusLaudo


def _agora() -> datetime:
    return datetime.now(timezone.utc)


def submeter(laudo: schemas.Laudo) -> schemas.Laudo:
    """Envia um rascunho para aprovação."""
    if laudo.status != StatusLaudo.RASCUNHO:
        raise InvalidTransition(laudo.status.value, "enviar para aprovação")
    return laudo.model_copy(update={"status": StatusLaudo.PENDENTE})


def revisar(
    laudo: schemas.Laudo,
    decisao: Union[schemas.DecisaoRevisao, StatusLaudo, str],
    revisor: Optional[schemas.DoctorInfo] = None,
    agora: Optional[datetime] = None,
) -> schemas.Laudo:
    """Aprova ou rejeita um laudo pendente."""
    if laudo.status != StatusLaudo.PENDENTE:
        raise InvalidTransition(laudo.status.value, "revisar")

    valor = decisao.value if isinstance(decisao, Enum) else decisao
    if valor not in (StatusLaudo.APROVADO.value, StatusLaudo.REJEITADO.value):
        raise InvalidTransition(laudo.status.value, "revisar", f"Decisão inválida: '{valor}'.")

    novo_status = StatusLaudo(valor)
    atualizacao = {"status": novo_status, "revisado_em": agora or _agora()}
    if novo_status == StatusLaudo.APROVADO:
        atualizacao["aprovador"] = revisor
    return laudo.model_copy(update=atualizacao)


def pode_assinar(laudo: schemas.Laudo) -> bool:
    return laudo.status == StatusLaudo.APROVADO and not laudo.assinado


def assinar(laudo: schemas.Laudo, signatario: str, agora: Optional[datetime] = None) -> schemas.Laudo:
    """Assina um laudo aprovado. O status continua 'Aprovado'."""
    if laudo.status != StatusLaudo.APROVADO:
        raise InvalidTransition(laudo.status.value, "assinar", "Apenas laudos aprovados podem ser assinados.")
    if laudo.assinado:
        raise InvalidTransition(laudo.status.value, "assinar", f"O laudo já foi assinado por {laudo.assinado_por}.")
    return laudo.model_copy(update={"assinado_por": signatario, "assinado_em": agora or _agora()})


def atualizar_conteudo(laudo: schemas.Laudo, update_data: schemas.LaudoUpdate) -> schemas.Laudo:
    """Edita o conteúdo; só é permitido enquanto o laudo é rascunho."""
    if laudo.status != StatusLaudo.RASCUNHO:
        raise InvalidTransition(laudo.status.value, "editar", "Somente rascunhos podem ser editados.")
    campos = update_data.model_dump(exclude_unset=True)
    # model_validate (e não model_copy) para que um valor inválido nunca chegue ao banco
    return schemas.Laudo.model_validate({**laudo.model_dump(), **campos})
