from datetime import date

import crud
import schemas
from change_notifier import ChangeNotifier, get_notifier
from conftest import FakeModel


def test_assinante_recebe_e_cancela():
    notifier = ChangeNotifier()
    recebidos = []
    cancelar = notifier.subscribe("laudos", lambda colecao, snapshot: recebidos.append((colecao, snapshot)))

    notifier.publish("laudos", [{"id": "1"}])
    notifier.publish("agendamentos", [{"id": "2"}])
    cancelar()
    notifier.publish("laudos", [])

    assert recebidos == [("laudos", [{"id": "1"}])]
    assert not notifier.has_subscribers("laudos")


def test_assinante_com_erro_nao_bloqueia_os_demais():
    notifier = ChangeNotifier()
    recebidos = []

    def quebrado(colecao, snapshot):
        raise RuntimeError("falhou")

    notifier.subscribe("usuarios", quebrado)
    notifier.subscribe("usuarios", lambda colecao, snapshot: recebidos.append(snapshot))
    notifier.publish("usuarios", [{"uid": "x"}])

    assert recebidos == [[{"uid": "x"}]]


def test_escrita_de_agendamento_publica_snapshot_ordenado(db):
    snapshots = []
    get_notifier().subscribe("agendamentos", lambda colecao, snapshot: snapshots.append(snapshot))

    for horario in ("15:00", "08:00"):
        crud.criar_agendamento(db, schemas.AgendamentoCreate(
            nome_paciente=f"Paciente {horario}", medico_uid="medico-1", data=date(2024, 5, 10), horario=horario
        ))

    assert len(snapshots) == 2
    assert [a["horario"] for a in snapshots[-1]] == ["08:00", "15:00"]
    assert snapshots[-1][0]["data"] == "2024-05-10"


def test_escritas_de_usuario_e_laudo_publicam(db):
    colecoes = []
    notifier = get_notifier()
    for colecao in ("usuarios", "laudos"):
        notifier.subscribe(colecao, lambda c, snapshot: colecoes.append(c))

    perfil = schemas.UsuarioProfile(**crud.buscar_usuario_por_uid(db, "medico-1"))
    laudo = crud.criar_laudo(db, schemas.LaudoCreate(nome_paciente="João", tipo_laudo="ECG"), perfil)
    crud.submeter_laudo(db, laudo.id, FakeModel())
    crud.atualizar_perfil(db, "medico-1", schemas.PerfilUpdate(crm="CRM/SP 1"))

    assert colecoes == ["laudos", "laudos", "usuarios"]


def test_sem_assinantes_nao_monta_snapshot(db, monkeypatch):
    chamadas = []
    monkeypatch.setattr(crud, "snapshot_colecao", lambda db, colecao: chamadas.append(colecao) or [])
    crud.atualizar_role(db, "medico-2", schemas.Role.ADMIN, "admin-1")
    assert chamadas == []
