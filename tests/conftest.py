"""
Fixtures compartilhadas: Firestore em memória, modelo de IA falso e TestClient
com as dependências de banco, IA e token substituídas.
"""

import copy
import uuid

import pytest
from fastapi.testclient import TestClient

import change_notifier
import config
import identity
import main
from database import get_db
from errors import AuthFailure
from gemini_client import get_gemini_client

TOKEN_INVALIDO = "token-invalido"

# =============================================================================
# MOCK DO FIRESTORE PARA TESTES
# =============================================================================

_OPERADORES = {
    "==": lambda a, b: a == b,
    ">=": lambda a, b: a is not None and a >= b,
    "<": lambda a, b: a is not None and a < b,
}


class MockSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class MockDocument:
    def __init__(self, store, doc_id):
        self._store = store
        self.id = doc_id

    def get(self):
        return MockSnapshot(self.id, self._store.get(self.id))

    def set(self, data, merge=False):
        if merge and self.id in self._store:
            self._store[self.id].update(copy.deepcopy(data))
        else:
            self._store[self.id] = copy.deepcopy(data)

    def update(self, data):
        if self.id not in self._store:
            raise KeyError(f"Documento {self.id} não existe")
        self._store[self.id].update(copy.deepcopy(data))

    def delete(self):
        self._store.pop(self.id, None)


class MockQuery:
    def __init__(self, store, filtros=None, ordens=None):
        self._store = store
        self._filtros = filtros or []
        self._ordens = ordens or []

    def where(self, campo, op, valor):
        return MockQuery(self._store, self._filtros + [(campo, op, valor)], self._ordens)

    def order_by(self, campo, direction="ASCENDING"):
        return MockQuery(self._store, self._filtros, self._ordens + [(campo, direction)])

    def stream(self):
        docs = [
            MockSnapshot(doc_id, data)
            for doc_id, data in self._store.items()
            if all(_OPERADORES[op](data.get(campo), valor) for campo, op, valor in self._filtros)
        ]
        # Ordenação estável: aplica do último critério para o primeiro
        for campo, direction in reversed(self._ordens):
            docs.sort(key=lambda d: d._data.get(campo), reverse=(direction == "DESCENDING"))
        return iter(docs)


class MockCollection(MockQuery):
    def __init__(self, store):
        super().__init__(store)

    def document(self, doc_id=None):
        return MockDocument(self._store, doc_id or uuid.uuid4().hex[:20])


class MockFirestore:
    """Mock do Firestore para testes (coleções em dicionários)"""

    def __init__(self):
        self.data = {}

    def collection(self, name):
        return MockCollection(self.data.setdefault(name, {}))


class FakeModel:
    """Modelo de IA falso que conta as chamadas e guarda os prompts recebidos."""

    def __init__(self, texto="DRAFT", imagem="data:image/png;base64,iVBORw0KGgo=", erro=None):
        self.texto = texto
        self.imagem = imagem
        self.erro = erro
        self.chamadas_texto = 0
        self.chamadas_imagem = 0
        self.prompts = []

    def gerar_texto(self, prompt):
        self.chamadas_texto += 1
        self.prompts.append(prompt)
        if self.erro:
            raise self.erro
        return self.texto

    def gerar_imagem(self, prompt):
        self.chamadas_imagem += 1
        self.prompts.append(prompt)
        if self.erro:
            raise self.erro
        return self.imagem


def criar_usuario(db, uid, nome, role="doctor", email=None, especialidade="Clínica Geral", crm=None):
    db.collection("usuarios").document(uid).set({
        "nome": nome,
        "email": email or f"{uid}@clinica.com.br",
        "especialidade": especialidade,
        "crm": crm,
        "role": role,
        "assinatura": None,
    })


def auth_header(uid):
    return {"Authorization": f"Bearer {uid}"}

# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def estado_global_limpo(monkeypatch):
    monkeypatch.setattr(change_notifier, "_notifier_instance", None)
    monkeypatch.setattr(config, "ADMIN_UIDS", set())


@pytest.fixture
def db():
    banco = MockFirestore()
    criar_usuario(banco, "medico-1", "Dra. Ana Souza", crm="CRM/SP 123456")
    criar_usuario(banco, "medico-2", "Dr. Bruno Lima", especialidade="Radiologia")
    criar_usuario(banco, "admin-1", "Carla Admin", role="admin")
    return banco


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def client(db, fake_model, monkeypatch):
    def verificar_token_falso(token):
        if not token or token == TOKEN_INVALIDO:
            raise AuthFailure(AuthFailure.INVALID_CREDENTIAL)
        return token

    monkeypatch.setattr(identity, "verificar_token", verificar_token_falso)
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[get_gemini_client] = lambda: fake_model
    # Sem "with": o evento de startup (Firebase real) não é executado
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
