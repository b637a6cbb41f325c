"""Fixtures compartilhadas: banco SQLite temporário e fábricas de registros."""

import itertools
import os
import tempfile
from datetime import datetime

import pytest

# Diretórios de dados fora do repositório antes de importar a aplicação
os.environ.setdefault("AGENDA_DATA_DIR", tempfile.mkdtemp(prefix="agenda-testes-"))

import database.db as db
from modules import licencas
from modules.auth import hash_senha
from modules.agenda import salvar_servico
from modules.cache_offline import CacheOffline
from modules.grupos import salvar_grupo
from modules.integrantes import salvar_integrante
from modules.repertorio import salvar_cancao

SENHA_PADRAO = "senha123"
SENHA_HASH = hash_senha(SENHA_PADRAO)


@pytest.fixture(autouse=True)
def banco(tmp_path, monkeypatch):
    """Banco vazio por teste."""
    caminho = tmp_path / "agenda_teste.db"
    monkeypatch.setattr(db, "DATABASE_PATH", caminho)
    db.init_database()
    licencas.limpar_cache_inativos()
    yield caminho
    licencas.limpar_cache_inativos()


@pytest.fixture
def cache(tmp_path):
    """Cache offline isolado em disco temporário."""
    return CacheOffline(diretorio=tmp_path / "cache")


@pytest.fixture
def criar_integrante():
    contador = itertools.count(1)

    def _criar(nomes=None, sobrenomes="Teste", cargo="corista", **extras):
        dados = {
            "nomes": nomes or f"Integrante{next(contador)}",
            "sobrenomes": sobrenomes,
            "cargo": cargo,
            **extras,
        }
        return salvar_integrante(dados)

    return _criar


@pytest.fixture
def criar_usuario():
    """Usuário aprovado e ativo, inserido direto (sem custo de bcrypt por teste)."""
    contador = itertools.count(1)

    def _criar(nome=None, perfil="membro", integrante_id=None, email=None, aprovado=True):
        numero = next(contador)
        nome = nome or f"Usuario {numero}"
        email = email or f"usuario{numero}@agenda.test"
        with db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO usuarios (nome, email, senha_hash, perfil, integrante_id, aprovado)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (nome, email, SENHA_HASH, perfil, integrante_id, 1 if aprovado else 0),
            )
            return cursor.lastrowid

    return _criar


@pytest.fixture
def criar_diretor(criar_integrante, criar_usuario):
    """Integrante diretor de louvor com conta de líder vinculada."""

    def _criar(nomes, sobrenomes="Diretor", com_conta=True):
        integrante_id = criar_integrante(nomes=nomes, sobrenomes=sobrenomes, cargo="diretor_louvor")
        usuario_id = None
        if com_conta:
            usuario_id = criar_usuario(
                nome=f"{nomes} {sobrenomes}", perfil="lider", integrante_id=integrante_id
            )
        return {"id": integrante_id, "usuario_id": usuario_id, "nome": f"{nomes} {sobrenomes}"}

    return _criar


@pytest.fixture
def criar_grupo():
    contador = itertools.count(1)

    def _criar(nome=None, cor="#3498db"):
        return salvar_grupo({"nome": nome or f"Grupo {next(contador)}", "cor": cor})

    return _criar


@pytest.fixture
def criar_servico():
    def _criar(data_servico=datetime(2025, 1, 12, 8, 0), titulo="08:00 a.m.", **extras):
        return salvar_servico({"titulo": titulo, "data_servico": data_servico, **extras})

    return _criar


@pytest.fixture
def criar_cancao():
    contador = itertools.count(1)

    def _criar(titulo=None, **extras):
        return salvar_cancao({"titulo": titulo or f"Canção {next(contador)}", **extras})

    return _criar
