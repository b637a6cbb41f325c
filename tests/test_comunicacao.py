"""Tests for chat rooms and direct messages."""

import pytest

from modules.comunicacao import (
    TEXTO_BUZZ,
    TEXTO_EXCLUIDA,
    adicionar_membro_sala,
    adicionar_todos_sala_geral,
    buzz,
    criar_sala,
    enviar_mensagem,
    enviar_mensagem_direta,
    excluir_mensagem,
    get_contatos_frequentes,
    get_conversa,
    get_conversas,
    get_membros_sala,
    get_mensagens,
    get_salas,
    remover_membro_sala,
)
from modules.excecoes import RegistroNaoEncontrado, RegraNegocioError


@pytest.fixture
def sala(criar_usuario):
    moderador = criar_usuario("Moderador")
    membro = criar_usuario("Membro")
    sala_id = criar_sala("Vozes", moderador)
    adicionar_membro_sala(sala_id, membro)
    return {"id": sala_id, "moderador": moderador, "membro": membro}


class TestSalas:
    """Room creation and membership."""

    def test_criador_vira_moderador(self, sala):
        """The creator joins as moderator."""
        papeis = {m["usuario_id"]: m["papel"] for m in get_membros_sala(sala["id"])}
        assert papeis == {sala["moderador"]: "moderador", sala["membro"]: "membro"}

    def test_validacoes(self, criar_usuario):
        """Name and type are validated."""
        usuario = criar_usuario()
        with pytest.raises(RegraNegocioError):
            criar_sala("  ", usuario)
        with pytest.raises(RegraNegocioError):
            criar_sala("Sala", usuario, tipo="secreta")

    def test_papel_invalido(self, sala, criar_usuario):
        """Only known roles are accepted."""
        with pytest.raises(RegraNegocioError):
            adicionar_membro_sala(sala["id"], criar_usuario(), papel="dono")

    def test_sala_inexistente(self, criar_usuario):
        """Adding to an unknown room raises."""
        with pytest.raises(RegistroNaoEncontrado):
            adicionar_membro_sala(999, criar_usuario())

    def test_readicionar_atualiza_papel(self, sala):
        """Adding an existing member updates the role."""
        adicionar_membro_sala(sala["id"], sala["membro"], papel="moderador")
        assert all(m["papel"] == "moderador" for m in get_membros_sala(sala["id"]))

    def test_remover_membro(self, sala):
        """Removed members lose access to the room."""
        remover_membro_sala(sala["id"], sala["membro"])
        assert get_salas(sala["membro"]) == []
        with pytest.raises(RegistroNaoEncontrado):
            remover_membro_sala(sala["id"], sala["membro"])

    def test_sala_geral_inclui_todos(self, criar_usuario):
        """General rooms include every approved active user."""
        criador = criar_usuario()
        outro = criar_usuario()
        pendente = criar_usuario(aprovado=False)
        sala_id = criar_sala("Geral", criador, tipo="geral")

        membros = {m["usuario_id"] for m in get_membros_sala(sala_id)}
        assert membros == {criador, outro}
        assert pendente not in membros
        assert adicionar_todos_sala_geral() == 0

        novo = criar_usuario()
        assert adicionar_todos_sala_geral() == 1
        assert get_salas(novo)[0]["id"] == sala_id


class TestMensagensSala:
    """Room messages."""

    def test_ordem_cronologica(self, sala):
        """Messages come oldest first, limited to the latest ones."""
        for texto in ("um", "dois", "três"):
            enviar_mensagem(sala["id"], sala["membro"], texto)
        assert [m["mensagem"] for m in get_mensagens(sala["id"])] == ["um", "dois", "três"]
        assert [m["mensagem"] for m in get_mensagens(sala["id"], limite=2)] == ["dois", "três"]

    def test_mensagem_vazia_ou_longa(self, sala):
        """Empty and oversized messages are rejected."""
        with pytest.raises(RegraNegocioError):
            enviar_mensagem(sala["id"], sala["membro"], "   ")
        with pytest.raises(RegraNegocioError):
            enviar_mensagem(sala["id"], sala["membro"], "x" * 2001)
        assert enviar_mensagem(sala["id"], sala["membro"], "x" * 2000)

    def test_somente_participantes(self, sala, criar_usuario):
        """Outsiders cannot post."""
        with pytest.raises(RegraNegocioError):
            enviar_mensagem(sala["id"], criar_usuario(), "oi")

    def test_buzz(self, sala):
        """A buzz is a message of its own type."""
        buzz(sala["id"], sala["membro"])
        [mensagem] = get_mensagens(sala["id"])
        assert mensagem["tipo"] == "buzz"
        assert mensagem["mensagem"] == TEXTO_BUZZ

    def test_autor_apaga(self, sala):
        """Deleted messages keep their place with a placeholder text."""
        mensagem = enviar_mensagem(sala["id"], sala["membro"], "ops")
        excluir_mensagem(mensagem, sala["membro"])
        [apagada] = get_mensagens(sala["id"])
        assert apagada["excluida"] == 1
        assert apagada["mensagem"] == TEXTO_EXCLUIDA

    def test_moderador_apaga(self, sala):
        """Moderators can delete anyone's message."""
        mensagem = enviar_mensagem(sala["id"], sala["membro"], "spam")
        excluir_mensagem(mensagem, sala["moderador"])
        assert get_mensagens(sala["id"])[0]["excluida"] == 1

    def test_outro_membro_nao_apaga(self, sala, criar_usuario):
        """Regular members cannot delete others' messages."""
        colega = criar_usuario()
        adicionar_membro_sala(sala["id"], colega)
        mensagem = enviar_mensagem(sala["id"], sala["membro"], "minha")
        with pytest.raises(RegraNegocioError):
            excluir_mensagem(mensagem, colega)

    def test_apagar_inexistente(self, sala):
        """Deleting an unknown message raises."""
        with pytest.raises(RegistroNaoEncontrado):
            excluir_mensagem(999, sala["moderador"])


class TestMensagensDiretas:
    """One-to-one conversations."""

    def test_conversa_e_leitura(self, criar_usuario):
        """Opening a conversation marks the received messages as read."""
        ana = criar_usuario("Ana")
        beto = criar_usuario("Beto")
        enviar_mensagem_direta(ana, beto, "Oi Beto")
        enviar_mensagem_direta(ana, beto, "Tudo bem?")
        enviar_mensagem_direta(beto, ana, "Tudo!")

        [conversa] = get_conversas(beto)
        assert conversa["contato_id"] == ana
        assert conversa["contato_nome"] == "Ana"
        assert conversa["nao_lidas"] == 2
        assert conversa["ultima_mensagem"] == "Tudo!"

        mensagens = get_conversa(beto, ana)
        assert [m["mensagem"] for m in mensagens] == ["Oi Beto", "Tudo bem?", "Tudo!"]
        assert get_conversas(beto)[0]["nao_lidas"] == 0
        assert get_conversas(ana)[0]["nao_lidas"] == 1

    def test_sem_marcar_lidas(self, criar_usuario):
        """Peeking at a conversation can leave it unread."""
        ana = criar_usuario()
        beto = criar_usuario()
        enviar_mensagem_direta(ana, beto, "Oi")
        get_conversa(beto, ana, marcar_lidas=False)
        assert get_conversas(beto)[0]["nao_lidas"] == 1

    def test_para_si_mesmo(self, criar_usuario):
        """Sending to yourself is rejected."""
        ana = criar_usuario()
        with pytest.raises(RegraNegocioError):
            enviar_mensagem_direta(ana, ana, "Oi")

    def test_contatos_frequentes(self, criar_usuario):
        """Frequent contacts are ranked by message count."""
        ana = criar_usuario("Ana")
        beto = criar_usuario("Beto")
        caio = criar_usuario("Caio")
        enviar_mensagem_direta(ana, caio, "1")
        enviar_mensagem_direta(caio, ana, "2")
        enviar_mensagem_direta(ana, beto, "3")
        contatos = get_contatos_frequentes(ana)
        assert [(c["id"], c["total"]) for c in contatos] == [(caio, 2), (beto, 1)]
