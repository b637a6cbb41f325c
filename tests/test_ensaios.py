"""Tests for collaborative rehearsal sessions and their audio tracks."""

import sqlite3
from pathlib import Path

import pytest

from database.db import get_connection
from modules import ensaios
from modules.ensaios import (
    adicionar_faixa,
    convidar_participante,
    criar_sessao,
    encerrar_sessao,
    excluir_faixa,
    get_faixas,
    get_participantes,
    get_sessoes,
    responder_convite,
)
from modules.excecoes import RegistroNaoEncontrado, RegraNegocioError
from modules.notificacoes import get_notificacoes


@pytest.fixture(autouse=True)
def uploads(tmp_path, monkeypatch):
    pasta = tmp_path / "uploads"
    monkeypatch.setattr(ensaios, "UPLOADS_DIR", pasta)
    return pasta


@pytest.fixture
def sessao(criar_usuario):
    criador = criar_usuario("Diretor Musical")
    convidado = criar_usuario("Tenor")
    sessao_id = criar_sessao("Ensaio de Páscoa", criador)
    convidar_participante(sessao_id, convidado, criador)
    return {"id": sessao_id, "criador": criador, "convidado": convidado}


class TestConvites:
    """Invitations and answers."""

    def test_convite_notifica(self, sessao):
        """The invited user is notified with the session id."""
        [notificacao] = get_notificacoes(sessao["convidado"])
        assert notificacao["categoria"] == "ensaio"
        assert notificacao["metadata"] == {"sessao_id": sessao["id"]}
        assert "Ensaio de Páscoa" in notificacao["mensagem"]

    def test_somente_o_criador_convida(self, sessao, criar_usuario):
        """Participants cannot invite others."""
        with pytest.raises(RegraNegocioError):
            convidar_participante(sessao["id"], criar_usuario(), sessao["convidado"])

    def test_criador_nao_se_convida(self, sessao):
        """The creator is already part of the session."""
        with pytest.raises(RegraNegocioError):
            convidar_participante(sessao["id"], sessao["criador"], sessao["criador"])

    def test_titulo_obrigatorio(self, criar_usuario):
        """A session needs a title."""
        with pytest.raises(RegraNegocioError):
            criar_sessao(" ", criar_usuario())

    def test_aceitar(self, sessao):
        """Accepted invitations count as participants."""
        responder_convite(sessao["id"], sessao["convidado"], True)
        [participante] = get_participantes(sessao["id"])
        assert participante["status"] == "aceito"
        [listada] = get_sessoes(sessao["convidado"])
        assert listada["meu_status"] == "aceito"
        assert listada["total_participantes"] == 1

    def test_recusar_esconde_a_sessao(self, sessao):
        """Declined sessions disappear from the user's list."""
        responder_convite(sessao["id"], sessao["convidado"], False)
        assert get_sessoes(sessao["convidado"]) == []
        assert len(get_sessoes(sessao["criador"])) == 1

    def test_reconvidar_reabre(self, sessao):
        """Inviting again resets a declined invitation."""
        responder_convite(sessao["id"], sessao["convidado"], False)
        convidar_participante(sessao["id"], sessao["convidado"], sessao["criador"])
        assert get_sessoes(sessao["convidado"])[0]["meu_status"] == "convidado"

    def test_convite_inexistente(self, sessao, criar_usuario):
        """Answering without an invitation raises."""
        with pytest.raises(RegistroNaoEncontrado):
            responder_convite(sessao["id"], criar_usuario(), True)


class TestFaixas:
    """Track uploads."""

    def test_adicionar_grava_arquivo(self, sessao, uploads):
        """Tracks are written under the session folder with a safe name."""
        faixa_id = adicionar_faixa(sessao["id"], sessao["convidado"], "minha voz (take 2).mp3",
                                   b"ID3audio", tipo="voz", duracao_segundos=12.5)
        [faixa] = get_faixas(sessao["id"])
        assert faixa["id"] == faixa_id
        assert faixa["titulo"] == "minha voz (take 2).mp3"
        assert faixa["tamanho_bytes"] == 8

        arquivo = Path(faixa["arquivo"])
        assert arquivo.parent == uploads / "ensaios" / str(sessao["id"])
        assert arquivo.name.endswith("_minha_voz_take_2_.mp3")
        assert arquivo.read_bytes() == b"ID3audio"
        assert get_sessoes(sessao["criador"])[0]["total_faixas"] == 1

    def test_estranho_nao_envia(self, sessao, criar_usuario):
        """Users outside the session cannot upload."""
        with pytest.raises(RegraNegocioError):
            adicionar_faixa(sessao["id"], criar_usuario(), "x.mp3", b"data")

    def test_recusou_nao_envia(self, sessao):
        """Declining the invitation removes upload rights."""
        responder_convite(sessao["id"], sessao["convidado"], False)
        with pytest.raises(RegraNegocioError):
            adicionar_faixa(sessao["id"], sessao["convidado"], "x.mp3", b"data")

    def test_tipo_e_conteudo(self, sessao):
        """Track type and content are validated."""
        with pytest.raises(RegraNegocioError):
            adicionar_faixa(sessao["id"], sessao["criador"], "x.mp3", b"data", tipo="coral")
        with pytest.raises(RegraNegocioError):
            adicionar_faixa(sessao["id"], sessao["criador"], "x.mp3", b"")

    def test_falha_no_registro_remove_arquivo(self, sessao, uploads):
        """A failed insert leaves no file behind."""
        with get_connection() as conn:
            conn.execute('''
                CREATE TRIGGER bloquear_faixas BEFORE INSERT ON faixas_ensaio
                BEGIN SELECT RAISE(ABORT, 'falha simulada'); END
            ''')
        with pytest.raises(sqlite3.Error):
            adicionar_faixa(sessao["id"], sessao["convidado"], "voz.mp3", b"ID3")
        assert list((uploads / "ensaios" / str(sessao["id"])).iterdir()) == []

    def test_excluir(self, sessao):
        """The author or the creator removes the track and its file."""
        faixa_id = adicionar_faixa(sessao["id"], sessao["convidado"], "base.wav", b"RIFF", tipo="backing")
        arquivo = Path(get_faixas(sessao["id"])[0]["arquivo"])
        excluir_faixa(faixa_id, sessao["criador"])
        assert get_faixas(sessao["id"]) == []
        assert not arquivo.exists()

    def test_excluir_de_outro(self, sessao, criar_usuario):
        """Other participants cannot remove someone's track."""
        terceiro = criar_usuario()
        convidar_participante(sessao["id"], terceiro, sessao["criador"])
        faixa_id = adicionar_faixa(sessao["id"], sessao["convidado"], "voz.mp3", b"ID3")
        with pytest.raises(RegraNegocioError):
            excluir_faixa(faixa_id, terceiro)


class TestEncerramento:
    """Closing a session."""

    def test_encerrada_bloqueia(self, sessao):
        """Closed sessions accept no tracks or invitations."""
        encerrar_sessao(sessao["id"], sessao["criador"])
        with pytest.raises(RegraNegocioError, match="encerrada"):
            adicionar_faixa(sessao["id"], sessao["criador"], "x.mp3", b"data")
        with pytest.raises(RegraNegocioError):
            encerrar_sessao(sessao["id"], sessao["criador"])

    def test_somente_o_criador_encerra(self, sessao):
        """Participants cannot close the session."""
        with pytest.raises(RegraNegocioError):
            encerrar_sessao(sessao["id"], sessao["convidado"])

    def test_sessao_inexistente(self, criar_usuario):
        """Unknown sessions raise."""
        with pytest.raises(RegistroNaoEncontrado):
            encerrar_sessao(999, criar_usuario())
