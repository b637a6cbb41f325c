"""Tests for director replacement requests."""

from datetime import date, datetime, timedelta

import pytest

from modules import reemplazos
from modules.agenda import get_servico
from modules.excecoes import RegraNegocioError
from modules.licencas import aprovar_licenca, criar_licenca
from modules.notificacoes import get_notificacoes
from modules.reemplazos import (
    cancelar_solicitacao,
    expirar_solicitacoes,
    get_diretores_disponiveis,
    get_historico_substituicoes,
    get_solicitacao,
    get_solicitacoes_do_servico,
    get_solicitacoes_pendentes,
    responder_solicitacao,
    solicitar_substituicao,
)

AGORA = datetime(2025, 1, 6, 10, 0)


@pytest.fixture
def cenario(criar_diretor, criar_servico):
    ana = criar_diretor("Ana", "Souza")
    beto = criar_diretor("Beto", "Reis")
    servico = criar_servico(datetime(2025, 1, 12, 8, 0), diretor_id=ana["id"])
    return {"ana": ana, "beto": beto, "servico": servico}


class TestSolicitar:
    """Creating a request."""

    def test_cria_pendente_e_notifica(self, cenario):
        """The substitute receives a request that expires in 24 hours."""
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], "Viagem", agora=AGORA)
        solicitacao = get_solicitacao(solicitacao_id)
        assert solicitacao["status"] == "pendente"
        assert solicitacao["expira_em"] == "2025-01-07 10:00:00"

        [notificacao] = get_notificacoes(cenario["beto"]["usuario_id"])
        assert notificacao["tipo"] == "director_replacement_request"
        assert notificacao["metadata"]["solicitacao_id"] == solicitacao_id

    def test_somente_diretor_designado(self, cenario, criar_diretor):
        """Only the assigned director may ask for a replacement."""
        outro = criar_diretor("Caio")
        with pytest.raises(RegraNegocioError):
            solicitar_substituicao(cenario["servico"], outro["id"], cenario["beto"]["id"], agora=AGORA)

    def test_substituto_diferente(self, cenario):
        """The substitute must be someone else."""
        with pytest.raises(RegraNegocioError):
            solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], cenario["ana"]["id"], agora=AGORA)

    def test_substituto_de_licenca(self, cenario):
        """A substitute on leave on the service date is refused."""
        licenca = criar_licenca(cenario["beto"]["id"], "ferias", date(2025, 1, 10), date(2025, 1, 20))
        aprovar_licenca(licenca, None)
        with pytest.raises(RegraNegocioError):
            solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], cenario["beto"]["id"], agora=AGORA)

    def test_uma_pendente_por_servico(self, cenario, criar_diretor):
        """Only one pending request per service is allowed."""
        caio = criar_diretor("Caio")
        solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], cenario["beto"]["id"], agora=AGORA)
        with pytest.raises(RegraNegocioError):
            solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], caio["id"], agora=AGORA)

    def test_nova_solicitacao_apos_expirar(self, cenario, criar_diretor):
        """An expired request no longer blocks a new one."""
        caio = criar_diretor("Caio")
        solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], cenario["beto"]["id"], agora=AGORA)
        depois = AGORA + timedelta(hours=25)
        assert solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], caio["id"], agora=depois)
        assert len(get_solicitacoes_do_servico(cenario["servico"])) == 2


class TestResponder:
    """Answering a request."""

    def test_aceitar_troca_o_diretor(self, cenario, criar_usuario):
        """Acceptance moves the service and records the history."""
        membro = criar_usuario()
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], "Viagem", agora=AGORA)
        resposta = responder_solicitacao(solicitacao_id, cenario["beto"]["id"], True,
                                         notas="Sem problemas", agora=AGORA + timedelta(hours=2))

        assert resposta["status"] == "aceita"
        servico = get_servico(cenario["servico"])
        assert servico["diretor_id"] == cenario["beto"]["id"]
        assert "Diretor original: Ana Souza" in servico["notas"]
        assert "Substituído por: Beto Reis" in servico["notas"]

        [historico] = get_historico_substituicoes()
        assert historico["diretor_original_nome"] == "Ana Souza"
        assert historico["motivo"] == "Viagem"

        assert {n["tipo"] for n in get_notificacoes(cenario["ana"]["usuario_id"])} == {
            "director_replacement_response", "director_change"}
        assert get_notificacoes(membro)[0]["tipo"] == "director_change"

    def test_rejeitar_mantem_o_diretor(self, cenario):
        """Rejection keeps the original director."""
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], agora=AGORA)
        responder_solicitacao(solicitacao_id, cenario["beto"]["id"], False, agora=AGORA)
        assert get_servico(cenario["servico"])["diretor_id"] == cenario["ana"]["id"]
        assert get_historico_substituicoes() == []
        [resposta] = get_notificacoes(cenario["ana"]["usuario_id"])
        assert resposta["metadata"]["status"] == "rejeitada"

    def test_somente_o_convidado_responde(self, cenario, criar_diretor):
        """Only the addressed substitute can answer."""
        caio = criar_diretor("Caio")
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], agora=AGORA)
        with pytest.raises(RegraNegocioError):
            responder_solicitacao(solicitacao_id, caio["id"], True, agora=AGORA)

    def test_resposta_apos_expirar(self, cenario):
        """Answering after 24 hours marks the request as expired."""
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], agora=AGORA)
        with pytest.raises(RegraNegocioError):
            responder_solicitacao(solicitacao_id, cenario["beto"]["id"], True,
                                  agora=AGORA + timedelta(hours=24))
        assert get_solicitacao(solicitacao_id)["status"] == "expirada"
        assert get_servico(cenario["servico"])["diretor_id"] == cenario["ana"]["id"]

    def test_resposta_duplicada(self, cenario):
        """An answered request cannot be answered again."""
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], agora=AGORA)
        responder_solicitacao(solicitacao_id, cenario["beto"]["id"], False, agora=AGORA)
        with pytest.raises(RegraNegocioError):
            responder_solicitacao(solicitacao_id, cenario["beto"]["id"], True, agora=AGORA)

    def test_aceite_simultaneo(self, cenario, monkeypatch):
        """A second accept working from a stale read is refused and writes no history."""
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], agora=AGORA)
        leitura_antiga = get_solicitacao(solicitacao_id)
        responder_solicitacao(solicitacao_id, cenario["beto"]["id"], True, agora=AGORA)

        monkeypatch.setattr(reemplazos, "get_solicitacao", lambda _id: leitura_antiga)
        with pytest.raises(RegraNegocioError):
            responder_solicitacao(solicitacao_id, cenario["beto"]["id"], True, agora=AGORA)
        assert len(get_historico_substituicoes()) == 1


class TestManutencao:
    """Expiration, cancellation and listings."""

    def test_expirar_em_lote(self, cenario):
        """The background sweep expires overdue requests."""
        solicitar_substituicao(cenario["servico"], cenario["ana"]["id"], cenario["beto"]["id"], agora=AGORA)
        assert len(get_solicitacoes_pendentes(cenario["beto"]["id"], agora=AGORA)) == 1
        assert expirar_solicitacoes(AGORA + timedelta(hours=1)) == 0
        assert expirar_solicitacoes(AGORA + timedelta(hours=25)) == 1
        assert get_solicitacoes_pendentes(cenario["beto"]["id"], agora=AGORA) == []

    def test_cancelar(self, cenario):
        """Only the requester can cancel a pending request."""
        solicitacao_id = solicitar_substituicao(cenario["servico"], cenario["ana"]["id"],
                                                cenario["beto"]["id"], agora=AGORA)
        with pytest.raises(RegraNegocioError):
            cancelar_solicitacao(solicitacao_id, cenario["beto"]["id"])
        cancelar_solicitacao(solicitacao_id, cenario["ana"]["id"])
        assert get_solicitacao(solicitacao_id)["status"] == "cancelada"

    def test_diretores_disponiveis(self, cenario, criar_diretor, criar_integrante):
        """Available directors exclude the current one and those on leave."""
        caio = criar_diretor("Caio")
        criar_integrante("Dora", cargo="corista")
        aprovar_licenca(criar_licenca(caio["id"], "ferias", date(2025, 1, 1), date(2025, 1, 31)), None)
        assert [d["id"] for d in get_diretores_disponiveis(cenario["servico"])] == [cenario["beto"]["id"]]
