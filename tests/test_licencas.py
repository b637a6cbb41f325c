"""Tests for member leaves and active-status lookups."""

from datetime import date

import pytest

from database.db import get_connection
from modules.excecoes import RegistroNaoEncontrado, RegraNegocioError
from modules.licencas import (
    aprovar_licenca,
    cancelar_licenca,
    criar_licenca,
    esta_de_licenca,
    esta_desligado,
    filtrar_ativos,
    finalizar_licenca,
    get_ids_inativos,
    get_licenca,
    get_licencas,
    limpar_cache_inativos,
    rejeitar_licenca,
)
from modules.notificacoes import get_notificacoes

HOJE = date(2025, 3, 10)


class TestCriarLicenca:
    """Leave creation."""

    def test_comeca_pendente(self, criar_integrante):
        """New leaves wait for approval and do not deactivate the member."""
        integrante = criar_integrante()
        licenca_id = criar_licenca(integrante, "estudos", date(2025, 3, 1), date(2025, 3, 31))
        assert get_licenca(licenca_id)["status"] == "pendente"
        assert esta_de_licenca(integrante, HOJE) is False

    def test_sem_data_fim_e_indefinida(self, criar_integrante):
        """A leave without an end date is indefinite."""
        licenca_id = criar_licenca(criar_integrante(), "enfermidade", date(2025, 3, 1))
        assert get_licenca(licenca_id)["indefinida"] == 1

    def test_tipo_invalido(self, criar_integrante):
        """Unknown leave types are rejected."""
        with pytest.raises(RegraNegocioError):
            criar_licenca(criar_integrante(), "viagem", date(2025, 3, 1))

    def test_datas_invertidas(self, criar_integrante):
        """The end date cannot precede the start date."""
        with pytest.raises(RegraNegocioError):
            criar_licenca(criar_integrante(), "ferias", date(2025, 3, 10), date(2025, 3, 1))

    def test_integrante_inexistente(self):
        """The member must exist."""
        with pytest.raises(RegistroNaoEncontrado):
            criar_licenca(999, "ferias", date(2025, 3, 1))

    def test_filtros(self, criar_integrante):
        """Leaves can be listed by status and type."""
        integrante = criar_integrante()
        criar_licenca(integrante, "ferias", date(2025, 1, 1), date(2025, 1, 10))
        aprovar_licenca(criar_licenca(integrante, "trabalho", date(2025, 2, 1), date(2025, 2, 10)), None)
        assert len(get_licencas({"integrante_id": integrante})) == 2
        assert [l["tipo"] for l in get_licencas({"status": "aprovada"})] == ["trabalho"]


class TestTransicoes:
    """Status transitions."""

    def test_aprovada_no_periodo(self, criar_integrante):
        """An approved leave is active only inside its period."""
        integrante = criar_integrante()
        aprovar_licenca(criar_licenca(integrante, "ferias", date(2025, 3, 1), date(2025, 3, 15)), None)
        assert esta_de_licenca(integrante, HOJE) is True
        assert esta_de_licenca(integrante, date(2025, 3, 16)) is False
        assert esta_de_licenca(integrante, date(2025, 2, 28)) is False

    def test_indefinida_vale_ate_finalizar(self, criar_integrante):
        """An indefinite leave lasts until it is finished."""
        integrante = criar_integrante()
        licenca_id = criar_licenca(integrante, "maternidade", date(2025, 3, 1))
        aprovar_licenca(licenca_id, None)
        assert esta_de_licenca(integrante, date(2030, 1, 1)) is True

        finalizar_licenca(licenca_id, None, hoje=HOJE)
        licenca = get_licenca(licenca_id)
        assert licenca["status"] == "finalizada"
        assert licenca["data_fim"] == "2025-03-10"
        assert esta_de_licenca(integrante, date(2025, 3, 11)) is False

    def test_rejeitar_exige_motivo(self, criar_integrante):
        """Rejection needs a reason."""
        licenca_id = criar_licenca(criar_integrante(), "ferias", date(2025, 3, 1))
        with pytest.raises(RegraNegocioError):
            rejeitar_licenca(licenca_id, None, "")

    def test_rejeitada_nao_pode_ser_aprovada(self, criar_integrante):
        """Only pending leaves can be approved."""
        licenca_id = criar_licenca(criar_integrante(), "ferias", date(2025, 3, 1))
        rejeitar_licenca(licenca_id, None, "Período de conferência")
        assert get_licenca(licenca_id)["motivo_rejeicao"] == "Período de conferência"
        with pytest.raises(RegraNegocioError):
            aprovar_licenca(licenca_id, None)

    def test_cancelar_aprovada(self, criar_integrante):
        """Cancelling an approved leave reactivates the member."""
        integrante = criar_integrante()
        licenca_id = criar_licenca(integrante, "ferias", date(2025, 3, 1), date(2025, 3, 31))
        aprovar_licenca(licenca_id, None)
        cancelar_licenca(licenca_id, None)
        assert esta_de_licenca(integrante, HOJE) is False

    def test_finalizar_pendente(self, criar_integrante):
        """Only approved leaves can be finished."""
        licenca_id = criar_licenca(criar_integrante(), "ferias", date(2025, 3, 1))
        with pytest.raises(RegraNegocioError):
            finalizar_licenca(licenca_id, None, hoje=HOJE)

    def test_licenca_inexistente(self):
        """Transitions on unknown leaves raise."""
        with pytest.raises(RegistroNaoEncontrado):
            aprovar_licenca(999, None)

    def test_baixa_definitiva(self, criar_integrante):
        """Definitive withdrawal marks the member as disconnected."""
        integrante = criar_integrante()
        outro = criar_integrante()
        aprovar_licenca(criar_licenca(integrante, "baixa_definitiva", date(2025, 1, 1)), None)
        aprovar_licenca(criar_licenca(outro, "ferias", date(2025, 3, 1), date(2025, 3, 31)), None)
        assert esta_desligado(integrante, HOJE) is True
        assert esta_desligado(outro, HOJE) is False

    def test_aprovacao_notifica_o_integrante(self, criar_integrante, criar_usuario):
        """The member's account and admins are told about the approval."""
        integrante = criar_integrante("Carla", "Mendes")
        usuario = criar_usuario(integrante_id=integrante)
        admin = criar_usuario(perfil="admin")
        licenca_id = criar_licenca(integrante, "estudos", date(2025, 3, 1), date(2025, 3, 31),
                                   motivo="Provas finais", motivo_visivel=True)
        aprovar_licenca(licenca_id, admin)

        [notificacao] = get_notificacoes(usuario)
        assert notificacao["tipo"] == "licenca"
        assert "Provas finais" in notificacao["mensagem"]
        assert get_notificacoes(admin)[0]["metadata"]["integrante_id"] == integrante


class TestInativos:
    """Inactive member ids and their cache."""

    def test_filtrar_ativos(self, criar_integrante):
        """Members on leave are removed from id lists."""
        ativo = criar_integrante()
        afastado = criar_integrante()
        aprovar_licenca(criar_licenca(afastado, "ferias", date(2025, 3, 1), date(2025, 3, 31)), None)
        assert get_ids_inativos(HOJE) == {afastado}
        assert filtrar_ativos([ativo, afastado], HOJE) == [ativo]

    def test_cache_por_data(self, criar_integrante):
        """Results are cached until invalidated or the date changes."""
        integrante = criar_integrante()
        licenca_id = criar_licenca(integrante, "ferias", date(2025, 3, 1), date(2025, 3, 31))
        assert get_ids_inativos(HOJE) == set()

        with get_connection() as conn:
            conn.execute("UPDATE licencas SET status = 'aprovada' WHERE id = ?", (licenca_id,))

        assert get_ids_inativos(HOJE) == set()
        assert get_ids_inativos(date(2025, 3, 11)) == {integrante}

        limpar_cache_inativos()
        assert get_ids_inativos(HOJE) == {integrante}
