"""Tests for the ministry agenda: services, weekends and yearly generation."""

import io
from datetime import date, datetime

import pytest

from modules.agenda import (
    confirmar_servico,
    domingos_do_ano,
    excluir_servico,
    gerar_link_whatsapp,
    gerar_servicos_ano,
    get_servico,
    get_servicos,
    get_servicos_do_diretor,
    get_servicos_do_mes,
    get_servicos_proximo_fim_de_semana,
    horario_servico,
    importar_servicos_csv,
    inicio_fim_de_semana,
    planejar_servicos_ano,
    salvar_servico,
)
from modules.excecoes import ImportacaoError, RegistroNaoEncontrado, RegraNegocioError
from modules.licencas import aprovar_licenca, criar_licenca


class TestSalvarServico:
    """Service validation."""

    def test_campos_derivados(self, criar_servico):
        """Month name and order are derived from the date."""
        servico = get_servico(criar_servico(datetime(2025, 3, 9, 10, 45)))
        assert servico["mes_nome"] == "Março"
        assert servico["mes_ordem"] == 3
        assert servico["data_servico"] == "2025-03-09 10:45:00"
        assert servico["local"] == "Templo Principal"

    def test_titulo_obrigatorio(self):
        """A title is required."""
        with pytest.raises(RegraNegocioError):
            salvar_servico({"titulo": "", "data_servico": datetime(2025, 1, 5, 8, 0)})

    def test_data_obrigatoria(self):
        """A date is required for new services."""
        with pytest.raises(RegraNegocioError):
            salvar_servico({"titulo": "Culto"})

    def test_tipo_invalido(self):
        """Only known service types are accepted."""
        with pytest.raises(RegraNegocioError):
            salvar_servico({"titulo": "Culto", "data_servico": datetime(2025, 1, 5, 8, 0), "tipo": "festa"})

    def test_diretor_de_licenca(self, criar_diretor):
        """A director on leave on that date cannot be assigned."""
        diretor = criar_diretor("Ana")
        licenca = criar_licenca(diretor["id"], "ferias", date(2025, 1, 1), date(2025, 1, 31))
        aprovar_licenca(licenca, aprovador_id=None)

        with pytest.raises(RegraNegocioError):
            salvar_servico({"titulo": "Culto", "data_servico": datetime(2025, 1, 12, 8, 0),
                            "diretor_id": diretor["id"]})

        servico_id = salvar_servico({"titulo": "Culto", "data_servico": datetime(2025, 2, 2, 8, 0),
                                     "diretor_id": diretor["id"]})
        assert get_servico(servico_id)["diretor_id"] == diretor["id"]

    def test_confirmar(self, criar_servico):
        """Confirmation is toggled on the service."""
        servico_id = criar_servico()
        confirmar_servico(servico_id)
        assert get_servico(servico_id)["confirmado"] == 1
        confirmar_servico(servico_id, False)
        assert get_servico(servico_id)["confirmado"] == 0

    def test_excluir_inexistente(self):
        """Deleting an unknown service raises."""
        with pytest.raises(RegistroNaoEncontrado):
            excluir_servico(404)


class TestConsultas:
    """Service queries by period, weekend and director."""

    def test_intervalo_inclusivo(self, criar_servico):
        """Both ends of the range are included."""
        criar_servico(datetime(2025, 1, 5, 8, 0))
        criar_servico(datetime(2025, 1, 12, 10, 45))
        criar_servico(datetime(2025, 1, 19, 8, 0))
        assert len(get_servicos(date(2025, 1, 5), date(2025, 1, 12))) == 2

    def test_filtro_por_diretor(self, criar_servico, criar_diretor):
        """Services can be filtered by director."""
        ana = criar_diretor("Ana")
        criar_servico(datetime(2025, 1, 5, 8, 0), diretor_id=ana["id"])
        criar_servico(datetime(2025, 1, 5, 10, 45))
        servicos = get_servicos(date(2025, 1, 1), date(2025, 1, 31), {"diretor_id": ana["id"]})
        assert len(servicos) == 1
        assert servicos[0]["diretor_nome"] == "Ana Diretor"

    def test_servicos_do_mes(self, criar_servico):
        """Month queries include the last day of the month."""
        criar_servico(datetime(2025, 11, 30, 8, 0))
        criar_servico(datetime(2025, 12, 1, 8, 0))
        criar_servico(datetime(2025, 12, 31, 19, 0))
        assert len(get_servicos_do_mes(2025, 12)) == 2

    def test_horario(self, criar_servico):
        """Known times get their label, others the raw hour."""
        assert horario_servico(get_servico(criar_servico(datetime(2025, 1, 5, 8, 0)))) == "08:00 a.m."
        assert horario_servico(get_servico(criar_servico(datetime(2025, 1, 5, 19, 30)))) == "19:30"

    @pytest.mark.parametrize("hoje,sexta", [
        (date(2025, 1, 8), date(2025, 1, 10)),
        (date(2025, 1, 10), date(2025, 1, 10)),
        (date(2025, 1, 11), date(2025, 1, 10)),
        (date(2025, 1, 12), date(2025, 1, 10)),
        (date(2025, 1, 13), date(2025, 1, 17)),
    ])
    def test_inicio_fim_de_semana(self, hoje, sexta):
        """The weekend window starts on the current or next Friday."""
        assert inicio_fim_de_semana(hoje) == sexta

    def test_servicos_do_fim_de_semana(self, criar_servico):
        """Only services from Friday to Sunday of that weekend are returned."""
        criar_servico(datetime(2025, 1, 12, 8, 0))
        criar_servico(datetime(2025, 1, 12, 10, 45))
        criar_servico(datetime(2025, 1, 19, 8, 0))
        servicos = get_servicos_proximo_fim_de_semana(date(2025, 1, 8))
        assert [s["data_servico"][:10] for s in servicos] == ["2025-01-12", "2025-01-12"]

    def test_servicos_do_diretor(self, criar_servico, criar_diretor):
        """Previous services come newest first."""
        ana = criar_diretor("Ana")
        antigos = [criar_servico(datetime(2025, 1, dia, 8, 0), diretor_id=ana["id"]) for dia in (5, 12, 19)]
        servicos = get_servicos_do_diretor(ana["id"], antes_de=datetime(2025, 1, 19, 8, 0))
        assert [s["id"] for s in servicos] == [antigos[1], antigos[0]]


class TestGeracaoAnual:
    """Yearly Sunday plan."""

    def test_domingos_do_ano(self):
        """Every Sunday of the year is listed."""
        domingos = domingos_do_ano(2025)
        assert len(domingos) == 52
        assert domingos[0] == date(2025, 1, 5)
        assert all(d.weekday() == 6 for d in domingos)
        assert len(domingos_do_ano(2023)) == 53

    def test_dois_servicos_por_domingo_com_rotacao(self):
        """Each Sunday gets two services and the groups rotate."""
        servicos = planejar_servicos_ano(2025, [1, 2, 3], [10, 11])
        assert len(servicos) == 104
        assert [s["data_servico"].strftime("%H:%M") for s in servicos[:2]] == ["08:00", "10:45"]
        assert [s["grupo_id"] for s in servicos[:2]] == [1, 2]
        assert [s["grupo_id"] for s in servicos[2:4]] == [3, 1]
        assert [s["grupo_id"] for s in servicos[4:6]] == [2, 3]
        assert {s["diretor_id"] for s in servicos} == {10, 11}

    def test_diretor_somente_08h(self):
        """Directors limited to 08:00 never get the 10:45 service."""
        servicos = planejar_servicos_ano(2025, [1, 2, 3], [10, 11], apenas_08h=[10])
        assert all(s["diretor_id"] != 10 for s in servicos if s["data_servico"].hour == 10)

    def test_sem_diretor_livre_para_10h45(self):
        """When every director is limited to 08:00 the 10:45 service stays without a director."""
        servicos = planejar_servicos_ano(2025, [1, 2, 3], [10, 11], apenas_08h=[10, 11])
        assert all(s["diretor_id"] is None for s in servicos if s["data_servico"].hour == 10)
        assert {s["diretor_id"] for s in servicos if s["data_servico"].hour == 8} == {10, 11}

    def test_diretor_vinculado_ao_grupo(self):
        """A director bound to a group leads that group's services."""
        servicos = planejar_servicos_ano(2025, [1, 2, 3], [10, 11, 12], diretores_grupo={12: 1})
        assert all(s["diretor_id"] == 12 for s in servicos if s["grupo_id"] == 1)

    def test_exige_tres_grupos(self):
        """The rotation needs exactly three groups."""
        with pytest.raises(RegraNegocioError):
            planejar_servicos_ano(2025, [1, 2], [10])

    def test_exige_diretores(self):
        """At least one director is needed."""
        with pytest.raises(RegraNegocioError):
            planejar_servicos_ano(2025, [1, 2, 3], [])

    def test_gerar_grava_uma_vez(self, criar_grupo, criar_diretor):
        """Generation writes the year once and refuses a second run."""
        grupos = [criar_grupo() for _ in range(3)]
        diretor = criar_diretor("Ana")
        assert gerar_servicos_ano(2025, grupos, [diretor["id"]]) == 104
        assert len(get_servicos_do_mes(2025, 1)) == 8
        with pytest.raises(RegraNegocioError):
            gerar_servicos_ano(2025, grupos, [diretor["id"]])

    def test_gerar_com_diretor_vinculado(self, criar_grupo, criar_diretor):
        """Generated services keep the director bound to each group."""
        grupos = [criar_grupo() for _ in range(3)]
        ana = criar_diretor("Ana")
        beto = criar_diretor("Beto")
        gerar_servicos_ano(2025, grupos, [ana["id"], beto["id"]], diretores_grupo={beto["id"]: grupos[0]})
        janeiro = get_servicos_do_mes(2025, 1)
        assert any(s["grupo_id"] == grupos[0] for s in janeiro)
        assert all(s["diretor_id"] == beto["id"] for s in janeiro if s["grupo_id"] == grupos[0])


class TestImportarServicos:
    """CSV import of services."""

    def test_importa_com_erros_por_linha(self, criar_integrante):
        """Bad rows are reported while good ones are inserted."""
        criar_integrante("Ana", "Souza", cargo="diretor_louvor")
        conteudo = io.StringIO(
            "titulo,data,hora,diretor\n"
            "Culto,05/01/2025,10:45,Ana Souza\n"
            "Culto,2025-01-12,,\n"
            "Culto,32/01/2025,08:00,\n"
            "Culto,2025-01-19,08:00,Ninguém\n"
        )
        resultado = importar_servicos_csv(conteudo)
        assert resultado["inseridos"] == 2
        assert len(resultado["erros"]) == 2

        servicos = get_servicos(date(2025, 1, 1), date(2025, 1, 31))
        assert servicos[0]["diretor_nome"] == "Ana Souza"
        assert servicos[1]["data_servico"] == "2025-01-12 08:00:00"

    def test_colunas_obrigatorias(self):
        """Title and date columns are mandatory."""
        with pytest.raises(ImportacaoError):
            importar_servicos_csv(io.StringIO("titulo,hora\nCulto,08:00\n"))


class TestWhatsapp:
    """WhatsApp links."""

    def test_link_so_com_digitos(self):
        """The phone keeps only digits and the message is URL encoded."""
        link = gerar_link_whatsapp("+55 (11) 99999-0000", "Olá mundo")
        assert link == "https://wa.me/5511999990000?text=Ol%C3%A1%20mundo"
