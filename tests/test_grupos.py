"""Tests for worship groups, microphone order and rotation."""

from datetime import date

import pytest

from modules.excecoes import RegistroNaoEncontrado, RegraNegocioError
from modules.grupos import (
    adicionar_membro_grupo,
    atualizar_formacao,
    atualizar_ordem_microfones,
    get_grupos,
    get_membros_grupo,
    remover_membro_grupo,
    rotacao_grupos,
    salvar_grupo,
)
from modules.integrantes import get_integrante
from modules.licencas import aprovar_licenca, criar_licenca

HOJE = date(2025, 3, 10)


class TestSalvarGrupo:
    """Group validation."""

    def test_nome_obrigatorio(self):
        """A group needs a name."""
        with pytest.raises(RegraNegocioError):
            salvar_grupo({"nome": " "})

    def test_nome_unico(self, criar_grupo):
        """Names are unique regardless of case."""
        criar_grupo("Grupo de Aleida")
        with pytest.raises(RegraNegocioError):
            salvar_grupo({"nome": "grupo de aleida"})

    def test_contagem_de_integrantes(self, criar_grupo, criar_integrante):
        """The listing carries the number of active members."""
        grupo = criar_grupo()
        adicionar_membro_grupo(grupo, criar_integrante())
        adicionar_membro_grupo(grupo, criar_integrante(), instrumento="piano")
        assert get_grupos()[0]["total_integrantes"] == 2


class TestMembros:
    """Group membership."""

    def test_instrumento_invalido(self, criar_grupo, criar_integrante):
        """Only known instruments are accepted."""
        with pytest.raises(RegraNegocioError):
            adicionar_membro_grupo(criar_grupo(), criar_integrante(), instrumento="ukulele")

    def test_grupo_inexistente(self, criar_integrante):
        """The group must exist."""
        with pytest.raises(RegistroNaoEncontrado):
            adicionar_membro_grupo(999, criar_integrante())

    def test_ordem_dos_microfones(self, criar_grupo, criar_integrante):
        """Members are listed by microphone order, unnumbered last."""
        grupo = criar_grupo()
        sem_ordem = adicionar_membro_grupo(grupo, criar_integrante("Aline"))
        segundo = adicionar_membro_grupo(grupo, criar_integrante("Bruna"), ordem_microfone=2)
        primeiro = adicionar_membro_grupo(grupo, criar_integrante("Carla"), ordem_microfone=1)
        assert [m["id"] for m in get_membros_grupo(grupo, hoje=HOJE)] == [primeiro, segundo, sem_ordem]

        atualizar_ordem_microfones(grupo, [sem_ordem, primeiro, segundo])
        membros = get_membros_grupo(grupo, hoje=HOJE)
        assert [m["id"] for m in membros] == [sem_ordem, primeiro, segundo]
        assert [m["ordem_microfone"] for m in membros] == [1, 2, 3]

    def test_integrante_de_licenca_fica_de_fora(self, criar_grupo, criar_integrante):
        """Members on leave are hidden unless inactive ones are requested."""
        grupo = criar_grupo()
        presente = criar_integrante()
        afastado = criar_integrante()
        adicionar_membro_grupo(grupo, presente)
        adicionar_membro_grupo(grupo, afastado)
        aprovar_licenca(criar_licenca(afastado, "ferias", date(2025, 3, 1), date(2025, 3, 31)), None)

        assert [m["integrante_id"] for m in get_membros_grupo(grupo, hoje=HOJE)] == [presente]
        assert len(get_membros_grupo(grupo, incluir_inativos=True)) == 2

    def test_remover_e_readicionar(self, criar_grupo, criar_integrante):
        """A removed member can be re-added to the same slot."""
        grupo = criar_grupo()
        integrante = criar_integrante()
        membro = adicionar_membro_grupo(grupo, integrante)
        remover_membro_grupo(membro)
        assert get_membros_grupo(grupo, hoje=HOJE) == []

        assert adicionar_membro_grupo(grupo, integrante, is_lider=True) == membro
        assert get_membros_grupo(grupo, hoje=HOJE)[0]["is_lider"] == 1


class TestFormacao:
    """Vocal line-up replacement."""

    def test_substitui_vozes(self, criar_grupo, criar_integrante):
        """The new line-up replaces the previous vocals."""
        grupo = criar_grupo("Grupo de Massy")
        antiga = criar_integrante("Olga", "Pires")
        adicionar_membro_grupo(grupo, antiga)
        ana = criar_integrante("Ana", "Souza")
        bia = criar_integrante("Bia", "Lima")

        resultados = atualizar_formacao("Grupo de Massy", [
            {"nome_completo": "Ana Souza", "voz": "Soprano", "lider": True, "ordem_microfone": 1},
            {"nome_completo": "bia lima", "voz": "Contralto", "ordem_microfone": 2},
            {"nome_completo": "Fulano de Tal", "voz": "Tenor"},
        ], hoje=HOJE)

        assert [r["sucesso"] for r in resultados] == [True, True, False]
        membros = get_membros_grupo(grupo, hoje=HOJE)
        assert [m["integrante_id"] for m in membros] == [ana, bia]
        assert membros[0]["is_lider"] == 1
        assert get_integrante(bia)["voz_instrumento"] == "Contralto"

    def test_grupo_inexistente(self):
        """An unknown group is reported, not raised."""
        [resultado] = atualizar_formacao("Grupo X", [])
        assert resultado["sucesso"] is False


class TestRotacao:
    """Three-group Sunday rotation."""

    @pytest.mark.parametrize("indice,esperado", [
        (0, ("A", "B", "C")),
        (1, ("C", "A", "B")),
        (2, ("B", "C", "A")),
        (3, ("A", "B", "C")),
    ])
    def test_ciclo(self, indice, esperado):
        """The rotation repeats every three Sundays."""
        rotacao = rotacao_grupos(indice, ["A", "B", "C"])
        assert (rotacao["servico1"], rotacao["servico2"], rotacao["descanso"]) == esperado

    def test_exige_tres_grupos(self):
        """Two groups are not enough."""
        with pytest.raises(RegraNegocioError):
            rotacao_grupos(0, ["A", "B"])
