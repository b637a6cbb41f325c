"""Tests for ministry members: registry, encryption, birthdays and import."""

import io
from datetime import date

import pytest

from database.db import decrypt_data, encrypt_data, get_connection
from modules.excecoes import ImportacaoError, RegistroNaoEncontrado, RegraNegocioError
from modules.integrantes import (
    calcular_idade,
    desativar_integrante,
    get_aniversariantes_do_dia,
    get_aniversariantes_do_mes,
    get_diretores,
    get_integrante,
    get_integrante_por_nome,
    get_integrantes,
    importar_integrantes_csv,
    nome_completo,
    proximos_aniversarios,
    salvar_integrante,
)


class TestCadastro:
    """Member registry."""

    def test_salvar_e_buscar(self, criar_integrante):
        """Saved members come back with their dates in ISO form."""
        integrante_id = criar_integrante("Ana Paula", "Souza", cargo="corista",
                                         data_nascimento=date(1992, 7, 4), tipo_sangue="O+")
        integrante = get_integrante(integrante_id)
        assert nome_completo(integrante) == "Ana Paula Souza"
        assert integrante["data_nascimento"] == "1992-07-04"
        assert integrante["tipo_sangue"] == "O+"

    def test_nome_obrigatorio(self):
        """Name and surname are required."""
        with pytest.raises(RegraNegocioError):
            salvar_integrante({"nomes": "Ana", "sobrenomes": ""})

    def test_duplicado(self, criar_integrante):
        """The same full name cannot be registered twice."""
        criar_integrante("Ana", "Souza")
        with pytest.raises(RegraNegocioError):
            salvar_integrante({"nomes": " ana ", "sobrenomes": "SOUZA"})

    def test_cargo_e_tipo_sangue_invalidos(self):
        """Unknown roles and blood types are rejected."""
        with pytest.raises(RegraNegocioError):
            salvar_integrante({"nomes": "Ana", "sobrenomes": "Souza", "cargo": "tesoureiro"})
        with pytest.raises(RegraNegocioError):
            salvar_integrante({"nomes": "Ana", "sobrenomes": "Souza", "tipo_sangue": "Z+"})

    def test_atualizacao_parcial(self, criar_integrante):
        """Updates touch only the given fields."""
        integrante_id = criar_integrante("Ana", "Souza", celular="11999990000")
        salvar_integrante({"id": integrante_id, "voz_instrumento": "Soprano"})
        integrante = get_integrante(integrante_id)
        assert integrante["voz_instrumento"] == "Soprano"
        assert integrante["celular"] == "11999990000"

    def test_atualizar_inexistente(self):
        """Updating an unknown member raises."""
        with pytest.raises(RegistroNaoEncontrado):
            salvar_integrante({"id": 999, "nomes": "Ana", "sobrenomes": "Souza"})

    def test_desativar(self, criar_integrante):
        """Deactivated members leave the default listing and free their name."""
        integrante_id = criar_integrante("Ana", "Souza")
        desativar_integrante(integrante_id)
        assert get_integrantes() == []
        assert len(get_integrantes({"incluir_inativos": True})) == 1
        assert get_integrante_por_nome("Ana Souza") is None
        assert salvar_integrante({"nomes": "Ana", "sobrenomes": "Souza"})
        with pytest.raises(RegistroNaoEncontrado):
            desativar_integrante(integrante_id)

    def test_filtros(self, criar_integrante):
        """Listings filter by role and free text."""
        criar_integrante("Ana", "Souza", cargo="diretor_louvor")
        criar_integrante("Bruno", "Lima", cargo="musico", email="bruno@igreja.test")
        criar_integrante("Carla", "Dias", cargo="diretor_musical")
        assert [i["nomes"] for i in get_integrantes({"cargo": "musico"})] == ["Bruno"]
        assert [i["nomes"] for i in get_integrantes({"busca": "igreja.test"})] == ["Bruno"]
        assert [i["nomes"] for i in get_diretores()] == ["Ana", "Carla"]

    def test_busca_por_nome(self, criar_integrante):
        """Members are found by full name ignoring case."""
        integrante_id = criar_integrante("Ana", "Souza")
        assert get_integrante_por_nome("  ANA souza ")["id"] == integrante_id


class TestCriptografia:
    """Sensitive fields."""

    def test_campos_sensiveis_criptografados(self, criar_integrante):
        """Emergency contact and references are stored encrypted."""
        integrante_id = criar_integrante("Ana", "Souza", contato_emergencia="Mãe: 11 98888-0000",
                                         referencias="Pastor João")
        with get_connection() as conn:
            row = conn.execute("SELECT contato_emergencia_cripto, referencias_cripto FROM integrantes WHERE id = ?",
                               (integrante_id,)).fetchone()
        assert "98888" not in row["contato_emergencia_cripto"]
        assert decrypt_data(row["referencias_cripto"]) == "Pastor João"

        integrante = get_integrante(integrante_id)
        assert integrante["contato_emergencia"] == "Mãe: 11 98888-0000"
        assert "contato_emergencia_cripto" not in integrante

    def test_texto_puro_legado(self):
        """Values stored before encryption are returned as they are."""
        assert decrypt_data("texto antigo") == "texto antigo"
        assert decrypt_data(encrypt_data("segredo")) == "segredo"
        assert encrypt_data("") == ""


class TestAniversarios:
    """Ages and birthdays."""

    @pytest.mark.parametrize("nascimento,hoje,idade", [
        (date(1990, 5, 20), date(2025, 5, 19), 34),
        (date(1990, 5, 20), date(2025, 5, 20), 35),
        ("1990-05-20", date(2025, 12, 31), 35),
        (None, date(2025, 1, 1), None),
    ])
    def test_calcular_idade(self, nascimento, hoje, idade):
        """Age counts completed years."""
        assert calcular_idade(nascimento, hoje) == idade

    def test_proximos_aniversarios(self, criar_integrante):
        """Upcoming birthdays are sorted by days left and cross the year end."""
        criar_integrante("Ana", "Souza", data_nascimento=date(1990, 1, 5))
        criar_integrante("Bia", "Lima", data_nascimento=date(2000, 12, 30))
        criar_integrante("Caio", "Reis", data_nascimento=date(1985, 6, 1))
        proximos = proximos_aniversarios(10, hoje=date(2025, 12, 28))
        assert [(p["nome"], p["dias_restantes"], p["idade"]) for p in proximos] == [
            ("Bia Lima", 2, 25),
            ("Ana Souza", 8, 36),
        ]

    def test_29_de_fevereiro(self, criar_integrante):
        """Leap-day birthdays fall on 1 March in common years."""
        criar_integrante("Leo", "Bissexto", data_nascimento=date(2000, 2, 29))
        [proximo] = proximos_aniversarios(5, hoje=date(2025, 2, 27))
        assert proximo["data"] == date(2025, 3, 1)

    def test_aniversariantes_do_dia_e_do_mes(self, criar_integrante):
        """Daily and monthly birthday lists ignore inactive members."""
        criar_integrante("Ana", "Souza", data_nascimento=date(1990, 3, 15))
        criar_integrante("Bia", "Lima", data_nascimento=date(1995, 3, 2))
        inativo = criar_integrante("Caio", "Reis", data_nascimento=date(1980, 3, 15))
        desativar_integrante(inativo)

        assert [a["nomes"] for a in get_aniversariantes_do_dia(date(2025, 3, 15))] == ["Ana"]
        assert [(a["nomes"], a["dia"]) for a in get_aniversariantes_do_mes(3)] == [("Bia", 2), ("Ana", 15)]


class TestImportacao:
    """CSV import."""

    def test_importar(self, criar_integrante):
        """Rows are inserted, duplicates ignored and bad dates reported."""
        criar_integrante("Ana", "Souza")
        conteudo = io.StringIO(
            "Nomes,Sobrenomes,cargo,data_nascimento,contato_emergencia\n"
            "Ana,Souza,corista,,\n"
            "Bia,Lima,musico,02/03/1995,Mãe\n"
            "Caio,Reis,,1985-06-01,\n"
            "Dani,Alves,,31/02/1990,\n"
            "Eva,Rocha,tesoureira,,\n"
        )
        resultado = importar_integrantes_csv(conteudo)
        assert resultado["inseridos"] == 2
        assert resultado["ignorados"] == 1
        assert len(resultado["erros"]) == 2

        bia = get_integrante_por_nome("Bia Lima")
        assert bia["data_nascimento"] == "1995-03-02"
        assert bia["contato_emergencia"] == "Mãe"
        assert get_integrante_por_nome("Caio Reis")["cargo"] == "corista"

    def test_colunas_obrigatorias(self):
        """Name columns are mandatory."""
        with pytest.raises(ImportacaoError):
            importar_integrantes_csv(io.StringIO("nome,cargo\nAna,corista\n"))
