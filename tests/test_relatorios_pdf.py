"""Tests for the PDF reports."""

from datetime import date, datetime

from modules.relatorios_pdf import (
    gerar_pdf_agenda_mensal,
    gerar_pdf_aniversarios,
    gerar_pdf_integrantes,
    linhas_agenda_mensal,
)


class TestAgendaMensal:
    """Monthly agenda report."""

    def test_linhas(self, criar_servico, criar_diretor, criar_grupo):
        """Each service becomes a row with weekday and time label."""
        ana = criar_diretor("Ana", "Souza")
        grupo = criar_grupo("Grupo de Keyla")
        criar_servico(datetime(2025, 1, 5, 8, 0), diretor_id=ana["id"], grupo_id=grupo)
        criar_servico(datetime(2025, 1, 5, 10, 45), titulo="10:45 a.m.")
        criar_servico(datetime(2025, 2, 2, 8, 0))

        cabecalho, primeira, segunda = linhas_agenda_mensal(2025, 1)
        assert cabecalho[0] == "Data"
        assert primeira == ["05/01", "Domingo", "08:00 a.m.", "08:00 a.m.", "Ana Souza", "Grupo de Keyla", "Não"]
        assert segunda[2] == "10:45 a.m."
        assert segunda[4] == "-"

    def test_pdf_com_e_sem_servicos(self, criar_servico):
        """Both an empty and a filled month produce a PDF."""
        criar_servico(datetime(2025, 1, 5, 8, 0))
        assert gerar_pdf_agenda_mensal(2025, 1).startswith(b"%PDF")
        assert gerar_pdf_agenda_mensal(2025, 6).startswith(b"%PDF")


class TestOutrosRelatorios:
    """Birthday and member reports."""

    def test_aniversarios(self, criar_integrante):
        """The birthday report is a PDF with or without data."""
        assert gerar_pdf_aniversarios(2025).startswith(b"%PDF")
        criar_integrante("Ana", "Souza", data_nascimento=date(1990, 3, 15))
        assert gerar_pdf_aniversarios(2025).startswith(b"%PDF")

    def test_integrantes(self, criar_integrante):
        """The member list is rendered as a PDF."""
        criar_integrante("Ana", "Souza", voz_instrumento="Soprano", celular="11999990000")
        criar_integrante("Bruno", "Lima", cargo="musico")
        assert gerar_pdf_integrantes(date(2025, 3, 10)).startswith(b"%PDF")
