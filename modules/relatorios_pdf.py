"""
Módulo de Relatórios PDF
Agenda mensal, aniversários e lista de integrantes em PDF
"""
import calendar
import io
import logging
import streamlit as st
from datetime import datetime, date
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_CENTER
from database.db import ler_data, ler_data_hora
from modules.auth import get_usuario_atual, tem_permissao
from modules.agenda import MESES, get_servicos, horario_servico
from modules.integrantes import get_integrantes, get_aniversariantes_do_mes, nome_completo
from modules.licencas import get_ids_inativos
from config.settings import CARGOS, DIAS_SEMANA

logger = logging.getLogger(__name__)

COR_CABECALHO = '#3498db'

# ==================== GERAÇÃO DE PDF ====================

def criar_estilos():
    """Cria estilos personalizados para o PDF"""
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name='TituloRelatorio',
        parent=styles['Heading1'],
        fontSize=18,
        spaceAfter=20,
        alignment=TA_CENTER,
        textColor=colors.HexColor('#2c3e50')
    ))

    styles.add(ParagraphStyle(
        name='Subtitulo',
        parent=styles['Heading2'],
        fontSize=14,
        spaceBefore=16,
        spaceAfter=8,
        textColor=colors.HexColor('#34495e')
    ))

    styles.add(ParagraphStyle(
        name='Cabecalho',
        parent=styles['Normal'],
        fontSize=10,
        alignment=TA_CENTER,
        textColor=colors.HexColor('#7f8c8d')
    ))

    return styles

def _estilo_tabela() -> TableStyle:
    return TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(COR_CABECALHO)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#bdc3c7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f8f9fa')])
    ])

def _rodape(styles) -> Paragraph:
    return Paragraph(
        f"Documento gerado em {datetime.now().strftime('%d/%m/%Y às %H:%M')} | Agenda Ministerial",
        styles['Cabecalho']
    )

def _montar(elementos: list, paisagem: bool = False) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4) if paisagem else A4,
                            topMargin=1.5*cm, bottomMargin=1.5*cm)
    doc.build(elementos)
    buffer.seek(0)
    return buffer.getvalue()

def linhas_agenda_mensal(ano: int, mes: int) -> list:
    """Linhas da tabela da agenda: cabeçalho e um serviço por linha"""
    inicio = date(ano, mes, 1)
    fim = date(ano, mes, calendar.monthrange(ano, mes)[1])
    linhas = [['Data', 'Dia', 'Hora', 'Serviço', 'Diretor', 'Grupo', 'Confirmado']]
    for servico in get_servicos(inicio, fim):
        momento = ler_data_hora(servico['data_servico'])
        linhas.append([
            momento.strftime('%d/%m'),
            DIAS_SEMANA[(momento.weekday() + 1) % 7],
            horario_servico(servico),
            (servico.get('titulo') or '')[:40],
            (servico.get('diretor_nome') or '-')[:30],
            (servico.get('grupo_nome') or '-')[:25],
            'Sim' if servico.get('confirmado') else 'Não',
        ])
    return linhas

def gerar_pdf_agenda_mensal(ano: int, mes: int) -> bytes:
    """Gera o PDF com os serviços de um mês"""
    styles = criar_estilos()
    elementos = [
        Paragraph(f"Agenda Ministerial - {MESES[mes - 1]} de {ano}", styles['TituloRelatorio']),
    ]

    linhas = linhas_agenda_mensal(ano, mes)
    if len(linhas) == 1:
        elementos.append(Paragraph("Nenhum serviço agendado neste mês.", styles['Normal']))
    else:
        tabela = Table(linhas, colWidths=[2*cm, 2.5*cm, 2.5*cm, 8*cm, 6*cm, 4.5*cm, 2.5*cm], repeatRows=1)
        tabela.setStyle(_estilo_tabela())
        elementos.append(tabela)

    elementos.append(Spacer(1, 20))
    elementos.append(_rodape(styles))
    logger.info("PDF da agenda %02d/%s gerado (%s serviços)", mes, ano, len(linhas) - 1)
    return _montar(elementos, paisagem=True)

def gerar_pdf_aniversarios(ano: int) -> bytes:
    """Aniversariantes do ano, mês a mês, com a idade completada"""
    styles = criar_estilos()
    elementos = [Paragraph(f"Aniversariantes {ano}", styles['TituloRelatorio'])]

    for mes in range(1, 13):
        aniversariantes = get_aniversariantes_do_mes(mes)
        if not aniversariantes:
            continue
        elementos.append(Paragraph(MESES[mes - 1], styles['Subtitulo']))
        linhas = [['Dia', 'Nome', 'Cargo', 'Idade']]
        for integrante in aniversariantes:
            nascimento = ler_data(integrante['data_nascimento'])
            linhas.append([
                f"{integrante['dia']:02d}",
                nome_completo(integrante),
                dict(CARGOS).get(integrante.get('cargo'), integrante.get('cargo') or ''),
                str(ano - nascimento.year) if nascimento else '',
            ])
        tabela = Table(linhas, colWidths=[1.5*cm, 8*cm, 5*cm, 2*cm], repeatRows=1)
        tabela.setStyle(_estilo_tabela())
        elementos.append(tabela)

    if len(elementos) == 1:
        elementos.append(Paragraph("Nenhuma data de nascimento cadastrada.", styles['Normal']))

    elementos.append(Spacer(1, 20))
    elementos.append(_rodape(styles))
    return _montar(elementos)

def gerar_pdf_integrantes(hoje: date = None) -> bytes:
    """Lista de integrantes ativos com situação de licença"""
    styles = criar_estilos()
    integrantes = get_integrantes()
    inativos = get_ids_inativos(hoje)

    elementos = [
        Paragraph("Integrantes do Ministério", styles['TituloRelatorio']),
        Paragraph(f"Total: {len(integrantes)} | De licença: {len([i for i in integrantes if i['id'] in inativos])}",
                  styles['Cabecalho']),
        Spacer(1, 12),
    ]

    linhas = [['Nome', 'Cargo', 'Voz/Instrumento', 'Celular', 'Situação']]
    for integrante in integrantes:
        linhas.append([
            nome_completo(integrante)[:35],
            dict(CARGOS).get(integrante.get('cargo'), integrante.get('cargo') or ''),
            (integrante.get('voz_instrumento') or '')[:20],
            integrante.get('celular') or '',
            'Licença' if integrante['id'] in inativos else 'Ativo',
        ])
    tabela = Table(linhas, colWidths=[5.5*cm, 4*cm, 3*cm, 3*cm, 2*cm], repeatRows=1)
    tabela.setStyle(_estilo_tabela())
    elementos.append(tabela)

    elementos.append(Spacer(1, 20))
    elementos.append(_rodape(styles))
    return _montar(elementos)

# ==================== RENDERIZAÇÃO ====================

def render_relatorios():
    """Função principal do módulo de relatórios"""
    st.title("📄 Relatórios PDF")
    usuario = get_usuario_atual()
    if not tem_permissao(usuario, 'relatorios.ver'):
        st.warning("🔒 Acesso restrito.")
        return

    hoje = date.today()
    tab1, tab2, tab3 = st.tabs(["📅 Agenda", "🎂 Aniversários", "👥 Integrantes"])

    with tab1:
        col1, col2 = st.columns(2)
        mes = col1.selectbox("Mês", options=range(1, 13), index=hoje.month - 1,
                             format_func=lambda m: MESES[m - 1])
        ano = col2.number_input("Ano", 2020, 2100, hoje.year, key="rel_ano_agenda")
        if st.button("📥 Gerar PDF da agenda", use_container_width=True):
            with st.spinner("Gerando relatório..."):
                st.session_state.pdf_agenda = gerar_pdf_agenda_mensal(int(ano), mes)
        if st.session_state.get('pdf_agenda'):
            st.download_button("⬇️ Baixar", data=st.session_state.pdf_agenda,
                               file_name=f"agenda_{int(ano)}_{mes:02d}.pdf", mime="application/pdf")

    with tab2:
        ano_aniv = st.number_input("Ano", 2020, 2100, hoje.year, key="rel_ano_aniv")
        if st.button("📥 Gerar PDF de aniversários", use_container_width=True):
            st.download_button("⬇️ Baixar", data=gerar_pdf_aniversarios(int(ano_aniv)),
                               file_name=f"aniversarios_{int(ano_aniv)}.pdf", mime="application/pdf")

    with tab3:
        if st.button("📥 Gerar PDF de integrantes", use_container_width=True):
            st.download_button("⬇️ Baixar", data=gerar_pdf_integrantes(),
                               file_name=f"integrantes_{hoje.strftime('%Y%m%d')}.pdf", mime="application/pdf")
