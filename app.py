"""
Agenda Ministerial - Gestão do Ministério de Louvor
Aplicativo principal Streamlit
"""
import logging
import time
import streamlit as st

from config.logging_config import configurar_logging
from database.db import init_database, criar_dados_iniciais
from modules.auth import login_page, get_usuario_atual, sidebar_usuario, tem_permissao
from modules.dashboard import render_dashboard
from modules.integrantes import render_integrantes
from modules.licencas import render_licencas
from modules.grupos import render_grupos
from modules.agenda import render_agenda
from modules.repertorio import render_repertorio
from modules.reemplazos import render_reemplazos, expirar_solicitacoes
from modules.comunicacao import render_comunicacao, adicionar_todos_sala_geral
from modules.evento_ao_vivo import render_evento_ao_vivo
from modules.versiculos import render_versiculos, enviar_notificacao_versiculo
from modules.ensaios import render_ensaios
from modules.notificacoes import (render_notificacoes, render_badge_notificacoes, render_overlay,
                                  processar_agendamentos, enviar_notificacoes_aniversario,
                                  enviar_resumo_aniversarios_mes)
from modules.relatorios_pdf import render_relatorios
from modules.configuracoes import render_configuracoes
from modules.cache_offline import cache_offline
from modules.excecoes import SemConexaoError

logger = logging.getLogger(__name__)

INTERVALO_ROTINAS = 60

# Configuração da página
st.set_page_config(
    page_title="Agenda Ministerial",
    page_icon="🎵",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
    <style>
    .main .block-container {
        padding-top: 1.5rem;
        padding-bottom: 1.5rem;
        max-width: 1400px;
    }

    [data-testid="stSidebar"] {
        background: linear-gradient(180deg, #1a1a2e 0%, #16213e 100%);
    }

    [data-testid="stSidebar"] [data-testid="stVerticalBlock"] {
        gap: 0.3rem !important;
    }

    [data-testid="stSidebar"] .stMarkdown {
        color: white;
    }

    [data-testid="stSidebar"] .stButton > button {
        font-size: 0.85rem;
        padding: 0.4rem 0.5rem;
        margin: 0.15rem 0;
        border-radius: 6px;
        background-color: rgba(255,255,255,0.1);
        color: white;
        border: 1px solid rgba(255,255,255,0.2);
    }

    [data-testid="stSidebar"] .stButton > button:hover {
        background-color: rgba(255,255,255,0.2);
        border-color: rgba(255,255,255,0.4);
    }

    .stButton > button {
        border-radius: 8px;
        font-weight: 500;
    }

    .stTabs [data-baseweb="tab-list"] {
        gap: 8px;
    }

    [data-testid="metric-container"] {
        background: white;
        padding: 1rem;
        border-radius: 10px;
        box-shadow: 0 2px 8px rgba(0,0,0,0.05);
    }

    @media (max-width: 768px) {
        .main .block-container {
            padding: 1rem;
        }
    }
    </style>
""", unsafe_allow_html=True)

PAGINAS = {
    'dashboard': render_dashboard,
    'agenda': render_agenda,
    'repertorio': render_repertorio,
    'integrantes': render_integrantes,
    'licencas': render_licencas,
    'grupos': render_grupos,
    'reemplazos': render_reemplazos,
    'comunicacao': render_comunicacao,
    'eventos': render_evento_ao_vivo,
    'ensaios': render_ensaios,
    'versiculos': render_versiculos,
    'notificacoes': render_notificacoes,
    'relatorios': render_relatorios,
    'configuracoes': render_configuracoes,
}

ROTINAS = [
    ('agendamentos', processar_agendamentos),
    ('aniversarios', enviar_notificacoes_aniversario),
    ('aniversarios_mes', enviar_resumo_aniversarios_mes),
    ('substituicoes', expirar_solicitacoes),
    ('versiculo', enviar_notificacao_versiculo),
    ('sala_geral', adicionar_todos_sala_geral),
]

_ultima_rotina = {'momento': 0.0}

@st.cache_resource
def init_app():
    """Inicializa logging e banco (uma vez por processo)"""
    configurar_logging()
    init_database()
    criar_dados_iniciais()
    logger.info("Agenda Ministerial iniciada")
    return True

def executar_rotinas():
    """Tarefas periódicas: agendamentos, aniversários, expirações e versículo"""
    agora = time.monotonic()
    if agora - _ultima_rotina['momento'] < INTERVALO_ROTINAS:
        return
    _ultima_rotina['momento'] = agora

    for nome, rotina in ROTINAS:
        try:
            resultado = rotina()
            if resultado:
                logger.info("Rotina %s: %s", nome, resultado)
        except SemConexaoError as e:
            logger.warning("Rotina %s adiada: %s", nome, e)
        except Exception:
            logger.exception("Erro na rotina %s", nome)

def render_sidebar():
    """Renderiza a sidebar com menu de navegação"""
    usuario = get_usuario_atual()

    st.sidebar.markdown("""
        <div style='text-align: center; padding: 0.3rem 0; border-bottom: 1px solid rgba(255,255,255,0.1); margin-bottom: 0.3rem;'>
            <div style='color: white; font-size: 1.1rem; font-weight: bold; margin: 0;'>🎵 Agenda Ministerial</div>
            <div style='color: rgba(255,255,255,0.6); font-size: 0.7rem;'>Ministério de Louvor</div>
        </div>
    """, unsafe_allow_html=True)

    sidebar_usuario()
    st.sidebar.markdown("---")

    menu_items = [
        ("📊 Dashboard", "dashboard", "dashboard.ver"),
        ("📅 Agenda", "agenda", "agenda.ver"),
        ("🎵 Repertório", "repertorio", "repertorio.ver"),
        ("👥 Integrantes", "integrantes", "integrantes.ver"),
        ("🏖️ Licenças", "licencas", "licencas.ver"),
        ("🎤 Grupos", "grupos", "grupos.ver"),
        ("🔄 Substituições", "reemplazos", "reemplazos.ver"),
        ("💬 Comunicação", "comunicacao", "comunicacao.ver"),
        ("⏱️ Eventos ao Vivo", "eventos", "eventos.ver"),
        ("🎧 Ensaios", "ensaios", "ensaios.ver"),
        ("📖 Versículo do Dia", "versiculos", None),
        (render_badge_notificacoes(usuario['id']), "notificacoes", None),
        ("📄 Relatórios PDF", "relatorios", "relatorios.ver"),
        ("⚙️ Configurações", "configuracoes", None),
    ]

    if 'pagina_atual' not in st.session_state:
        st.session_state.pagina_atual = 'agenda'

    for label, key, permissao in menu_items:
        if permissao is None or tem_permissao(usuario, permissao):
            if st.sidebar.button(label, key=f"menu_{key}", use_container_width=True):
                st.session_state.pagina_atual = key
                for state_key in list(st.session_state.keys()):
                    if state_key.endswith('_view') or state_key.endswith('_edit') or state_key.startswith('show_form'):
                        del st.session_state[state_key]
                st.rerun()

    st.sidebar.markdown("---")
    offline = st.sidebar.toggle("📴 Modo offline", value=not cache_offline.online)
    cache_offline.definir_online(not offline)

    st.sidebar.markdown("""
        <div style='text-align: center; color: rgba(255,255,255,0.5); font-size: 0.7rem; line-height: 1.3;'>
            <p style='margin: 0.3rem 0;'>v1.0</p>
        </div>
    """, unsafe_allow_html=True)

def main():
    """Função principal"""
    init_app()

    usuario = get_usuario_atual()
    if not usuario:
        login_page()
        return

    executar_rotinas()
    render_sidebar()
    render_overlay(usuario)

    pagina = st.session_state.get('pagina_atual', 'agenda')
    PAGINAS.get(pagina, render_agenda)()

if __name__ == "__main__":
    main()
