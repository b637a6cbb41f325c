"""
Módulo de Dashboard
Indicadores do ministério: integrantes, serviços e repertório
"""
import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from datetime import date
from database.db import get_connection, para_sql
from modules.auth import get_usuario_atual, tem_permissao
from modules.licencas import get_ids_inativos
from config.settings import CARGOS

def _limites_mes(hoje: date) -> tuple:
    inicio = hoje.replace(day=1)
    fim = date(hoje.year + 1, 1, 1) if hoje.month == 12 else date(hoje.year, hoje.month + 1, 1)
    return para_sql(inicio), para_sql(fim)

def get_metricas_gerais(hoje: date = None) -> dict:
    """Contagens principais do ministério no mês de referência"""
    hoje = hoje or date.today()
    inicio, fim = _limites_mes(hoje)

    with get_connection() as conn:
        cursor = conn.cursor()

        cursor.execute('SELECT id FROM integrantes WHERE ativo = 1')
        ids_ativos = {row['id'] for row in cursor.fetchall()}

        cursor.execute('''
            SELECT COUNT(*) as total, COALESCE(SUM(confirmado = 0), 0) as pendentes
            FROM servicos
            WHERE data_servico >= ? AND data_servico < ?
        ''', (inicio, fim))
        row = cursor.fetchone()
        servicos_mes, nao_confirmados = row['total'], row['pendentes']

        cursor.execute('SELECT COUNT(*) FROM cancoes WHERE ativo = 1')
        total_cancoes = cursor.fetchone()[0]

    de_licenca = len(ids_ativos & get_ids_inativos(hoje))
    return {
        'integrantes_ativos': len(ids_ativos) - de_licenca,
        'de_licenca': de_licenca,
        'servicos_mes': servicos_mes,
        'nao_confirmados': nao_confirmados,
        'total_cancoes': total_cancoes,
    }

def get_integrantes_por_cargo() -> dict:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT cargo, COUNT(*) as total FROM integrantes
            WHERE ativo = 1 GROUP BY cargo
        ''')
        return {row['cargo']: row['total'] for row in cursor.fetchall()}

def get_cancoes_mais_usadas(limite: int = 10) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT titulo, artista, uso_total, ultimo_uso FROM cancoes
            WHERE ativo = 1 AND uso_total > 0
            ORDER BY uso_total DESC, titulo
            LIMIT ?
        ''', (limite,))
        return [dict(row) for row in cursor.fetchall()]

def get_servicos_por_diretor(ano: int = None) -> list:
    """Quantos serviços cada diretor dirigiu (ou dirigirá) no ano"""
    ano = ano or date.today().year
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT i.nomes || ' ' || i.sobrenomes as diretor, COUNT(s.id) as servicos
            FROM servicos s
            JOIN integrantes i ON s.diretor_id = i.id
            WHERE strftime('%Y', s.data_servico) = ?
            GROUP BY s.diretor_id
            ORDER BY servicos DESC, diretor
        ''', (str(ano),))
        return [dict(row) for row in cursor.fetchall()]

def get_selecoes_por_mes(meses: int = 12) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT strftime('%Y-%m', s.data_servico) as mes, COUNT(sc.id) as selecoes
            FROM selecoes_cancoes sc
            JOIN servicos s ON sc.servico_id = s.id
            WHERE s.data_servico >= date('now', ?)
            GROUP BY mes
            ORDER BY mes
        ''', (f'-{meses} months',))
        return [dict(row) for row in cursor.fetchall()]

def get_semaforo_selecoes() -> dict:
    """Distribuição das cores do semáforo nas seleções registradas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT COALESCE(cor_semaforo, 'green') as cor, COUNT(*) as total
            FROM selecoes_cancoes GROUP BY cor
        ''')
        return {row['cor']: row['total'] for row in cursor.fetchall()}

@st.cache_data(ttl=120, show_spinner=False)
def _metricas_em_cache(hoje_iso: str) -> dict:
    return get_metricas_gerais(date.fromisoformat(hoje_iso))

# ==================== RENDERIZAÇÃO ====================

def render_dashboard_geral():
    st.subheader("📊 Visão Geral")
    metricas = _metricas_em_cache(date.today().isoformat())

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("Integrantes ativos", metricas['integrantes_ativos'])
    col2.metric("De licença", metricas['de_licenca'])
    col3.metric("Serviços no mês", metricas['servicos_mes'])
    col4.metric("Não confirmados", metricas['nao_confirmados'])
    col5.metric("Canções", metricas['total_cancoes'])

    st.markdown("---")
    col1, col2 = st.columns(2)

    with col1:
        st.markdown("### 👥 Integrantes por Cargo")
        por_cargo = get_integrantes_por_cargo()
        if por_cargo:
            df = pd.DataFrame([{'Cargo': dict(CARGOS).get(k, k), 'Total': v} for k, v in por_cargo.items()])
            fig = px.pie(df, values='Total', names='Cargo', hole=0.4)
            fig.update_layout(height=300)
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("Sem dados")

    with col2:
        st.markdown("### 🎤 Serviços por Diretor")
        ano = st.number_input("Ano", 2020, 2100, date.today().year, key="dash_ano_dir")
        por_diretor = get_servicos_por_diretor(int(ano))
        if por_diretor:
            fig = px.bar(pd.DataFrame(por_diretor), x='diretor', y='servicos',
                         labels={'diretor': 'Diretor', 'servicos': 'Serviços'})
            fig.update_layout(height=300)
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("Nenhum serviço no ano")

def render_dashboard_repertorio():
    st.subheader("🎵 Repertório")

    top = get_cancoes_mais_usadas()
    if top:
        df = pd.DataFrame(top)
        fig = px.bar(df, x='uso_total', y='titulo', orientation='h',
                     labels={'uso_total': 'Vezes usada', 'titulo': 'Canção'})
        fig.update_layout(height=400, yaxis={'categoryorder': 'total ascending'})
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("Nenhuma canção usada ainda.")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("### 📈 Seleções por Mês")
        meses = st.slider("Meses", 3, 24, 12, 1, key="dash_mes_sel")
        selecoes = get_selecoes_por_mes(meses)
        if selecoes:
            df = pd.DataFrame(selecoes)
            df['mes'] = pd.to_datetime(df['mes'])
            fig = px.line(df, x='mes', y='selecoes', markers=True,
                          labels={'mes': 'Mês', 'selecoes': 'Seleções'})
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("Sem seleções no período")

    with col2:
        st.markdown("### 🚦 Semáforo das Seleções")
        cores = get_semaforo_selecoes()
        if cores:
            rotulos = {'green': 'Verde', 'yellow': 'Amarelo', 'red': 'Vermelho'}
            fig = go.Figure(go.Bar(
                x=[rotulos.get(c, c) for c in cores],
                y=list(cores.values()),
                marker_color=[{'green': '#27ae60', 'yellow': '#f1c40f', 'red': '#e74c3c'}.get(c, '#95a5a6')
                              for c in cores],
            ))
            fig.update_layout(height=300)
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("Sem dados")

def render_dashboard():
    """Função principal do módulo de dashboard"""
    st.title("📊 Dashboard")
    usuario = get_usuario_atual()
    if not tem_permissao(usuario, 'dashboard.ver'):
        st.warning("🔒 Acesso restrito.")
        return

    tab1, tab2 = st.tabs(["📊 Geral", "🎵 Repertório"])
    with tab1:
        render_dashboard_geral()
    with tab2:
        render_dashboard_repertorio()
