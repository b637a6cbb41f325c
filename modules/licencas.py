"""
Módulo de Licenças
Afastamentos dos integrantes e status de atividade
"""
import logging
import sqlite3
import time
import streamlit as st
from datetime import datetime, date
from database.db import get_connection, para_sql
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from modules.integrantes import get_integrantes, get_integrante, nome_completo
from modules.notificacoes import notificar_perfis, notificar_integrante
from config.settings import TIPOS_LICENCA, STATUS_LICENCA, CACHE_INATIVOS_SEGUNDOS, formatar_data_br

logger = logging.getLogger(__name__)

# Cache em memória dos integrantes inativos
_cache_inativos = {'ids': set(), 'momento': None, 'data': None}

# ==================== FUNÇÕES DE DADOS ====================

def get_licencas(filtros: dict = None) -> list:
    """Busca licenças com filtros opcionais"""
    query = '''
        SELECT l.*, i.nomes, i.sobrenomes, i.cargo
        FROM licencas l
        JOIN integrantes i ON l.integrante_id = i.id
        WHERE 1=1
    '''
    params = []

    if filtros:
        if filtros.get('status'):
            query += ' AND l.status = ?'
            params.append(filtros['status'])
        if filtros.get('integrante_id'):
            query += ' AND l.integrante_id = ?'
            params.append(filtros['integrante_id'])
        if filtros.get('tipo'):
            query += ' AND l.tipo = ?'
            params.append(filtros['tipo'])

    query += ' ORDER BY l.data_inicio DESC'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]

def get_licenca(licenca_id: int) -> dict | None:
    """Busca uma licença pelo ID"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM licencas WHERE id = ?', (licenca_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def criar_licenca(integrante_id: int, tipo: str, data_inicio: date, data_fim: date = None,
                  motivo: str = None, motivo_visivel: bool = False, solicitada_por: int = None,
                  notas: str = None) -> int:
    """Registra uma licença pendente de aprovação"""
    if tipo not in TIPOS_LICENCA:
        raise RegraNegocioError(f"Tipo de licença inválido: {tipo}")
    if not get_integrante(integrante_id):
        raise RegistroNaoEncontrado(f"Integrante {integrante_id} não encontrado")
    if data_fim and data_fim < data_inicio:
        raise RegraNegocioError("A data final não pode ser anterior à data inicial")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO licencas (integrante_id, tipo, status, motivo, motivo_visivel,
                                  data_inicio, data_fim, indefinida, solicitada_por, notas)
            VALUES (?, ?, 'pendente', ?, ?, ?, ?, ?, ?, ?)
        ''', (integrante_id, tipo, motivo, 1 if motivo_visivel else 0, para_sql(data_inicio),
              para_sql(data_fim), 1 if data_fim is None else 0, solicitada_por, notas))
        licenca_id = cursor.lastrowid

    registrar_log(solicitada_por, 'licenca.criar', f"Licença {licenca_id} ({tipo}) do integrante {integrante_id}")
    return licenca_id

def _mudar_status(licenca_id: int, de: tuple, para: str, usuario_id: int, extras: dict = None) -> dict:
    licenca = get_licenca(licenca_id)
    if not licenca:
        raise RegistroNaoEncontrado(f"Licença {licenca_id} não encontrada")
    if licenca['status'] not in de:
        raise RegraNegocioError(
            f"Licença {STATUS_LICENCA[licenca['status']].lower()} não pode ser {STATUS_LICENCA[para].lower()}")

    campos = {'status': para, 'data_atualizacao': para_sql(datetime.now()), **(extras or {})}
    with get_connection() as conn:
        conn.execute(f'''
            UPDATE licencas SET {', '.join(f"{k} = ?" for k in campos)}
            WHERE id = ?
        ''', [*campos.values(), licenca_id])

    limpar_cache_inativos()
    registrar_log(usuario_id, f'licenca.{para}', f"Licença {licenca_id}")
    return {**licenca, **campos}

def aprovar_licenca(licenca_id: int, aprovador_id: int) -> dict:
    """Aprova uma licença pendente e avisa os administradores"""
    licenca = _mudar_status(licenca_id, ('pendente',), 'aprovada', aprovador_id, {
        'aprovada_por': aprovador_id,
        'data_aprovacao': para_sql(datetime.now()),
    })

    integrante = get_integrante(licenca['integrante_id'])
    periodo = formatar_data_br(licenca['data_inicio'])
    periodo += f" a {formatar_data_br(licenca['data_fim'])}" if licenca['data_fim'] else " (indefinida)"
    mensagem = f"{nome_completo(integrante)} está de licença ({TIPOS_LICENCA[licenca['tipo']]}) {periodo}."
    if licenca['motivo_visivel'] and licenca['motivo']:
        mensagem += f" Motivo: {licenca['motivo']}"

    notificar_perfis(['admin'], "🏖️ Licença aprovada", mensagem, tipo='licenca',
                     remetente_id=aprovador_id, categoria='licenca', prioridade=2,
                     metadata={'licenca_id': licenca_id, 'integrante_id': licenca['integrante_id']})
    notificar_integrante(licenca['integrante_id'], "🏖️ Sua licença foi aprovada", mensagem,
                         tipo='licenca', remetente_id=aprovador_id, categoria='licenca')
    return licenca

def rejeitar_licenca(licenca_id: int, aprovador_id: int, motivo: str) -> dict:
    """Rejeita uma licença pendente"""
    if not motivo:
        raise RegraNegocioError("Informe o motivo da rejeição")
    return _mudar_status(licenca_id, ('pendente',), 'rejeitada', aprovador_id, {
        'aprovada_por': aprovador_id,
        'motivo_rejeicao': motivo,
    })

def cancelar_licenca(licenca_id: int, usuario_id: int) -> dict:
    """Cancela uma licença pendente ou aprovada"""
    return _mudar_status(licenca_id, ('pendente', 'aprovada'), 'cancelada', usuario_id)

def finalizar_licenca(licenca_id: int, usuario_id: int, hoje: date = None) -> dict:
    """Encerra uma licença aprovada na data informada"""
    hoje = hoje or date.today()
    return _mudar_status(licenca_id, ('aprovada',), 'finalizada', usuario_id, {
        'data_fim': para_sql(hoje),
        'indefinida': 0,
    })

def get_licenca_ativa(integrante_id: int, hoje: date = None) -> dict | None:
    """Licença aprovada em vigor na data"""
    hoje = hoje or date.today()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT * FROM licencas
            WHERE integrante_id = ? AND status = 'aprovada'
              AND data_inicio <= ?
              AND (indefinida = 1 OR data_fim IS NULL OR data_fim >= ?)
            ORDER BY data_inicio DESC
            LIMIT 1
        ''', (integrante_id, para_sql(hoje), para_sql(hoje)))
        row = cursor.fetchone()
        return dict(row) if row else None

def esta_de_licenca(integrante_id: int, hoje: date = None) -> bool:
    return get_licenca_ativa(integrante_id, hoje) is not None

def esta_desligado(integrante_id: int, hoje: date = None) -> bool:
    """Integrante com baixa definitiva aprovada"""
    licenca = get_licenca_ativa(integrante_id, hoje)
    return bool(licenca and licenca['tipo'] == 'baixa_definitiva')

def get_ids_inativos(hoje: date = None) -> set:
    """IDs de integrantes de licença ou desligados, com cache de alguns minutos"""
    hoje = hoje or date.today()
    agora = time.monotonic()
    if (_cache_inativos['momento'] is not None
            and _cache_inativos['data'] == hoje
            and agora - _cache_inativos['momento'] < CACHE_INATIVOS_SEGUNDOS):
        return set(_cache_inativos['ids'])

    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT DISTINCT integrante_id FROM licencas
                WHERE status = 'aprovada' AND data_inicio <= ?
                  AND (indefinida = 1 OR data_fim IS NULL OR data_fim >= ?)
            ''', (para_sql(hoje), para_sql(hoje)))
            ids = {row['integrante_id'] for row in cursor.fetchall()}
    except sqlite3.Error:
        logger.exception("Erro ao buscar integrantes inativos; usando cache anterior")
        return set(_cache_inativos['ids'])

    _cache_inativos.update(ids=ids, momento=agora, data=hoje)
    return set(ids)

def limpar_cache_inativos():
    """Invalida o cache de integrantes inativos"""
    _cache_inativos.update(ids=set(), momento=None, data=None)

def filtrar_ativos(ids: list, hoje: date = None) -> list:
    """Remove da lista os integrantes de licença ou desligados"""
    inativos = get_ids_inativos(hoje)
    return [i for i in ids if i not in inativos]

# ==================== RENDERIZAÇÃO ====================

def _badge_status(status: str) -> str:
    cores = {'pendente': '#f39c12', 'aprovada': '#27ae60', 'rejeitada': '#c0392b',
             'cancelada': '#7f8c8d', 'finalizada': '#2980b9'}
    return (f"<span style='background-color: {cores.get(status, '#808080')}; color: white; "
            f"padding: 2px 8px; border-radius: 10px; font-size: 0.8rem;'>{STATUS_LICENCA[status]}</span>")

def render_lista_licencas(usuario: dict):
    """Lista de licenças com ações"""
    status = st.selectbox("Status", options=[""] + list(STATUS_LICENCA.keys()),
                          format_func=lambda x: STATUS_LICENCA.get(x, "Todos"))
    licencas = get_licencas({'status': status} if status else None)

    if not licencas:
        st.info("Nenhuma licença encontrada.")
        return

    pode_editar = tem_permissao(usuario, 'licencas.editar')
    for licenca in licencas:
        col1, col2, col3 = st.columns([3, 2, 2])
        with col1:
            st.markdown(f"**{licenca['nomes']} {licenca['sobrenomes']}**")
            st.caption(TIPOS_LICENCA[licenca['tipo']])
        with col2:
            fim = formatar_data_br(licenca['data_fim']) if licenca['data_fim'] else "indefinida"
            st.caption(f"📅 {formatar_data_br(licenca['data_inicio'])} → {fim}")
            st.markdown(_badge_status(licenca['status']), unsafe_allow_html=True)
        with col3:
            if not pode_editar:
                continue
            try:
                if licenca['status'] == 'pendente':
                    if st.button("✅ Aprovar", key=f"apr_lic_{licenca['id']}"):
                        aprovar_licenca(licenca['id'], usuario['id'])
                        st.rerun()
                    if st.button("❌ Rejeitar", key=f"rej_lic_{licenca['id']}"):
                        rejeitar_licenca(licenca['id'], usuario['id'], "Rejeitada pela liderança")
                        st.rerun()
                elif licenca['status'] == 'aprovada':
                    if st.button("🏁 Finalizar", key=f"fin_lic_{licenca['id']}"):
                        finalizar_licenca(licenca['id'], usuario['id'])
                        st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

        st.markdown("<hr style='margin: 0.5rem 0; opacity: 0.2;'>", unsafe_allow_html=True)

def render_nova_licenca(usuario: dict):
    """Formulário de nova licença"""
    integrantes = get_integrantes()
    if not integrantes:
        st.info("Cadastre integrantes primeiro.")
        return

    with st.form("form_licenca"):
        integrante = st.selectbox("Integrante", options=integrantes, format_func=nome_completo)
        tipo = st.selectbox("Tipo", options=list(TIPOS_LICENCA.keys()),
                            format_func=lambda x: TIPOS_LICENCA[x])
        col1, col2 = st.columns(2)
        with col1:
            data_inicio = st.date_input("Início", value=date.today(), format="DD/MM/YYYY")
        with col2:
            indefinida = st.checkbox("Sem data de término")
            data_fim = st.date_input("Término", value=None, format="DD/MM/YYYY")
        motivo = st.text_area("Motivo")
        motivo_visivel = st.checkbox("Mostrar motivo aos demais integrantes")

        if st.form_submit_button("💾 Registrar licença", use_container_width=True):
            try:
                criar_licenca(integrante['id'], tipo, data_inicio,
                              None if indefinida else data_fim, motivo, motivo_visivel, usuario['id'])
                st.success("✅ Licença registrada e aguardando aprovação")
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

def render_licencas():
    """Função principal do módulo de licenças"""
    st.title("🏖️ Licenças")
    usuario = get_usuario_atual()

    tab1, tab2 = st.tabs(["📋 Licenças", "➕ Nova Licença"])
    with tab1:
        render_lista_licencas(usuario)
    with tab2:
        render_nova_licenca(usuario)
