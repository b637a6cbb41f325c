"""
Módulo de Substituição de Diretor
Solicitações entre diretores, respostas e histórico
"""
import logging
import streamlit as st
import pandas as pd
from datetime import datetime, timedelta
from database.db import get_connection, para_sql, ler_data_hora
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from modules.agenda import get_servico, get_proximos_servicos, horario_servico
from modules.integrantes import get_integrante, get_diretores, nome_completo
from modules.licencas import get_ids_inativos
from modules.notificacoes import notificar_integrante, notificar_todos
from config.settings import REEMPLAZO_EXPIRACAO_HORAS, formatar_data_br

logger = logging.getLogger(__name__)

STATUS_SOLICITACAO = {
    'pendente': {'nome': 'Pendente', 'icone': '⏳'},
    'aceita': {'nome': 'Aceita', 'icone': '✅'},
    'rejeitada': {'nome': 'Rejeitada', 'icone': '❌'},
    'expirada': {'nome': 'Expirada', 'icone': '⌛'},
    'cancelada': {'nome': 'Cancelada', 'icone': '🚫'},
}

SELECT_SOLICITACAO = '''
    SELECT ss.*, s.titulo as servico_titulo, s.data_servico,
           o.nomes || ' ' || o.sobrenomes as diretor_original_nome,
           r.nomes || ' ' || r.sobrenomes as substituto_nome
    FROM solicitacoes_substituicao ss
    JOIN servicos s ON ss.servico_id = s.id
    JOIN integrantes o ON ss.diretor_original_id = o.id
    JOIN integrantes r ON ss.diretor_substituto_id = r.id
'''

# ==================== FUNÇÕES DE DADOS ====================

def get_solicitacao(solicitacao_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(SELECT_SOLICITACAO + ' WHERE ss.id = ?', (solicitacao_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def get_diretores_disponiveis(servico_id: int) -> list:
    """Diretores ativos, fora de licença, exceto o atual do serviço"""
    servico = get_servico(servico_id)
    if not servico:
        raise RegistroNaoEncontrado(f"Serviço {servico_id} não encontrado")
    inativos = get_ids_inativos(ler_data_hora(servico['data_servico']).date())
    return [d for d in get_diretores()
            if d['id'] != servico['diretor_id'] and d['id'] not in inativos]

def solicitar_substituicao(servico_id: int, diretor_original_id: int, substituto_id: int,
                           motivo: str = None, agora: datetime = None, usuario_id: int = None) -> int:
    """Cria uma solicitação pendente que expira em 24 horas"""
    agora = agora or datetime.now()
    servico = get_servico(servico_id)
    if not servico:
        raise RegistroNaoEncontrado(f"Serviço {servico_id} não encontrado")
    if servico['diretor_id'] != diretor_original_id:
        raise RegraNegocioError("Apenas o diretor designado pode pedir substituição")
    if substituto_id == diretor_original_id:
        raise RegraNegocioError("O substituto deve ser outro diretor")

    substituto = get_integrante(substituto_id)
    if not substituto or not substituto['ativo']:
        raise RegraNegocioError("O substituto escolhido não está ativo")
    if substituto_id in get_ids_inativos(ler_data_hora(servico['data_servico']).date()):
        raise RegraNegocioError(f"{nome_completo(substituto)} está de licença")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id FROM solicitacoes_substituicao
            WHERE servico_id = ? AND status = 'pendente' AND expira_em > ?
        ''', (servico_id, para_sql(agora)))
        if cursor.fetchone():
            raise RegraNegocioError("Já existe uma solicitação pendente para este serviço")

        cursor.execute('''
            INSERT INTO solicitacoes_substituicao (servico_id, diretor_original_id, diretor_substituto_id,
                                                   motivo, solicitada_em, expira_em)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (servico_id, diretor_original_id, substituto_id, motivo, para_sql(agora),
              para_sql(agora + timedelta(hours=REEMPLAZO_EXPIRACAO_HORAS))))
        solicitacao_id = cursor.lastrowid

    original = get_integrante(diretor_original_id)
    notificar_integrante(
        substituto_id,
        "🔄 Pedido de substituição",
        f"{nome_completo(original)} pediu que você dirija \"{servico['titulo']}\" em "
        f"{formatar_data_br(servico['data_servico'])}.",
        tipo='director_replacement_request', categoria='agenda', prioridade=3,
        metadata={'solicitacao_id': solicitacao_id, 'servico_id': servico_id,
                  'servico_titulo': servico['titulo'], 'data_servico': servico['data_servico'],
                  'motivo': motivo, 'diretor_original': nome_completo(original)},
    )
    registrar_log(usuario_id, 'substituicao.solicitar', f"Solicitação {solicitacao_id} (serviço {servico_id})")
    return solicitacao_id

def responder_solicitacao(solicitacao_id: int, substituto_id: int, aceitar: bool,
                          notas: str = None, agora: datetime = None, usuario_id: int = None) -> dict:
    """Aceita ou rejeita uma solicitação pendente"""
    agora = agora or datetime.now()
    solicitacao = get_solicitacao(solicitacao_id)
    if not solicitacao:
        raise RegistroNaoEncontrado(f"Solicitação {solicitacao_id} não encontrada")
    if solicitacao['diretor_substituto_id'] != substituto_id:
        raise RegraNegocioError("Somente o diretor convidado pode responder")
    if solicitacao['status'] != 'pendente':
        raise RegraNegocioError(f"Solicitação já está {STATUS_SOLICITACAO[solicitacao['status']]['nome'].lower()}")
    if ler_data_hora(solicitacao['expira_em']) <= agora:
        _marcar_expirada(solicitacao_id)
        raise RegraNegocioError("A solicitação expirou")

    status = 'aceita' if aceitar else 'rejeitada'
    notas = (notas or '').strip() or None

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE solicitacoes_substituicao
            SET status = ?, respondida_em = ?, notas = ?
            WHERE id = ? AND status = 'pendente'
        ''', (status, para_sql(agora), notas, solicitacao_id))
        if cursor.rowcount == 0:
            raise RegraNegocioError("Solicitação já foi respondida")

        if aceitar:
            cursor.execute('SELECT notas FROM servicos WHERE id = ?', (solicitacao['servico_id'],))
            notas_servico = cursor.fetchone()['notas']
            registro = (f"Diretor original: {solicitacao['diretor_original_nome']}. "
                        f"Substituído por: {solicitacao['substituto_nome']}.")
            if notas:
                registro += f" {notas}"
            cursor.execute('''
                UPDATE servicos SET diretor_id = ?, notas = ?, data_atualizacao = ?
                WHERE id = ?
            ''', (substituto_id, f"{notas_servico}\n{registro}" if notas_servico else registro,
                  para_sql(agora), solicitacao['servico_id']))
            cursor.execute('''
                INSERT INTO historico_substituicoes (servico_id, solicitacao_id, diretor_original_id,
                                                     diretor_substituto_id, motivo, data_substituicao)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (solicitacao['servico_id'], solicitacao_id, solicitacao['diretor_original_id'],
                  substituto_id, solicitacao['motivo'], para_sql(agora)))

    palavra = 'aceita' if aceitar else 'rejeitada'
    notificar_integrante(
        solicitacao['diretor_original_id'],
        f"Substituição {palavra}",
        f"Sua solicitação para \"{solicitacao['servico_titulo']}\" foi {palavra} por "
        f"{solicitacao['substituto_nome']}.",
        tipo='director_replacement_response', categoria='agenda', prioridade=2,
        metadata={'solicitacao_id': solicitacao_id, 'servico_id': solicitacao['servico_id'],
                  'servico_titulo': solicitacao['servico_titulo'], 'status': status, 'notas': notas},
    )

    if aceitar:
        notificar_todos(
            "🔄 Mudança de diretor",
            f"{solicitacao['substituto_nome']} dirigirá \"{solicitacao['servico_titulo']}\" em "
            f"{formatar_data_br(solicitacao['data_servico'])} no lugar de {solicitacao['diretor_original_nome']}.",
            tipo='director_change', categoria='agenda', prioridade=3,
            metadata={'servico_id': solicitacao['servico_id'],
                      'servico_titulo': solicitacao['servico_titulo'],
                      'data_servico': solicitacao['data_servico'],
                      'diretor_original': solicitacao['diretor_original_nome'],
                      'diretor_novo': solicitacao['substituto_nome']},
        )

    registrar_log(usuario_id, 'substituicao.responder', f"Solicitação {solicitacao_id}: {status}")
    logger.info("Solicitação %s %s", solicitacao_id, status)
    return get_solicitacao(solicitacao_id)

def _marcar_expirada(solicitacao_id: int):
    with get_connection() as conn:
        conn.execute('''
            UPDATE solicitacoes_substituicao SET status = 'expirada'
            WHERE id = ? AND status = 'pendente'
        ''', (solicitacao_id,))

def cancelar_solicitacao(solicitacao_id: int, diretor_original_id: int, usuario_id: int = None):
    """O diretor original desiste de uma solicitação pendente"""
    solicitacao = get_solicitacao(solicitacao_id)
    if not solicitacao:
        raise RegistroNaoEncontrado(f"Solicitação {solicitacao_id} não encontrada")
    if solicitacao['diretor_original_id'] != diretor_original_id:
        raise RegraNegocioError("Somente quem pediu pode cancelar a solicitação")
    if solicitacao['status'] != 'pendente':
        raise RegraNegocioError("Apenas solicitações pendentes podem ser canceladas")

    with get_connection() as conn:
        conn.execute('''
            UPDATE solicitacoes_substituicao SET status = 'cancelada', respondida_em = ?
            WHERE id = ?
        ''', (para_sql(datetime.now()), solicitacao_id))
    registrar_log(usuario_id, 'substituicao.cancelar', f"Solicitação {solicitacao_id}")

def expirar_solicitacoes(agora: datetime = None) -> int:
    """Marca como expiradas as pendentes com prazo vencido"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE solicitacoes_substituicao SET status = 'expirada'
            WHERE status = 'pendente' AND expira_em <= ?
        ''', (para_sql(agora or datetime.now()),))
        total = cursor.rowcount
    if total:
        logger.info("%s solicitações de substituição expiradas", total)
    return total

def get_solicitacoes_pendentes(substituto_id: int, agora: datetime = None) -> list:
    """Pedidos ainda válidos endereçados ao diretor"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(SELECT_SOLICITACAO + '''
            WHERE ss.diretor_substituto_id = ? AND ss.status = 'pendente' AND ss.expira_em > ?
            ORDER BY ss.solicitada_em
        ''', (substituto_id, para_sql(agora or datetime.now())))
        return [dict(row) for row in cursor.fetchall()]

def get_solicitacoes_do_servico(servico_id: int) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(SELECT_SOLICITACAO + ' WHERE ss.servico_id = ? ORDER BY ss.solicitada_em DESC',
                       (servico_id,))
        return [dict(row) for row in cursor.fetchall()]

def get_historico_substituicoes(limite: int = 50) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT h.*, s.titulo as servico_titulo, s.data_servico,
                   o.nomes || ' ' || o.sobrenomes as diretor_original_nome,
                   r.nomes || ' ' || r.sobrenomes as substituto_nome
            FROM historico_substituicoes h
            JOIN servicos s ON h.servico_id = s.id
            JOIN integrantes o ON h.diretor_original_id = o.id
            JOIN integrantes r ON h.diretor_substituto_id = r.id
            ORDER BY h.data_substituicao DESC
            LIMIT ?
        ''', (limite,))
        return [dict(row) for row in cursor.fetchall()]

# ==================== RENDERIZAÇÃO ====================

def render_pedidos_recebidos(usuario: dict):
    """Pedidos pendentes para o diretor logado"""
    pendentes = get_solicitacoes_pendentes(usuario['integrante_id'])
    if not pendentes:
        st.info("Nenhum pedido de substituição para você. 🙌")
        return

    for pedido in pendentes:
        with st.container(border=True):
            st.markdown(f"**{pedido['diretor_original_nome']}** pediu que você dirija "
                        f"**{pedido['servico_titulo']}** em {formatar_data_br(pedido['data_servico'])}")
            if pedido.get('motivo'):
                st.caption(f"Motivo: {pedido['motivo']}")
            st.caption(f"Expira em {ler_data_hora(pedido['expira_em']).strftime('%d/%m/%Y %H:%M')}")
            notas = st.text_input("Observação", key=f"notas_{pedido['id']}")
            col1, col2 = st.columns(2)
            with col1:
                if st.button("✅ Aceitar", key=f"aceitar_{pedido['id']}", use_container_width=True):
                    try:
                        responder_solicitacao(pedido['id'], usuario['integrante_id'], True, notas,
                                              usuario_id=usuario['id'])
                        st.success("Substituição aceita!")
                        st.rerun()
                    except ErroAgenda as e:
                        st.error(str(e))
            with col2:
                if st.button("❌ Recusar", key=f"recusar_{pedido['id']}", use_container_width=True):
                    try:
                        responder_solicitacao(pedido['id'], usuario['integrante_id'], False, notas,
                                              usuario_id=usuario['id'])
                        st.rerun()
                    except ErroAgenda as e:
                        st.error(str(e))

def render_novo_pedido(usuario: dict):
    """Pedido de substituição para um serviço do diretor logado"""
    meus = [s for s in get_proximos_servicos(60) if s['diretor_id'] == usuario['integrante_id']]
    if not meus:
        st.info("Você não tem serviços próximos como diretor.")
        return

    servico = st.selectbox("Serviço", options=meus,
                           format_func=lambda s: f"{formatar_data_br(s['data_servico'])} · {horario_servico(s)}")
    for anterior in get_solicitacoes_do_servico(servico['id'])[:3]:
        info = STATUS_SOLICITACAO[anterior['status']]
        st.caption(f"{info['icone']} {anterior['substituto_nome']} · {info['nome']}")
        if anterior['status'] == 'pendente' and st.button("🚫 Cancelar pedido", key=f"canc_{anterior['id']}"):
            cancelar_solicitacao(anterior['id'], usuario['integrante_id'], usuario['id'])
            st.rerun()

    disponiveis = get_diretores_disponiveis(servico['id'])
    if not disponiveis:
        st.warning("Nenhum diretor disponível.")
        return

    with st.form("form_substituicao"):
        substituto = st.selectbox("Substituto", options=disponiveis, format_func=nome_completo)
        motivo = st.text_area("Motivo")
        if st.form_submit_button("📨 Enviar pedido", use_container_width=True):
            try:
                solicitar_substituicao(servico['id'], usuario['integrante_id'], substituto['id'],
                                       motivo or None, usuario_id=usuario['id'])
                st.success(f"Pedido enviado para {nome_completo(substituto)}")
            except ErroAgenda as e:
                st.error(str(e))

def render_historico():
    historico = get_historico_substituicoes()
    if not historico:
        st.info("Nenhuma substituição registrada.")
        return
    df = pd.DataFrame(historico)
    df['data_servico'] = df['data_servico'].apply(formatar_data_br)
    df = df[['data_servico', 'servico_titulo', 'diretor_original_nome', 'substituto_nome', 'motivo']]
    df.columns = ['Data', 'Serviço', 'Original', 'Substituto', 'Motivo']
    st.dataframe(df, use_container_width=True, hide_index=True)

def render_reemplazos():
    """Função principal do módulo de substituições"""
    st.title("🔄 Substituição de Diretores")
    usuario = get_usuario_atual()
    expirar_solicitacoes()

    if not usuario.get('integrante_id'):
        st.warning("Sua conta não está vinculada a um integrante.")
        render_historico()
        return

    abas = ["📥 Recebidos", "📜 Histórico"]
    if tem_permissao(usuario, 'reemplazos.solicitar'):
        abas.insert(1, "📨 Pedir Substituição")
    tabs = st.tabs(abas)

    with tabs[0]:
        render_pedidos_recebidos(usuario)
    if len(tabs) == 3:
        with tabs[1]:
            render_novo_pedido(usuario)
    with tabs[-1]:
        render_historico()
