"""
Módulo de Comunicação
Salas de conversa do ministério e mensagens diretas
"""
import logging
import streamlit as st
from datetime import datetime
from database.db import get_connection, para_sql, ler_data_hora
from modules.auth import get_usuario_atual, get_usuarios, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from config.settings import TAMANHO_MAXIMO_MENSAGEM

logger = logging.getLogger(__name__)

TIPOS_SALA = {
    'geral': '🌐 Geral',
    'departamento': '🏷️ Departamento',
    'privada': '🔒 Privada',
}

PAPEIS_SALA = ('membro', 'moderador')

TEXTO_BUZZ = '🔔 Zumbido!'
TEXTO_EXCLUIDA = '🚫 Mensagem apagada'

# ==================== FUNÇÕES DE DADOS ====================

def get_sala(sala_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM salas_chat WHERE id = ?', (sala_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def get_salas(usuario_id: int) -> list:
    """Salas ativas de que o usuário participa, com a última mensagem"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT s.*, sm.papel,
                   (SELECT COUNT(*) FROM sala_membros WHERE sala_id = s.id) as total_membros,
                   (SELECT MAX(data_envio) FROM mensagens_chat WHERE sala_id = s.id) as ultima_mensagem
            FROM salas_chat s
            JOIN sala_membros sm ON sm.sala_id = s.id AND sm.usuario_id = ?
            WHERE s.ativo = 1
            ORDER BY s.tipo = 'geral' DESC, ultima_mensagem DESC, s.nome
        ''', (usuario_id,))
        return [dict(row) for row in cursor.fetchall()]

def get_membros_sala(sala_id: int) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT sm.*, u.nome, u.email
            FROM sala_membros sm
            JOIN usuarios u ON sm.usuario_id = u.id
            WHERE sm.sala_id = ?
            ORDER BY sm.papel DESC, u.nome
        ''', (sala_id,))
        return [dict(row) for row in cursor.fetchall()]

def _papel_na_sala(cursor, sala_id: int, usuario_id: int) -> str | None:
    cursor.execute('SELECT papel FROM sala_membros WHERE sala_id = ? AND usuario_id = ?', (sala_id, usuario_id))
    row = cursor.fetchone()
    return row['papel'] if row else None

def criar_sala(nome: str, criador_id: int, descricao: str = None, tipo: str = 'departamento',
               departamento: str = None, moderada: bool = False) -> int:
    """Cria a sala e coloca o criador como moderador"""
    if not (nome or '').strip():
        raise RegraNegocioError("Nome da sala é obrigatório")
    if tipo not in TIPOS_SALA:
        raise RegraNegocioError(f"Tipo de sala inválido: {tipo}")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO salas_chat (nome, descricao, tipo, departamento, moderada, moderador_id)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (nome.strip(), descricao, tipo, departamento, 1 if moderada else 0, criador_id))
        sala_id = cursor.lastrowid
        cursor.execute('''
            INSERT INTO sala_membros (sala_id, usuario_id, papel) VALUES (?, ?, 'moderador')
        ''', (sala_id, criador_id))

    registrar_log(criador_id, 'sala.criar', f"Sala {sala_id}: {nome}")
    if tipo == 'geral':
        adicionar_todos_sala_geral()
    return sala_id

def adicionar_membro_sala(sala_id: int, usuario_id: int, papel: str = 'membro'):
    """Adiciona (ou atualiza o papel de) um membro"""
    if papel not in PAPEIS_SALA:
        raise RegraNegocioError(f"Papel inválido: {papel}")
    if not get_sala(sala_id):
        raise RegistroNaoEncontrado(f"Sala {sala_id} não encontrada")
    with get_connection() as conn:
        conn.execute('''
            INSERT INTO sala_membros (sala_id, usuario_id, papel) VALUES (?, ?, ?)
            ON CONFLICT (sala_id, usuario_id) DO UPDATE SET papel = excluded.papel
        ''', (sala_id, usuario_id, papel))

def remover_membro_sala(sala_id: int, usuario_id: int):
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('DELETE FROM sala_membros WHERE sala_id = ? AND usuario_id = ?', (sala_id, usuario_id))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado("Usuário não participa desta sala")

def adicionar_todos_sala_geral() -> int:
    """Inclui todos os usuários ativos nas salas gerais; retorna quantos entraram"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT OR IGNORE INTO sala_membros (sala_id, usuario_id, papel)
            SELECT s.id, u.id, 'membro'
            FROM salas_chat s, usuarios u
            WHERE s.tipo = 'geral' AND s.ativo = 1 AND u.ativo = 1 AND u.aprovado = 1
        ''')
        return cursor.rowcount

def enviar_mensagem(sala_id: int, usuario_id: int, texto: str, tipo: str = 'texto') -> int:
    """Publica uma mensagem na sala"""
    texto = (texto or '').strip()
    if not texto:
        raise RegraNegocioError("A mensagem não pode ser vazia")
    if len(texto) > TAMANHO_MAXIMO_MENSAGEM:
        raise RegraNegocioError(f"A mensagem excede {TAMANHO_MAXIMO_MENSAGEM} caracteres")

    with get_connection() as conn:
        cursor = conn.cursor()
        if not _papel_na_sala(cursor, sala_id, usuario_id):
            raise RegraNegocioError("Você não participa desta sala")
        cursor.execute('''
            INSERT INTO mensagens_chat (sala_id, usuario_id, mensagem, tipo, data_envio)
            VALUES (?, ?, ?, ?, ?)
        ''', (sala_id, usuario_id, texto, tipo, para_sql(datetime.now())))
        return cursor.lastrowid

def buzz(sala_id: int, usuario_id: int) -> int:
    """Chama a atenção da sala"""
    return enviar_mensagem(sala_id, usuario_id, TEXTO_BUZZ, tipo='buzz')

def get_mensagens(sala_id: int, limite: int = 50, antes_de: datetime = None) -> list:
    """Últimas mensagens da sala em ordem cronológica"""
    query = '''
        SELECT m.*, u.nome as autor_nome
        FROM mensagens_chat m
        LEFT JOIN usuarios u ON m.usuario_id = u.id
        WHERE m.sala_id = ?
    '''
    params = [sala_id]
    if antes_de:
        query += ' AND m.data_envio < ?'
        params.append(para_sql(antes_de))
    query += ' ORDER BY m.data_envio DESC, m.id DESC LIMIT ?'
    params.append(limite)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        mensagens = [dict(row) for row in cursor.fetchall()]

    for mensagem in mensagens:
        if mensagem['excluida']:
            mensagem['mensagem'] = TEXTO_EXCLUIDA
    return list(reversed(mensagens))

def excluir_mensagem(mensagem_id: int, usuario_id: int):
    """Apaga a mensagem (autor ou moderador da sala)"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT m.usuario_id, m.sala_id, s.moderador_id
            FROM mensagens_chat m JOIN salas_chat s ON m.sala_id = s.id
            WHERE m.id = ?
        ''', (mensagem_id,))
        row = cursor.fetchone()
        if not row:
            raise RegistroNaoEncontrado(f"Mensagem {mensagem_id} não encontrada")

        moderador = (row['moderador_id'] == usuario_id
                     or _papel_na_sala(cursor, row['sala_id'], usuario_id) == 'moderador')
        if row['usuario_id'] != usuario_id and not moderador:
            raise RegraNegocioError("Somente o autor ou um moderador pode apagar a mensagem")

        cursor.execute('UPDATE mensagens_chat SET excluida = 1 WHERE id = ?', (mensagem_id,))
    registrar_log(usuario_id, 'mensagem.excluir', f"Mensagem {mensagem_id}")

def enviar_mensagem_direta(remetente_id: int, destinatario_id: int, texto: str) -> int:
    texto = (texto or '').strip()
    if not texto:
        raise RegraNegocioError("A mensagem não pode ser vazia")
    if len(texto) > TAMANHO_MAXIMO_MENSAGEM:
        raise RegraNegocioError(f"A mensagem excede {TAMANHO_MAXIMO_MENSAGEM} caracteres")
    if remetente_id == destinatario_id:
        raise RegraNegocioError("Escolha outro destinatário")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO mensagens_diretas (remetente_id, destinatario_id, mensagem, data_envio)
            VALUES (?, ?, ?, ?)
        ''', (remetente_id, destinatario_id, texto, para_sql(datetime.now())))
        return cursor.lastrowid

def get_conversa(usuario_a: int, usuario_b: int, limite: int = 100, marcar_lidas: bool = True) -> list:
    """Mensagens entre dois usuários; as recebidas por A passam a lidas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT * FROM (
                SELECT * FROM mensagens_diretas
                WHERE (remetente_id = ? AND destinatario_id = ?)
                   OR (remetente_id = ? AND destinatario_id = ?)
                ORDER BY data_envio DESC, id DESC
                LIMIT ?
            ) ORDER BY data_envio, id
        ''', (usuario_a, usuario_b, usuario_b, usuario_a, limite))
        mensagens = [dict(row) for row in cursor.fetchall()]

        if marcar_lidas:
            cursor.execute('''
                UPDATE mensagens_diretas SET lida = 1
                WHERE remetente_id = ? AND destinatario_id = ? AND lida = 0
            ''', (usuario_b, usuario_a))
    return mensagens

def get_conversas(usuario_id: int) -> list:
    """Uma linha por contato, com a última mensagem e as não lidas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT contato_id, u.nome as contato_nome, MAX(data_envio) as ultima_data,
                   SUM(CASE WHEN destinatario_id = ? AND lida = 0 THEN 1 ELSE 0 END) as nao_lidas
            FROM (
                SELECT *, CASE WHEN remetente_id = ? THEN destinatario_id ELSE remetente_id END as contato_id
                FROM mensagens_diretas
                WHERE remetente_id = ? OR destinatario_id = ?
            ) md
            JOIN usuarios u ON u.id = md.contato_id
            GROUP BY contato_id
            ORDER BY ultima_data DESC
        ''', (usuario_id, usuario_id, usuario_id, usuario_id))
        conversas = [dict(row) for row in cursor.fetchall()]

        for conversa in conversas:
            cursor.execute('''
                SELECT mensagem FROM mensagens_diretas
                WHERE (remetente_id = ? AND destinatario_id = ?) OR (remetente_id = ? AND destinatario_id = ?)
                ORDER BY data_envio DESC, id DESC LIMIT 1
            ''', (usuario_id, conversa['contato_id'], conversa['contato_id'], usuario_id))
            conversa['ultima_mensagem'] = cursor.fetchone()['mensagem']
    return conversas

def get_contatos_frequentes(usuario_id: int, limite: int = 5) -> list:
    """Contatos com mais mensagens trocadas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT u.id, u.nome, COUNT(*) as total
            FROM mensagens_diretas md
            JOIN usuarios u ON u.id = CASE WHEN md.remetente_id = ? THEN md.destinatario_id
                                           ELSE md.remetente_id END
            WHERE md.remetente_id = ? OR md.destinatario_id = ?
            GROUP BY u.id
            ORDER BY total DESC, u.nome
            LIMIT ?
        ''', (usuario_id, usuario_id, usuario_id, limite))
        return [dict(row) for row in cursor.fetchall()]

# ==================== RENDERIZAÇÃO ====================

def _hora(valor) -> str:
    return ler_data_hora(valor).strftime('%d/%m %H:%M')

def render_sala(sala: dict, usuario: dict):
    """Mensagens e caixa de envio de uma sala"""
    st.markdown(f"### {TIPOS_SALA.get(sala['tipo'], '')} · {sala['nome']}")
    if sala.get('descricao'):
        st.caption(sala['descricao'])

    moderador = sala.get('papel') == 'moderador'
    for mensagem in get_mensagens(sala['id']):
        with st.chat_message("user" if mensagem['usuario_id'] == usuario['id'] else "assistant"):
            if mensagem['tipo'] == 'buzz' and not mensagem['excluida']:
                st.markdown(f"**{mensagem['autor_nome']}** chamou a atenção de todos! 🔔")
            else:
                st.markdown(f"**{mensagem['autor_nome'] or 'Sistema'}** · {_hora(mensagem['data_envio'])}")
                st.write(mensagem['mensagem'])
            if not mensagem['excluida'] and (moderador or mensagem['usuario_id'] == usuario['id']):
                if st.button("🗑️", key=f"del_msg_{mensagem['id']}"):
                    excluir_mensagem(mensagem['id'], usuario['id'])
                    st.rerun()

    if not tem_permissao(usuario, 'comunicacao.enviar'):
        return
    _, col2 = st.columns([5, 1])
    with col2:
        if st.button("🔔 Zumbido", key=f"buzz_{sala['id']}"):
            buzz(sala['id'], usuario['id'])
            st.rerun()
    texto = st.chat_input("Escreva uma mensagem...", key=f"chat_{sala['id']}",
                          max_chars=TAMANHO_MAXIMO_MENSAGEM)
    if texto:
        try:
            enviar_mensagem(sala['id'], usuario['id'], texto)
            st.rerun()
        except ErroAgenda as e:
            st.error(str(e))

def render_salas(usuario: dict):
    salas = get_salas(usuario['id'])
    if not salas:
        st.info("Você ainda não participa de nenhuma sala.")
        return
    sala = st.selectbox("Sala", options=salas,
                        format_func=lambda s: f"{s['nome']} ({s['total_membros']})")
    render_sala(sala, usuario)

def render_nova_sala(usuario: dict):
    usuarios = [u for u in get_usuarios(ativos=True) if u['id'] != usuario['id']]
    with st.form("form_sala"):
        nome = st.text_input("Nome da sala *")
        descricao = st.text_input("Descrição")
        tipo = st.selectbox("Tipo", options=list(TIPOS_SALA), format_func=TIPOS_SALA.get)
        departamento = st.text_input("Departamento")
        moderada = st.checkbox("Sala moderada")
        membros = st.multiselect("Membros", options=usuarios, format_func=lambda u: u['nome'])

        if st.form_submit_button("➕ Criar sala", use_container_width=True):
            try:
                sala_id = criar_sala(nome, usuario['id'], descricao, tipo, departamento or None, moderada)
                for membro in membros:
                    adicionar_membro_sala(sala_id, membro['id'])
                st.success("✅ Sala criada!")
            except ErroAgenda as e:
                st.error(str(e))

def render_mensagens_diretas(usuario: dict):
    """Conversas privadas"""
    col1, col2 = st.columns([1, 2])
    outros = {u['id']: u for u in get_usuarios(ativos=True) if u['id'] != usuario['id']}

    with col1:
        frequentes = get_contatos_frequentes(usuario['id'])
        if frequentes:
            st.caption("⭐ Frequentes: " + ", ".join(c['nome'] for c in frequentes))
        for conversa in get_conversas(usuario['id']):
            badge = f" 🔴 {conversa['nao_lidas']}" if conversa['nao_lidas'] else ""
            if st.button(f"💬 {conversa['contato_nome']}{badge}", key=f"conv_{conversa['contato_id']}",
                         use_container_width=True):
                st.session_state.contato_dm = conversa['contato_id']
        novo = st.selectbox("Nova conversa", options=[None] + list(outros),
                            format_func=lambda i: outros[i]['nome'] if i else "Selecione...")
        if novo:
            st.session_state.contato_dm = novo

    with col2:
        contato_id = st.session_state.get('contato_dm')
        if not contato_id or contato_id not in outros:
            st.info("Escolha uma conversa.")
            return
        st.markdown(f"### {outros[contato_id]['nome']}")
        for mensagem in get_conversa(usuario['id'], contato_id):
            with st.chat_message("user" if mensagem['remetente_id'] == usuario['id'] else "assistant"):
                st.caption(_hora(mensagem['data_envio']))
                st.write(mensagem['mensagem'])
        texto = st.chat_input("Mensagem direta...", key="chat_dm", max_chars=TAMANHO_MAXIMO_MENSAGEM)
        if texto:
            try:
                enviar_mensagem_direta(usuario['id'], contato_id, texto)
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

def render_comunicacao():
    """Função principal do módulo de comunicação"""
    st.title("💬 Comunicação")
    usuario = get_usuario_atual()

    abas = ["🗨️ Salas", "✉️ Mensagens Diretas"]
    if tem_permissao(usuario, 'notificacoes.enviar'):
        abas.append("➕ Nova Sala")
    tabs = st.tabs(abas)

    with tabs[0]:
        render_salas(usuario)
    with tabs[1]:
        render_mensagens_diretas(usuario)
    if len(tabs) > 2:
        with tabs[2]:
            render_nova_sala(usuario)
