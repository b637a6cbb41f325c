"""
Módulo de Ensaios
Sessões colaborativas com convites e faixas de áudio
"""
import logging
import re
import sqlite3
import uuid
from pathlib import Path
import streamlit as st
from datetime import datetime
from database.db import get_connection, para_sql
from modules.auth import get_usuario_atual, get_usuarios, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from modules.notificacoes import criar_notificacao
from config.settings import UPLOADS_DIR, formatar_data_br

logger = logging.getLogger(__name__)

TIPOS_FAIXA = {
    'backing': '🎹 Base',
    'voz': '🎤 Voz',
    'instrumento': '🎸 Instrumento',
}

STATUS_CONVITE = ('convidado', 'aceito', 'recusado')

EXTENSOES_AUDIO = ['mp3', 'wav', 'm4a', 'ogg', 'webm']

# ==================== FUNÇÕES DE DADOS ====================

def get_sessao(sessao_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT se.*, u.nome as criador_nome
            FROM sessoes_ensaio se
            JOIN usuarios u ON se.criador_id = u.id
            WHERE se.id = ?
        ''', (sessao_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def criar_sessao(titulo: str, criador_id: int, descricao: str = None, data_ensaio: datetime = None,
                 cancao_id: int = None) -> int:
    if not (titulo or '').strip():
        raise RegraNegocioError("Título da sessão é obrigatório")
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO sessoes_ensaio (titulo, descricao, data_ensaio, criador_id, cancao_id)
            VALUES (?, ?, ?, ?, ?)
        ''', (titulo.strip(), descricao, para_sql(data_ensaio), criador_id, cancao_id))
        sessao_id = cursor.lastrowid
    registrar_log(criador_id, 'ensaio.criar', f"Sessão {sessao_id}: {titulo}")
    return sessao_id

def _exigir_sessao_aberta(sessao_id: int) -> dict:
    sessao = get_sessao(sessao_id)
    if not sessao:
        raise RegistroNaoEncontrado(f"Sessão {sessao_id} não encontrada")
    if sessao['status'] != 'aberta':
        raise RegraNegocioError("A sessão está encerrada")
    return sessao

def get_participantes(sessao_id: int) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT ep.*, u.nome
            FROM ensaio_participantes ep
            JOIN usuarios u ON ep.usuario_id = u.id
            WHERE ep.sessao_id = ?
            ORDER BY u.nome
        ''', (sessao_id,))
        return [dict(row) for row in cursor.fetchall()]

def convidar_participante(sessao_id: int, usuario_id: int, convidado_por: int) -> int:
    """Convida um usuário; apenas o criador da sessão convida"""
    sessao = _exigir_sessao_aberta(sessao_id)
    if sessao['criador_id'] != convidado_por:
        raise RegraNegocioError("Somente o criador da sessão pode convidar")
    if usuario_id == sessao['criador_id']:
        raise RegraNegocioError("O criador já participa da sessão")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO ensaio_participantes (sessao_id, usuario_id, status, data_convite)
            VALUES (?, ?, 'convidado', ?)
            ON CONFLICT (sessao_id, usuario_id) DO UPDATE SET status = 'convidado', data_resposta = NULL
        ''', (sessao_id, usuario_id, para_sql(datetime.now())))
        cursor.execute('SELECT id FROM ensaio_participantes WHERE sessao_id = ? AND usuario_id = ?',
                       (sessao_id, usuario_id))
        participante_id = cursor.fetchone()['id']

    criar_notificacao(usuario_id, "🎧 Convite para ensaio",
                      f"{sessao['criador_nome']} convidou você para \"{sessao['titulo']}\".",
                      tipo='general', remetente_id=convidado_por, categoria='ensaio',
                      metadata={'sessao_id': sessao_id})
    return participante_id

def responder_convite(sessao_id: int, usuario_id: int, aceitar: bool):
    status = 'aceito' if aceitar else 'recusado'
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE ensaio_participantes SET status = ?, data_resposta = ?
            WHERE sessao_id = ? AND usuario_id = ?
        ''', (status, para_sql(datetime.now()), sessao_id, usuario_id))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado("Convite não encontrado")

def get_sessoes(usuario_id: int) -> list:
    """Sessões criadas pelo usuário ou para as quais foi convidado"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT se.*, u.nome as criador_nome, ep.status as meu_status,
                   (SELECT COUNT(*) FROM faixas_ensaio f WHERE f.sessao_id = se.id) as total_faixas,
                   (SELECT COUNT(*) FROM ensaio_participantes p
                    WHERE p.sessao_id = se.id AND p.status = 'aceito') as total_participantes
            FROM sessoes_ensaio se
            JOIN usuarios u ON se.criador_id = u.id
            LEFT JOIN ensaio_participantes ep ON ep.sessao_id = se.id AND ep.usuario_id = ?
            WHERE se.criador_id = ? OR (ep.id IS NOT NULL AND ep.status != 'recusado')
            ORDER BY se.status = 'aberta' DESC, COALESCE(se.data_ensaio, se.data_cadastro) DESC
        ''', (usuario_id, usuario_id))
        return [dict(row) for row in cursor.fetchall()]

def pode_contribuir(sessao: dict, usuario_id: int) -> bool:
    """Criador ou participante que não recusou o convite"""
    if sessao['criador_id'] == usuario_id:
        return True
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT status FROM ensaio_participantes WHERE sessao_id = ? AND usuario_id = ?
        ''', (sessao['id'], usuario_id))
        row = cursor.fetchone()
        return bool(row) and row['status'] != 'recusado'

def _nome_seguro(nome: str) -> str:
    nome = re.sub(r'[^\w.\-]+', '_', nome.strip()).strip('._')
    return nome or 'faixa'

def adicionar_faixa(sessao_id: int, usuario_id: int, nome: str, conteudo: bytes, tipo: str = 'voz',
                    titulo: str = None, duracao_segundos: float = None) -> int:
    """Grava o arquivo em UPLOADS_DIR e registra a faixa"""
    sessao = _exigir_sessao_aberta(sessao_id)
    if not pode_contribuir(sessao, usuario_id):
        raise RegraNegocioError("Apenas participantes podem enviar faixas")
    if tipo not in TIPOS_FAIXA:
        raise RegraNegocioError(f"Tipo de faixa inválido: {tipo}")
    if not conteudo:
        raise RegraNegocioError("Arquivo vazio")

    pasta = UPLOADS_DIR / 'ensaios' / str(sessao_id)
    pasta.mkdir(parents=True, exist_ok=True)
    arquivo = pasta / f"{uuid.uuid4().hex[:8]}_{_nome_seguro(nome)}"
    arquivo.write_bytes(conteudo)

    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO faixas_ensaio (sessao_id, usuario_id, titulo, tipo, arquivo, tamanho_bytes, duracao_segundos)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (sessao_id, usuario_id, (titulo or nome).strip(), tipo, str(arquivo), len(conteudo),
                  duracao_segundos))
            faixa_id = cursor.lastrowid
    except sqlite3.Error:
        arquivo.unlink(missing_ok=True)
        raise

    logger.info("Faixa %s adicionada à sessão %s (%s bytes)", faixa_id, sessao_id, len(conteudo))
    return faixa_id

def get_faixas(sessao_id: int) -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT f.*, u.nome as autor_nome
            FROM faixas_ensaio f
            JOIN usuarios u ON f.usuario_id = u.id
            WHERE f.sessao_id = ?
            ORDER BY f.data_cadastro, f.id
        ''', (sessao_id,))
        return [dict(row) for row in cursor.fetchall()]

def excluir_faixa(faixa_id: int, usuario_id: int):
    """Remove a faixa (autor ou criador da sessão) e o arquivo"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT f.usuario_id, f.arquivo, se.criador_id
            FROM faixas_ensaio f JOIN sessoes_ensaio se ON f.sessao_id = se.id
            WHERE f.id = ?
        ''', (faixa_id,))
        row = cursor.fetchone()
        if not row:
            raise RegistroNaoEncontrado(f"Faixa {faixa_id} não encontrada")
        if usuario_id not in (row['usuario_id'], row['criador_id']):
            raise RegraNegocioError("Somente o autor da faixa ou o criador da sessão pode excluí-la")
        cursor.execute('DELETE FROM faixas_ensaio WHERE id = ?', (faixa_id,))

    Path(row['arquivo']).unlink(missing_ok=True)
    registrar_log(usuario_id, 'ensaio.excluir_faixa', f"Faixa {faixa_id}")

def encerrar_sessao(sessao_id: int, usuario_id: int):
    sessao = _exigir_sessao_aberta(sessao_id)
    if sessao['criador_id'] != usuario_id:
        raise RegraNegocioError("Somente o criador pode encerrar a sessão")
    with get_connection() as conn:
        conn.execute("UPDATE sessoes_ensaio SET status = 'encerrada' WHERE id = ?", (sessao_id,))
    registrar_log(usuario_id, 'ensaio.encerrar', f"Sessão {sessao_id}")

# ==================== RENDERIZAÇÃO ====================

def render_sessao(sessao: dict, usuario: dict):
    aberta = sessao['status'] == 'aberta'
    icone = "🟢" if aberta else "⚫"
    with st.expander(f"{icone} {sessao['titulo']} · {sessao['total_faixas']} faixas"):
        st.caption(f"👤 {sessao['criador_nome']}"
                   + (f" · 📅 {formatar_data_br(sessao['data_ensaio'])}" if sessao.get('data_ensaio') else ""))
        if sessao.get('descricao'):
            st.write(sessao['descricao'])

        if sessao.get('meu_status') == 'convidado':
            col1, col2 = st.columns(2)
            if col1.button("✅ Aceitar convite", key=f"aceitar_ens_{sessao['id']}"):
                responder_convite(sessao['id'], usuario['id'], True)
                st.rerun()
            if col2.button("❌ Recusar", key=f"recusar_ens_{sessao['id']}"):
                responder_convite(sessao['id'], usuario['id'], False)
                st.rerun()

        for faixa in get_faixas(sessao['id']):
            col1, col2 = st.columns([5, 1])
            with col1:
                st.markdown(f"{TIPOS_FAIXA.get(faixa['tipo'], '')} **{faixa['titulo']}** · {faixa['autor_nome']}")
                try:
                    st.audio(faixa['arquivo'])
                except OSError:
                    st.caption("Arquivo indisponível")
            with col2:
                if usuario['id'] in (faixa['usuario_id'], sessao['criador_id']):
                    if st.button("🗑️", key=f"del_faixa_{faixa['id']}"):
                        excluir_faixa(faixa['id'], usuario['id'])
                        st.rerun()

        if not aberta:
            return

        with st.form(f"form_faixa_{sessao['id']}"):
            arquivo = st.file_uploader("Nova faixa", type=EXTENSOES_AUDIO)
            tipo = st.selectbox("Tipo", options=list(TIPOS_FAIXA), format_func=TIPOS_FAIXA.get)
            titulo = st.text_input("Título")
            if st.form_submit_button("⬆️ Enviar"):
                if not arquivo:
                    st.error("Selecione um arquivo")
                else:
                    try:
                        adicionar_faixa(sessao['id'], usuario['id'], arquivo.name, arquivo.getvalue(),
                                        tipo, titulo or None)
                        st.rerun()
                    except ErroAgenda as e:
                        st.error(str(e))

        if sessao['criador_id'] == usuario['id']:
            participantes = {p['usuario_id'] for p in get_participantes(sessao['id'])}
            candidatos = [u for u in get_usuarios() if u['id'] != usuario['id'] and u['id'] not in participantes]
            if candidatos:
                convidado = st.selectbox("Convidar", options=candidatos, format_func=lambda u: u['nome'],
                                         key=f"conv_ens_{sessao['id']}")
                if st.button("📨 Convidar", key=f"btn_conv_{sessao['id']}"):
                    convidar_participante(sessao['id'], convidado['id'], usuario['id'])
                    st.rerun()
            if st.button("🔒 Encerrar sessão", key=f"encerrar_{sessao['id']}"):
                encerrar_sessao(sessao['id'], usuario['id'])
                st.rerun()

def render_ensaios():
    """Função principal do módulo de ensaios"""
    st.title("🎧 Ensaios")
    usuario = get_usuario_atual()

    if tem_permissao(usuario, 'ensaios.editar'):
        with st.popover("➕ Nova sessão"):
            with st.form("form_sessao"):
                titulo = st.text_input("Título *")
                descricao = st.text_area("Descrição")
                data = st.date_input("Data", format="DD/MM/YYYY")
                hora = st.time_input("Hora")
                if st.form_submit_button("Criar"):
                    try:
                        criar_sessao(titulo, usuario['id'], descricao or None, datetime.combine(data, hora))
                        st.rerun()
                    except ErroAgenda as e:
                        st.error(str(e))

    sessoes = get_sessoes(usuario['id'])
    if not sessoes:
        st.info("Nenhuma sessão de ensaio.")
        return
    for sessao in sessoes:
        render_sessao(sessao, usuario)
