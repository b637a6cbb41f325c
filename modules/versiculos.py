"""
Módulo de Versículos
Versículo do dia com consulta à API bíblica e cache offline
"""
import logging
import urllib.parse
import requests
import streamlit as st
from datetime import date
from database.db import get_connection, para_sql
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError
from modules.cache_offline import cache_offline
from modules.notificacoes import notificar_todos
from config.settings import BIBLE_API_URL, BIBLE_TRANSLATION, HTTP_TIMEOUT, CACHE_CHAVES, formatar_data_br

logger = logging.getLogger(__name__)

# ==================== FUNÇÕES DE DADOS ====================

def get_versiculos() -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM versiculos ORDER BY referencia')
        return [dict(row) for row in cursor.fetchall()]

def get_versiculo_local(referencia: str) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM versiculos WHERE referencia = ? COLLATE NOCASE', (referencia.strip(),))
        row = cursor.fetchone()
        return dict(row) if row else None

def salvar_versiculo(referencia: str, texto: str, traducao: str = None, tema: str = None) -> int:
    """Insere ou atualiza um versículo pelo texto da referência"""
    if not (referencia or '').strip() or not (texto or '').strip():
        raise RegraNegocioError("Referência e texto são obrigatórios")
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO versiculos (referencia, texto, traducao, tema)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (referencia) DO UPDATE SET
                texto = excluded.texto,
                traducao = COALESCE(excluded.traducao, traducao),
                tema = COALESCE(excluded.tema, tema)
        ''', (referencia.strip(), texto.strip(), traducao, tema))
        cursor.execute('SELECT id FROM versiculos WHERE referencia = ?', (referencia.strip(),))
        return cursor.fetchone()['id']

def buscar_versiculo_api(referencia: str) -> dict | None:
    """Consulta a API bíblica; sem resposta válida, usa a tabela local"""
    url = f"{BIBLE_API_URL.rstrip('/')}/{urllib.parse.quote(referencia.strip())}"
    try:
        resposta = requests.get(url, params={'translation': BIBLE_TRANSLATION}, timeout=HTTP_TIMEOUT)
        resposta.raise_for_status()
        dados = resposta.json()
        versiculo = {
            'referencia': dados.get('reference') or referencia.strip(),
            'texto': ' '.join(dados['text'].split()),
            'traducao': dados.get('translation_id', BIBLE_TRANSLATION),
        }
    except (requests.RequestException, ValueError, KeyError, AttributeError) as e:
        logger.warning("API bíblica indisponível para %s: %s", referencia, e)
        return get_versiculo_local(referencia)

    versiculo['id'] = salvar_versiculo(versiculo['referencia'], versiculo['texto'], versiculo['traducao'])
    return versiculo

def _carregar_versiculo_do_dia(hoje: date) -> dict | None:
    """Lê (ou sorteia e grava) o versículo da data"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT vd.data, vd.reflexao, v.referencia, v.texto, v.tema, v.traducao
            FROM versiculos_diarios vd
            JOIN versiculos v ON vd.versiculo_id = v.id
            WHERE vd.data = ?
        ''', (para_sql(hoje),))
        row = cursor.fetchone()
        if row:
            return dict(row)

        cursor.execute('SELECT id FROM versiculos ORDER BY id')
        ids = [r['id'] for r in cursor.fetchall()]
        if not ids:
            return None
        # Rodízio determinístico pela data
        cursor.execute('INSERT OR IGNORE INTO versiculos_diarios (data, versiculo_id) VALUES (?, ?)',
                       (para_sql(hoje), ids[hoje.toordinal() % len(ids)]))

    return _carregar_versiculo_do_dia(hoje)

def get_versiculo_do_dia(hoje: date = None, cache=None) -> dict | None:
    """Versículo do dia, servido pelo cache offline quando possível"""
    hoje = hoje or date.today()
    cache = cache or cache_offline
    chave = CACHE_CHAVES['VERSICULOS']

    def buscar():
        return _carregar_versiculo_do_dia(hoje)

    versiculo = cache.buscar_com_cache(chave, buscar)
    if cache.online and (versiculo is None or versiculo.get('data') != para_sql(hoje)):
        versiculo = cache.buscar_com_cache(chave, buscar, forcar_atualizacao=True)
    return versiculo

def definir_versiculo_do_dia(data: date, referencia: str, texto: str = None, reflexao: str = None,
                             usuario_id: int = None, cache=None) -> int:
    """Escolhe o versículo de uma data; sem texto, busca na API"""
    if texto:
        versiculo_id = salvar_versiculo(referencia, texto, BIBLE_TRANSLATION)
    else:
        versiculo = buscar_versiculo_api(referencia)
        if not versiculo:
            raise RegraNegocioError(f"Versículo '{referencia}' não encontrado")
        versiculo_id = versiculo['id']

    with get_connection() as conn:
        conn.execute('''
            INSERT INTO versiculos_diarios (data, versiculo_id, reflexao, criado_por)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (data) DO UPDATE SET
                versiculo_id = excluded.versiculo_id,
                reflexao = excluded.reflexao,
                criado_por = excluded.criado_por
        ''', (para_sql(data), versiculo_id, reflexao, usuario_id))

    (cache or cache_offline).remover(CACHE_CHAVES['VERSICULOS'])
    registrar_log(usuario_id, 'versiculo.definir', f"{formatar_data_br(data)}: {referencia}")
    return versiculo_id

def _versiculo_ja_enviado(hoje: date) -> bool:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT 1 FROM notificacoes
            WHERE tipo = 'daily_verse' AND json_extract(metadata, '$.data') = ?
            LIMIT 1
        ''', (para_sql(hoje),))
        return cursor.fetchone() is not None

def enviar_notificacao_versiculo(hoje: date = None, cache=None) -> int:
    """Envia o versículo do dia para todos (uma vez por dia)"""
    hoje = hoje or date.today()
    if _versiculo_ja_enviado(hoje):
        return 0
    versiculo = get_versiculo_do_dia(hoje, cache)
    if not versiculo:
        return 0
    return notificar_todos(
        f"📖 Versículo do dia · {versiculo['referencia']}",
        versiculo['texto'],
        tipo='daily_verse', categoria='devocional', prioridade=1,
        metadata={'data': para_sql(hoje), 'referencia': versiculo['referencia'],
                  'reflexao': versiculo.get('reflexao')},
    )

# ==================== RENDERIZAÇÃO ====================

def render_card_versiculo(versiculo: dict):
    st.markdown(f"""
        <div style='padding: 1.2rem; border-radius: 12px; background: linear-gradient(135deg, #667eea, #764ba2); color: white;'>
            <div style='font-size: 1.1rem; font-style: italic;'>“{versiculo['texto']}”</div>
            <div style='text-align: right; margin-top: 0.5rem;'><strong>{versiculo['referencia']}</strong></div>
        </div>
    """, unsafe_allow_html=True)
    if versiculo.get('reflexao'):
        st.caption(f"💭 {versiculo['reflexao']}")

def render_versiculos():
    """Função principal do módulo de versículos"""
    st.title("📖 Versículo do Dia")
    usuario = get_usuario_atual()

    try:
        versiculo = get_versiculo_do_dia()
    except ErroAgenda as e:
        st.warning(str(e))
        versiculo = None
    if versiculo:
        render_card_versiculo(versiculo)
    else:
        st.info("Nenhum versículo cadastrado.")

    if not tem_permissao(usuario, 'notificacoes.enviar'):
        return

    st.markdown("---")
    with st.form("form_versiculo"):
        st.markdown("### ✏️ Definir versículo")
        data = st.date_input("Data", format="DD/MM/YYYY")
        referencia = st.text_input("Referência", placeholder="João 3:16")
        texto = st.text_area("Texto (vazio = buscar na API)")
        reflexao = st.text_area("Reflexão")
        if st.form_submit_button("💾 Salvar"):
            try:
                definir_versiculo_do_dia(data, referencia, texto or None, reflexao or None, usuario['id'])
                st.success("✅ Versículo definido!")
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

    if st.button("📣 Enviar versículo de hoje para todos"):
        total = enviar_notificacao_versiculo()
        st.success(f"Enviado para {total} usuários" if total else "O versículo de hoje já foi enviado.")
