"""
Módulo de Grupos de Louvor
Formação dos grupos, líderes e ordem de microfones
"""
import logging
import streamlit as st
import pandas as pd
from datetime import date
from database.db import get_connection, para_sql
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from modules.integrantes import get_integrantes, get_integrante_por_nome, nome_completo
from modules.licencas import get_ids_inativos
from config.settings import INSTRUMENTOS

logger = logging.getLogger(__name__)

# Aleida → Keyla → Massy: a cada domingo um grupo descansa
ROTACAO = [
    (0, 1, 2),
    (2, 0, 1),
    (1, 2, 0),
]

# ==================== FUNÇÕES DE DADOS ====================

def get_grupos(apenas_ativos: bool = True) -> list:
    """Lista os grupos de louvor com a quantidade de integrantes"""
    query = '''
        SELECT g.*,
               (SELECT COUNT(*) FROM grupo_integrantes gi
                WHERE gi.grupo_id = g.id AND gi.ativo = 1) as total_integrantes
        FROM grupos_louvor g
    '''
    if apenas_ativos:
        query += ' WHERE g.ativo = 1'
    query += ' ORDER BY g.nome'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query)
        return [dict(row) for row in cursor.fetchall()]

def get_grupo(grupo_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM grupos_louvor WHERE id = ?', (grupo_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def get_grupo_por_nome(nome: str) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM grupos_louvor WHERE LOWER(nome) = LOWER(?)', (nome.strip(),))
        row = cursor.fetchone()
        return dict(row) if row else None

def salvar_grupo(dados: dict, usuario_id: int = None) -> int:
    """Salva ou atualiza um grupo"""
    if not (dados.get('nome') or '').strip():
        raise RegraNegocioError("Nome do grupo é obrigatório")

    existente = get_grupo_por_nome(dados['nome'])
    if existente and existente['id'] != dados.get('id'):
        raise RegraNegocioError(f"Já existe um grupo chamado {dados['nome']}")

    with get_connection() as conn:
        cursor = conn.cursor()
        if dados.get('id'):
            cursor.execute('''
                UPDATE grupos_louvor SET nome = ?, descricao = ?, cor = ?, ativo = ?
                WHERE id = ?
            ''', (dados['nome'].strip(), dados.get('descricao'), dados.get('cor', '#3498db'),
                  1 if dados.get('ativo', True) else 0, dados['id']))
            grupo_id = dados['id']
        else:
            cursor.execute('''
                INSERT INTO grupos_louvor (nome, descricao, cor) VALUES (?, ?, ?)
            ''', (dados['nome'].strip(), dados.get('descricao'), dados.get('cor', '#3498db')))
            grupo_id = cursor.lastrowid

    registrar_log(usuario_id, 'grupo.salvar', f"Grupo {grupo_id}: {dados['nome']}")
    return grupo_id

def get_membros_grupo(grupo_id: int, incluir_inativos: bool = False, hoje: date = None) -> list:
    """Integrantes do grupo, na ordem dos microfones.

    Integrantes de licença ou desligados ficam de fora, salvo com incluir_inativos.
    """
    query = '''
        SELECT gi.*, i.nomes, i.sobrenomes, i.voz_instrumento, i.foto_url, i.cargo
        FROM grupo_integrantes gi
        JOIN integrantes i ON gi.integrante_id = i.id
        WHERE gi.grupo_id = ?
    '''
    if not incluir_inativos:
        query += ' AND gi.ativo = 1 AND i.ativo = 1'
    query += ' ORDER BY gi.ordem_microfone IS NULL, gi.ordem_microfone, i.nomes'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, (grupo_id,))
        membros = [dict(row) for row in cursor.fetchall()]

    if incluir_inativos:
        return membros
    inativos = get_ids_inativos(hoje)
    return [m for m in membros if m['integrante_id'] not in inativos]

def adicionar_membro_grupo(grupo_id: int, integrante_id: int, instrumento: str = 'vocals',
                           is_lider: bool = False, ordem_microfone: int = None,
                           usuario_id: int = None, hoje: date = None) -> int:
    """Adiciona (ou reativa) um integrante no grupo"""
    if instrumento not in INSTRUMENTOS:
        raise RegraNegocioError(f"Instrumento inválido: {instrumento}")
    if not get_grupo(grupo_id):
        raise RegistroNaoEncontrado(f"Grupo {grupo_id} não encontrado")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id FROM grupo_integrantes
            WHERE grupo_id = ? AND integrante_id = ? AND instrumento = ?
        ''', (grupo_id, integrante_id, instrumento))
        existente = cursor.fetchone()

        if existente:
            cursor.execute('''
                UPDATE grupo_integrantes SET ativo = 1, is_lider = ?, ordem_microfone = ?
                WHERE id = ?
            ''', (1 if is_lider else 0, ordem_microfone, existente['id']))
            membro_id = existente['id']
        else:
            cursor.execute('''
                INSERT INTO grupo_integrantes (grupo_id, integrante_id, instrumento, is_lider,
                                               ordem_microfone, data_entrada)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (grupo_id, integrante_id, instrumento, 1 if is_lider else 0, ordem_microfone,
                  para_sql(hoje or date.today())))
            membro_id = cursor.lastrowid

    registrar_log(usuario_id, 'grupo.adicionar_membro', f"Integrante {integrante_id} no grupo {grupo_id}")
    return membro_id

def remover_membro_grupo(membro_id: int, usuario_id: int = None):
    """Desativa a participação de um integrante no grupo"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('UPDATE grupo_integrantes SET ativo = 0 WHERE id = ?', (membro_id,))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Membro {membro_id} não encontrado")
    registrar_log(usuario_id, 'grupo.remover_membro', f"Membro {membro_id}")

def definir_lider(membro_id: int, is_lider: bool = True):
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('UPDATE grupo_integrantes SET is_lider = ? WHERE id = ?',
                       (1 if is_lider else 0, membro_id))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Membro {membro_id} não encontrado")

def atualizar_ordem_microfones(grupo_id: int, ordem: list):
    """Define a ordem dos microfones a partir da lista de IDs de membro (1, 2, 3...)"""
    with get_connection() as conn:
        cursor = conn.cursor()
        for posicao, membro_id in enumerate(ordem, start=1):
            cursor.execute('''
                UPDATE grupo_integrantes SET ordem_microfone = ?
                WHERE id = ? AND grupo_id = ?
            ''', (posicao, membro_id, grupo_id))

def atualizar_formacao(grupo_nome: str, formacao: list, hoje: date = None) -> list:
    """Substitui a formação vocal de um grupo.

    Cada item de `formacao` tem nome_completo, voz, lider e ordem_microfone.
    Retorna um resultado por integrante ('inserido', 'atualizado' ou erro).
    """
    grupo = get_grupo_por_nome(grupo_nome)
    if not grupo:
        return [{'grupo': grupo_nome, 'sucesso': False, 'erro': f"Grupo não encontrado: {grupo_nome}"}]

    with get_connection() as conn:
        conn.execute('''
            UPDATE grupo_integrantes SET ativo = 0
            WHERE grupo_id = ? AND instrumento = 'vocals'
        ''', (grupo['id'],))

    resultados = []
    for item in formacao:
        resultado = {'grupo': grupo_nome, 'integrante': item['nome_completo']}
        integrante = get_integrante_por_nome(item['nome_completo'])
        if not integrante:
            resultados.append({**resultado, 'sucesso': False, 'erro': 'Integrante não encontrado'})
            continue

        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT id FROM grupo_integrantes
                WHERE grupo_id = ? AND integrante_id = ? AND instrumento = 'vocals'
            ''', (grupo['id'], integrante['id']))
            existente = cursor.fetchone()

            if existente:
                cursor.execute('''
                    UPDATE grupo_integrantes SET ativo = 1, is_lider = ?, ordem_microfone = ?
                    WHERE id = ?
                ''', (1 if item.get('lider') else 0, item.get('ordem_microfone'), existente['id']))
                acao = 'atualizado'
            else:
                cursor.execute('''
                    INSERT INTO grupo_integrantes (grupo_id, integrante_id, instrumento, is_lider,
                                                   ativo, ordem_microfone, data_entrada)
                    VALUES (?, ?, 'vocals', ?, 1, ?, ?)
                ''', (grupo['id'], integrante['id'], 1 if item.get('lider') else 0,
                      item.get('ordem_microfone'), para_sql(hoje or date.today())))
                acao = 'inserido'

            if item.get('voz'):
                cursor.execute('UPDATE integrantes SET voz_instrumento = ? WHERE id = ?',
                               (item['voz'], integrante['id']))

        resultados.append({**resultado, 'sucesso': True, 'acao': acao})

    logger.info("Formação do %s atualizada: %s integrantes", grupo_nome,
                len([r for r in resultados if r['sucesso']]))
    return resultados

def rotacao_grupos(indice_domingo: int, grupos: list) -> dict:
    """Grupos do 1º e 2º serviço e o grupo que descansa no domingo"""
    if len(grupos) != 3:
        raise RegraNegocioError("A rotação exige exatamente três grupos")
    servico1, servico2, descanso = ROTACAO[indice_domingo % 3]
    return {
        'servico1': grupos[servico1],
        'servico2': grupos[servico2],
        'descanso': grupos[descanso],
    }

# ==================== RENDERIZAÇÃO ====================

def render_grupo(grupo: dict, usuario: dict):
    """Card de um grupo com seus integrantes"""
    membros = get_membros_grupo(grupo['id'])
    pode_editar = tem_permissao(usuario, 'grupos.editar')

    st.markdown(f"""
        <div style='border-left: 6px solid {grupo['cor']}; padding-left: 1rem;'>
            <h3 style='margin-bottom: 0;'>{grupo['nome']}</h3>
            <small>{grupo.get('descricao') or ''}</small>
        </div>
    """, unsafe_allow_html=True)

    if not membros:
        st.info("Nenhum integrante ativo neste grupo.")
    else:
        df = pd.DataFrame([{
            '🎤': m['ordem_microfone'] or '-',
            'Integrante': f"{m['nomes']} {m['sobrenomes']}" + (" ⭐" if m['is_lider'] else ""),
            'Voz': m['voz_instrumento'] or '',
            'Instrumento': m['instrumento'],
        } for m in membros])
        st.dataframe(df, use_container_width=True, hide_index=True)

    if not pode_editar:
        return

    with st.expander("✏️ Gerenciar integrantes"):
        integrantes = get_integrantes()
        with st.form(f"add_membro_{grupo['id']}"):
            col1, col2, col3 = st.columns([3, 2, 1])
            with col1:
                integrante = st.selectbox("Integrante", options=integrantes, format_func=nome_completo)
            with col2:
                instrumento = st.selectbox("Instrumento", options=INSTRUMENTOS)
            with col3:
                ordem = st.number_input("Microfone", min_value=0, value=0)
            lider = st.checkbox("Líder do grupo")
            if st.form_submit_button("➕ Adicionar"):
                try:
                    adicionar_membro_grupo(grupo['id'], integrante['id'], instrumento, lider,
                                           ordem or None, usuario['id'])
                    st.rerun()
                except ErroAgenda as e:
                    st.error(str(e))

        for membro in membros:
            col1, col2 = st.columns([4, 1])
            col1.write(f"{membro['nomes']} {membro['sobrenomes']} ({membro['instrumento']})")
            if col2.button("🗑️", key=f"rm_membro_{membro['id']}"):
                remover_membro_grupo(membro['id'], usuario['id'])
                st.rerun()

def render_grupos():
    """Função principal do módulo de grupos"""
    st.title("🎤 Grupos de Louvor")
    usuario = get_usuario_atual()

    grupos = get_grupos()
    if not grupos:
        st.info("Nenhum grupo cadastrado.")

    for grupo in grupos:
        render_grupo(grupo, usuario)
        st.markdown("---")

    if tem_permissao(usuario, 'grupos.editar'):
        with st.expander("➕ Novo grupo"):
            with st.form("form_grupo"):
                nome = st.text_input("Nome")
                descricao = st.text_input("Descrição")
                cor = st.color_picker("Cor", value='#3498db')
                if st.form_submit_button("💾 Salvar"):
                    try:
                        salvar_grupo({'nome': nome, 'descricao': descricao, 'cor': cor}, usuario['id'])
                        st.success("✅ Grupo criado!")
                        st.rerun()
                    except ErroAgenda as e:
                        st.error(str(e))
