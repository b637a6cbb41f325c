"""
Módulo de Configurações do Sistema
Perfil, aprovação de contas, logs e cache offline
"""
import streamlit as st
import pandas as pd
from database.db import get_connection
from config.settings import PERFIS, formatar_data_br
from modules.auth import (tem_permissao, get_usuario_atual, hash_senha, verificar_senha, registrar_log,
                          get_usuarios, get_usuarios_pendentes, aprovar_usuario, rejeitar_usuario,
                          alterar_perfil)
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from modules.integrantes import get_integrantes, nome_completo
from modules.cache_offline import cache_offline

# ========================================
# FUNÇÕES DE BANCO DE DADOS
# ========================================

def alterar_senha_usuario(usuario_id: int, nova_senha: str, senha_atual: str = None):
    """Altera a senha; com senha_atual, confere antes de trocar"""
    if len(nova_senha or '') < 6:
        raise RegraNegocioError("A senha deve ter pelo menos 6 caracteres")
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT senha_hash FROM usuarios WHERE id = ?', (usuario_id,))
        row = cursor.fetchone()
        if not row:
            raise RegistroNaoEncontrado("Usuário não encontrado")
        if senha_atual is not None and not verificar_senha(senha_atual, row['senha_hash']):
            raise RegraNegocioError("Senha atual incorreta")
        cursor.execute('UPDATE usuarios SET senha_hash = ? WHERE id = ?', (hash_senha(nova_senha), usuario_id))

def definir_ativo_usuario(usuario_id: int, ativo: bool, alterado_por: int = None):
    with get_connection() as conn:
        conn.execute('UPDATE usuarios SET ativo = ? WHERE id = ?', (1 if ativo else 0, usuario_id))
    registrar_log(alterado_por, 'usuario.ativar' if ativo else 'usuario.desativar', f"Usuário {usuario_id}")

def get_logs_acesso(limite: int = 100) -> list:
    """Últimas ações registradas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT l.*, u.nome as usuario_nome
            FROM logs_acesso l
            LEFT JOIN usuarios u ON l.usuario_id = u.id
            ORDER BY l.data_hora DESC, l.id DESC
            LIMIT ?
        ''', (limite,))
        return [dict(row) for row in cursor.fetchall()]

# ========================================
# RENDERIZAÇÃO
# ========================================

def render_meu_perfil(usuario: dict):
    st.subheader("👤 Meu Perfil")

    col1, col2 = st.columns([2, 1])
    with col1:
        st.markdown(f"""
        <div style='background: #f8f9fa; padding: 1rem; border-radius: 8px; margin-bottom: 1rem;'>
            <p><strong>Nome:</strong> {usuario['nome']}</p>
            <p><strong>E-mail:</strong> {usuario['email']}</p>
            <p><strong>Perfil:</strong> {PERFIS.get(usuario['perfil'], {}).get('nome', usuario['perfil'])}</p>
            <p><strong>Integrante:</strong> {usuario.get('integrante_nome') or 'Não vinculado'}</p>
        </div>
        """, unsafe_allow_html=True)

        with st.form("form_alterar_senha"):
            st.markdown("### 🔐 Alterar Senha")
            senha_atual = st.text_input("Senha atual", type="password")
            nova_senha = st.text_input("Nova senha", type="password")
            confirmar = st.text_input("Confirmar nova senha", type="password")
            if st.form_submit_button("🔄 Alterar Senha", use_container_width=True):
                if nova_senha != confirmar:
                    st.error("As senhas não coincidem!")
                else:
                    try:
                        alterar_senha_usuario(usuario['id'], nova_senha, senha_atual)
                        registrar_log(usuario['id'], 'alterar_senha', 'Usuário alterou sua própria senha')
                        st.success("✅ Senha alterada com sucesso!")
                    except ErroAgenda as e:
                        st.error(str(e))

    with col2:
        st.markdown("### 🔑 Minhas Permissões")
        permissoes = PERFIS.get(usuario['perfil'], {}).get('permissoes', [])
        if '*' in permissoes:
            st.success("✅ Acesso Total (Administrador)")
        else:
            for perm in permissoes:
                st.write(f"✅ {perm}")

def render_contas_pendentes(usuario: dict):
    st.markdown("### ⏳ Contas aguardando aprovação")
    pendentes = get_usuarios_pendentes()
    if not pendentes:
        st.info("Nenhuma conta pendente.")
        return

    integrantes = get_integrantes()
    opcoes_integrante = [(0, "Não vincular")] + [(i['id'], nome_completo(i)) for i in integrantes]

    for conta in pendentes:
        with st.container(border=True):
            st.write(f"**{conta['nome']}** · {conta['email']} · {formatar_data_br(conta['data_cadastro'])}")
            col1, col2, col3, col4 = st.columns([2, 2, 1, 1])
            perfil = col1.selectbox("Perfil", options=list(PERFIS), index=list(PERFIS).index('membro'),
                                    format_func=lambda p: PERFIS[p]['nome'], key=f"perfil_pend_{conta['id']}")
            integrante_id = col2.selectbox("Integrante", options=[o[0] for o in opcoes_integrante],
                                           format_func=lambda x: dict(opcoes_integrante).get(x, ''),
                                           key=f"integ_pend_{conta['id']}")
            if col3.button("✅", key=f"aprovar_{conta['id']}", help="Aprovar"):
                aprovar_usuario(conta['id'], perfil, usuario['id'], integrante_id or None)
                st.rerun()
            if col4.button("❌", key=f"rejeitar_{conta['id']}", help="Rejeitar"):
                rejeitar_usuario(conta['id'], usuario['id'])
                st.rerun()

def render_gerenciar_usuarios(usuario: dict):
    st.subheader("👥 Usuários")
    render_contas_pendentes(usuario)

    st.markdown("### 📋 Usuários Cadastrados")
    for u in get_usuarios(ativos=False):
        col1, col2, col3, col4 = st.columns([3, 3, 2, 1])
        col1.write(f"{'🟢' if u['ativo'] else '🔴'} **{u['nome']}**")
        col2.caption(u['email'])
        if u['id'] == usuario['id']:
            col3.caption(PERFIS.get(u['perfil'], {}).get('nome', u['perfil']))
            continue
        novo_perfil = col3.selectbox("Perfil", options=list(PERFIS), index=list(PERFIS).index(u['perfil'])
                                     if u['perfil'] in PERFIS else 0, format_func=lambda p: PERFIS[p]['nome'],
                                     key=f"perfil_usr_{u['id']}", label_visibility="collapsed")
        if novo_perfil != u['perfil']:
            alterar_perfil(u['id'], novo_perfil, usuario['id'])
            st.rerun()
        if col4.button("🔒" if u['ativo'] else "🔓", key=f"ativo_usr_{u['id']}",
                       help="Desativar" if u['ativo'] else "Reativar"):
            definir_ativo_usuario(u['id'], not u['ativo'], usuario['id'])
            st.rerun()

def render_logs_acesso():
    st.subheader("📊 Logs de Acesso")
    logs = get_logs_acesso(200)
    if not logs:
        st.info("Nenhum log registrado.")
        return

    acoes = sorted({l['acao'] for l in logs})
    filtro_acao = st.selectbox("Filtrar por ação", options=['Todas'] + acoes)
    if filtro_acao != 'Todas':
        logs = [l for l in logs if l['acao'] == filtro_acao]

    df = pd.DataFrame(logs)[['data_hora', 'usuario_nome', 'acao', 'detalhes']]
    df.columns = ['Data/Hora', 'Usuário', 'Ação', 'Detalhes']
    st.dataframe(df, use_container_width=True, hide_index=True)

def render_cache():
    st.subheader("💾 Cache Offline")
    tamanho, entradas = cache_offline.info()
    col1, col2 = st.columns(2)
    col1.metric("Entradas", entradas)
    col2.metric("Tamanho", f"{tamanho / 1024:.1f} KB")

    col1, col2 = st.columns(2)
    if col1.button("🧹 Remover expirados", use_container_width=True):
        st.success(f"{cache_offline.limpar_expirados()} entradas removidas")
    if col2.button("🗑️ Limpar tudo", use_container_width=True):
        cache_offline.limpar_tudo()
        st.rerun()

def render_configuracoes():
    """Função principal do módulo de configurações"""
    st.title("⚙️ Configurações")
    usuario = get_usuario_atual()

    if not tem_permissao(usuario, 'configuracoes.usuarios'):
        render_meu_perfil(usuario)
        return

    tab1, tab2, tab3, tab4 = st.tabs(["👤 Meu Perfil", "👥 Usuários", "📊 Logs", "💾 Cache"])
    with tab1:
        render_meu_perfil(usuario)
    with tab2:
        render_gerenciar_usuarios(usuario)
    with tab3:
        render_logs_acesso()
    with tab4:
        render_cache()
