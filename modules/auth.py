"""
Sistema de Autenticação e Controle de Acesso (RBAC)
"""
import logging
import streamlit as st
import bcrypt
from datetime import datetime
from database.db import get_connection, para_sql
from config.settings import PERFIS, PERFIL_PADRAO
from modules.excecoes import RegraNegocioError, RegistroNaoEncontrado

logger = logging.getLogger(__name__)

def verificar_senha(senha: str, senha_hash: str) -> bool:
    """Verifica se a senha está correta"""
    return bcrypt.checkpw(senha.encode(), senha_hash.encode())

def hash_senha(senha: str) -> str:
    """Gera hash da senha"""
    return bcrypt.hashpw(senha.encode(), bcrypt.gensalt()).decode()

def autenticar_usuario(email: str, senha: str) -> dict | None:
    """Autentica um usuário aprovado e ativo e retorna seus dados"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT u.*, i.nomes || ' ' || i.sobrenomes as integrante_nome
            FROM usuarios u
            LEFT JOIN integrantes i ON u.integrante_id = i.id
            WHERE lower(u.email) = lower(?) AND u.ativo = 1 AND u.aprovado = 1
        ''', (email.strip(),))
        usuario = cursor.fetchone()

        if not usuario or not verificar_senha(senha, usuario['senha_hash']):
            return None

        usuario_dict = dict(usuario)
        usuario_dict.pop('senha_hash', None)

    # Último acesso em transação separada
    try:
        with get_connection() as conn:
            conn.execute('UPDATE usuarios SET ultimo_acesso = ? WHERE id = ?',
                         (para_sql(datetime.now()), usuario_dict["id"]))
    except Exception:
        logger.exception("Erro ao atualizar último acesso do usuário %s", usuario_dict['id'])

    registrar_log(usuario_dict['id'], 'login', 'Login realizado com sucesso')

    return usuario_dict

def registrar_usuario(nome: str, email: str, senha: str, integrante_id: int = None) -> int:
    """Cria conta pendente de aprovação"""
    if not nome or not email or not senha:
        raise RegraNegocioError("Nome, e-mail e senha são obrigatórios")
    if len(senha) < 6:
        raise RegraNegocioError("A senha deve ter pelo menos 6 caracteres")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM usuarios WHERE lower(email) = lower(?)', (email.strip(),))
        if cursor.fetchone():
            raise RegraNegocioError("Já existe uma conta com este e-mail")

        cursor.execute('''
            INSERT INTO usuarios (nome, email, senha_hash, perfil, integrante_id, aprovado)
            VALUES (?, ?, ?, ?, ?, 0)
        ''', (nome.strip(), email.strip().lower(), hash_senha(senha), PERFIL_PADRAO, integrante_id))
        usuario_id = cursor.lastrowid

    registrar_log(usuario_id, 'usuario.registrar', f"Conta criada: {email}")
    return usuario_id

def get_usuario(usuario_id: int) -> dict | None:
    """Busca um usuário sem o hash de senha"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id, nome, email, perfil, integrante_id, aprovado, ativo, ultimo_acesso, data_cadastro
            FROM usuarios WHERE id = ?
        ''', (usuario_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def get_usuarios(ativos: bool = True) -> list:
    """Lista usuários aprovados"""
    query = '''
        SELECT id, nome, email, perfil, integrante_id, ativo, ultimo_acesso
        FROM usuarios WHERE aprovado = 1
    '''
    if ativos:
        query += ' AND ativo = 1'
    query += ' ORDER BY nome'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query)
        return [dict(row) for row in cursor.fetchall()]

def get_usuario_por_integrante(integrante_id: int) -> dict | None:
    """Conta vinculada a um integrante"""
    if not integrante_id:
        return None
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id, nome, email, perfil FROM usuarios
            WHERE integrante_id = ? AND ativo = 1 AND aprovado = 1
        ''', (integrante_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def get_usuarios_pendentes() -> list:
    """Contas aguardando aprovação"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id, nome, email, data_cadastro FROM usuarios
            WHERE aprovado = 0 AND ativo = 1
            ORDER BY data_cadastro
        ''')
        return [dict(row) for row in cursor.fetchall()]

def aprovar_usuario(usuario_id: int, perfil: str, aprovador_id: int, integrante_id: int = None):
    """Aprova uma conta pendente com o perfil escolhido"""
    if perfil not in PERFIS:
        raise RegraNegocioError(f"Perfil inválido: {perfil}")

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE usuarios
            SET aprovado = 1, perfil = ?, aprovado_por = ?,
                integrante_id = COALESCE(?, integrante_id)
            WHERE id = ? AND aprovado = 0 AND ativo = 1
        ''', (perfil, aprovador_id, integrante_id, usuario_id))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado("Conta pendente não encontrada")

    registrar_log(aprovador_id, 'usuario.aprovar', f"Usuário {usuario_id} aprovado como {perfil}")

def rejeitar_usuario(usuario_id: int, aprovador_id: int):
    """Rejeita (desativa) uma conta pendente"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('UPDATE usuarios SET ativo = 0 WHERE id = ? AND aprovado = 0', (usuario_id,))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado("Conta pendente não encontrada")

    registrar_log(aprovador_id, 'usuario.rejeitar', f"Usuário {usuario_id} rejeitado")

def alterar_perfil(usuario_id: int, perfil: str, alterado_por: int = None):
    """Altera o perfil de acesso de um usuário"""
    if perfil not in PERFIS:
        raise RegraNegocioError(f"Perfil inválido: {perfil}")
    with get_connection() as conn:
        conn.execute('UPDATE usuarios SET perfil = ? WHERE id = ?', (perfil, usuario_id))
    registrar_log(alterado_por, 'usuario.perfil', f"Usuário {usuario_id} agora é {perfil}")

def registrar_log(usuario_id: int, acao: str, detalhes: str = None, ip: str = None):
    """Registra um log de acesso/ação"""
    try:
        with get_connection() as conn:
            conn.execute('''
                INSERT INTO logs_acesso (usuario_id, acao, detalhes, ip)
                VALUES (?, ?, ?, ?)
            ''', (usuario_id, acao, detalhes, ip))
    except Exception:
        # Log falhou, mas não bloqueia a operação principal
        logger.exception("Erro ao registrar log '%s'", acao)

def tem_permissao(usuario: dict, permissao: str) -> bool:
    """Verifica se o usuário tem uma determinada permissão"""
    if not usuario:
        return False

    perfil = usuario.get('perfil', '')
    if perfil not in PERFIS:
        return False

    permissoes = PERFIS[perfil]['permissoes']

    # Admin tem acesso total
    if '*' in permissoes:
        return True

    if permissao in permissoes:
        return True

    # Permissão de área (ex: "agenda" vale para qualquer "agenda.*")
    if '.' not in permissao:
        return any(p.startswith(permissao + '.') for p in permissoes)

    return False

def requer_permissao(permissao: str):
    """Decorator para verificar permissão antes de executar função"""
    def decorator(func):
        def wrapper(*args, **kwargs):
            if not st.session_state.get('usuario'):
                st.error("⚠️ Você precisa estar logado para acessar esta página.")
                st.stop()

            if not tem_permissao(st.session_state.usuario, permissao):
                st.error("🚫 Você não tem permissão para acessar esta funcionalidade.")
                st.stop()

            return func(*args, **kwargs)
        return wrapper
    return decorator

def login_page():
    """Página de login e cadastro"""
    col1, col2, col3 = st.columns([1, 2, 1])

    with col2:
        st.markdown("## 🎵 Agenda Ministerial")

        tab_login, tab_cadastro = st.tabs(["🚀 Entrar", "📝 Criar Conta"])

        with tab_login:
            with st.form("login_form"):
                email = st.text_input("📧 E-mail", placeholder="seu@email.com")
                senha = st.text_input("🔒 Senha", type="password", placeholder="Sua senha")

                submit = st.form_submit_button("🚀 Entrar", use_container_width=True)

                if submit:
                    if not email or not senha:
                        st.error("Preencha todos os campos!")
                    else:
                        usuario = autenticar_usuario(email, senha)
                        if usuario:
                            st.session_state.usuario = usuario
                            st.success("✅ Login realizado com sucesso!")
                            st.rerun()
                        else:
                            st.error("❌ E-mail ou senha inválidos, ou conta ainda não aprovada!")

        with tab_cadastro:
            with st.form("cadastro_form"):
                nome = st.text_input("👤 Nome completo")
                email_novo = st.text_input("📧 E-mail")
                senha_nova = st.text_input("🔒 Senha", type="password")

                if st.form_submit_button("📝 Solicitar acesso", use_container_width=True):
                    try:
                        registrar_usuario(nome, email_novo, senha_nova)
                        st.success("✅ Conta criada! Aguarde a aprovação de um administrador.")
                    except RegraNegocioError as e:
                        st.error(str(e))

        st.caption("Novas contas precisam ser aprovadas por um administrador do ministério.")

def logout():
    """Realiza logout do usuário"""
    if st.session_state.get('usuario'):
        registrar_log(st.session_state.usuario['id'], 'logout', 'Logout realizado')

    for key in list(st.session_state.keys()):
        del st.session_state[key]
    st.rerun()

def get_usuario_atual() -> dict | None:
    """Retorna o usuário atual logado"""
    return st.session_state.get('usuario')

def sidebar_usuario():
    """Exibe informações do usuário na sidebar"""
    usuario = get_usuario_atual()
    if usuario:
        perfil_nome = PERFIS.get(usuario['perfil'], {}).get('nome', usuario['perfil'])
        st.sidebar.markdown(f"""
        <div style='padding: 0.3rem 0; font-size: 0.85rem;'>
            <div style='font-weight: bold; color: white;'>👤 {usuario['nome']}</div>
            <div style='color: rgba(255,255,255,0.7); font-size: 0.75rem;'>{perfil_nome}</div>
        </div>
        """, unsafe_allow_html=True)

        if st.sidebar.button("🚪 Sair", use_container_width=True):
            logout()
