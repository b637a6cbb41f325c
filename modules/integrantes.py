"""
Módulo de Integrantes
Cadastro dos integrantes do ministério (diretores, coristas, músicos, multimídia...)
"""
import logging
import streamlit as st
import pandas as pd
from datetime import datetime, date, timedelta
from database.db import get_connection, encrypt_data, decrypt_data, para_sql, ler_data
from modules.auth import tem_permissao, get_usuario_atual, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado, ImportacaoError
from config.settings import CARGOS, CARGOS_DIRETOR, GRUPOS_INTEGRANTE, TIPOS_SANGUE, formatar_data_br

logger = logging.getLogger(__name__)

CAMPOS_INTEGRANTE = (
    'nomes', 'sobrenomes', 'cargo', 'grupo', 'voz_instrumento', 'celular', 'telefone',
    'email', 'endereco', 'data_nascimento', 'tipo_sangue', 'pessoa_reporte', 'foto_url', 'ativo'
)

# Campos sensíveis: texto puro na aplicação, criptografado no banco
CAMPOS_CRIPTOGRAFADOS = {
    'contato_emergencia': 'contato_emergencia_cripto',
    'referencias': 'referencias_cripto',
}

COLUNAS_OBRIGATORIAS_CSV = ('nomes', 'sobrenomes')

# ==================== FUNÇÕES DE DADOS ====================

def nome_completo(integrante: dict) -> str:
    """Nome e sobrenome de um integrante"""
    if not integrante:
        return ""
    return f"{integrante.get('nomes', '')} {integrante.get('sobrenomes', '')}".strip()

def calcular_idade(data_nascimento, hoje: date = None) -> int | None:
    """Idade em anos completos"""
    nascimento = ler_data(data_nascimento)
    if not nascimento:
        return None
    hoje = hoje or date.today()
    idade = hoje.year - nascimento.year
    if (hoje.month, hoje.day) < (nascimento.month, nascimento.day):
        idade -= 1
    return idade

def _descriptografar(integrante: dict) -> dict:
    for campo, coluna in CAMPOS_CRIPTOGRAFADOS.items():
        integrante[campo] = decrypt_data(integrante.pop(coluna, None))
    return integrante

def get_integrantes(filtros: dict = None) -> list:
    """Busca integrantes com filtros opcionais"""
    query = 'SELECT * FROM integrantes WHERE 1=1'
    params = []

    filtros = filtros or {}
    if not filtros.get('incluir_inativos'):
        query += ' AND ativo = 1'
    if filtros.get('cargo'):
        query += ' AND cargo = ?'
        params.append(filtros['cargo'])
    if filtros.get('cargos'):
        query += f" AND cargo IN ({', '.join('?' for _ in filtros['cargos'])})"
        params.extend(filtros['cargos'])
    if filtros.get('grupo'):
        query += ' AND grupo = ?'
        params.append(filtros['grupo'])
    if filtros.get('busca'):
        query += ''' AND (nomes || ' ' || sobrenomes LIKE ? OR email LIKE ? OR celular LIKE ?)'''
        busca = f"%{filtros['busca']}%"
        params.extend([busca, busca, busca])

    query += ' ORDER BY nomes, sobrenomes'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [_descriptografar(dict(row)) for row in cursor.fetchall()]

def get_integrante(integrante_id: int) -> dict | None:
    """Busca um integrante pelo ID"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM integrantes WHERE id = ?', (integrante_id,))
        row = cursor.fetchone()
        return _descriptografar(dict(row)) if row else None

def get_integrante_por_nome(nome: str) -> dict | None:
    """Busca integrante ativo pelo nome completo (sem diferenciar maiúsculas)"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT * FROM integrantes
            WHERE LOWER(TRIM(nomes || ' ' || sobrenomes)) = LOWER(TRIM(?)) AND ativo = 1
        ''', (nome,))
        row = cursor.fetchone()
        return _descriptografar(dict(row)) if row else None

def get_diretores() -> list:
    """Integrantes que dirigem serviços"""
    return get_integrantes({'cargos': list(CARGOS_DIRETOR)})

def verificar_integrante_duplicado(nomes: str, sobrenomes: str, integrante_id: int = None) -> bool:
    """Verifica se já existe integrante ativo com o mesmo nome completo"""
    query = '''
        SELECT id FROM integrantes
        WHERE LOWER(TRIM(nomes)) = LOWER(TRIM(?)) AND LOWER(TRIM(sobrenomes)) = LOWER(TRIM(?))
          AND ativo = 1
    '''
    params = [nomes, sobrenomes]
    if integrante_id:
        query += ' AND id != ?'
        params.append(integrante_id)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return cursor.fetchone() is not None

def _validar_integrante(dados: dict):
    if not (dados.get('nomes') or '').strip() or not (dados.get('sobrenomes') or '').strip():
        raise RegraNegocioError("Nome e sobrenome são obrigatórios")
    cargos_validos = [c[0] for c in CARGOS]
    if dados.get('cargo') and dados['cargo'] not in cargos_validos:
        raise RegraNegocioError(f"Cargo inválido: {dados['cargo']}")
    if dados.get('tipo_sangue') and dados['tipo_sangue'] not in TIPOS_SANGUE:
        raise RegraNegocioError(f"Tipo sanguíneo inválido: {dados['tipo_sangue']}")

def salvar_integrante(dados: dict, usuario_id: int = None) -> int:
    """Salva ou atualiza um integrante"""
    dados = dict(dados)
    integrante_id = dados.pop('id', None)

    if integrante_id is None or 'nomes' in dados or 'sobrenomes' in dados:
        atual = get_integrante(integrante_id) if integrante_id else {}
        if integrante_id and not atual:
            raise RegistroNaoEncontrado(f"Integrante {integrante_id} não encontrado")
        completo = {**(atual or {}), **dados}
        _validar_integrante(completo)
        if verificar_integrante_duplicado(completo['nomes'], completo['sobrenomes'], integrante_id):
            raise RegraNegocioError(f"Já existe um integrante chamado {nome_completo(completo)}")

    registro = {k: para_sql(v) for k, v in dados.items() if k in CAMPOS_INTEGRANTE}
    for campo, coluna in CAMPOS_CRIPTOGRAFADOS.items():
        if campo in dados:
            registro[coluna] = encrypt_data(dados[campo])
    for campo in ('nomes', 'sobrenomes'):
        if campo in registro:
            registro[campo] = registro[campo].strip()

    if integrante_id and not registro:
        return integrante_id

    with get_connection() as conn:
        cursor = conn.cursor()

        if integrante_id:
            campos = ', '.join([f"{k} = ?" for k in registro])
            valores = list(registro.values())
            valores.extend([para_sql(datetime.now()), integrante_id])
            cursor.execute(f'''
                UPDATE integrantes SET {campos}, data_atualizacao = ?
                WHERE id = ?
            ''', valores)
            acao = 'integrante.atualizar'
        else:
            campos = ', '.join(registro.keys())
            placeholders = ', '.join(['?' for _ in registro])
            cursor.execute(f'INSERT INTO integrantes ({campos}) VALUES ({placeholders})',
                           list(registro.values()))
            integrante_id = cursor.lastrowid
            acao = 'integrante.criar'

    registrar_log(usuario_id, acao, f"Integrante ID {integrante_id}")
    return integrante_id

def desativar_integrante(integrante_id: int, usuario_id: int = None):
    """Desativa um integrante (soft delete)"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE integrantes SET ativo = 0, data_atualizacao = ?
            WHERE id = ? AND ativo = 1
        ''', (para_sql(datetime.now()), integrante_id))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Integrante {integrante_id} não encontrado")

    registrar_log(usuario_id, 'integrante.desativar', f"Integrante ID {integrante_id} desativado")

def _ler_data_csv(valor: str) -> str | None:
    valor = (valor or '').strip()
    if not valor:
        return None
    for formato in ('%d/%m/%Y', '%Y-%m-%d'):
        try:
            return datetime.strptime(valor, formato).date().isoformat()
        except ValueError:
            continue
    raise ValueError(f"data inválida '{valor}'")

def inserir_integrantes_em_lote(integrantes: list, usuario_id: int = None) -> dict:
    """Insere vários integrantes, ignorando duplicados"""
    resultado = {'inseridos': 0, 'ignorados': 0, 'erros': []}

    for posicao, dados in enumerate(integrantes, start=1):
        if verificar_integrante_duplicado(dados.get('nomes', ''), dados.get('sobrenomes', '')):
            resultado['ignorados'] += 1
            continue
        try:
            salvar_integrante(dados, usuario_id)
            resultado['inseridos'] += 1
        except RegraNegocioError as e:
            resultado['erros'].append(f"Linha {posicao}: {e}")

    logger.info("Importação de integrantes: %s inseridos, %s ignorados, %s erros",
                resultado['inseridos'], resultado['ignorados'], len(resultado['erros']))
    return resultado

def importar_integrantes_csv(arquivo, usuario_id: int = None) -> dict:
    """Importa integrantes de um CSV (colunas nomes, sobrenomes, cargo, ...)"""
    try:
        df = pd.read_csv(arquivo, dtype=str).fillna('')
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ImportacaoError(f"Não foi possível ler o CSV: {e}") from e

    df.columns = [str(c).strip().lower() for c in df.columns]
    faltando = [c for c in COLUNAS_OBRIGATORIAS_CSV if c not in df.columns]
    if faltando:
        raise ImportacaoError(f"Colunas obrigatórias ausentes: {', '.join(faltando)}")

    colunas = [c for c in df.columns if c in CAMPOS_INTEGRANTE or c in CAMPOS_CRIPTOGRAFADOS]
    integrantes = []
    erros = []
    for posicao, linha in enumerate(df.to_dict('records'), start=1):
        dados = {c: linha[c].strip() for c in colunas if linha[c].strip()}
        try:
            if 'data_nascimento' in dados:
                dados['data_nascimento'] = _ler_data_csv(dados['data_nascimento'])
        except ValueError as e:
            erros.append(f"Linha {posicao}: {e}")
            continue
        dados.setdefault('cargo', 'corista')
        integrantes.append(dados)

    resultado = inserir_integrantes_em_lote(integrantes, usuario_id)
    resultado['erros'] = erros + resultado['erros']
    return resultado

def get_aniversariantes_do_dia(hoje: date = None) -> list:
    """Integrantes ativos que fazem aniversário hoje"""
    hoje = hoje or date.today()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id, nomes, sobrenomes, cargo, data_nascimento, foto_url
            FROM integrantes
            WHERE ativo = 1 AND data_nascimento IS NOT NULL
              AND strftime('%m-%d', data_nascimento) = ?
            ORDER BY nomes
        ''', (hoje.strftime('%m-%d'),))
        return [dict(row) for row in cursor.fetchall()]

def get_aniversariantes_do_mes(mes: int = None) -> list:
    """Aniversariantes do mês, ordenados pelo dia"""
    mes = mes or date.today().month
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT id, nomes, sobrenomes, cargo, data_nascimento,
                   CAST(strftime('%d', data_nascimento) AS INTEGER) as dia
            FROM integrantes
            WHERE ativo = 1 AND data_nascimento IS NOT NULL
              AND CAST(strftime('%m', data_nascimento) AS INTEGER) = ?
            ORDER BY dia, nomes
        ''', (mes,))
        return [dict(row) for row in cursor.fetchall()]

def _proximo_aniversario(nascimento: date, hoje: date) -> date:
    for ano in (hoje.year, hoje.year + 1):
        try:
            aniversario = nascimento.replace(year=ano)
        except ValueError:
            # 29/02 em ano não bissexto
            aniversario = date(ano, 3, 1)
        if aniversario >= hoje:
            return aniversario
    return aniversario

def proximos_aniversarios(dias: int = 30, hoje: date = None) -> list:
    """Aniversários nos próximos dias, com a idade que será completada"""
    hoje = hoje or date.today()
    limite = hoje + timedelta(days=dias)
    resultado = []

    for integrante in get_integrantes():
        nascimento = ler_data(integrante.get('data_nascimento'))
        if not nascimento:
            continue
        aniversario = _proximo_aniversario(nascimento, hoje)
        if aniversario <= limite:
            resultado.append({
                'id': integrante['id'],
                'nome': nome_completo(integrante),
                'data': aniversario,
                'dias_restantes': (aniversario - hoje).days,
                'idade': aniversario.year - nascimento.year,
            })

    return sorted(resultado, key=lambda x: (x['dias_restantes'], x['nome']))

# ==================== RENDERIZAÇÃO ====================

def render_lista_integrantes():
    """Renderiza a lista de integrantes"""
    usuario = get_usuario_atual()

    col1, col2, col3, col4 = st.columns([3, 2, 2, 1])

    with col1:
        busca = st.text_input("🔍 Buscar", placeholder="Nome, e-mail ou celular...")
    with col2:
        cargo_opcoes = [("", "Todos os cargos")] + CARGOS
        cargo = st.selectbox("Cargo", options=[c[0] for c in cargo_opcoes],
                             format_func=lambda x: dict(cargo_opcoes).get(x, x))
    with col3:
        grupo = st.selectbox("Grupo", options=[""] + GRUPOS_INTEGRANTE,
                             format_func=lambda x: x.replace('_', ' ').title() if x else "Todos")
    with col4:
        st.markdown("<br>", unsafe_allow_html=True)
        if tem_permissao(usuario, 'integrantes.editar') and st.button("➕ Novo", use_container_width=True):
            st.session_state.integrante_edit = None
            st.session_state.show_form_integrante = True
            st.rerun()

    integrantes = get_integrantes({'busca': busca, 'cargo': cargo, 'grupo': grupo})

    if not integrantes:
        st.info("Nenhum integrante encontrado.")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Total", len(integrantes))
    col2.metric("Coristas", len([i for i in integrantes if i['cargo'] == 'corista']))
    col3.metric("Músicos", len([i for i in integrantes if i['cargo'] == 'musico']))

    st.markdown("---")

    cargos = dict(CARGOS)
    for integrante in integrantes:
        col1, col2, col3, col4 = st.columns([3, 2, 2, 1])
        with col1:
            st.markdown(f"**{nome_completo(integrante)}**")
            if integrante['email']:
                st.caption(f"📧 {integrante['email']}")
        with col2:
            st.caption(f"🎖️ {cargos.get(integrante['cargo'], integrante['cargo'])}")
            if integrante['voz_instrumento']:
                st.caption(f"🎤 {integrante['voz_instrumento']}")
        with col3:
            if integrante['celular']:
                st.caption(f"📱 {integrante['celular']}")
            if integrante['data_nascimento']:
                st.caption(f"🎂 {formatar_data_br(integrante['data_nascimento'])}")
        with col4:
            if tem_permissao(usuario, 'integrantes.editar'):
                if st.button("✏️", key=f"edit_int_{integrante['id']}", help="Editar"):
                    st.session_state.integrante_edit = integrante['id']
                    st.session_state.show_form_integrante = True
                    st.rerun()

        st.markdown("<hr style='margin: 0.5rem 0; opacity: 0.2;'>", unsafe_allow_html=True)

def render_form_integrante(integrante_id: int = None):
    """Formulário de cadastro/edição"""
    usuario = get_usuario_atual()
    integrante = get_integrante(integrante_id) if integrante_id else {}

    st.subheader("✏️ Editar Integrante" if integrante_id else "➕ Novo Integrante")

    if st.button("← Voltar"):
        st.session_state.show_form_integrante = False
        st.session_state.integrante_edit = None
        st.rerun()

    cargos_ids = [c[0] for c in CARGOS]

    with st.form("form_integrante"):
        st.markdown("### 📋 Dados Básicos")
        col1, col2 = st.columns(2)
        with col1:
            nomes = st.text_input("Nomes *", value=integrante.get('nomes', ''))
            cargo = st.selectbox("Cargo", options=cargos_ids,
                                 index=cargos_ids.index(integrante.get('cargo', 'corista')),
                                 format_func=lambda x: dict(CARGOS)[x])
            voz = st.text_input("Voz / Instrumento", value=integrante.get('voz_instrumento') or '')
            nascimento = st.date_input("Data de nascimento",
                                       value=ler_data(integrante.get('data_nascimento')),
                                       min_value=date(1920, 1, 1), max_value=date.today(),
                                       format="DD/MM/YYYY")
        with col2:
            sobrenomes = st.text_input("Sobrenomes *", value=integrante.get('sobrenomes', ''))
            grupos = [""] + GRUPOS_INTEGRANTE
            grupo = st.selectbox("Grupo", options=grupos,
                                 index=grupos.index(integrante.get('grupo') or ''))
            sangue_opcoes = [""] + TIPOS_SANGUE
            tipo_sangue = st.selectbox("Tipo sanguíneo", options=sangue_opcoes,
                                       index=sangue_opcoes.index(integrante.get('tipo_sangue') or ''))

        st.markdown("### 📞 Contato")
        col1, col2 = st.columns(2)
        with col1:
            celular = st.text_input("Celular", value=integrante.get('celular') or '')
            email = st.text_input("E-mail", value=integrante.get('email') or '')
        with col2:
            telefone = st.text_input("Telefone", value=integrante.get('telefone') or '')
            endereco = st.text_input("Endereço", value=integrante.get('endereco') or '')

        st.markdown("### 🔒 Dados Sensíveis")
        contato_emergencia = st.text_input("Contato de emergência",
                                           value=integrante.get('contato_emergencia') or '')
        referencias = st.text_area("Referências", value=integrante.get('referencias') or '')
        pessoa_reporte = st.text_input("Reporta-se a", value=integrante.get('pessoa_reporte') or '')

        if st.form_submit_button("💾 Salvar", use_container_width=True):
            dados = {
                'nomes': nomes, 'sobrenomes': sobrenomes, 'cargo': cargo, 'grupo': grupo or None,
                'voz_instrumento': voz, 'celular': celular, 'telefone': telefone, 'email': email,
                'endereco': endereco, 'data_nascimento': nascimento,
                'tipo_sangue': tipo_sangue or None, 'pessoa_reporte': pessoa_reporte,
                'contato_emergencia': contato_emergencia, 'referencias': referencias,
            }
            if integrante_id:
                dados['id'] = integrante_id
            try:
                salvar_integrante(dados, usuario['id'])
                st.success("✅ Integrante salvo com sucesso!")
                st.session_state.show_form_integrante = False
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

    if integrante_id and tem_permissao(usuario, 'integrantes.editar'):
        if st.button("🗑️ Desativar integrante"):
            desativar_integrante(integrante_id, usuario['id'])
            st.session_state.show_form_integrante = False
            st.rerun()

def render_importacao():
    """Importação de integrantes por CSV"""
    usuario = get_usuario_atual()
    st.markdown("### 📥 Importar CSV")
    st.caption("Colunas: nomes, sobrenomes, cargo, grupo, voz_instrumento, celular, email, "
               "data_nascimento (dd/mm/aaaa), tipo_sangue")

    arquivo = st.file_uploader("Arquivo CSV", type=['csv'])
    if arquivo and st.button("📥 Importar", use_container_width=True):
        try:
            resultado = importar_integrantes_csv(arquivo, usuario['id'])
        except ImportacaoError as e:
            st.error(str(e))
            return
        st.success(f"✅ {resultado['inseridos']} inseridos, {resultado['ignorados']} já existentes")
        for erro in resultado['erros']:
            st.warning(erro)

def render_aniversarios():
    """Aniversariantes do mês e próximos"""
    hoje = date.today()
    aniversariantes = get_aniversariantes_do_dia(hoje)
    if aniversariantes:
        for a in aniversariantes:
            st.success(f"🎉 Hoje é aniversário de **{nome_completo(a)}**!")

    st.markdown("### 🎂 Próximos 30 dias")
    proximos = proximos_aniversarios(30, hoje)
    if not proximos:
        st.info("Nenhum aniversário nos próximos 30 dias.")
        return
    df = pd.DataFrame(proximos)
    df['data'] = df['data'].apply(formatar_data_br)
    st.dataframe(df[['nome', 'data', 'idade', 'dias_restantes']].rename(columns={
        'nome': 'Nome', 'data': 'Data', 'idade': 'Idade', 'dias_restantes': 'Faltam (dias)'
    }), use_container_width=True, hide_index=True)

def render_integrantes():
    """Função principal do módulo de integrantes"""
    st.title("👥 Integrantes")

    if st.session_state.get('show_form_integrante'):
        render_form_integrante(st.session_state.get('integrante_edit'))
        return

    usuario = get_usuario_atual()
    abas = ["📋 Lista", "🎂 Aniversários"]
    if tem_permissao(usuario, 'integrantes.editar'):
        abas.append("📥 Importar")
    tabs = st.tabs(abas)

    with tabs[0]:
        render_lista_integrantes()
    with tabs[1]:
        render_aniversarios()
    if len(tabs) > 2:
        with tabs[2]:
            render_importacao()
