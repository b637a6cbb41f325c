"""
Módulo da Agenda Ministerial
Serviços de domingo, diretores designados e geração do calendário anual
"""
import logging
import urllib.parse
import streamlit as st
import pandas as pd
from datetime import datetime, date, time, timedelta
from database.db import get_connection, para_sql, ler_data_hora
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado, ImportacaoError
from modules.integrantes import get_integrante, get_integrante_por_nome, get_diretores, nome_completo
from modules.grupos import get_grupos, get_grupo_por_nome, rotacao_grupos
from modules.licencas import esta_de_licenca
from config.settings import HORARIOS_SERVICO, TIPOS_SERVICO, LOCAL_PADRAO, formatar_data_br

logger = logging.getLogger(__name__)

MESES = ['Janeiro', 'Fevereiro', 'Março', 'Abril', 'Maio', 'Junho',
         'Julho', 'Agosto', 'Setembro', 'Outubro', 'Novembro', 'Dezembro']

CAMPOS_SERVICO = ('titulo', 'data_servico', 'tipo', 'diretor_id', 'grupo_id', 'local',
                  'atividade_especial', 'intervalos_coro', 'descricao', 'notas', 'confirmado')

SELECT_SERVICO = '''
    SELECT s.*,
           i.nomes || ' ' || i.sobrenomes as diretor_nome,
           i.celular as diretor_celular,
           g.nome as grupo_nome, g.cor as grupo_cor
    FROM servicos s
    LEFT JOIN integrantes i ON s.diretor_id = i.id
    LEFT JOIN grupos_louvor g ON s.grupo_id = g.id
'''

# ==================== FUNÇÕES DE DADOS ====================

def horario_servico(servico: dict) -> str:
    """Rótulo do horário (08:00 a.m., 10:45 a.m. ...)"""
    hora = ler_data_hora(servico['data_servico']).strftime('%H:%M')
    return dict(HORARIOS_SERVICO).get(hora, hora)

def get_servicos(inicio: date, fim: date, filtros: dict = None) -> list:
    """Serviços entre duas datas (inclusive)"""
    query = SELECT_SERVICO + ' WHERE date(s.data_servico) BETWEEN ? AND ?'
    params = [para_sql(inicio), para_sql(fim)]

    if filtros:
        if filtros.get('diretor_id'):
            query += ' AND s.diretor_id = ?'
            params.append(filtros['diretor_id'])
        if filtros.get('grupo_id'):
            query += ' AND s.grupo_id = ?'
            params.append(filtros['grupo_id'])
        if filtros.get('tipo'):
            query += ' AND s.tipo = ?'
            params.append(filtros['tipo'])
        if filtros.get('confirmado') is not None:
            query += ' AND s.confirmado = ?'
            params.append(1 if filtros['confirmado'] else 0)

    query += ' ORDER BY s.data_servico'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]

def get_servico(servico_id: int) -> dict | None:
    """Busca um serviço pelo ID"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(SELECT_SERVICO + ' WHERE s.id = ?', (servico_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def salvar_servico(dados: dict, usuario_id: int = None) -> int:
    """Salva ou atualiza um serviço"""
    dados = dict(dados)
    servico_id = dados.pop('id', None)

    if not servico_id or 'titulo' in dados:
        if not (dados.get('titulo') or '').strip():
            raise RegraNegocioError("Título do serviço é obrigatório")
    if not servico_id and not dados.get('data_servico'):
        raise RegraNegocioError("Data do serviço é obrigatória")
    if dados.get('tipo') and dados['tipo'] not in TIPOS_SERVICO:
        raise RegraNegocioError(f"Tipo de serviço inválido: {dados['tipo']}")

    if dados.get('data_servico'):
        momento = ler_data_hora(para_sql(dados['data_servico']))
        dados['data_servico'] = momento
        dados['mes_nome'] = MESES[momento.month - 1]
        dados['mes_ordem'] = momento.month

        if dados.get('diretor_id') and esta_de_licenca(dados['diretor_id'], momento.date()):
            raise RegraNegocioError("O diretor escolhido está de licença nesta data")

    registro = {k: para_sql(v) for k, v in dados.items() if k in CAMPOS_SERVICO + ('mes_nome', 'mes_ordem')}

    with get_connection() as conn:
        cursor = conn.cursor()
        if servico_id:
            campos = ', '.join(f"{k} = ?" for k in registro)
            cursor.execute(f'''
                UPDATE servicos SET {campos}, data_atualizacao = ?
                WHERE id = ?
            ''', [*registro.values(), para_sql(datetime.now()), servico_id])
            if cursor.rowcount == 0:
                raise RegistroNaoEncontrado(f"Serviço {servico_id} não encontrado")
            acao = 'servico.atualizar'
        else:
            registro.setdefault('local', LOCAL_PADRAO)
            registro['criado_por'] = usuario_id
            cursor.execute(f'''
                INSERT INTO servicos ({', '.join(registro)})
                VALUES ({', '.join('?' for _ in registro)})
            ''', list(registro.values()))
            servico_id = cursor.lastrowid
            acao = 'servico.criar'

    registrar_log(usuario_id, acao, f"Serviço {servico_id}")
    return servico_id

def excluir_servico(servico_id: int, usuario_id: int = None):
    """Exclui um serviço e suas seleções de canções"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('DELETE FROM servicos WHERE id = ?', (servico_id,))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Serviço {servico_id} não encontrado")
    registrar_log(usuario_id, 'servico.excluir', f"Serviço {servico_id}")

def confirmar_servico(servico_id: int, confirmado: bool = True, usuario_id: int = None):
    salvar_servico({'id': servico_id, 'confirmado': 1 if confirmado else 0}, usuario_id)

def get_servicos_do_mes(ano: int, mes: int) -> list:
    inicio = date(ano, mes, 1)
    fim = date(ano + 1, 1, 1) if mes == 12 else date(ano, mes + 1, 1)
    return get_servicos(inicio, fim - timedelta(days=1))

def get_proximos_servicos(dias: int = 7, hoje: date = None) -> list:
    """Serviços de hoje até N dias à frente"""
    hoje = hoje or date.today()
    return get_servicos(hoje, hoje + timedelta(days=dias))

def inicio_fim_de_semana(hoje: date) -> date:
    """Sexta-feira do fim de semana atual (sáb/dom) ou do próximo"""
    if hoje.weekday() >= 4:
        return hoje - timedelta(days=hoje.weekday() - 4)
    return hoje + timedelta(days=4 - hoje.weekday())

def get_servicos_proximo_fim_de_semana(hoje: date = None) -> list:
    """Serviços de sexta a domingo do fim de semana corrente ou seguinte"""
    sexta = inicio_fim_de_semana(hoje or date.today())
    return get_servicos(sexta, sexta + timedelta(days=2))

def get_servicos_do_diretor(diretor_id: int, antes_de: datetime = None, limite: int = 5) -> list:
    """Últimos serviços dirigidos, do mais recente para o mais antigo"""
    query = 'SELECT * FROM servicos WHERE diretor_id = ?'
    params = [diretor_id]
    if antes_de:
        query += ' AND data_servico < ?'
        params.append(para_sql(antes_de))
    query += ' ORDER BY data_servico DESC LIMIT ?'
    params.append(limite)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]

def _ler_data_hora_csv(data: str, hora: str) -> datetime:
    data = data.strip()
    for formato in ('%d/%m/%Y', '%Y-%m-%d'):
        try:
            dia = datetime.strptime(data, formato).date()
            break
        except ValueError:
            continue
    else:
        raise ValueError(f"data inválida '{data}'")
    hora = (hora or '').strip() or '08:00'
    return datetime.combine(dia, datetime.strptime(hora, '%H:%M').time())

def importar_servicos_csv(arquivo, usuario_id: int = None) -> dict:
    """Importa serviços de CSV (titulo, data, hora, diretor, grupo, tipo, local...)"""
    try:
        df = pd.read_csv(arquivo, dtype=str).fillna('')
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ImportacaoError(f"Não foi possível ler o CSV: {e}") from e

    df.columns = [str(c).strip().lower() for c in df.columns]
    faltando = [c for c in ('titulo', 'data') if c not in df.columns]
    if faltando:
        raise ImportacaoError(f"Colunas obrigatórias ausentes: {', '.join(faltando)}")

    resultado = {'inseridos': 0, 'erros': []}
    for posicao, linha in enumerate(df.to_dict('records'), start=1):
        try:
            dados = {
                'titulo': linha['titulo'],
                'data_servico': _ler_data_hora_csv(linha['data'], linha.get('hora', '')),
                'tipo': linha.get('tipo') or 'regular',
                'local': linha.get('local') or LOCAL_PADRAO,
                'atividade_especial': linha.get('atividade_especial') or None,
                'intervalos_coro': linha.get('intervalos_coro') or None,
            }
            if linha.get('diretor'):
                diretor = get_integrante_por_nome(linha['diretor'])
                if not diretor:
                    raise ValueError(f"diretor '{linha['diretor']}' não encontrado")
                dados['diretor_id'] = diretor['id']
            if linha.get('grupo'):
                grupo = get_grupo_por_nome(linha['grupo'])
                if not grupo:
                    raise ValueError(f"grupo '{linha['grupo']}' não encontrado")
                dados['grupo_id'] = grupo['id']
            salvar_servico(dados, usuario_id)
            resultado['inseridos'] += 1
        except (ValueError, ErroAgenda) as e:
            resultado['erros'].append(f"Linha {posicao}: {e}")

    logger.info("Importação de serviços: %s inseridos, %s erros",
                resultado['inseridos'], len(resultado['erros']))
    return resultado

def domingos_do_ano(ano: int) -> list:
    dia = date(ano, 1, 1)
    dia += timedelta(days=(6 - dia.weekday()) % 7)
    domingos = []
    while dia.year == ano:
        domingos.append(dia)
        dia += timedelta(days=7)
    return domingos

def _escolher_diretor(indice_domingo: int, horario: str, grupo_id: int, diretores: list,
                      apenas_08h: set, diretores_grupo: dict, cursor_rodizio: list) -> int | None:
    do_grupo = [d for d in diretores if diretores_grupo.get(d) == grupo_id]
    if do_grupo:
        diretor = do_grupo[indice_domingo % len(do_grupo)]
        if not (horario == '10:45' and diretor in apenas_08h):
            return diretor

    for _ in range(len(diretores)):
        diretor = diretores[cursor_rodizio[0] % len(diretores)]
        cursor_rodizio[0] += 1
        if horario == '10:45' and diretor in apenas_08h:
            continue
        return diretor

    return None

def planejar_servicos_ano(ano: int, grupos: list, diretores: list, apenas_08h: list = None,
                          diretores_grupo: dict = None) -> list:
    """Monta (sem gravar) os dois serviços de cada domingo do ano.

    grupos: três IDs na ordem da rotação.
    diretores: IDs de integrantes no rodízio geral.
    apenas_08h: diretores que só podem dirigir às 08:00.
    diretores_grupo: {diretor_id: grupo_id} para diretores vinculados a um grupo.
    """
    if not diretores:
        raise RegraNegocioError("Informe ao menos um diretor")
    apenas_08h = set(apenas_08h or [])
    diretores_grupo = diretores_grupo or {}
    cursor_rodizio = [0]
    servicos = []

    for indice, domingo in enumerate(domingos_do_ano(ano)):
        rotacao = rotacao_grupos(indice, grupos)
        for (horario, titulo), grupo_id in zip(HORARIOS_SERVICO, (rotacao['servico1'], rotacao['servico2'])):
            servicos.append({
                'titulo': titulo,
                'data_servico': datetime.combine(domingo, time.fromisoformat(horario)),
                'diretor_id': _escolher_diretor(indice, horario, grupo_id, diretores, apenas_08h,
                                                diretores_grupo, cursor_rodizio),
                'grupo_id': grupo_id,
                'tipo': 'regular',
                'local': LOCAL_PADRAO,
                'confirmado': 0,
            })

    return servicos

def gerar_servicos_ano(ano: int, grupos: list, diretores: list, apenas_08h: list = None,
                       diretores_grupo: dict = None, usuario_id: int = None) -> int:
    """Gera e grava os serviços dominicais do ano"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM servicos WHERE strftime('%Y', data_servico) = ?", (str(ano),))
        if cursor.fetchone()[0] > 0:
            raise RegraNegocioError(f"Já existem serviços cadastrados em {ano}")

    servicos = planejar_servicos_ano(ano, grupos, diretores, apenas_08h, diretores_grupo)

    with get_connection() as conn:
        conn.executemany('''
            INSERT INTO servicos (titulo, data_servico, diretor_id, grupo_id, tipo, local,
                                  mes_nome, mes_ordem, confirmado, criado_por)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', [(s['titulo'], para_sql(s['data_servico']), s['diretor_id'], s['grupo_id'], s['tipo'],
               s['local'], MESES[s['data_servico'].month - 1], s['data_servico'].month,
               s['confirmado'], usuario_id) for s in servicos])

    registrar_log(usuario_id, 'servico.gerar_ano', f"{len(servicos)} serviços gerados para {ano}")
    logger.info("%s serviços gerados para %s", len(servicos), ano)
    return len(servicos)

def gerar_link_whatsapp(telefone: str, mensagem: str) -> str:
    """Gera link para enviar mensagem via WhatsApp"""
    telefone_limpo = ''.join(filter(str.isdigit, telefone))
    return f"https://wa.me/{telefone_limpo}?text={urllib.parse.quote(mensagem)}"

def lembrete_diretor_whatsapp(servico: dict) -> str | None:
    """Link de lembrete para o diretor do serviço"""
    diretor = get_integrante(servico['diretor_id']) if servico.get('diretor_id') else None
    if not diretor or not diretor.get('celular'):
        return None
    mensagem = (f"🙏 Olá {diretor['nomes']}! Lembrete: você dirige o serviço "
                f"{servico['titulo']} em {formatar_data_br(servico['data_servico'])}"
                f" ({horario_servico(servico)}). Não esqueça de selecionar as canções. 🎵")
    return gerar_link_whatsapp(diretor['celular'], mensagem)

# ==================== RENDERIZAÇÃO ====================

def render_servico(servico: dict, usuario: dict):
    """Card de um serviço"""
    cor = servico.get('grupo_cor') or '#3498db'
    col1, col2, col3 = st.columns([4, 2, 1])

    with col1:
        confirmado = "✅" if servico['confirmado'] else "⏳"
        st.markdown(f"""
            <div style='border-left: 4px solid {cor}; padding-left: 1rem;'>
                <strong>{confirmado} {servico['titulo']}</strong> · {formatar_data_br(servico['data_servico'])}<br>
                <small>🎤 {servico.get('diretor_nome') or 'Sem diretor'} | 👥 {servico.get('grupo_nome') or '-'}
                | 📍 {servico.get('local') or LOCAL_PADRAO}</small>
            </div>
        """, unsafe_allow_html=True)
        if servico.get('atividade_especial'):
            st.caption(f"⭐ {servico['atividade_especial']}")

    with col2:
        link = lembrete_diretor_whatsapp(servico)
        if link:
            st.link_button("📱 Lembrar diretor", link)

    with col3:
        if tem_permissao(usuario, 'agenda.editar'):
            if not servico['confirmado'] and st.button("✅", key=f"conf_{servico['id']}", help="Confirmar"):
                confirmar_servico(servico['id'], True, usuario['id'])
                st.rerun()
            if st.button("🗑️", key=f"del_serv_{servico['id']}", help="Excluir"):
                excluir_servico(servico['id'], usuario['id'])
                st.rerun()

def render_mes(usuario: dict):
    """Serviços do mês com navegação"""
    if 'mes_agenda' not in st.session_state:
        st.session_state.mes_agenda = date.today().replace(day=1)

    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        if st.button("◀️ Anterior"):
            st.session_state.mes_agenda = (st.session_state.mes_agenda - timedelta(days=1)).replace(day=1)
            st.rerun()
    with col2:
        mes = st.session_state.mes_agenda
        st.markdown(f"<h3 style='text-align: center;'>{MESES[mes.month - 1]} {mes.year}</h3>",
                    unsafe_allow_html=True)
    with col3:
        if st.button("Próximo ▶️"):
            st.session_state.mes_agenda = (st.session_state.mes_agenda + timedelta(days=32)).replace(day=1)
            st.rerun()

    mes = st.session_state.mes_agenda
    servicos = get_servicos_do_mes(mes.year, mes.month)
    if not servicos:
        st.info("Nenhum serviço neste mês.")
        return

    for servico in servicos:
        render_servico(servico, usuario)
        st.markdown("<hr style='margin: 0.5rem 0; opacity: 0.2;'>", unsafe_allow_html=True)

    from modules.relatorios_pdf import gerar_pdf_agenda_mensal
    st.download_button("📄 Baixar PDF do mês", data=gerar_pdf_agenda_mensal(mes.year, mes.month),
                       file_name=f"agenda_{mes.year}_{mes.month:02d}.pdf", mime="application/pdf")

def render_novo_servico(usuario: dict):
    """Formulário de novo serviço"""
    diretores = get_diretores()
    grupos = get_grupos()

    with st.form("form_servico"):
        col1, col2 = st.columns(2)
        with col1:
            data_servico = st.date_input("Data *", format="DD/MM/YYYY")
            horario = st.selectbox("Horário", options=[h[0] for h in HORARIOS_SERVICO] + ["outro"])
            hora_outra = st.time_input("Hora (se outro)")
            tipo = st.selectbox("Tipo", options=TIPOS_SERVICO)
        with col2:
            titulo = st.text_input("Título", placeholder="08:00 a.m.")
            diretor = st.selectbox("Diretor", options=[None] + diretores,
                                   format_func=lambda d: nome_completo(d) if d else "A definir")
            grupo = st.selectbox("Grupo", options=[None] + grupos,
                                 format_func=lambda g: g['nome'] if g else "A definir")
            local = st.text_input("Local", value=LOCAL_PADRAO)
        atividade = st.text_input("Atividade especial")
        notas = st.text_area("Notas")

        if st.form_submit_button("💾 Salvar", use_container_width=True):
            hora = hora_outra if horario == "outro" else time.fromisoformat(horario)
            try:
                salvar_servico({
                    'titulo': titulo or dict(HORARIOS_SERVICO).get(horario, hora.strftime('%H:%M')),
                    'data_servico': datetime.combine(data_servico, hora),
                    'tipo': tipo,
                    'diretor_id': diretor['id'] if diretor else None,
                    'grupo_id': grupo['id'] if grupo else None,
                    'local': local,
                    'atividade_especial': atividade or None,
                    'notas': notas or None,
                }, usuario['id'])
                st.success("✅ Serviço criado!")
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

def render_gerar_ano(usuario: dict):
    """Geração automática dos domingos do ano"""
    st.markdown("### 🗓️ Gerar serviços do ano")
    st.caption("Dois serviços por domingo (08:00 e 10:45) com rodízio de grupos e diretores.")

    grupos = get_grupos()
    diretores = get_diretores()
    if len(grupos) < 3 or not diretores:
        st.warning("São necessários três grupos ativos e ao menos um diretor.")
        return

    with st.form("form_gerar_ano"):
        ano = st.number_input("Ano", min_value=2020, max_value=2100, value=date.today().year + 1)
        ordem = st.multiselect("Rotação de grupos (3)", options=grupos, default=grupos[:3],
                               format_func=lambda g: g['nome'], max_selections=3)
        selecionados = st.multiselect("Diretores no rodízio", options=diretores, default=diretores,
                                      format_func=nome_completo)
        apenas_08h = st.multiselect("Só podem às 08:00", options=diretores, format_func=nome_completo)

        vinculos = {}
        with st.expander("Diretores vinculados a um grupo"):
            for diretor in diretores:
                grupo = st.selectbox(nome_completo(diretor), options=[None] + grupos, key=f"vinculo_{diretor['id']}",
                                     format_func=lambda g: g['nome'] if g else "Sem vínculo")
                if grupo:
                    vinculos[diretor['id']] = grupo['id']

        if st.form_submit_button("⚙️ Gerar", use_container_width=True):
            try:
                total = gerar_servicos_ano(int(ano), [g['id'] for g in ordem],
                                           [d['id'] for d in selecionados],
                                           [d['id'] for d in apenas_08h], diretores_grupo=vinculos,
                                           usuario_id=usuario['id'])
                st.success(f"✅ {total} serviços gerados para {ano}")
            except ErroAgenda as e:
                st.error(str(e))

def render_importacao(usuario: dict):
    st.markdown("### 📥 Importar CSV")
    st.caption("Colunas: titulo, data (dd/mm/aaaa), hora (HH:MM), diretor, grupo, tipo, local")
    arquivo = st.file_uploader("Arquivo CSV", type=['csv'], key="csv_servicos")
    if arquivo and st.button("📥 Importar serviços"):
        try:
            resultado = importar_servicos_csv(arquivo, usuario['id'])
        except ImportacaoError as e:
            st.error(str(e))
            return
        st.success(f"✅ {resultado['inseridos']} serviços importados")
        for erro in resultado['erros']:
            st.warning(erro)

def render_agenda():
    """Função principal do módulo de agenda"""
    st.title("📅 Agenda Ministerial")
    usuario = get_usuario_atual()

    abas = ["📆 Mês", "⛪ Fim de semana"]
    if tem_permissao(usuario, 'agenda.editar'):
        abas += ["➕ Novo Serviço", "🗓️ Gerar Ano", "📥 Importar"]
    tabs = st.tabs(abas)

    with tabs[0]:
        render_mes(usuario)
    with tabs[1]:
        servicos = get_servicos_proximo_fim_de_semana()
        if not servicos:
            st.info("Nenhum serviço no próximo fim de semana.")
        for servico in servicos:
            render_servico(servico, usuario)
    if len(tabs) > 2:
        with tabs[2]:
            render_novo_servico(usuario)
        with tabs[3]:
            render_gerar_ano(usuario)
        with tabs[4]:
            render_importacao(usuario)
