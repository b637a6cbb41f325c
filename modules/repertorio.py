"""
Módulo de Repertório
Catálogo de canções e seleção para os serviços
"""
import json
import logging
import math
import streamlit as st
import pandas as pd
from datetime import datetime, date
from database.db import get_connection, para_sql
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado, ImportacaoError
from modules.agenda import get_servico, get_proximos_servicos, horario_servico
from modules.grupos import get_membros_grupo
from modules.integrantes import get_integrante, nome_completo
from modules.notificacoes import notificar_integrante
from modules.semaforo import verificar_repeticao_cancao, REGRAS_SEMAFORO, VERMELHO
from config.settings import formatar_data_br

logger = logging.getLogger(__name__)

ITENS_POR_PAGINA = 12

CAMPOS_CANCAO = ('titulo', 'artista', 'tonalidade', 'tempo', 'genero', 'tema', 'letra', 'acordes',
                 'youtube_link', 'spotify_link', 'partitura_url', 'dificuldade', 'tags', 'notas_diretor')

NIVEIS_DIFICULDADE = {1: 'Fácil', 2: 'Intermediário', 3: 'Médio', 4: 'Difícil', 5: 'Avançado'}

# ==================== FUNÇÕES DE DADOS ====================

def _normalizar_tags(tags) -> str | None:
    if not tags:
        return None
    if isinstance(tags, str):
        tags = tags.split(',')
    limpas = [t.strip().lower() for t in tags if t and t.strip()]
    return ','.join(dict.fromkeys(limpas)) or None

def get_cancoes(filtros: dict = None) -> list:
    """Lista canções com filtros (busca, genero, tonalidade, tag, incluir_inativas)"""
    query = 'SELECT * FROM cancoes WHERE 1=1'
    params = []
    filtros = filtros or {}

    if not filtros.get('incluir_inativas'):
        query += ' AND ativo = 1'
    if filtros.get('busca'):
        query += ' AND (titulo LIKE ? OR artista LIKE ?)'
        termo = f"%{filtros['busca'].strip()}%"
        params.extend([termo, termo])
    if filtros.get('genero'):
        query += ' AND genero = ?'
        params.append(filtros['genero'])
    if filtros.get('tonalidade'):
        query += ' AND tonalidade = ?'
        params.append(filtros['tonalidade'])
    if filtros.get('tag'):
        query += " AND (',' || tags || ',') LIKE ?"
        params.append(f"%,{filtros['tag'].strip().lower()},%")

    ordem = {'uso': 'uso_total DESC, titulo', 'recentes': 'data_cadastro DESC'}
    query += f" ORDER BY {ordem.get(filtros.get('ordem'), 'titulo COLLATE NOCASE')}"

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]

def paginar(itens: list, pagina: int = 1, por_pagina: int = ITENS_POR_PAGINA) -> tuple:
    """Retorna (itens da página, total de páginas); páginas fora do intervalo são ajustadas"""
    total_paginas = max(1, math.ceil(len(itens) / por_pagina))
    pagina = min(max(1, pagina), total_paginas)
    inicio = (pagina - 1) * por_pagina
    return itens[inicio:inicio + por_pagina], total_paginas

def get_cancao(cancao_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM cancoes WHERE id = ?', (cancao_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def _validar_cancao(dados: dict):
    if not (dados.get('titulo') or '').strip():
        raise RegraNegocioError("Título da canção é obrigatório")
    dificuldade = dados.get('dificuldade')
    if dificuldade not in (None, '') and int(dificuldade) not in NIVEIS_DIFICULDADE:
        raise RegraNegocioError("A dificuldade deve estar entre 1 e 5")

def salvar_cancao(dados: dict, usuario_id: int = None) -> int:
    """Salva ou atualiza uma canção"""
    dados = dict(dados)
    cancao_id = dados.pop('id', None)
    _validar_cancao(dados)

    registro = {k: (v.strip() if isinstance(v, str) else v) for k, v in dados.items() if k in CAMPOS_CANCAO}
    registro['tags'] = _normalizar_tags(registro.get('tags'))
    if registro.get('dificuldade') in ('', None):
        registro['dificuldade'] = None
    else:
        registro['dificuldade'] = int(registro['dificuldade'])

    with get_connection() as conn:
        cursor = conn.cursor()
        if cancao_id:
            campos = ', '.join(f"{k} = ?" for k in registro)
            cursor.execute(f'UPDATE cancoes SET {campos} WHERE id = ?', [*registro.values(), cancao_id])
            if cursor.rowcount == 0:
                raise RegistroNaoEncontrado(f"Canção {cancao_id} não encontrada")
        else:
            registro['criado_por'] = usuario_id
            cursor.execute(f'''
                INSERT INTO cancoes ({', '.join(registro)})
                VALUES ({', '.join('?' for _ in registro)})
            ''', list(registro.values()))
            cancao_id = cursor.lastrowid

    registrar_log(usuario_id, 'cancao.salvar', f"Canção {cancao_id}: {registro['titulo']}")
    return cancao_id

def desativar_cancao(cancao_id: int, usuario_id: int = None):
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('UPDATE cancoes SET ativo = 0 WHERE id = ?', (cancao_id,))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Canção {cancao_id} não encontrada")
    registrar_log(usuario_id, 'cancao.desativar', f"Canção {cancao_id}")

def _inserir_lote(cancoes: list, usuario_id: int) -> dict:
    resultado = {'inseridas': 0, 'erros': []}
    for posicao, cancao in enumerate(cancoes, start=1):
        try:
            salvar_cancao(cancao, usuario_id)
            resultado['inseridas'] += 1
        except (ErroAgenda, ValueError) as e:
            titulo = (cancao.get('titulo') or '').strip() or 'Sem título'
            resultado['erros'].append(f"Item {posicao} ({titulo}): {e}")
    logger.info("Importação de canções: %s inseridas, %s erros",
                resultado['inseridas'], len(resultado['erros']))
    return resultado

def importar_cancoes_csv(arquivo, usuario_id: int = None) -> dict:
    """Importa canções de um CSV com ao menos a coluna 'titulo'"""
    try:
        df = pd.read_csv(arquivo, dtype=str).fillna('')
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ImportacaoError(f"Não foi possível ler o CSV: {e}") from e

    df.columns = [str(c).strip().lower() for c in df.columns]
    if 'titulo' not in df.columns:
        raise ImportacaoError("Coluna obrigatória ausente: titulo")

    cancoes = [{k: v for k, v in linha.items() if k in CAMPOS_CANCAO and v != ''}
               for linha in df.to_dict('records')]
    return _inserir_lote(cancoes, usuario_id)

def importar_cancoes_json(conteudo, usuario_id: int = None) -> dict:
    """Importa canções de JSON (um objeto ou uma lista de objetos)"""
    if hasattr(conteudo, 'read'):
        conteudo = conteudo.read()
    if isinstance(conteudo, bytes):
        conteudo = conteudo.decode('utf-8')
    try:
        dados = json.loads(conteudo)
    except json.JSONDecodeError as e:
        raise ImportacaoError(f"JSON inválido: {e}") from e

    cancoes = dados if isinstance(dados, list) else [dados]
    if not cancoes:
        raise ImportacaoError("O arquivo não contém canções")
    if not all(isinstance(c, dict) for c in cancoes):
        raise ImportacaoError("Cada canção deve ser um objeto JSON")
    return _inserir_lote(cancoes, usuario_id)

def get_selecoes_servico(servico_id: int) -> list:
    """Canções selecionadas para um serviço"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT sc.*, c.titulo, c.artista, c.tonalidade, c.youtube_link,
                   i.nomes || ' ' || i.sobrenomes as diretor_nome
            FROM selecoes_cancoes sc
            JOIN cancoes c ON sc.cancao_id = c.id
            LEFT JOIN integrantes i ON sc.diretor_id = i.id
            WHERE sc.servico_id = ?
            ORDER BY sc.data_cadastro, sc.id
        ''', (servico_id,))
        return [dict(row) for row in cursor.fetchall()]

def _notificar_grupo(servico: dict, cancao: dict, diretor_id: int, motivo: str) -> int:
    if not servico.get('grupo_id'):
        return 0
    diretor = get_integrante(diretor_id)
    mensagem = (f'Foi selecionada "{cancao["titulo"]}" para o serviço "{servico["titulo"]}" '
                f'de {formatar_data_br(servico["data_servico"])}.')
    metadata = {
        'cancao_id': cancao['id'],
        'cancao_titulo': cancao['titulo'],
        'servico_id': servico['id'],
        'servico_titulo': servico['titulo'],
        'data_servico': servico['data_servico'],
        'motivo': motivo,
        'selecionada_por': nome_completo(diretor) if diretor else None,
    }
    enviadas = 0
    for membro in get_membros_grupo(servico['grupo_id']):
        if notificar_integrante(membro['integrante_id'], "🎵 Nova seleção de canção", mensagem,
                                tipo='song_selection', categoria='repertory', prioridade=2,
                                metadata=metadata):
            enviadas += 1
    return enviadas

def selecionar_cancao(servico_id: int, cancao_id: int, diretor_id: int, motivo: str = None,
                      forcar: bool = False, usuario_id: int = None) -> dict:
    """Seleciona uma canção para o serviço após consultar o semáforo.

    Retorna {'selecao_id', 'semaforo', 'notificados'}.
    """
    servico = get_servico(servico_id)
    if not servico:
        raise RegistroNaoEncontrado(f"Serviço {servico_id} não encontrado")
    cancao = get_cancao(cancao_id)
    if not cancao or not cancao['ativo']:
        raise RegistroNaoEncontrado(f"Canção {cancao_id} não encontrada")

    semaforo = verificar_repeticao_cancao(cancao_id, diretor_id, servico_id, servico['data_servico'])
    if semaforo.cor == VERMELHO and not forcar:
        raise RegraNegocioError(semaforo.detalhes)

    motivo = motivo or 'Selecionada para o serviço'
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM selecoes_cancoes WHERE servico_id = ? AND cancao_id = ?',
                       (servico_id, cancao_id))
        if cursor.fetchone():
            raise RegraNegocioError(f'"{cancao["titulo"]}" já está selecionada para este serviço')

        cursor.execute('''
            INSERT INTO selecoes_cancoes (servico_id, cancao_id, diretor_id, motivo, cor_semaforo, data_cadastro)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (servico_id, cancao_id, diretor_id, motivo, semaforo.cor, para_sql(datetime.now())))
        selecao_id = cursor.lastrowid

        cursor.execute('''
            UPDATE cancoes SET uso_total = uso_total + 1, ultimo_uso = ?
            WHERE id = ?
        ''', (para_sql(date.today()), cancao_id))

    notificados = _notificar_grupo(servico, cancao, diretor_id, motivo)
    with get_connection() as conn:
        conn.execute('UPDATE selecoes_cancoes SET notificacao_enviada = ? WHERE id = ?',
                     (1 if notificados else 0, selecao_id))

    registrar_log(usuario_id, 'cancao.selecionar',
                  f"Canção {cancao_id} no serviço {servico_id} ({semaforo.cor})")
    return {'selecao_id': selecao_id, 'semaforo': semaforo, 'notificados': notificados}

def remover_selecao(selecao_id: int, usuario_id: int = None):
    """Remove uma seleção e desfaz a contagem de uso"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT cancao_id FROM selecoes_cancoes WHERE id = ?', (selecao_id,))
        row = cursor.fetchone()
        if not row:
            raise RegistroNaoEncontrado(f"Seleção {selecao_id} não encontrada")
        cursor.execute('DELETE FROM selecoes_cancoes WHERE id = ?', (selecao_id,))
        cursor.execute('UPDATE cancoes SET uso_total = MAX(uso_total - 1, 0) WHERE id = ?',
                       (row['cancao_id'],))
    registrar_log(usuario_id, 'cancao.remover_selecao', f"Seleção {selecao_id}")

def get_generos() -> list:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT DISTINCT genero FROM cancoes WHERE genero IS NOT NULL AND genero != '' ORDER BY genero")
        return [row['genero'] for row in cursor.fetchall()]

# ==================== RENDERIZAÇÃO ====================

def render_cancao(cancao: dict, usuario: dict):
    """Card de uma canção"""
    with st.expander(f"🎵 {cancao['titulo']}" + (f" · {cancao['artista']}" if cancao.get('artista') else "")):
        col1, col2 = st.columns([3, 1])
        with col1:
            info = []
            if cancao.get('tonalidade'):
                info.append(f"🎹 Tom: {cancao['tonalidade']}")
            if cancao.get('genero'):
                info.append(f"🎼 {cancao['genero']}")
            if cancao.get('dificuldade'):
                info.append(f"📊 {NIVEIS_DIFICULDADE.get(cancao['dificuldade'], '')}")
            st.caption(" | ".join(info))
            if cancao.get('tags'):
                st.caption(" ".join(f"#{t}" for t in cancao['tags'].split(',')))
            if cancao.get('letra'):
                st.text(cancao['letra'])
        with col2:
            st.metric("Usos", cancao['uso_total'])
            if cancao.get('ultimo_uso'):
                st.caption(f"Último: {formatar_data_br(cancao['ultimo_uso'])}")
            if cancao.get('youtube_link'):
                st.link_button("▶️ YouTube", cancao['youtube_link'])
            if cancao.get('spotify_link'):
                st.link_button("🎧 Spotify", cancao['spotify_link'])

        if tem_permissao(usuario, 'repertorio.selecionar'):
            render_selecao(cancao, usuario)

def render_selecao(cancao: dict, usuario: dict):
    """Seleção da canção para um dos próximos serviços do diretor"""
    if not usuario.get('integrante_id'):
        st.caption("Vincule sua conta a um integrante para selecionar canções.")
        return

    servicos = [s for s in get_proximos_servicos(30) if s['diretor_id'] == usuario['integrante_id']]
    if not servicos:
        st.caption("Você não tem serviços próximos como diretor.")
        return

    servico = st.selectbox("Serviço", options=servicos, key=f"serv_{cancao['id']}",
                           format_func=lambda s: f"{formatar_data_br(s['data_servico'])} · {horario_servico(s)}")
    semaforo = verificar_repeticao_cancao(cancao['id'], usuario['integrante_id'], servico['id'],
                                          servico['data_servico'])
    aviso = {'green': st.success, 'yellow': st.warning, 'red': st.error}[semaforo.cor]
    aviso(f"{semaforo.emoji} {semaforo.mensagem}: {semaforo.detalhes}")

    motivo = st.text_input("Motivo", key=f"motivo_{cancao['id']}")
    forcar = False
    if semaforo.cor == VERMELHO:
        forcar = st.checkbox("Selecionar mesmo assim", key=f"forcar_{cancao['id']}")

    if st.button("✅ Selecionar", key=f"sel_{cancao['id']}"):
        try:
            resultado = selecionar_cancao(servico['id'], cancao['id'], usuario['integrante_id'],
                                          motivo, forcar, usuario['id'])
            st.success(f"Canção selecionada! {resultado['notificados']} integrantes notificados.")
        except ErroAgenda as e:
            st.error(str(e))

def render_catalogo(usuario: dict):
    """Catálogo com busca, filtros e paginação"""
    col1, col2, col3 = st.columns([3, 2, 2])
    with col1:
        busca = st.text_input("🔍 Buscar", placeholder="Título ou artista")
    with col2:
        genero = st.selectbox("Gênero", options=["Todos"] + get_generos())
    with col3:
        ordem = st.selectbox("Ordenar", options=['titulo', 'uso', 'recentes'],
                             format_func=lambda o: {'titulo': 'Título', 'uso': 'Mais usadas',
                                                    'recentes': 'Recentes'}[o])

    cancoes = get_cancoes({'busca': busca, 'genero': None if genero == "Todos" else genero, 'ordem': ordem})
    if not cancoes:
        st.info("Nenhuma canção encontrada.")
        return

    pagina = st.number_input("Página", min_value=1, value=1, step=1)
    itens, total_paginas = paginar(cancoes, int(pagina))
    st.caption(f"{len(cancoes)} canções · página {min(int(pagina), total_paginas)} de {total_paginas}")

    for cancao in itens:
        render_cancao(cancao, usuario)

def render_selecoes(usuario: dict):
    """Canções escolhidas para os próximos serviços"""
    servicos = get_proximos_servicos(90)[:10]
    if not servicos:
        st.info("Nenhum serviço futuro.")
        return

    for servico in servicos:
        selecoes = get_selecoes_servico(servico['id'])
        st.markdown(f"**{formatar_data_br(servico['data_servico'])} · {servico['titulo']}** "
                    f"({servico.get('diretor_nome') or 'sem diretor'})")
        if not selecoes:
            st.caption("Nenhuma canção selecionada")
        for selecao in selecoes:
            col1, col2 = st.columns([5, 1])
            with col1:
                st.write(f"🎵 {selecao['titulo']} · {selecao.get('tonalidade') or '-'}")
            with col2:
                if usuario.get('integrante_id') == selecao['diretor_id'] or tem_permissao(usuario, 'agenda.editar'):
                    if st.button("🗑️", key=f"rm_sel_{selecao['id']}"):
                        remover_selecao(selecao['id'], usuario['id'])
                        st.rerun()

def render_nova_cancao(usuario: dict):
    with st.form("form_cancao"):
        col1, col2 = st.columns(2)
        with col1:
            titulo = st.text_input("Título *")
            artista = st.text_input("Artista")
            tonalidade = st.text_input("Tom")
            genero = st.text_input("Gênero")
        with col2:
            tempo = st.text_input("Tempo (BPM)")
            dificuldade = st.select_slider("Dificuldade", options=list(NIVEIS_DIFICULDADE),
                                           format_func=NIVEIS_DIFICULDADE.get)
            youtube = st.text_input("Link YouTube")
            tags = st.text_input("Tags (separadas por vírgula)")
        letra = st.text_area("Letra", height=200)

        if st.form_submit_button("💾 Salvar", use_container_width=True):
            try:
                salvar_cancao({'titulo': titulo, 'artista': artista, 'tonalidade': tonalidade,
                               'genero': genero, 'tempo': tempo, 'dificuldade': dificuldade,
                               'youtube_link': youtube, 'tags': tags, 'letra': letra}, usuario['id'])
                st.success("✅ Canção cadastrada!")
            except ErroAgenda as e:
                st.error(str(e))

def render_importacao(usuario: dict):
    st.markdown("### 📥 Importar canções")
    arquivo = st.file_uploader("CSV ou JSON", type=['csv', 'json'], key="arquivo_cancoes")
    if arquivo and st.button("📥 Importar"):
        try:
            if arquivo.name.lower().endswith('.json'):
                resultado = importar_cancoes_json(arquivo, usuario['id'])
            else:
                resultado = importar_cancoes_csv(arquivo, usuario['id'])
        except ImportacaoError as e:
            st.error(str(e))
            return
        st.success(f"✅ {resultado['inseridas']} canções importadas")
        for erro in resultado['erros']:
            st.warning(erro)

def render_regras():
    st.markdown(f"### 🚦 {REGRAS_SEMAFORO['titulo']}")
    st.caption(REGRAS_SEMAFORO['descricao'])
    for regra in REGRAS_SEMAFORO['regras']:
        st.markdown(f"**{regra['emoji']} {regra['titulo']}**  \n{regra['condicao']}  \n_{regra['acao']}_")
    for criterio in REGRAS_SEMAFORO['criterios']:
        st.caption(f"• **{criterio['titulo']}**: {criterio['descricao']}")

def render_repertorio():
    """Função principal do módulo de repertório"""
    st.title("🎵 Repertório")
    usuario = get_usuario_atual()

    abas = ["📚 Catálogo", "🎼 Seleções", "🚦 Semáforo"]
    if tem_permissao(usuario, 'repertorio.editar'):
        abas += ["➕ Nova Canção", "📥 Importar"]
    tabs = st.tabs(abas)

    with tabs[0]:
        render_catalogo(usuario)
    with tabs[1]:
        render_selecoes(usuario)
    with tabs[2]:
        render_regras()
    if len(tabs) > 3:
        with tabs[3]:
            render_nova_cancao(usuario)
        with tabs[4]:
            render_importacao(usuario)
