"""
Módulo de Notificações
Notificações do sistema, overlays, aniversários e agendamentos semanais
"""
import json
import logging
import requests
import streamlit as st
from datetime import datetime, date, timedelta
from database.db import get_connection, para_sql, ler_data_hora
from modules.auth import get_usuarios, get_usuario_por_integrante, get_usuario_atual, tem_permissao
from modules.excecoes import ErroAgenda, RegraNegocioError
from modules.integrantes import get_aniversariantes_do_dia, get_aniversariantes_do_mes, nome_completo
from config.settings import (TIPOS_NOTIFICACAO, TIPOS_OVERLAY, DIAS_SEMANA, PUSH_WEBHOOK_URL,
                             HTTP_TIMEOUT, formatar_data_br)

logger = logging.getLogger(__name__)

MESES = ['Janeiro', 'Fevereiro', 'Março', 'Abril', 'Maio', 'Junho',
         'Julho', 'Agosto', 'Setembro', 'Outubro', 'Novembro', 'Dezembro']

TIPOS_ANUNCIO = {
    'special_event': '🎉 Evento Especial',
    'extraordinary_rehearsal': '🎵 Ensaio Extraordinário',
    'blood_donation': '🩸 Doação de Sangue',
    'general_announcement': '📢 Anúncio Geral',
    'ministry_instructions': '📋 Instruções do Ministério',
    'director_change': '🔄 Troca de Diretor',
}

ICONES = {
    'general': '🔔', 'agenda': '📅', 'repertory': '🎵', 'song_selection': '🎶',
    'daily_verse': '📖', 'system': '⚙️', 'birthday_daily': '🎂', 'birthday_monthly': '🎉',
    'director_replacement_request': '🙋', 'director_replacement_response': '✅',
    'director_change': '🔄', 'licenca': '🏖️', 'service_overlay': '⛪',
    'special_event': '🎉', 'extraordinary_rehearsal': '🎵', 'blood_donation': '🩸',
    'general_announcement': '📢', 'ministry_instructions': '📋',
}

# ==================== FUNÇÕES DE DADOS ====================

def _carregar(row) -> dict:
    notificacao = dict(row)
    if notificacao.get('metadata'):
        notificacao['metadata'] = json.loads(notificacao['metadata'])
    return notificacao

def _validar(tipo: str, prioridade: int):
    if tipo not in TIPOS_NOTIFICACAO:
        raise RegraNegocioError(f"Tipo de notificação inválido: {tipo}")
    if not 1 <= prioridade <= 5:
        raise RegraNegocioError("A prioridade deve estar entre 1 e 5")

def criar_notificacao(destinatario_id: int, titulo: str, mensagem: str, tipo: str = 'general',
                      remetente_id: int = None, categoria: str = None, prioridade: int = 1,
                      metadata: dict = None, agendada_para: datetime = None) -> int:
    """Cria uma notificação para um usuário"""
    _validar(tipo, prioridade)
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO notificacoes (tipo, titulo, mensagem, destinatario_id, remetente_id,
                                      categoria, prioridade, metadata, agendada_para, data_criacao)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (tipo, titulo, mensagem, destinatario_id, remetente_id, categoria, prioridade,
              json.dumps(metadata, default=str) if metadata is not None else None,
              para_sql(agendada_para), para_sql(datetime.now())))
        return cursor.lastrowid

def _criar_em_lote(destinatarios: list, titulo: str, mensagem: str, tipo: str,
                   remetente_id: int, categoria: str, prioridade: int, metadata: dict) -> int:
    _validar(tipo, prioridade)
    if not destinatarios:
        return 0
    meta = json.dumps(metadata, default=str) if metadata is not None else None
    agora = para_sql(datetime.now())
    with get_connection() as conn:
        conn.executemany('''
            INSERT INTO notificacoes (tipo, titulo, mensagem, destinatario_id, remetente_id,
                                      categoria, prioridade, metadata, data_criacao)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', [(tipo, titulo, mensagem, d, remetente_id, categoria, prioridade, meta, agora)
              for d in destinatarios])
    return len(destinatarios)

def notificar_todos(titulo: str, mensagem: str, tipo: str = 'general', remetente_id: int = None,
                    excluir: list = None, categoria: str = None, prioridade: int = 1,
                    metadata: dict = None) -> int:
    """Cria a mesma notificação para todos os usuários ativos"""
    excluir = set(excluir or [])
    destinatarios = [u['id'] for u in get_usuarios(ativos=True) if u['id'] not in excluir]
    total = _criar_em_lote(destinatarios, titulo, mensagem, tipo, remetente_id,
                           categoria, prioridade, metadata)
    enviar_push(titulo, mensagem, {'tipo': tipo})
    logger.info("Notificação '%s' enviada para %s usuários", tipo, total)
    return total

def notificar_perfis(perfis: list, titulo: str, mensagem: str, tipo: str = 'general',
                     remetente_id: int = None, categoria: str = None, prioridade: int = 1,
                     metadata: dict = None) -> int:
    """Notifica os usuários ativos dos perfis informados"""
    destinatarios = [u['id'] for u in get_usuarios(ativos=True) if u['perfil'] in perfis]
    return _criar_em_lote(destinatarios, titulo, mensagem, tipo, remetente_id,
                          categoria, prioridade, metadata)

def notificar_integrante(integrante_id: int, titulo: str, mensagem: str, **kwargs) -> int | None:
    """Notifica a conta vinculada a um integrante, se houver"""
    usuario = get_usuario_por_integrante(integrante_id)
    if not usuario:
        logger.info("Integrante %s não tem conta vinculada; notificação ignorada", integrante_id)
        return None
    return criar_notificacao(usuario['id'], titulo, mensagem, **kwargs)

def get_notificacoes(usuario_id: int, lidas: bool = None, limite: int = 50,
                     agora: datetime = None) -> list:
    """Busca notificações do usuário (as agendadas só aparecem na hora)"""
    agora = agora or datetime.now()
    query = '''
        SELECT * FROM notificacoes
        WHERE destinatario_id = ? AND (agendada_para IS NULL OR agendada_para <= ?)
    '''
    params = [usuario_id, para_sql(agora)]

    if lidas is not None:
        query += ' AND lida = ?'
        params.append(1 if lidas else 0)

    query += ' ORDER BY data_criacao DESC, id DESC LIMIT ?'
    params.append(limite)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [_carregar(row) for row in cursor.fetchall()]

def marcar_como_lida(notificacao_id: int, usuario_id: int = None):
    """Marca notificação como lida"""
    query = 'UPDATE notificacoes SET lida = 1, data_leitura = ? WHERE id = ?'
    params = [para_sql(datetime.now()), notificacao_id]
    if usuario_id:
        query += ' AND destinatario_id = ?'
        params.append(usuario_id)
    with get_connection() as conn:
        conn.execute(query, params)

def marcar_todas_lidas(usuario_id: int) -> int:
    """Marca todas as notificações como lidas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE notificacoes SET lida = 1, data_leitura = ?
            WHERE destinatario_id = ? AND lida = 0
        ''', (para_sql(datetime.now()), usuario_id))
        return cursor.rowcount

def contar_nao_lidas(usuario_id: int) -> int:
    """Conta notificações não lidas"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT COUNT(*) FROM notificacoes
            WHERE destinatario_id = ? AND lida = 0
              AND (agendada_para IS NULL OR agendada_para <= ?)
        ''', (usuario_id, para_sql(datetime.now())))
        return cursor.fetchone()[0]

def excluir_notificacao(notificacao_id: int, usuario_id: int = None):
    """Exclui uma notificação"""
    query = 'DELETE FROM notificacoes WHERE id = ?'
    params = [notificacao_id]
    if usuario_id:
        query += ' AND destinatario_id = ?'
        params.append(usuario_id)
    with get_connection() as conn:
        conn.execute(query, params)

def limpar_notificacoes_antigas(usuario_id: int = None, dias: int = 30, hoje: date = None) -> int:
    """Remove notificações lidas mais antigas que N dias"""
    limite = (hoje or date.today()) - timedelta(days=dias)
    query = 'DELETE FROM notificacoes WHERE lida = 1 AND date(data_criacao) < ?'
    params = [limite.isoformat()]
    if usuario_id:
        query += ' AND destinatario_id = ?'
        params.append(usuario_id)
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return cursor.rowcount

# ==================== OVERLAYS ====================

def get_overlays_pendentes(usuario_id: int, agora: datetime = None) -> list:
    """Overlays não lidos, por prioridade e depois pela ordem de chegada"""
    agora = agora or datetime.now()
    tipos = sorted(TIPOS_OVERLAY)
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f'''
            SELECT * FROM notificacoes
            WHERE destinatario_id = ? AND lida = 0
              AND tipo IN ({', '.join('?' for _ in tipos)})
              AND (agendada_para IS NULL OR agendada_para <= ?)
            ORDER BY prioridade DESC, data_criacao ASC, id ASC
        ''', [usuario_id, *tipos, para_sql(agora)])
        return [_carregar(row) for row in cursor.fetchall()]

def proximo_overlay(usuario_id: int, agora: datetime = None) -> dict | None:
    """Próximo overlay a exibir"""
    pendentes = get_overlays_pendentes(usuario_id, agora)
    return pendentes[0] if pendentes else None

# ==================== ANIVERSÁRIOS ====================

def _conta_do_aniversariante(integrante: dict, usuarios: list) -> dict | None:
    for usuario in usuarios:
        if usuario.get('integrante_id') == integrante['id']:
            return usuario
    nomes = integrante['nomes'].lower()
    sobrenomes = integrante['sobrenomes'].lower()
    for usuario in usuarios:
        nome = (usuario.get('nome') or '').lower()
        if nomes in nome and sobrenomes in nome:
            return usuario
    return None

def _aniversario_ja_notificado(integrante_id: int, hoje: date) -> bool:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT 1 FROM notificacoes
            WHERE tipo = 'birthday_daily'
              AND json_extract(metadata, '$.birthday_member_id') = ?
              AND json_extract(metadata, '$.birthday_date') = ?
            LIMIT 1
        ''', (integrante_id, hoje.isoformat()))
        return cursor.fetchone() is not None

def enviar_notificacoes_aniversario(hoje: date = None) -> int:
    """Notifica os aniversariantes do dia e todos os demais usuários"""
    hoje = hoje or date.today()
    aniversariantes = get_aniversariantes_do_dia(hoje)
    if not aniversariantes:
        return 0

    usuarios = get_usuarios(ativos=True)
    enviadas = 0

    for integrante in aniversariantes:
        if _aniversario_ja_notificado(integrante['id'], hoje):
            continue

        nome = nome_completo(integrante)
        celebrante = _conta_do_aniversariante(integrante, usuarios)
        metadata = {
            'birthday_member_id': integrante['id'],
            'birthday_member_name': nome,
            'birthday_member_photo': integrante.get('foto_url'),
            'birthday_date': hoje.isoformat(),
            'show_confetti': True,
        }

        outros = [u['id'] for u in usuarios if not celebrante or u['id'] != celebrante['id']]
        enviadas += _criar_em_lote(
            outros,
            f"🎂 Feliz aniversário, {integrante['nomes']}!",
            f"🎉 Hoje é aniversário de {nome}! 🎂\n\nPasse na sala geral do chat e deixe uma "
            "mensagem de parabéns. Vamos fazer esse dia especial! ✨",
            'birthday_daily', None, 'birthday', 3, metadata)

        if celebrante:
            criar_notificacao(
                celebrante['id'],
                "🎂 Feliz aniversário!",
                f"🎉 Feliz aniversário, {integrante['nomes']}! 🎂\n\nHoje é o seu dia especial. "
                "Que Deus te abençoe grandemente neste novo ano de vida. ✨",
                tipo='birthday_daily', categoria='birthday', prioridade=3,
                metadata={**metadata, 'is_birthday_person': True})
            enviadas += 1

        logger.info("Aniversário de %s notificado", nome)

    return enviadas

def enviar_resumo_aniversarios_mes(hoje: date = None, forcar: bool = False) -> int:
    """Resumo dos aniversariantes do mês, enviado no dia 1º"""
    hoje = hoje or date.today()
    if hoje.day != 1 and not forcar:
        return 0

    aniversariantes = get_aniversariantes_do_mes(hoje.month)
    if not aniversariantes:
        return 0

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT 1 FROM notificacoes
            WHERE tipo = 'birthday_monthly'
              AND json_extract(metadata, '$.mes') = ? AND json_extract(metadata, '$.ano') = ?
            LIMIT 1
        ''', (hoje.month, hoje.year))
        if cursor.fetchone():
            return 0

    mes_nome = MESES[hoje.month - 1]
    lista = '\n'.join(f"• {a['dia']} - {nome_completo(a)}" for a in aniversariantes)
    metadata = {
        'mes': hoje.month,
        'ano': hoje.year,
        'quantidade': len(aniversariantes),
        'aniversariantes': [{'nome': nome_completo(a), 'dia': a['dia'], 'cargo': a['cargo']}
                            for a in aniversariantes],
    }
    return notificar_todos(
        f"🎂 Aniversariantes de {mes_nome}",
        f"🎉 Aniversariantes de {mes_nome}:\n\n{lista}\n\nNão esqueça de parabenizá-los! 🎂",
        tipo='birthday_monthly', categoria='birthday', prioridade=2, metadata=metadata)

# ==================== AGENDAMENTOS ====================

def _dia_semana(momento: datetime) -> int:
    # Domingo = 0
    return (momento.weekday() + 1) % 7

def get_agendamentos(apenas_ativos: bool = False) -> list:
    """Regras de notificação semanais"""
    query = 'SELECT * FROM notificacoes_agendadas'
    if apenas_ativos:
        query += ' WHERE ativo = 1'
    query += ' ORDER BY dia_semana, hora'
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query)
        return [_carregar(row) for row in cursor.fetchall()]

def salvar_agendamento(dados: dict, usuario_id: int = None) -> int:
    """Cria ou atualiza uma regra de notificação semanal"""
    if not dados.get('nome'):
        raise RegraNegocioError("Informe um nome para o agendamento")
    if dados.get('tipo') not in TIPOS_NOTIFICACAO:
        raise RegraNegocioError(f"Tipo de notificação inválido: {dados.get('tipo')}")
    if not 0 <= int(dados.get('dia_semana', -1)) <= 6:
        raise RegraNegocioError("Dia da semana deve estar entre 0 (domingo) e 6 (sábado)")
    try:
        hora = datetime.strptime(dados.get('hora', ''), '%H:%M').strftime('%H:%M')
    except ValueError as e:
        raise RegraNegocioError("Hora deve estar no formato HH:MM") from e

    metadata = dados.get('metadata')
    valores = (dados['nome'], dados['tipo'], int(dados['dia_semana']), hora,
               dados.get('publico', 'todos'), dados.get('descricao'),
               json.dumps(metadata) if metadata is not None else None,
               1 if dados.get('ativo', True) else 0)

    with get_connection() as conn:
        cursor = conn.cursor()
        if dados.get('id'):
            cursor.execute('''
                UPDATE notificacoes_agendadas
                SET nome = ?, tipo = ?, dia_semana = ?, hora = ?, publico = ?, descricao = ?,
                    metadata = ?, ativo = ?
                WHERE id = ?
            ''', (*valores, dados['id']))
            return dados['id']
        cursor.execute('''
            INSERT INTO notificacoes_agendadas
                (nome, tipo, dia_semana, hora, publico, descricao, metadata, ativo, criado_por)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (*valores, usuario_id))
        return cursor.lastrowid

def excluir_agendamento(agendamento_id: int):
    """Remove uma regra de notificação"""
    with get_connection() as conn:
        conn.execute('DELETE FROM notificacoes_agendadas WHERE id = ?', (agendamento_id,))

def _enviar_overlay_servicos(agendamento: dict, agora: datetime) -> int:
    from modules.agenda import get_servicos_proximo_fim_de_semana, horario_servico

    servicos = get_servicos_proximo_fim_de_semana(agora.date())
    if not servicos:
        logger.info("Nenhum serviço no próximo fim de semana; overlay '%s' não enviado",
                    agendamento['nome'])
        return 0

    metadata = {
        'data_servico': servicos[0]['data_servico'],
        'servicos': [{
            'id': s['id'],
            'data': s['data_servico'],
            'titulo': s['titulo'],
            'diretor': s.get('diretor_nome'),
            'grupo': s.get('grupo_nome'),
            'horario': horario_servico(s),
        } for s in servicos],
    }
    return notificar_todos('⛪ Programa de Serviços - Fim de Semana',
                           'Serviços programados para o próximo fim de semana',
                           tipo='service_overlay', categoria='agenda', prioridade=2,
                           metadata=metadata)

def _enviar_agendamento_geral(agendamento: dict) -> int:
    metadata = agendamento.get('metadata') or {}
    titulo = metadata.get('titulo') or agendamento['nome']
    mensagem = metadata.get('mensagem') or agendamento.get('descricao') or agendamento['nome']
    publico = agendamento.get('publico') or 'todos'
    if publico == 'todos':
        return notificar_todos(titulo, mensagem, tipo=agendamento['tipo'], categoria='agendada',
                               metadata=metadata)
    return notificar_perfis([p.strip() for p in publico.split(',')], titulo, mensagem,
                            tipo=agendamento['tipo'], categoria='agendada', metadata=metadata)

def processar_agendamentos(agora: datetime = None) -> list:
    """Dispara as regras do dia cujo horário já chegou e que ainda não rodaram hoje"""
    agora = agora or datetime.now()
    hora_atual = agora.strftime('%H:%M')
    processados = []

    for agendamento in get_agendamentos(apenas_ativos=True):
        if agendamento['dia_semana'] != _dia_semana(agora) or agendamento['hora'] > hora_atual:
            continue
        ultima = ler_data_hora(agendamento['ultima_execucao'])
        if ultima and ultima.date() == agora.date():
            continue

        if agendamento['tipo'] == 'service_overlay':
            enviadas = _enviar_overlay_servicos(agendamento, agora)
        else:
            enviadas = _enviar_agendamento_geral(agendamento)

        with get_connection() as conn:
            conn.execute('UPDATE notificacoes_agendadas SET ultima_execucao = ? WHERE id = ?',
                         (para_sql(agora), agendamento['id']))

        logger.info("Agendamento '%s' processado (%s notificações)", agendamento['nome'], enviadas)
        processados.append({'id': agendamento['id'], 'nome': agendamento['nome'], 'enviadas': enviadas})

    return processados

# ==================== ANÚNCIOS E PUSH ====================

def enviar_anuncio(tipo: str, titulo: str, mensagem: str, metadata: dict = None,
                   remetente_id: int = None, prioridade: int = 3) -> int:
    """Anúncio em overlay para todo o ministério"""
    if tipo not in TIPOS_ANUNCIO:
        raise RegraNegocioError(f"Tipo de anúncio inválido: {tipo}")
    if not titulo or not mensagem:
        raise RegraNegocioError("Título e mensagem são obrigatórios")
    return notificar_todos(titulo, mensagem, tipo=tipo, remetente_id=remetente_id,
                           categoria='anuncio', prioridade=prioridade, metadata=metadata or {})

def enviar_push(titulo: str, mensagem: str, dados: dict = None) -> bool:
    """Repassa a notificação para o webhook de push, quando configurado"""
    if not PUSH_WEBHOOK_URL:
        return False
    payload = {'title': titulo, 'body': mensagem, 'data': dados or {}}
    try:
        resp = requests.post(PUSH_WEBHOOK_URL, json=payload, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Falha ao enviar push: %s", e)
        return False
    return True

# ==================== RENDERIZAÇÃO ====================

def render_overlay(usuario: dict):
    """Exibe o overlay pendente de maior prioridade no topo da página"""
    overlay = proximo_overlay(usuario['id'])
    if not overlay:
        return

    metadata = overlay.get('metadata') or {}
    with st.container(border=True):
        st.markdown(f"## {ICONES.get(overlay['tipo'], '📢')} {overlay['titulo']}")
        st.markdown(overlay['mensagem'].replace('\n', '  \n'))

        if overlay['tipo'] == 'service_overlay':
            for servico in metadata.get('servicos', []):
                st.markdown(f"**{servico['horario']}** · {servico['titulo']} · "
                            f"🎤 {servico.get('diretor') or '-'} · 👥 {servico.get('grupo') or '-'}")
        elif overlay['tipo'] == 'birthday_daily' and metadata.get('show_confetti'):
            st.balloons()

        if st.button("✖️ Fechar", key=f"overlay_{overlay['id']}"):
            marcar_como_lida(overlay['id'], usuario['id'])
            st.rerun()

def render_notificacao(notif: dict, usuario_id: int):
    """Renderiza uma notificação"""
    cor_fundo = '#fff3e0' if not notif['lida'] else '#f5f5f5'
    icone = ICONES.get(notif['tipo'], '🔔')

    col1, col2, col3 = st.columns([0.5, 8, 1.5])
    with col1:
        st.write(icone)
    with col2:
        st.markdown(f"""
            <div style='background: {cor_fundo}; padding: 0.5rem; border-radius: 5px;'>
                <strong>{notif['titulo']}</strong><br>
                <small>{notif['mensagem']}</small><br>
                <small style='color: #666;'>{formatar_data_br(str(notif['data_criacao']))}</small>
            </div>
        """, unsafe_allow_html=True)
    with col3:
        if not notif['lida'] and st.button("✓", key=f"ler_{notif['id']}"):
            marcar_como_lida(notif['id'], usuario_id)
            st.rerun()
        if st.button("🗑️", key=f"del_{notif['id']}"):
            excluir_notificacao(notif['id'], usuario_id)
            st.rerun()

    st.markdown("<hr style='margin: 0.3rem 0;'>", unsafe_allow_html=True)

def render_lista_notificacoes(usuario: dict):
    """Lista de notificações do usuário"""
    col1, col2, col3 = st.columns([2, 1, 1])
    with col1:
        filtro = st.radio("Filtrar", ['Todas', 'Não lidas', 'Lidas'], horizontal=True)
    with col2:
        if st.button("✓ Marcar todas como lidas"):
            marcar_todas_lidas(usuario['id'])
            st.rerun()
    with col3:
        if st.button("🧹 Limpar antigas"):
            limpar_notificacoes_antigas(usuario['id'], 30)
            st.success("Notificações antigas removidas!")
            st.rerun()

    lidas = None if filtro == 'Todas' else (filtro == 'Lidas')
    notificacoes = get_notificacoes(usuario['id'], lidas=lidas)

    if not notificacoes:
        st.info("📭 Nenhuma notificação encontrada.")
        return

    for notif in notificacoes:
        render_notificacao(notif, usuario['id'])

def render_anuncios(usuario: dict):
    """Envio de anúncios especiais"""
    with st.form("form_anuncio"):
        tipo = st.selectbox("Tipo", options=list(TIPOS_ANUNCIO.keys()),
                            format_func=lambda x: TIPOS_ANUNCIO[x])
        titulo = st.text_input("Título")
        mensagem = st.text_area("Mensagem")
        prioridade = st.slider("Prioridade", 1, 5, 3)

        if st.form_submit_button("📢 Enviar para todos", use_container_width=True):
            try:
                total = enviar_anuncio(tipo, titulo, mensagem, remetente_id=usuario['id'],
                                       prioridade=prioridade)
                st.success(f"✅ Anúncio enviado para {total} usuários")
            except ErroAgenda as e:
                st.error(str(e))

def render_agendamentos(usuario: dict):
    """Regras semanais de notificação"""
    for agendamento in get_agendamentos():
        col1, col2, col3 = st.columns([4, 2, 1])
        with col1:
            status = "🟢" if agendamento['ativo'] else "⚪"
            st.markdown(f"{status} **{agendamento['nome']}** ({agendamento['tipo']})")
        with col2:
            st.caption(f"{DIAS_SEMANA[agendamento['dia_semana']]} às {agendamento['hora']}")
        with col3:
            if st.button("🗑️", key=f"del_ag_{agendamento['id']}"):
                excluir_agendamento(agendamento['id'])
                st.rerun()

    st.markdown("---")
    with st.form("form_agendamento"):
        nome = st.text_input("Nome")
        tipo = st.selectbox("Tipo", options=TIPOS_NOTIFICACAO)
        col1, col2 = st.columns(2)
        with col1:
            dia = st.selectbox("Dia", options=list(range(7)), format_func=lambda d: DIAS_SEMANA[d])
        with col2:
            hora = st.time_input("Hora")
        titulo = st.text_input("Título da notificação")
        mensagem = st.text_area("Mensagem")

        if st.form_submit_button("💾 Salvar agendamento"):
            try:
                salvar_agendamento({
                    'nome': nome, 'tipo': tipo, 'dia_semana': dia, 'hora': hora.strftime('%H:%M'),
                    'metadata': {'titulo': titulo, 'mensagem': mensagem},
                }, usuario['id'])
                st.success("✅ Agendamento salvo!")
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

    col1, col2 = st.columns(2)
    with col1:
        if st.button("🎂 Enviar aniversários de hoje", use_container_width=True):
            st.info(f"{enviar_notificacoes_aniversario()} notificações enviadas")
    with col2:
        if st.button("⏰ Processar agendamentos agora", use_container_width=True):
            st.info(f"{len(processar_agendamentos())} agendamentos processados")

def render_notificacoes():
    """Função principal do módulo de notificações"""
    st.title("🔔 Central de Notificações")
    usuario = get_usuario_atual()

    nao_lidas = contar_nao_lidas(usuario['id'])
    if nao_lidas > 0:
        st.info(f"📬 Você tem **{nao_lidas}** notificações não lidas")

    if not tem_permissao(usuario, 'notificacoes.enviar'):
        render_lista_notificacoes(usuario)
        return

    tab1, tab2, tab3 = st.tabs(["📥 Notificações", "📢 Anúncios", "⏰ Agendamentos"])
    with tab1:
        render_lista_notificacoes(usuario)
    with tab2:
        render_anuncios(usuario)
    with tab3:
        render_agendamentos(usuario)

def render_badge_notificacoes(usuario_id: int) -> str:
    """Rótulo do menu com contagem de não lidas"""
    nao_lidas = contar_nao_lidas(usuario_id)
    if nao_lidas > 0:
        return f"🔔 Notificações ({nao_lidas})"
    return "🔔 Notificações"
