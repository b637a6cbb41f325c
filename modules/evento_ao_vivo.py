"""
Módulo de Eventos Especiais e Modo Ao Vivo
Programação dos eventos e cronômetro de execução
"""
import base64
import logging
import time
import streamlit as st
import qrcode
from io import BytesIO
from datetime import datetime, date
from database.db import get_connection, para_sql, ler_data_hora
from modules.auth import get_usuario_atual, tem_permissao, registrar_log
from modules.excecoes import ErroAgenda, RegraNegocioError, RegistroNaoEncontrado
from config.settings import LOCAL_PADRAO, formatar_data_br, formatar_tempo

logger = logging.getLogger(__name__)

TIPOS_EVENTO = ['Culto especial', 'Conferência', 'Vigília', 'Concerto', 'Santa Ceia', 'Batismo', 'Outro']

# ==================== CRONÔMETRO ====================

class CronometroEvento:
    """Cronômetro do modo ao vivo.

    O tempo vem de um relógio monotônico injetável: enquanto a seção corre, o
    decorrido é o acumulado mais o intervalo desde a última retomada.
    """

    def __init__(self, itens: list, relogio=time.monotonic, agora=datetime.now):
        self.itens = list(itens)
        self._relogio = relogio
        self._agora = agora
        self.reiniciar()

    def reiniciar(self):
        self.rodando = False
        self.pausado = False
        self.em_preparacao = False
        self.indice_atual = 0
        self.itens_concluidos = []
        self.tempos_reais = {}
        self.inicio_evento = None
        self.fim_evento = None
        self._decorrido = 0.0
        self._preparacao = 0.0
        self._marca = None

    # --- contagem ---

    def _contando(self) -> bool:
        return self.rodando and not self.pausado

    def _consolidar(self):
        if self._marca is None:
            return
        intervalo = self._relogio() - self._marca
        if self.em_preparacao:
            self._preparacao += intervalo
        else:
            self._decorrido += intervalo
        self._marca = None

    def _retomar(self):
        self._marca = self._relogio() if self._contando() else None

    @property
    def segundos_decorridos(self) -> int:
        extra = 0.0
        if self._marca is not None and not self.em_preparacao:
            extra = self._relogio() - self._marca
        return int(self._decorrido + extra)

    @property
    def segundos_preparacao(self) -> int:
        extra = 0.0
        if self._marca is not None and self.em_preparacao:
            extra = self._relogio() - self._marca
        return int(self._preparacao + extra)

    # --- transições ---

    def iniciar(self):
        if self.rodando and not self.pausado:
            return
        self._consolidar()
        self.rodando = True
        self.pausado = False
        self.em_preparacao = False
        self._preparacao = 0.0
        if self.inicio_evento is None:
            self.inicio_evento = self._agora()
        self._retomar()

    def parar_secao(self):
        item = self.item_atual
        if not self.rodando or item is None:
            return
        self._consolidar()
        self.tempos_reais[item['id']] = int(self._decorrido)
        if item['id'] not in self.itens_concluidos:
            self.itens_concluidos.append(item['id'])
        self.em_preparacao = True
        self._preparacao = 0.0
        self._retomar()

    def proxima_secao(self):
        self._consolidar()
        if self.indice_atual + 1 >= len(self.itens):
            self.rodando = False
            self.pausado = False
            self.em_preparacao = False
            self.fim_evento = self._agora()
            return
        self.indice_atual += 1
        self._decorrido = 0.0
        self._preparacao = 0.0
        self.em_preparacao = False
        self.rodando = False

    def pular_para(self, indice: int):
        if indice < 0 or indice >= len(self.itens):
            return
        self._consolidar()
        self.indice_atual = indice
        self._decorrido = 0.0
        self._preparacao = 0.0
        self.em_preparacao = False
        self.rodando = False
        self.pausado = False

    def restaurar_secao(self, item_id):
        """Reabre uma seção concluída mantendo o tempo já medido"""
        indice = next((i for i, item in enumerate(self.itens) if item['id'] == item_id), None)
        if indice is None:
            return
        self._consolidar()
        self.indice_atual = indice
        self._decorrido = float(self.tempos_reais.pop(item_id, 0))
        self._preparacao = 0.0
        self.itens_concluidos = [i for i in self.itens_concluidos if i != item_id]
        self.em_preparacao = False
        self.rodando = False
        self.pausado = False

    def alternar_pausa(self):
        self._consolidar()
        self.pausado = not self.pausado
        self._retomar()

    # --- derivados ---

    @property
    def item_atual(self) -> dict | None:
        if 0 <= self.indice_atual < len(self.itens):
            return self.itens[self.indice_atual]
        return None

    @property
    def segundos_planejados(self) -> int:
        item = self.item_atual
        return int(item.get('duracao_minutos') or 0) * 60 if item else 0

    @property
    def tempo_restante(self) -> int:
        return abs(self.segundos_planejados - self.segundos_decorridos)

    @property
    def em_hora_extra(self) -> bool:
        return self.segundos_planejados - self.segundos_decorridos < 0

    @property
    def itens_pendentes(self) -> list:
        return [item for item in self.itens if item['id'] not in self.itens_concluidos]

    @property
    def finalizado(self) -> bool:
        return self.fim_evento is not None

    @property
    def progresso(self) -> float:
        if not self.itens:
            return 0.0
        return len(self.itens_concluidos) / len(self.itens)

    def estatisticas(self) -> dict:
        total_planejado = sum(int(item.get('duracao_minutos') or 0) * 60 for item in self.itens)
        total_real = sum(self.tempos_reais.values())
        diferenca = total_real - total_planejado

        itens = []
        for item in self.itens:
            planejado = int(item.get('duracao_minutos') or 0) * 60
            real = self.tempos_reais.get(item['id'], 0)
            itens.append({
                'id': item['id'],
                'titulo': item.get('titulo'),
                'planejado': planejado,
                'real': real,
                'diferenca': real - planejado,
                'concluido': item['id'] in self.itens_concluidos,
            })

        return {
            'total_planejado': total_planejado,
            'total_real': total_real,
            'diferenca': abs(diferenca),
            'adiantado': diferenca < 0,
            'itens': itens,
            'inicio_evento': self.inicio_evento,
            'fim_evento': self.fim_evento,
        }

# ==================== FUNÇÕES DE DADOS ====================

def gerar_qrcode(dados: str) -> str:
    """Gera QR Code e retorna como base64"""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(dados)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    img_str = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"

def get_eventos_especiais(filtro: str = 'todos', hoje: date = None) -> list:
    """Eventos especiais com a quantidade de itens do programa"""
    query = '''
        SELECT e.*,
               (SELECT COUNT(*) FROM programa_evento p WHERE p.evento_id = e.id) as total_itens,
               (SELECT COALESCE(SUM(duracao_minutos), 0) FROM programa_evento p WHERE p.evento_id = e.id) as duracao_total
        FROM eventos_especiais e
    '''
    params = []
    hoje = hoje or date.today()
    if filtro == 'proximos':
        query += ' WHERE date(e.data_evento) >= ? ORDER BY e.data_evento'
        params.append(para_sql(hoje))
    elif filtro == 'passados':
        query += ' WHERE date(e.data_evento) < ? ORDER BY e.data_evento DESC'
        params.append(para_sql(hoje))
    else:
        query += ' ORDER BY e.data_evento DESC'

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]

def get_evento_especial(evento_id: int) -> dict | None:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM eventos_especiais WHERE id = ?', (evento_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

def salvar_evento_especial(dados: dict, usuario_id: int = None) -> int:
    """Salva ou atualiza um evento especial"""
    if not (dados.get('titulo') or '').strip():
        raise RegraNegocioError("Título do evento é obrigatório")
    if not dados.get('data_evento'):
        raise RegraNegocioError("Data do evento é obrigatória")

    valores = (dados['titulo'].strip(), para_sql(dados['data_evento']), dados.get('tipo'),
               dados.get('local') or LOCAL_PADRAO, dados.get('descricao'))

    with get_connection() as conn:
        cursor = conn.cursor()
        if dados.get('id'):
            cursor.execute('''
                UPDATE eventos_especiais SET titulo = ?, data_evento = ?, tipo = ?, local = ?, descricao = ?
                WHERE id = ?
            ''', (*valores, dados['id']))
            if cursor.rowcount == 0:
                raise RegistroNaoEncontrado(f"Evento {dados['id']} não encontrado")
            evento_id = dados['id']
        else:
            cursor.execute('''
                INSERT INTO eventos_especiais (titulo, data_evento, tipo, local, descricao, criado_por)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (*valores, usuario_id))
            evento_id = cursor.lastrowid

    registrar_log(usuario_id, 'evento.salvar', f"Evento {evento_id}: {dados['titulo']}")
    return evento_id

def excluir_evento_especial(evento_id: int, usuario_id: int = None):
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('DELETE FROM eventos_especiais WHERE id = ?', (evento_id,))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Evento {evento_id} não encontrado")
    registrar_log(usuario_id, 'evento.excluir', f"Evento {evento_id}")

def get_programa(evento_id: int) -> list:
    """Itens do programa na ordem de execução"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT * FROM programa_evento
            WHERE evento_id = ?
            ORDER BY ordem, id
        ''', (evento_id,))
        return [dict(row) for row in cursor.fetchall()]

def salvar_item_programa(dados: dict) -> int:
    """Salva um item; novos itens entram no fim do programa"""
    if not (dados.get('titulo') or '').strip():
        raise RegraNegocioError("Título do item é obrigatório")
    duracao = int(dados.get('duracao_minutos') or 0)
    if duracao < 0:
        raise RegraNegocioError("A duração não pode ser negativa")

    with get_connection() as conn:
        cursor = conn.cursor()
        if dados.get('id'):
            cursor.execute('''
                UPDATE programa_evento
                SET titulo = ?, descricao = ?, duracao_minutos = ?, horario = ?, responsavel = ?, notas = ?
                WHERE id = ?
            ''', (dados['titulo'].strip(), dados.get('descricao'), duracao, dados.get('horario'),
                  dados.get('responsavel'), dados.get('notas'), dados['id']))
            if cursor.rowcount == 0:
                raise RegistroNaoEncontrado(f"Item {dados['id']} não encontrado")
            return dados['id']

        cursor.execute('SELECT COALESCE(MAX(ordem), 0) + 1 FROM programa_evento WHERE evento_id = ?',
                       (dados['evento_id'],))
        ordem = cursor.fetchone()[0]
        cursor.execute('''
            INSERT INTO programa_evento (evento_id, titulo, descricao, duracao_minutos, horario,
                                         responsavel, ordem, notas)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (dados['evento_id'], dados['titulo'].strip(), dados.get('descricao'), duracao,
              dados.get('horario'), dados.get('responsavel'), ordem, dados.get('notas')))
        return cursor.lastrowid

def reordenar_programa(evento_id: int, ids_em_ordem: list):
    """Regrava a ordem dos itens conforme a lista de IDs"""
    atuais = {item['id'] for item in get_programa(evento_id)}
    if set(ids_em_ordem) != atuais:
        raise RegraNegocioError("A nova ordem deve conter exatamente os itens do programa")
    with get_connection() as conn:
        conn.executemany('UPDATE programa_evento SET ordem = ? WHERE id = ?',
                         [(posicao, item_id) for posicao, item_id in enumerate(ids_em_ordem, start=1)])

def mover_item_programa(evento_id: int, item_id: int, deslocamento: int):
    ids = [item['id'] for item in get_programa(evento_id)]
    origem = ids.index(item_id)
    destino = min(max(origem + deslocamento, 0), len(ids) - 1)
    ids.insert(destino, ids.pop(origem))
    reordenar_programa(evento_id, ids)

def excluir_item_programa(item_id: int):
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('DELETE FROM programa_evento WHERE id = ?', (item_id,))
        if cursor.rowcount == 0:
            raise RegistroNaoEncontrado(f"Item {item_id} não encontrado")

def texto_programa(evento: dict, programa: list) -> str:
    """Resumo do programa para compartilhar"""
    linhas = [f"{evento['titulo']} · {formatar_data_br(evento['data_evento'])}"]
    for item in programa:
        horario = f"{item['horario']} " if item.get('horario') else ""
        linhas.append(f"{horario}{item['titulo']} ({item['duracao_minutos']} min)")
    return "\n".join(linhas)

# ==================== RENDERIZAÇÃO ====================

def render_programacao(evento: dict, usuario: dict):
    """Edição do programa do evento"""
    programa = get_programa(evento['id'])
    pode_editar = tem_permissao(usuario, 'eventos.editar')

    total = sum(item['duracao_minutos'] for item in programa)
    st.caption(f"{len(programa)} itens · duração prevista {formatar_tempo(total * 60)}")

    for item in programa:
        col1, col2 = st.columns([6, 1])
        with col1:
            horario = f"🕐 {item['horario']} · " if item.get('horario') else ""
            st.markdown(f"**{item['ordem']}. {item['titulo']}**  \n"
                        f"<small>{horario}⏱️ {item['duracao_minutos']} min"
                        f"{' · 👤 ' + item['responsavel'] if item.get('responsavel') else ''}</small>",
                        unsafe_allow_html=True)
        with col2:
            if pode_editar:
                if st.button("⬆️", key=f"up_{item['id']}"):
                    mover_item_programa(evento['id'], item['id'], -1)
                    st.rerun()
                if st.button("🗑️", key=f"del_item_{item['id']}"):
                    excluir_item_programa(item['id'])
                    st.rerun()

    if programa:
        with st.expander("📱 Compartilhar programa"):
            st.image(gerar_qrcode(texto_programa(evento, programa)), width=200)

    if not pode_editar:
        return
    with st.form(f"form_item_{evento['id']}"):
        col1, col2, col3 = st.columns([3, 1, 1])
        with col1:
            titulo = st.text_input("Item *")
        with col2:
            duracao = st.number_input("Minutos", min_value=0, value=5)
        with col3:
            horario = st.text_input("Horário", placeholder="19:00")
        responsavel = st.text_input("Responsável")
        notas = st.text_input("Notas")
        if st.form_submit_button("➕ Adicionar"):
            try:
                salvar_item_programa({'evento_id': evento['id'], 'titulo': titulo, 'duracao_minutos': duracao,
                                      'horario': horario or None, 'responsavel': responsavel or None,
                                      'notas': notas or None})
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

def _cronometro_da_sessao(evento_id: int, programa: list) -> CronometroEvento:
    chave = f"cronometro_{evento_id}"
    cronometro = st.session_state.get(chave)
    if cronometro is None or [i['id'] for i in cronometro.itens] != [i['id'] for i in programa]:
        cronometro = CronometroEvento(programa)
        st.session_state[chave] = cronometro
    return cronometro

def render_ao_vivo(evento: dict):
    """Painel do modo ao vivo"""
    programa = get_programa(evento['id'])
    if not programa:
        st.info("Monte o programa antes de iniciar o modo ao vivo.")
        return

    cronometro = _cronometro_da_sessao(evento['id'], programa)
    st.progress(cronometro.progresso, text=f"{len(cronometro.itens_concluidos)}/{len(programa)} concluídos")

    if cronometro.finalizado:
        render_estatisticas(cronometro)
        if st.button("🔄 Reiniciar evento"):
            cronometro.reiniciar()
            st.rerun()
        return

    item = cronometro.item_atual
    cor = "#e74c3c" if cronometro.em_hora_extra else "#27ae60"
    sinal = "+" if cronometro.em_hora_extra else ""
    st.markdown(f"""
        <div style='text-align: center; padding: 1.5rem; border-radius: 12px; background: #1e1e2e;'>
            <div style='color: #bbb;'>{item['titulo']}{' · ' + item['responsavel'] if item.get('responsavel') else ''}</div>
            <div style='font-size: 4rem; font-weight: bold; color: {cor};'>{sinal}{formatar_tempo(cronometro.tempo_restante)}</div>
            <div style='color: #888;'>Decorrido {formatar_tempo(cronometro.segundos_decorridos)}
                de {formatar_tempo(cronometro.segundos_planejados)}</div>
        </div>
    """, unsafe_allow_html=True)

    if cronometro.em_preparacao:
        st.info(f"⏳ Preparação: {formatar_tempo(cronometro.segundos_preparacao)}")
    if cronometro.pausado:
        st.warning("⏸️ Pausado")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        if st.button("▶️ Iniciar", use_container_width=True):
            cronometro.iniciar()
            st.rerun()
    with col2:
        if st.button("⏹️ Parar seção", use_container_width=True):
            cronometro.parar_secao()
            st.rerun()
    with col3:
        if st.button("⏭️ Próxima", use_container_width=True):
            cronometro.proxima_secao()
            st.rerun()
    with col4:
        if st.button("⏯️ Pausa", use_container_width=True):
            cronometro.alternar_pausa()
            st.rerun()

    pendentes = cronometro.itens_pendentes
    if pendentes:
        destino = st.selectbox("Pular para", options=pendentes, format_func=lambda i: i['titulo'])
        if st.button("↪️ Ir"):
            cronometro.pular_para(programa.index(destino))
            st.rerun()

    concluidos = [i for i in programa if i['id'] in cronometro.itens_concluidos]
    if concluidos:
        with st.expander("✅ Concluídos"):
            for concluido in concluidos:
                col1, col2 = st.columns([5, 1])
                with col1:
                    st.write(f"{concluido['titulo']} · {formatar_tempo(cronometro.tempos_reais.get(concluido['id'], 0))}")
                with col2:
                    if st.button("↩️", key=f"rest_{concluido['id']}"):
                        cronometro.restaurar_secao(concluido['id'])
                        st.rerun()

    if cronometro.rodando and not cronometro.pausado and st.toggle("Atualizar a cada segundo", value=True):
        time.sleep(1)
        st.rerun()

def render_estatisticas(cronometro: CronometroEvento):
    stats = cronometro.estatisticas()
    st.success("🏁 Evento finalizado!")
    col1, col2, col3 = st.columns(3)
    col1.metric("Planejado", formatar_tempo(stats['total_planejado']))
    col2.metric("Real", formatar_tempo(stats['total_real']))
    col3.metric("Adiantado" if stats['adiantado'] else "Atrasado", formatar_tempo(stats['diferenca']))

    for item in stats['itens']:
        sinal = "+" if item['diferenca'] > 0 else "-"
        st.caption(f"{'✅' if item['concluido'] else '⬜'} {item['titulo']}: "
                   f"{formatar_tempo(item['real'])} / {formatar_tempo(item['planejado'])} "
                   f"({sinal}{formatar_tempo(abs(item['diferenca']))})")

def render_novo_evento(usuario: dict):
    with st.form("form_evento_especial"):
        titulo = st.text_input("Título *")
        col1, col2, col3 = st.columns(3)
        with col1:
            data_evento = st.date_input("Data", format="DD/MM/YYYY")
        with col2:
            hora = st.time_input("Hora")
        with col3:
            tipo = st.selectbox("Tipo", options=TIPOS_EVENTO)
        local = st.text_input("Local", value=LOCAL_PADRAO)
        descricao = st.text_area("Descrição")
        if st.form_submit_button("💾 Criar evento", use_container_width=True):
            try:
                salvar_evento_especial({'titulo': titulo, 'data_evento': datetime.combine(data_evento, hora),
                                        'tipo': tipo, 'local': local, 'descricao': descricao}, usuario['id'])
                st.success("✅ Evento criado!")
                st.rerun()
            except ErroAgenda as e:
                st.error(str(e))

def render_evento_ao_vivo():
    """Função principal do módulo de eventos especiais"""
    st.title("🎬 Eventos Especiais")
    usuario = get_usuario_atual()

    eventos = get_eventos_especiais()
    col1, col2 = st.columns([3, 1])
    with col2:
        if tem_permissao(usuario, 'eventos.editar'):
            with st.popover("➕ Novo evento"):
                render_novo_evento(usuario)
    if not eventos:
        st.info("Nenhum evento especial cadastrado.")
        return
    with col1:
        evento = st.selectbox("Evento", options=eventos,
                              format_func=lambda e: f"{formatar_data_br(e['data_evento'])} · {e['titulo']}")

    inicio = ler_data_hora(evento['data_evento'])
    st.caption(f"📍 {evento.get('local') or LOCAL_PADRAO} · 🕐 {inicio.strftime('%H:%M')} · "
               f"{evento['total_itens']} itens")

    tab1, tab2 = st.tabs(["📋 Programação", "🔴 Ao Vivo"])
    with tab1:
        render_programacao(evento, usuario)
    with tab2:
        render_ao_vivo(evento)
