"""
Semáforo de repetição de canções
Verde, amarelo ou vermelho conforme o histórico do diretor
"""
import logging
import sqlite3
from dataclasses import dataclass
from database.db import get_connection, para_sql, ler_data_hora

logger = logging.getLogger(__name__)

VERDE = 'green'
AMARELO = 'yellow'
VERMELHO = 'red'

# Participações anteriores consideradas para a sequência
PARTICIPACOES_ANALISADAS = 3

REGRAS_SEMAFORO = {
    'titulo': 'Semáforo de Repetição de Canções',
    'descricao': 'Ajuda a manter a variedade do repertório, evitando que os diretores '
                 'repitam as mesmas canções constantemente.',
    'regras': [
        {
            'cor': VERDE,
            'emoji': '🟢',
            'titulo': 'Verde - Liberada',
            'condicao': 'A canção não foi selecionada por você nas últimas 3 participações.',
            'acao': 'Pode selecionar sem restrições.',
        },
        {
            'cor': AMARELO,
            'emoji': '🟡',
            'titulo': 'Amarelo - Atenção',
            'condicao': 'A canção foi selecionada na sua participação anterior, ou já está '
                        'escolhida para outro serviço do mesmo dia (08:00 ou 10:45).',
            'acao': 'Pode continuar, mas considere variar ou combinar com o outro diretor.',
        },
        {
            'cor': VERMELHO,
            'emoji': '🔴',
            'titulo': 'Vermelho - Repetição excessiva',
            'condicao': 'Você selecionou a canção nas suas 2 últimas participações seguidas. '
                        'Esta seria a terceira.',
            'acao': 'A seleção precisa ser confirmada explicitamente.',
        },
    ],
    'criterios': [
        {'titulo': 'Por serviço', 'descricao': 'Evita a mesma canção nos dois serviços do mesmo domingo.'},
        {'titulo': 'Por diretor', 'descricao': 'Analisa o histórico pessoal de cada diretor de louvor.'},
        {'titulo': 'Por data', 'descricao': 'A ordem das datas define a sequência de uso consecutivo.'},
    ],
}

@dataclass
class ResultadoSemaforo:
    cor: str
    mensagem: str
    detalhes: str
    repeticoes_consecutivas: int = 0
    mesmo_dia: bool = False
    pode_prosseguir: bool = True

    @property
    def emoji(self) -> str:
        return {VERDE: '🟢', AMARELO: '🟡', VERMELHO: '🔴'}[self.cor]

def resultado_verde() -> ResultadoSemaforo:
    return ResultadoSemaforo(
        cor=VERDE,
        mensagem='✅ Canção disponível',
        detalhes='Esta canção não foi selecionada nas suas últimas 3 participações. Pode seguir!',
    )

def classificar_repeticao(repeticoes_consecutivas: int, selecoes_mesmo_dia: list = None) -> ResultadoSemaforo:
    """Classifica a seleção.

    selecoes_mesmo_dia: seleções da mesma canção em outros serviços da mesma data,
    cada uma com 'diretor_nome' e 'titulo' do serviço.
    """
    if selecoes_mesmo_dia:
        outra = selecoes_mesmo_dia[0]
        diretor = outra.get('diretor_nome') or 'Outro diretor'
        servico = outra.get('titulo') or 'outro serviço'
        return ResultadoSemaforo(
            cor=AMARELO,
            mensagem='⚠️ Canção já selecionada hoje',
            detalhes=f'Esta canção já foi selecionada por {diretor} para "{servico}" no mesmo dia. '
                     'Considere se deseja tê-la nos dois serviços.',
            mesmo_dia=True,
        )

    if repeticoes_consecutivas == 1:
        return ResultadoSemaforo(
            cor=AMARELO,
            mensagem='⚠️ Usada recentemente',
            detalhes='Esta canção foi selecionada na sua participação anterior. Considere variar o repertório.',
            repeticoes_consecutivas=1,
        )

    if repeticoes_consecutivas >= 2:
        return ResultadoSemaforo(
            cor=VERMELHO,
            mensagem='🛑 Repetição excessiva',
            detalhes=f'Você selecionou esta canção nas suas últimas {repeticoes_consecutivas} participações. '
                     f'Esta seria a {repeticoes_consecutivas + 1}ª vez seguida. Deseja continuar mesmo assim?',
            repeticoes_consecutivas=repeticoes_consecutivas,
            pode_prosseguir=False,
        )

    return resultado_verde()

def contar_repeticoes_consecutivas(servicos_anteriores: list, servicos_com_cancao) -> int:
    """Conta a sequência de uso a partir do serviço mais recente.

    servicos_anteriores: IDs dos serviços do diretor, do mais recente para o mais antigo.
    servicos_com_cancao: IDs dos serviços em que o diretor escolheu a canção.
    """
    usados = set(servicos_com_cancao)
    contagem = 0
    for servico_id in servicos_anteriores[:PARTICIPACOES_ANALISADAS]:
        if servico_id not in usados:
            break
        contagem += 1
    return contagem

def verificar_repeticao_cancao(cancao_id: int, diretor_id: int, servico_id: int,
                               data_servico) -> ResultadoSemaforo:
    """Consulta o histórico e classifica; erros de banco liberam a seleção"""
    momento = ler_data_hora(data_servico)

    try:
        with get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                SELECT sc.servico_id
                FROM selecoes_cancoes sc
                WHERE sc.diretor_id = ? AND sc.cancao_id = ?
                ORDER BY sc.data_cadastro DESC, sc.id DESC
                LIMIT 10
            ''', (diretor_id, cancao_id))
            servicos_com_cancao = [row['servico_id'] for row in cursor.fetchall()]

            cursor.execute('''
                SELECT s.titulo, i.nomes || ' ' || i.sobrenomes as diretor_nome
                FROM selecoes_cancoes sc
                JOIN servicos s ON sc.servico_id = s.id
                LEFT JOIN integrantes i ON sc.diretor_id = i.id
                WHERE sc.cancao_id = ? AND sc.servico_id != ?
                  AND date(s.data_servico) = ?
                ORDER BY sc.data_cadastro
            ''', (cancao_id, servico_id, para_sql(momento.date())))
            mesmo_dia = [dict(row) for row in cursor.fetchall()]

            cursor.execute('''
                SELECT id FROM servicos
                WHERE diretor_id = ? AND data_servico < ?
                ORDER BY data_servico DESC
                LIMIT 5
            ''', (diretor_id, para_sql(momento)))
            servicos_anteriores = [row['id'] for row in cursor.fetchall()]
    except sqlite3.Error:
        logger.exception("Erro ao verificar repetição da canção %s", cancao_id)
        return resultado_verde()

    repeticoes = contar_repeticoes_consecutivas(servicos_anteriores, servicos_com_cancao)
    return classificar_repeticao(repeticoes, mesmo_dia)
