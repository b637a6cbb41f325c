"""
Configuração e gerenciamento do banco de dados SQLite
"""
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, date
import bcrypt
from cryptography.fernet import Fernet, InvalidToken
import base64
import hashlib

from config.settings import DATABASE_PATH, SECRET_KEY

logger = logging.getLogger(__name__)

def get_encryption_key():
    """Gera chave de criptografia baseada na SECRET_KEY"""
    key = hashlib.sha256(SECRET_KEY.encode()).digest()
    return base64.urlsafe_b64encode(key)

FERNET = Fernet(get_encryption_key())

def encrypt_data(data: str) -> str:
    """Criptografa dados sensíveis"""
    if not data:
        return data
    return FERNET.encrypt(data.encode()).decode()

def decrypt_data(data: str) -> str:
    """Descriptografa dados sensíveis"""
    if not data:
        return data
    try:
        return FERNET.decrypt(data.encode()).decode()
    except InvalidToken:
        # Registros antigos gravados sem criptografia
        return data

def para_sql(valor):
    """Converte date/datetime para o texto ISO gravado no SQLite"""
    if isinstance(valor, datetime):
        return valor.isoformat(sep=' ', timespec='seconds')
    if isinstance(valor, date):
        return valor.isoformat()
    return valor

def ler_data(valor) -> date | None:
    """Converte o texto do SQLite em date"""
    if valor is None or valor == '':
        return None
    if isinstance(valor, datetime):
        return valor.date()
    if isinstance(valor, date):
        return valor
    return date.fromisoformat(str(valor)[:10])

def ler_data_hora(valor) -> datetime | None:
    """Converte o texto do SQLite em datetime"""
    if valor is None or valor == '':
        return None
    if isinstance(valor, datetime):
        return valor
    if isinstance(valor, date):
        return datetime.combine(valor, datetime.min.time())
    return datetime.fromisoformat(str(valor).replace('T', ' '))

@contextmanager
def get_connection():
    """Context manager para conexão com o banco"""
    conn = sqlite3.connect(DATABASE_PATH, timeout=30.0, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # WAL para leituras concorrentes entre sessões do Streamlit
    conn.execute('PRAGMA journal_mode=WAL')
    conn.execute('PRAGMA busy_timeout=30000')
    conn.execute('PRAGMA foreign_keys=ON')
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

def init_database():
    """Inicializa o banco de dados com todas as tabelas"""
    with get_connection() as conn:
        cursor = conn.cursor()

        # ========================================
        # AUTENTICAÇÃO E CONTROLE
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS integrantes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                nomes TEXT NOT NULL,
                sobrenomes TEXT NOT NULL,
                cargo TEXT NOT NULL DEFAULT 'corista',
                grupo TEXT,
                voz_instrumento TEXT,
                celular TEXT,
                telefone TEXT,
                email TEXT,
                endereco TEXT,
                data_nascimento DATE,
                tipo_sangue TEXT,
                contato_emergencia_cripto TEXT,
                referencias_cripto TEXT,
                pessoa_reporte TEXT,
                foto_url TEXT,
                ativo INTEGER DEFAULT 1,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                data_atualizacao TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS usuarios (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                nome TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                senha_hash TEXT NOT NULL,
                perfil TEXT NOT NULL DEFAULT 'membro',
                integrante_id INTEGER,
                aprovado INTEGER DEFAULT 0,
                aprovado_por INTEGER,
                ativo INTEGER DEFAULT 1,
                ultimo_acesso TIMESTAMP,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (integrante_id) REFERENCES integrantes(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS logs_acesso (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                usuario_id INTEGER,
                acao TEXT NOT NULL,
                detalhes TEXT,
                ip TEXT,
                data_hora TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # ========================================
        # LICENÇAS DE INTEGRANTES
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS licencas (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                integrante_id INTEGER NOT NULL,
                tipo TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pendente',
                motivo TEXT,
                motivo_visivel INTEGER DEFAULT 0,
                data_inicio DATE NOT NULL,
                data_fim DATE,
                indefinida INTEGER DEFAULT 0,
                solicitada_por INTEGER,
                aprovada_por INTEGER,
                data_aprovacao TIMESTAMP,
                motivo_rejeicao TEXT,
                notas TEXT,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                data_atualizacao TIMESTAMP,
                FOREIGN KEY (integrante_id) REFERENCES integrantes(id)
            )
        ''')

        # ========================================
        # GRUPOS DE LOUVOR
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS grupos_louvor (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                nome TEXT NOT NULL UNIQUE,
                descricao TEXT,
                cor TEXT DEFAULT '#3498db',
                ativo INTEGER DEFAULT 1,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS grupo_integrantes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                grupo_id INTEGER NOT NULL,
                integrante_id INTEGER NOT NULL,
                instrumento TEXT NOT NULL DEFAULT 'vocals',
                is_lider INTEGER DEFAULT 0,
                ordem_microfone INTEGER,
                ativo INTEGER DEFAULT 1,
                data_entrada DATE,
                notas TEXT,
                UNIQUE (grupo_id, integrante_id, instrumento),
                FOREIGN KEY (grupo_id) REFERENCES grupos_louvor(id),
                FOREIGN KEY (integrante_id) REFERENCES integrantes(id)
            )
        ''')

        # ========================================
        # AGENDA MINISTERIAL
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS servicos (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                titulo TEXT NOT NULL,
                data_servico TIMESTAMP NOT NULL,
                tipo TEXT DEFAULT 'regular',
                diretor_id INTEGER,
                grupo_id INTEGER,
                local TEXT,
                mes_nome TEXT,
                mes_ordem INTEGER,
                atividade_especial TEXT,
                intervalos_coro TEXT,
                descricao TEXT,
                notas TEXT,
                confirmado INTEGER DEFAULT 0,
                criado_por INTEGER,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                data_atualizacao TIMESTAMP,
                FOREIGN KEY (diretor_id) REFERENCES integrantes(id),
                FOREIGN KEY (grupo_id) REFERENCES grupos_louvor(id)
            )
        ''')

        # ========================================
        # REPERTÓRIO
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS cancoes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                titulo TEXT NOT NULL,
                artista TEXT,
                tonalidade TEXT,
                tempo TEXT,
                genero TEXT,
                tema TEXT,
                letra TEXT,
                acordes TEXT,
                youtube_link TEXT,
                spotify_link TEXT,
                partitura_url TEXT,
                dificuldade INTEGER,
                tags TEXT,
                notas_diretor TEXT,
                uso_total INTEGER DEFAULT 0,
                ultimo_uso DATE,
                ativo INTEGER DEFAULT 1,
                criado_por INTEGER,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS selecoes_cancoes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                servico_id INTEGER NOT NULL,
                cancao_id INTEGER NOT NULL,
                diretor_id INTEGER NOT NULL,
                motivo TEXT,
                cor_semaforo TEXT,
                notificacao_enviada INTEGER DEFAULT 0,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (servico_id, cancao_id),
                FOREIGN KEY (servico_id) REFERENCES servicos(id) ON DELETE CASCADE,
                FOREIGN KEY (cancao_id) REFERENCES cancoes(id),
                FOREIGN KEY (diretor_id) REFERENCES integrantes(id)
            )
        ''')

        # ========================================
        # SUBSTITUIÇÃO DE DIRETOR
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS solicitacoes_substituicao (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                servico_id INTEGER NOT NULL,
                diretor_original_id INTEGER NOT NULL,
                diretor_substituto_id INTEGER NOT NULL,
                motivo TEXT,
                status TEXT NOT NULL DEFAULT 'pendente',
                solicitada_em TIMESTAMP NOT NULL,
                expira_em TIMESTAMP NOT NULL,
                respondida_em TIMESTAMP,
                notas TEXT,
                FOREIGN KEY (servico_id) REFERENCES servicos(id) ON DELETE CASCADE,
                FOREIGN KEY (diretor_original_id) REFERENCES integrantes(id),
                FOREIGN KEY (diretor_substituto_id) REFERENCES integrantes(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS historico_substituicoes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                servico_id INTEGER NOT NULL,
                solicitacao_id INTEGER,
                diretor_original_id INTEGER NOT NULL,
                diretor_substituto_id INTEGER NOT NULL,
                motivo TEXT,
                data_substituicao TIMESTAMP NOT NULL,
                FOREIGN KEY (servico_id) REFERENCES servicos(id) ON DELETE CASCADE
            )
        ''')

        # ========================================
        # NOTIFICAÇÕES
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS notificacoes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tipo TEXT NOT NULL DEFAULT 'general',
                titulo TEXT NOT NULL,
                mensagem TEXT NOT NULL,
                destinatario_id INTEGER,
                remetente_id INTEGER,
                categoria TEXT,
                prioridade INTEGER DEFAULT 1,
                metadata TEXT,
                agendada_para TIMESTAMP,
                lida INTEGER DEFAULT 0,
                data_leitura TIMESTAMP,
                data_criacao TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (destinatario_id) REFERENCES usuarios(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS notificacoes_agendadas (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                nome TEXT NOT NULL,
                tipo TEXT NOT NULL,
                dia_semana INTEGER NOT NULL,
                hora TEXT NOT NULL,
                publico TEXT DEFAULT 'todos',
                descricao TEXT,
                metadata TEXT,
                ativo INTEGER DEFAULT 1,
                ultima_execucao TIMESTAMP,
                criado_por INTEGER,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # ========================================
        # COMUNICAÇÃO
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS salas_chat (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                nome TEXT NOT NULL,
                descricao TEXT,
                tipo TEXT NOT NULL DEFAULT 'geral',
                departamento TEXT,
                moderada INTEGER DEFAULT 0,
                moderador_id INTEGER,
                ativo INTEGER DEFAULT 1,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sala_membros (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sala_id INTEGER NOT NULL,
                usuario_id INTEGER NOT NULL,
                papel TEXT DEFAULT 'membro',
                data_entrada TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (sala_id, usuario_id),
                FOREIGN KEY (sala_id) REFERENCES salas_chat(id) ON DELETE CASCADE,
                FOREIGN KEY (usuario_id) REFERENCES usuarios(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS mensagens_chat (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sala_id INTEGER NOT NULL,
                usuario_id INTEGER,
                mensagem TEXT NOT NULL,
                tipo TEXT DEFAULT 'texto',
                excluida INTEGER DEFAULT 0,
                data_envio TIMESTAMP NOT NULL,
                FOREIGN KEY (sala_id) REFERENCES salas_chat(id) ON DELETE CASCADE
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS mensagens_diretas (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                remetente_id INTEGER NOT NULL,
                destinatario_id INTEGER NOT NULL,
                mensagem TEXT NOT NULL,
                lida INTEGER DEFAULT 0,
                data_envio TIMESTAMP NOT NULL,
                FOREIGN KEY (remetente_id) REFERENCES usuarios(id),
                FOREIGN KEY (destinatario_id) REFERENCES usuarios(id)
            )
        ''')

        # ========================================
        # EVENTOS ESPECIAIS
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS eventos_especiais (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                titulo TEXT NOT NULL,
                data_evento TIMESTAMP NOT NULL,
                tipo TEXT,
                local TEXT,
                descricao TEXT,
                criado_por INTEGER,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS programa_evento (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                evento_id INTEGER NOT NULL,
                titulo TEXT NOT NULL,
                descricao TEXT,
                duracao_minutos INTEGER DEFAULT 0,
                horario TEXT,
                responsavel TEXT,
                ordem INTEGER DEFAULT 0,
                notas TEXT,
                FOREIGN KEY (evento_id) REFERENCES eventos_especiais(id) ON DELETE CASCADE
            )
        ''')

        # ========================================
        # VERSÍCULOS
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS versiculos (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                referencia TEXT NOT NULL UNIQUE,
                texto TEXT NOT NULL,
                traducao TEXT,
                tema TEXT,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS versiculos_diarios (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                data DATE NOT NULL UNIQUE,
                versiculo_id INTEGER NOT NULL,
                reflexao TEXT,
                criado_por INTEGER,
                FOREIGN KEY (versiculo_id) REFERENCES versiculos(id)
            )
        ''')

        # ========================================
        # ENSAIOS
        # ========================================

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sessoes_ensaio (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                titulo TEXT NOT NULL,
                descricao TEXT,
                data_ensaio TIMESTAMP,
                criador_id INTEGER NOT NULL,
                cancao_id INTEGER,
                status TEXT DEFAULT 'aberta',
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (criador_id) REFERENCES usuarios(id),
                FOREIGN KEY (cancao_id) REFERENCES cancoes(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS ensaio_participantes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sessao_id INTEGER NOT NULL,
                usuario_id INTEGER NOT NULL,
                status TEXT DEFAULT 'convidado',
                data_convite TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                data_resposta TIMESTAMP,
                UNIQUE (sessao_id, usuario_id),
                FOREIGN KEY (sessao_id) REFERENCES sessoes_ensaio(id) ON DELETE CASCADE,
                FOREIGN KEY (usuario_id) REFERENCES usuarios(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS faixas_ensaio (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sessao_id INTEGER NOT NULL,
                usuario_id INTEGER NOT NULL,
                titulo TEXT NOT NULL,
                tipo TEXT DEFAULT 'voz',
                arquivo TEXT NOT NULL,
                tamanho_bytes INTEGER,
                duracao_segundos REAL,
                data_cadastro TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (sessao_id) REFERENCES sessoes_ensaio(id) ON DELETE CASCADE,
                FOREIGN KEY (usuario_id) REFERENCES usuarios(id)
            )
        ''')

        # ========================================
        # ÍNDICES PARA PERFORMANCE
        # ========================================

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_integrantes_nome ON integrantes(nomes, sobrenomes)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_licencas_integrante ON licencas(integrante_id, status)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_servicos_data ON servicos(data_servico)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_servicos_diretor ON servicos(diretor_id, data_servico)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_selecoes_cancao ON selecoes_cancoes(cancao_id, diretor_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_notificacoes_dest ON notificacoes(destinatario_id, lida)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_mensagens_sala ON mensagens_chat(sala_id, data_envio)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_logs_usuario ON logs_acesso(usuario_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_logs_data ON logs_acesso(data_hora)')

def criar_usuario_admin(nome: str, email: str, senha: str, integrante_id: int = None) -> int:
    """Cria um usuário administrador já aprovado"""
    senha_hash = bcrypt.hashpw(senha.encode(), bcrypt.gensalt()).decode()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO usuarios (nome, email, senha_hash, perfil, integrante_id, aprovado)
            VALUES (?, ?, ?, 'admin', ?, 1)
        ''', (nome, email.lower(), senha_hash, integrante_id))
        return cursor.lastrowid

def criar_dados_iniciais():
    """Cria administrador, grupos, sala geral e agendamentos padrão"""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT COUNT(*) FROM usuarios')
        if cursor.fetchone()[0] > 0:
            return

        grupos = [
            ('Grupo de Aleida', '#e67e22'),
            ('Grupo de Keyla', '#9b59b6'),
            ('Grupo de Massy', '#16a085'),
        ]
        for nome, cor in grupos:
            cursor.execute('INSERT OR IGNORE INTO grupos_louvor (nome, cor) VALUES (?, ?)', (nome, cor))

        cursor.execute('''
            INSERT INTO salas_chat (nome, descricao, tipo)
            VALUES ('Sala Geral', 'Conversa de todo o ministério', 'geral')
        ''')

        # Domingo = 0; overlay dos serviços do fim de semana às sextas 18:00
        agendamentos = [
            ('Serviços do fim de semana', 'service_overlay', 5, '18:00', 'todos', None),
            ('Lembrete de ensaio', 'general', 3, '17:00', 'todos',
             '{"titulo": "Ensaio hoje", "mensagem": "Não esqueça o ensaio geral às 19:30."}'),
        ]
        for nome, tipo, dia, hora, publico, metadata in agendamentos:
            cursor.execute('''
                INSERT INTO notificacoes_agendadas (nome, tipo, dia_semana, hora, publico, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (nome, tipo, dia, hora, publico, metadata))

        versiculos = [
            ('Salmos 150:6', 'Tudo quanto tem fôlego louve ao Senhor. Louvai ao Senhor.', 'louvor'),
            ('Colossenses 3:16', 'A palavra de Cristo habite em vós abundantemente, em toda a sabedoria, '
             'ensinando-vos e admoestando-vos uns aos outros, com salmos, hinos e cânticos espirituais.', 'adoração'),
            ('Salmos 100:2', 'Servi ao Senhor com alegria; e entrai diante dele com canto.', 'serviço'),
        ]
        for referencia, texto, tema in versiculos:
            cursor.execute('''
                INSERT OR IGNORE INTO versiculos (referencia, texto, traducao, tema)
                VALUES (?, ?, 'almeida', ?)
            ''', (referencia, texto, tema))

    admin_id = criar_usuario_admin('Administrador', 'admin@agenda.com', 'admin123')
    with get_connection() as conn:
        conn.execute('''
            INSERT INTO sala_membros (sala_id, usuario_id, papel)
            SELECT id, ?, 'moderador' FROM salas_chat WHERE tipo = 'geral'
        ''', (admin_id,))

    logger.info("Dados iniciais criados (admin@agenda.com)")

if __name__ == '__main__':
    init_database()
    criar_dados_iniciais()
