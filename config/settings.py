"""
Configurações da Agenda Ministerial
"""
import os
from pathlib import Path
from datetime import datetime, date

# Função para formatar datas no padrão brasileiro
def formatar_data_br(data) -> str:
    """Formata uma data para o padrão brasileiro dd/mm/yyyy"""
    if data is None:
        return ""
    if isinstance(data, str):
        if not data:
            return ""
        # yyyy-mm-dd[ hh:mm] -> dd/mm/yyyy
        partes = data.replace('T', ' ').split(' ')[0].split('-')
        if len(partes) == 3:
            return f"{partes[2]}/{partes[1]}/{partes[0]}"
        return data
    if isinstance(data, (datetime, date)):
        return data.strftime("%d/%m/%Y")
    return str(data)

def formatar_tempo(segundos: int) -> str:
    """Formata segundos como MM:SS ou HH:MM:SS"""
    segundos = int(segundos)
    horas = segundos // 3600
    minutos = (segundos % 3600) // 60
    resto = segundos % 60
    if horas > 0:
        return f"{horas:02d}:{minutos:02d}:{resto:02d}"
    return f"{minutos:02d}:{resto:02d}"

# Diretórios
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("AGENDA_DATA_DIR", BASE_DIR / "data"))
UPLOADS_DIR = DATA_DIR / "uploads"
CACHE_DIR = Path(os.getenv("CACHE_DIR", DATA_DIR / "cache"))
LOG_DIR = Path(os.getenv("LOG_DIR", DATA_DIR / "logs"))

# Criar diretórios se não existirem
for _diretorio in (DATA_DIR, UPLOADS_DIR, CACHE_DIR, LOG_DIR):
    _diretorio.mkdir(parents=True, exist_ok=True)

# Banco de dados
DATABASE_PATH = Path(os.getenv("AGENDA_DB_PATH", DATA_DIR / "agenda_ministerial.db"))

# Segurança
SECRET_KEY = os.getenv("SECRET_KEY", "sua-chave-secreta-aqui-mude-em-producao")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Integrações externas
BIBLE_API_URL = os.getenv("BIBLE_API_URL", "https://bible-api.com")
BIBLE_TRANSLATION = os.getenv("BIBLE_TRANSLATION", "almeida")
PUSH_WEBHOOK_URL = os.getenv("PUSH_WEBHOOK_URL", "")
HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "10"))

# Perfis de usuário (RBAC)
PERFIS = {
    "admin": {
        "nome": "Administrador",
        "permissoes": ["*"]
    },
    "lider": {
        "nome": "Líder / Diretor de Louvor",
        "permissoes": [
            "integrantes.ver", "integrantes.editar",
            "licencas.ver", "licencas.editar",
            "agenda.ver", "agenda.editar",
            "repertorio.ver", "repertorio.editar", "repertorio.selecionar",
            "grupos.ver", "grupos.editar",
            "reemplazos.ver", "reemplazos.solicitar",
            "comunicacao.ver", "comunicacao.enviar",
            "eventos.ver", "eventos.editar",
            "ensaios.ver", "ensaios.editar",
            "notificacoes.enviar",
            "dashboard.ver", "relatorios.ver"
        ]
    },
    "vocal": {
        "nome": "Vocal / Corista",
        "permissoes": [
            "integrantes.ver", "agenda.ver", "repertorio.ver", "grupos.ver",
            "comunicacao.ver", "comunicacao.enviar",
            "eventos.ver", "ensaios.ver", "ensaios.editar"
        ]
    },
    "musico": {
        "nome": "Músico",
        "permissoes": [
            "integrantes.ver", "agenda.ver", "repertorio.ver", "grupos.ver",
            "comunicacao.ver", "comunicacao.enviar",
            "eventos.ver", "ensaios.ver", "ensaios.editar"
        ]
    },
    "membro": {
        "nome": "Membro",
        "permissoes": [
            "agenda.ver", "repertorio.ver",
            "comunicacao.ver", "comunicacao.enviar"
        ]
    }
}

PERFIL_PADRAO = "membro"

# Cargos dos integrantes
CARGOS = [
    ("pastor", "Pastor"),
    ("pastora", "Pastora"),
    ("diretor_louvor", "Diretor(a) de Louvor"),
    ("diretor_musical", "Diretor(a) Musical"),
    ("corista", "Corista"),
    ("musico", "Músico"),
    ("diretora_danca", "Diretora de Dança"),
    ("danca", "Dança"),
    ("diretor_multimidia", "Diretor(a) de Multimídia"),
    ("camera", "Câmera"),
    ("sonoplasta", "Sonoplasta"),
    ("iluminacao", "Iluminação"),
    ("projecao", "Projeção"),
    ("streaming", "Streaming"),
    ("piso", "Encarregado(a) de Piso"),
]

CARGOS_DIRETOR = ("diretor_louvor", "diretor_musical")

# Grupos/departamentos dos integrantes
GRUPOS_INTEGRANTE = [
    "diretoria",
    "diretores_louvor",
    "coristas",
    "musicos",
    "multimidia",
    "danca",
    "teatro",
    "piso",
]

TIPOS_SANGUE = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]

INSTRUMENTOS = [
    "vocals", "piano", "guitar", "bass", "drums",
    "percussion", "saxophone", "trumpet", "violin", "other"
]

# Licenças
TIPOS_LICENCA = {
    "enfermidade": "Enfermidade",
    "maternidade": "Maternidade/Paternidade",
    "estudos": "Estudos",
    "trabalho": "Trabalho",
    "ferias": "Férias",
    "disciplina": "Disciplina",
    "suspensao": "Suspensão",
    "baixa_definitiva": "Baixa Definitiva",
    "outra": "Outra Razão",
}

STATUS_LICENCA = {
    "pendente": "Pendente",
    "aprovada": "Aprovada",
    "rejeitada": "Rejeitada",
    "cancelada": "Cancelada",
    "finalizada": "Finalizada",
}

# Agenda
HORARIOS_SERVICO = [
    ("08:00", "08:00 a.m."),
    ("10:45", "10:45 a.m."),
]

TIPOS_SERVICO = ["regular", "especial", "santa_ceia", "jovens", "vigilia", "outro"]

LOCAL_PADRAO = "Templo Principal"

# Substituição de diretor
REEMPLAZO_EXPIRACAO_HORAS = 24

# Notificações
TIPOS_NOTIFICACAO = [
    "general",
    "agenda",
    "repertory",
    "song_selection",
    "daily_verse",
    "system",
    "birthday_daily",
    "birthday_monthly",
    "director_replacement_request",
    "director_replacement_response",
    "director_change",
    "licenca",
    "special_event",
    "extraordinary_rehearsal",
    "blood_donation",
    "general_announcement",
    "ministry_instructions",
    "service_overlay",
]

# Tipos exibidos como overlay (tela cheia) ao abrir o app
TIPOS_OVERLAY = {
    "birthday_daily",
    "director_change",
    "special_event",
    "extraordinary_rehearsal",
    "blood_donation",
    "general_announcement",
    "ministry_instructions",
    "service_overlay",
    "daily_verse",
}

DIAS_SEMANA = ["Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado"]

# Cache offline
CACHE_PREFIXO = "agenda_cache_"
CACHE_VERSAO = "1.0.0"

_HORA = 60 * 60 * 1000
CACHE_DURACAO_PADRAO = 24 * _HORA

CACHE_CHAVES = {
    "PERFIL_USUARIO": "perfil_usuario",
    "SERVICOS": "servicos",
    "CANCOES": "cancoes",
    "INTEGRANTES": "integrantes",
    "GRUPOS": "grupos_louvor",
    "MEMBROS_GRUPO": "membros_grupo",
    "VERSICULOS": "versiculos_diarios",
    "NOTIFICACOES_PENDENTES": "notificacoes_pendentes",
    "SALAS_CHAT": "salas_chat",
    "MENSAGENS_RECENTES": "mensagens_recentes",
    "EVENTOS_ESPECIAIS": "eventos_especiais",
}

# Duração (ms) por chave
CACHE_DURACOES = {
    "perfil_usuario": 7 * 24 * _HORA,
    "servicos": 1 * _HORA,
    "cancoes": 24 * _HORA,
    "integrantes": 24 * _HORA,
    "grupos_louvor": 24 * _HORA,
    "membros_grupo": 24 * _HORA,
    "versiculos_diarios": 12 * _HORA,
    "notificacoes_pendentes": 5 * 60 * 1000,
    "salas_chat": 1 * _HORA,
    "mensagens_recentes": 15 * 60 * 1000,
    "eventos_especiais": 1 * _HORA,
}

# Status de membros inativos (cache em memória)
CACHE_INATIVOS_SEGUNDOS = 5 * 60

# Chat
TAMANHO_MAXIMO_MENSAGEM = 2000
