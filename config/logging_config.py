"""
Configuração de logging da aplicação
"""
import logging
import logging.handlers
from pathlib import Path

from config.settings import LOG_DIR, LOG_LEVEL

FORMATO = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

def configurar_logging(nivel: str = None, diretorio: Path = None) -> logging.Logger:
    """Configura o logger raiz com saída em console e arquivo diário.

    Chamadas repetidas (cada rerun do Streamlit) não duplicam handlers.
    """
    logger = logging.getLogger()
    nivel = getattr(logging, (nivel or LOG_LEVEL).upper(), logging.INFO)
    logger.setLevel(nivel)

    if getattr(logger, "_agenda_configurado", False):
        return logger

    diretorio = Path(diretorio or LOG_DIR)
    diretorio.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=FORMATO, datefmt="%Y-%m-%d %H:%M:%S")

    arquivo = logging.handlers.TimedRotatingFileHandler(
        filename=str(diretorio / "agenda_ministerial.log"),
        when="midnight",
        backupCount=7,
        encoding="utf-8",
    )
    arquivo.setFormatter(formatter)
    logger.addHandler(arquivo)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    logger._agenda_configurado = True
    return logger
